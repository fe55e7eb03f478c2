from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup

from .errors import InvalidRequest, ProviderFailure, UnsupportedJobType
from .fetch import PageFetcher
from .llm import GenerativeModel, inline_part, text_part, uri_part
from .models import JobType, ReferenceRecord, SourceKind
from .storage import BlobStorage
from .youtube import WATCH_URL, TranscriptSource, build_transcript_api, extract_video_id, fetch_captions

logger = logging.getLogger(__name__)

DOCUMENT_INSTRUCTION = (
    "Extract every word of text from this {label}. Do not summarize, skip, shorten or paraphrase anything. "
    "Preserve the original structure: headings, paragraphs, bulleted and numbered lists, and tables "
    "(render tables as Markdown tables). Return nothing but the extracted text, with no commentary, "
    "preamble or explanation."
)

TRANSCRIPTION_INSTRUCTION = (
    "Transcribe all speech in this {label} verbatim, from beginning to end. Do not summarize, skip or "
    "clean up anything. When the speaker changes, start a new paragraph with a speaker marker such as "
    "\"Speaker 1:\" or \"Speaker 2:\". Return nothing but the transcription."
)

YOUTUBE_HINT = "Please upload the audio file directly."

DOCUMENT_MIME_TYPES: Dict[str, str] = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "heic": "image/heic",
}

MEDIA_MIME_TYPES: Dict[str, str] = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "ogg": "audio/ogg",
    "flac": "audio/flac",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
}

_WHITESPACE = re.compile(r"\s+")


def file_extension(name: Optional[str]) -> str:
    if not name or "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def html_to_text(page_html: str, cap: int) -> str:
    soup = BeautifulSoup(page_html, "html.parser")
    for element in soup(["script", "style", "noscript", "template"]):
        element.decompose()
    text = _WHITESPACE.sub(" ", soup.get_text(" ")).strip()
    return text[:cap] if cap > 0 else text


@dataclass
class ExtractionResult:
    text: str
    details: Dict[str, Any] = field(default_factory=dict)
    chunks: Optional[List[Any]] = None


class ExtractionStrategy:
    """
    Converts one reference into plain text. Implementations should be
    stateless and reusable across jobs; any exception they raise is recorded
    on the job by the dispatcher.
    """

    name = "base"

    def extract(self, reference: ReferenceRecord) -> ExtractionResult:
        raise NotImplementedError


class TextStrategy(ExtractionStrategy):
    name = "text"

    def __init__(self, storage: BlobStorage):
        self.storage = storage

    def extract(self, reference: ReferenceRecord) -> ExtractionResult:
        data = self.storage.download(reference.storage_path or "")
        return ExtractionResult(text=data.decode("utf-8-sig", errors="replace"))


class DocumentStrategy(ExtractionStrategy):
    """PDF, DOCX and image extraction through a vision-capable model."""

    name = "document_vision"

    def __init__(self, storage: BlobStorage, model: GenerativeModel):
        self.storage = storage
        self.model = model

    def _mime_type(self, reference: ReferenceRecord) -> str:
        ext = file_extension(reference.file_name) or file_extension(reference.storage_path)
        if reference.source_kind == SourceKind.PDF:
            return DOCUMENT_MIME_TYPES["pdf"]
        if reference.source_kind == SourceKind.DOCX:
            return DOCUMENT_MIME_TYPES["docx"]
        return DOCUMENT_MIME_TYPES.get(ext, "image/jpeg")

    def _label(self, reference: ReferenceRecord) -> str:
        return {
            SourceKind.PDF: "PDF document",
            SourceKind.DOCX: "Word document",
        }.get(reference.source_kind, "image")

    def extract(self, reference: ReferenceRecord) -> ExtractionResult:
        data = self.storage.download(reference.storage_path or "")
        mime_type = self._mime_type(reference)
        text = self.model.generate(
            [text_part(DOCUMENT_INSTRUCTION.format(label=self._label(reference))), inline_part(data, mime_type)]
        )
        return ExtractionResult(text=text, details={"mime_type": mime_type, "bytes": len(data)})


class TranscriptionStrategy(ExtractionStrategy):
    name = "media_transcription"

    def __init__(self, storage: BlobStorage, model: GenerativeModel):
        self.storage = storage
        self.model = model

    def _mime_type(self, reference: ReferenceRecord) -> str:
        ext = file_extension(reference.file_name) or file_extension(reference.storage_path)
        if ext in MEDIA_MIME_TYPES:
            return MEDIA_MIME_TYPES[ext]
        return "video/mp4" if reference.source_kind == SourceKind.VIDEO else "audio/mpeg"

    def extract(self, reference: ReferenceRecord) -> ExtractionResult:
        data = self.storage.download(reference.storage_path or "")
        mime_type = self._mime_type(reference)
        label = "video" if mime_type.startswith("video/") else "audio recording"
        text = self.model.generate(
            [text_part(TRANSCRIPTION_INSTRUCTION.format(label=label)), inline_part(data, mime_type)]
        )
        return ExtractionResult(text=text, details={"mime_type": mime_type, "bytes": len(data)})


class YouTubeStrategy(ExtractionStrategy):
    """
    Two-tier YouTube extraction. Published captions are used when they are
    long enough; otherwise the video URL is handed to the model for a full
    transcription.
    """

    name = "youtube"

    def __init__(
        self,
        model: GenerativeModel,
        transcripts: Optional[TranscriptSource] = None,
        caption_min_chars: int = 50,
    ):
        self.model = model
        self.transcripts = transcripts if transcripts is not None else build_transcript_api()
        self.caption_min_chars = caption_min_chars

    def extract(self, reference: ReferenceRecord) -> ExtractionResult:
        url = reference.metadata.get("youtube_url") or reference.storage_path or ""
        video_id = reference.metadata.get("video_id") or extract_video_id(url)
        if not video_id:
            raise InvalidRequest(f"Not a YouTube video URL: {url}")

        captions = fetch_captions(self.transcripts, video_id)
        if captions and len(captions) > self.caption_min_chars:
            return ExtractionResult(text=captions, details={"path": "captions", "video_id": video_id})

        logger.info("Falling back to model transcription for video %s", video_id)
        try:
            text = self.model.generate(
                [
                    text_part(TRANSCRIPTION_INSTRUCTION.format(label="YouTube video")),
                    uri_part(WATCH_URL.format(video_id=video_id)),
                ]
            )
        except Exception as exc:
            raise ProviderFailure(
                f"YouTube video may be private or unavailable ({exc}). {YOUTUBE_HINT}"
            ) from exc
        return ExtractionResult(text=text, details={"path": "transcription", "video_id": video_id})


class UrlStrategy(ExtractionStrategy):
    name = "url"

    def __init__(self, fetcher: PageFetcher, text_cap: int = 50_000):
        self.fetcher = fetcher
        self.text_cap = text_cap

    def extract(self, reference: ReferenceRecord) -> ExtractionResult:
        url = reference.metadata.get("url") or reference.storage_path or ""
        page_html = self.fetcher.get_text(url)
        text = html_to_text(page_html, self.text_cap)
        return ExtractionResult(text=text, details={"html_chars": len(page_html)})


class StrategyRegistry:
    """Static lookup from job type to strategy."""

    def __init__(self):
        self._strategies: Dict[str, ExtractionStrategy] = {}

    def register(self, job_types: Iterable[str], strategy: ExtractionStrategy) -> None:
        for job_type in job_types:
            self._strategies[str(getattr(job_type, "value", job_type))] = strategy

    def get(self, job_type: str) -> ExtractionStrategy:
        strategy = self._strategies.get(job_type)
        if strategy is None:
            raise UnsupportedJobType(f"Unknown job type: {job_type}")
        return strategy

    def job_types(self) -> List[str]:
        return sorted(self._strategies)


def build_default_registry(
    storage: BlobStorage,
    model: GenerativeModel,
    fetcher: PageFetcher,
    transcripts: Optional[TranscriptSource] = None,
    url_text_cap: int = 50_000,
    caption_min_chars: int = 50,
) -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register([JobType.TXT_PARSE], TextStrategy(storage))
    registry.register(
        [JobType.PDF_PARSE, JobType.DOCX_PARSE, JobType.IMAGE_OCR, JobType.IMAGE_PARSE],
        DocumentStrategy(storage, model),
    )
    registry.register([JobType.AUDIO_TRANSCRIBE, JobType.VIDEO_TRANSCRIBE], TranscriptionStrategy(storage, model))
    registry.register([JobType.YOUTUBE_TRANSCRIBE], YouTubeStrategy(model, transcripts, caption_min_chars))
    registry.register([JobType.URL_PARSE], UrlStrategy(fetcher, url_text_cap))
    return registry
