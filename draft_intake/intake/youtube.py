"""
YouTube helpers: video id parsing and caption retrieval.

Captions come from ``youtube_transcript_api``. Any failure to retrieve them
(disabled captions, unavailable video, blocked request) is treated as "no
captions" so the caller can fall back to model transcription.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Optional, Protocol, Sequence
from urllib.parse import parse_qs, urlparse

import requests
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
DEFAULT_CAPTION_LANGUAGES = ("en",)

_WHITESPACE = re.compile(r"\s+")


class TranscriptSource(Protocol):
    def fetch(self, video_id: str, languages: Iterable[str] = ...) -> Iterable[Any]:
        ...


def extract_video_id(url: str) -> Optional[str]:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    path = parsed.path or ""
    if host.endswith("youtu.be"):
        vid = path.lstrip("/").split("/", 1)[0]
        return vid or None
    if host.endswith("youtube.com") or host.endswith("youtube-nocookie.com"):
        if path == "/watch":
            qs = parse_qs(parsed.query)
            return (qs.get("v") or [None])[0]
        for prefix in ("/shorts/", "/embed/", "/live/"):
            if path.startswith(prefix):
                vid = path[len(prefix) :].split("/", 1)[0]
                return vid or None
    return None


def build_transcript_api() -> YouTubeTranscriptApi:
    return YouTubeTranscriptApi()


def format_captions(segments: Iterable[Any]) -> str:
    """Join caption segments (dicts or snippet objects) into one line of text."""
    lines: List[str] = []
    for seg in segments:
        if isinstance(seg, dict):
            text = str(seg.get("text") or "")
        else:
            text = str(getattr(seg, "text", "") or "")
        text = _WHITESPACE.sub(" ", text).strip()
        if text:
            lines.append(text)
    return " ".join(lines)


def fetch_captions(
    source: TranscriptSource,
    video_id: str,
    languages: Sequence[str] = DEFAULT_CAPTION_LANGUAGES,
) -> Optional[str]:
    """
    Return caption text for ``video_id`` or None when no transcript can be
    retrieved. Retrieval errors are logged and treated as "no captions".
    """
    try:
        segments = source.fetch(video_id, languages=list(languages))
    except (CouldNotRetrieveTranscript, requests.RequestException) as exc:
        logger.warning("Caption retrieval failed for video %s: %s", video_id, exc.__class__.__name__)
        return None
    text = format_captions(segments)
    if not text:
        logger.info("Empty transcript for video %s", video_id)
        return None
    return text
