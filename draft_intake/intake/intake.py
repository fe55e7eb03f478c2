from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

from .access import AccessChecker, require_access
from .errors import InvalidRequest, NotFound
from .job_queue import ExtractionJobQueue
from .models import (
    ReferenceRecord,
    ReferenceStatus,
    SourceKind,
    TimelineEventRecord,
    TimelineEventType,
    job_type_for_kind,
)
from .repository import IntakeRepository
from .storage import LocalBlobStorage
from .strategies import DOCUMENT_MIME_TYPES, MEDIA_MIME_TYPES, file_extension
from .youtube import extract_video_id

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {"txt", "md", "markdown", "csv", "json", "html", "htm", "rtf", "srt", "vtt"}
UPLOADED_KINDS = {SourceKind.TXT, SourceKind.PDF, SourceKind.DOCX, SourceKind.IMAGE, SourceKind.AUDIO, SourceKind.VIDEO}


@dataclass
class IntakeResult:
    reference_id: str
    job_id: Optional[str] = None


def _kind_from_extension(ext: str) -> Optional[SourceKind]:
    if ext in TEXT_EXTENSIONS:
        return SourceKind.TXT
    if ext == "pdf":
        return SourceKind.PDF
    if ext in ("docx", "doc"):
        return SourceKind.DOCX
    if ext in DOCUMENT_MIME_TYPES:
        return SourceKind.IMAGE
    mime = MEDIA_MIME_TYPES.get(ext)
    if mime:
        return SourceKind.VIDEO if mime.startswith("video/") else SourceKind.AUDIO
    return None


def _kind_from_mime(mime: str) -> Optional[SourceKind]:
    if mime == "application/pdf":
        return SourceKind.PDF
    if mime in (DOCUMENT_MIME_TYPES["docx"], "application/msword"):
        return SourceKind.DOCX
    for prefix, kind in (
        ("image/", SourceKind.IMAGE),
        ("audio/", SourceKind.AUDIO),
        ("video/", SourceKind.VIDEO),
        ("text/", SourceKind.TXT),
    ):
        if mime.startswith(prefix):
            return kind
    return None


def resolve_source_kind(file_type: Optional[str], file_name: Optional[str] = None) -> SourceKind:
    """
    Accepts a source kind (``pdf``), a MIME type (``application/pdf``) or an
    extension (``.pdf``); falls back to the file name's extension.
    """
    candidate = (file_type or "").strip().lower()
    if candidate in {k.value for k in SourceKind}:
        return SourceKind(candidate)
    if candidate == "text" or candidate == "plain-text":
        return SourceKind.TXT
    kind = None
    if "/" in candidate:
        kind = _kind_from_mime(candidate.split(";", 1)[0])
    elif candidate:
        kind = _kind_from_extension(candidate.lstrip("."))
    if kind is None:
        kind = _kind_from_extension(file_extension(file_name))
    if kind is None or kind in (SourceKind.URL, SourceKind.YOUTUBE):
        raise InvalidRequest(f"Unsupported file type: {file_type or file_name}")
    return kind


def validate_url(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidRequest(f"Invalid URL: {url}")
    return url


class ReferenceIntakeManager:
    """
    Creates reference rows for uploaded files, links and pasted text, and
    queues the first extraction job for each (pasted text needs none).
    """

    def __init__(
        self,
        repository: IntakeRepository,
        access: AccessChecker,
        queue: ExtractionJobQueue,
        storage: LocalBlobStorage,
    ):
        self.repo = repository
        self.access = access
        self.queue = queue
        self.storage = storage

    def _create(self, reference: ReferenceRecord, user_id: str, queue_job: bool = True) -> IntakeResult:
        self.repo.save_reference(reference)
        self.repo.add_timeline_events(
            [
                TimelineEventRecord(
                    id=str(uuid.uuid4()),
                    project_id=reference.project_id,
                    event_type=TimelineEventType.REFERENCE_ADDED,
                    event_details={"file_name": reference.file_name, "source_kind": reference.source_kind.value},
                    user_id=user_id,
                )
            ]
        )
        if not queue_job:
            return IntakeResult(reference_id=reference.id)
        job = self.queue.enqueue(reference.id, job_type_for_kind(reference.source_kind), user_id)
        return IntakeResult(reference_id=reference.id, job_id=job.id)

    def add_file(
        self,
        project_id: str,
        user_id: str,
        storage_path: str,
        file_name: str,
        file_type: Optional[str],
        size_bytes: Optional[int] = None,
    ) -> IntakeResult:
        require_access(self.access, project_id, user_id)
        if not storage_path:
            raise InvalidRequest("storage_path is required")
        kind = resolve_source_kind(file_type, file_name)
        reference = ReferenceRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            uploaded_by=user_id,
            storage_path=storage_path,
            file_name=file_name,
            source_kind=kind,
            size_bytes=size_bytes,
            metadata={"file_type": file_type} if file_type else {},
        )
        return self._create(reference, user_id)

    def upload_file(
        self, project_id: str, user_id: str, file_name: str, data: bytes, file_type: Optional[str] = None
    ) -> IntakeResult:
        require_access(self.access, project_id, user_id)
        if not data:
            raise InvalidRequest("Uploaded file is empty")
        resolve_source_kind(file_type, file_name)
        path = self.storage.project_object_path(project_id, f"{uuid.uuid4().hex[:8]}-{file_name}")
        self.storage.upload(path, data)
        return self.add_file(project_id, user_id, path, file_name, file_type, size_bytes=len(data))

    def add_link(self, project_id: str, user_id: str, url: str) -> IntakeResult:
        require_access(self.access, project_id, user_id)
        url = validate_url(url)
        reference = ReferenceRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            uploaded_by=user_id,
            storage_path=url,
            file_name=urlparse(url).hostname,
            source_kind=SourceKind.URL,
            metadata={"url": url},
        )
        return self._create(reference, user_id)

    def add_youtube(self, project_id: str, user_id: str, url: str) -> IntakeResult:
        require_access(self.access, project_id, user_id)
        url = validate_url(url)
        video_id = extract_video_id(url)
        if not video_id:
            raise InvalidRequest(f"Invalid YouTube URL: {url}")
        reference = ReferenceRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            uploaded_by=user_id,
            storage_path=url,
            file_name=f"YouTube: {video_id}",
            source_kind=SourceKind.YOUTUBE,
            metadata={"youtube_url": url, "video_id": video_id},
        )
        return self._create(reference, user_id)

    def add_text(self, project_id: str, user_id: str, text: str, name: Optional[str] = None) -> IntakeResult:
        """Pasted text is already extracted, so the reference starts out done."""
        require_access(self.access, project_id, user_id)
        if not text or not text.strip():
            raise InvalidRequest("Pasted text is empty")
        reference = ReferenceRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            uploaded_by=user_id,
            storage_path=None,
            file_name=name or "Pasted text",
            source_kind=SourceKind.TXT,
            size_bytes=len(text.encode("utf-8")),
            status=ReferenceStatus.DONE,
            extracted_text=text,
            metadata={"pasted": True},
        )
        return self._create(reference, user_id, queue_job=False)

    def list_references(self, project_id: str, user_id: str) -> List[ReferenceRecord]:
        require_access(self.access, project_id, user_id)
        return self.repo.list_references(project_id)

    def get_reference(self, reference_id: str, user_id: str) -> ReferenceRecord:
        reference = self.repo.get_reference(reference_id)
        if not reference:
            raise NotFound(f"Reference file not found: {reference_id}")
        require_access(self.access, reference.project_id, user_id)
        return reference

    def update_notes(self, reference_id: str, user_id: str, notes: Optional[str]) -> ReferenceRecord:
        reference = self.get_reference(reference_id, user_id)
        self.repo.update_reference(reference.id, user_notes=(notes or "").strip() or None)
        return self.repo.get_reference(reference.id)

    def delete_reference(self, reference_id: str, user_id: str) -> None:
        """
        Deletes the reference immediately. Jobs still running for it finish
        against a missing row and only update their own job record.
        """
        reference = self.get_reference(reference_id, user_id)
        self.repo.delete_reference(reference.id)
        if reference.source_kind in UPLOADED_KINDS and reference.storage_path and not reference.metadata.get("pasted"):
            self.storage.delete(reference.storage_path)
        self.repo.add_timeline_events(
            [
                TimelineEventRecord(
                    id=str(uuid.uuid4()),
                    project_id=reference.project_id,
                    event_type=TimelineEventType.REFERENCE_DELETED,
                    event_details={"file_name": reference.file_name},
                    user_id=user_id,
                )
            ]
        )
        logger.info("Deleted reference %s from project %s", reference.id, reference.project_id)
