from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceKind(str, Enum):
    TXT = "txt"
    PDF = "pdf"
    DOCX = "docx"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    YOUTUBE = "youtube"
    URL = "url"


class ReferenceStatus(str, Enum):
    QUEUED = "queued"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class JobType(str, Enum):
    TXT_PARSE = "txt_parse"
    PDF_PARSE = "pdf_parse"
    DOCX_PARSE = "docx_parse"
    IMAGE_OCR = "image_ocr"
    IMAGE_PARSE = "image_parse"
    AUDIO_TRANSCRIBE = "audio_transcribe"
    VIDEO_TRANSCRIBE = "video_transcribe"
    YOUTUBE_TRANSCRIBE = "youtube_transcribe"
    URL_PARSE = "url_parse"


DEFAULT_JOB_TYPES: Dict[SourceKind, JobType] = {
    SourceKind.TXT: JobType.TXT_PARSE,
    SourceKind.PDF: JobType.PDF_PARSE,
    SourceKind.DOCX: JobType.DOCX_PARSE,
    SourceKind.IMAGE: JobType.IMAGE_OCR,
    SourceKind.AUDIO: JobType.AUDIO_TRANSCRIBE,
    SourceKind.VIDEO: JobType.VIDEO_TRANSCRIBE,
    SourceKind.YOUTUBE: JobType.YOUTUBE_TRANSCRIBE,
    SourceKind.URL: JobType.URL_PARSE,
}


def job_type_for_kind(kind: SourceKind) -> str:
    return DEFAULT_JOB_TYPES[SourceKind(kind)].value


class TimelineEventType(str, Enum):
    VERSION_CREATED = "version_created"
    REFERENCE_ADDED = "reference_added"
    REFERENCE_DELETED = "reference_deleted"
    EDITED = "edited"


@dataclass
class ProjectRecord:
    id: str
    owner_id: str
    title: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ReferenceRecord:
    id: str
    project_id: str
    uploaded_by: str
    storage_path: Optional[str]
    file_name: Optional[str]
    source_kind: SourceKind
    size_bytes: Optional[int] = None
    status: ReferenceStatus = ReferenceStatus.QUEUED
    error_text: Optional[str] = None
    extracted_text: Optional[str] = None
    extracted_chunks: Optional[List[Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_notes: Optional[str] = None
    current_job_id: Optional[str] = None
    attempt_count: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.file_name or self.storage_path or self.id


@dataclass
class ExtractionJobRecord:
    id: str
    reference_id: str
    project_id: str
    requested_by: str
    job_type: str
    status: JobStatus = JobStatus.QUEUED
    worker_response: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    attempt: int = 1
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass
class VersionRecord:
    id: str
    project_id: str
    version_number: int
    title: str
    description: Optional[str]
    content: str
    created_by: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class TimelineEventRecord:
    id: str
    project_id: str
    event_type: TimelineEventType
    event_details: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
