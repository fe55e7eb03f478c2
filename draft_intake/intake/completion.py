from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from .errors import InvalidRequest, NotFound
from .models import JobStatus, ReferenceStatus, TimelineEventRecord, TimelineEventType
from .repository import IntakeRepository

logger = logging.getLogger(__name__)

RAW_VERSION_MARKER = "Raw Extracted Text"


def source_block(name: str, text: str) -> str:
    return f"=== BEGIN SOURCE: {name} ===\n{text}\n=== END SOURCE: {name} ==="


class CompletionHandler:
    """
    The only writer of terminal job and reference states.

    The job row always records its own outcome. The reference only mirrors
    it while the job is still the reference's current job, so a late result
    from a superseded attempt cannot overwrite a newer one.
    """

    def __init__(self, repository: IntakeRepository):
        self.repo = repository

    def complete(
        self,
        job_id: str,
        status: str,
        extracted_text: Optional[str] = None,
        error_message: Optional[str] = None,
        worker_response: Optional[Dict[str, Any]] = None,
        extracted_chunks: Optional[List[Any]] = None,
    ) -> bool:
        try:
            job_status = JobStatus(status)
        except ValueError as exc:
            raise InvalidRequest(f"Invalid completion status: {status}") from exc
        if not job_status.is_terminal:
            raise InvalidRequest(f"Completion status must be terminal, got {status}")

        job = self.repo.get_job(job_id)
        if not job:
            raise NotFound(f"Extraction job not found: {job_id}")
        if job.status.is_terminal:
            logger.warning("Ignoring completion for job %s: already %s", job_id, job.status.value)
            return False

        if job_status == JobStatus.SUCCEEDED and not (extracted_text and extracted_text.strip()):
            job_status = JobStatus.FAILED
            error_message = error_message or "No text was extracted"

        if job_status == JobStatus.SUCCEEDED:
            reference_status = ReferenceStatus.DONE
            error_message = None
            error_text = None
            text = extracted_text
            chunks = extracted_chunks
        else:
            reference_status = ReferenceStatus.FAILED
            error_message = error_message or "Extraction failed"
            error_text = error_message
            text = None
            chunks = None

        applied = self.repo.complete_job(
            job_id,
            status=job_status,
            finished_at=datetime.utcnow(),
            error_message=error_message,
            worker_response=worker_response or {},
            reference_status=reference_status,
            extracted_text=text,
            extracted_chunks=chunks,
            error_text=error_text,
        )
        if not applied:
            logger.warning(
                "Discarded stale result of job %s for reference %s (superseded or deleted)", job_id, job.reference_id
            )
            return False

        logger.info("Job %s finished as %s", job_id, job_status.value)
        if job_status == JobStatus.SUCCEEDED:
            self._augment_raw_version(job.project_id, job.reference_id, job.requested_by, text or "")
        return True

    def _augment_raw_version(self, project_id: str, reference_id: str, user_id: str, text: str) -> None:
        """Append late-arriving sources to the raw version once intake is completed."""
        project = self.repo.get_project(project_id)
        if not project or not project.metadata.get("intake_completed"):
            return
        reference = self.repo.get_reference(reference_id)
        name = reference.display_name if reference else "Unknown Source"
        if append_to_raw_version(self.repo, project_id, name, text) is None:
            return
        self.repo.add_timeline_events(
            [
                TimelineEventRecord(
                    id=str(uuid.uuid4()),
                    project_id=project_id,
                    event_type=TimelineEventType.EDITED,
                    event_details={"action": "reference_added", "file_name": name, "augmented_raw_version": True},
                    user_id=user_id,
                )
            ]
        )


def append_to_raw_version(repo: IntakeRepository, project_id: str, source_name: str, text: str) -> Optional[str]:
    """Append a source block to the project's raw version. Returns its id, or None if there is none."""
    versions = repo.list_versions(project_id)
    raw = next((v for v in reversed(versions) if RAW_VERSION_MARKER in (v.title or "")), None)
    if raw is None:
        return None
    repo.update_version_content(raw.id, f"{raw.content}\n\n{source_block(source_name, text)}")
    return raw.id
