from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict

from .completion import CompletionHandler
from .models import JobStatus
from .repository import IntakeRepository
from .strategies import StrategyRegistry

logger = logging.getLogger(__name__)


class WorkerDispatcher:
    """
    Drives one extraction job: claim (queued -> running), mark the reference
    as extracting, run the strategy for the job type, and hand the outcome to
    the completion handler. Strategy errors never escape this boundary; they
    become a failed job.
    """

    def __init__(self, repository: IntakeRepository, registry: StrategyRegistry, completion: CompletionHandler):
        self.repo = repository
        self.registry = registry
        self.completion = completion

    def run_job(self, job_id: str) -> None:
        job = self.repo.get_job(job_id)
        if not job:
            logger.warning("Extraction job %s not found", job_id)
            return
        if not self.repo.claim_job(job_id, started_at=datetime.utcnow()):
            logger.info("Job %s is %s; skipping duplicate dispatch", job_id, job.status.value)
            return

        response: Dict[str, Any] = {"job_type": job.job_type}
        reference = self.repo.get_reference(job.reference_id)
        if not reference:
            response["processed_at"] = datetime.utcnow().isoformat()
            self.completion.complete(
                job_id, JobStatus.FAILED.value, error_message="Reference not found", worker_response=response
            )
            return
        if not self.repo.mark_reference_extracting(reference.id, job_id):
            logger.info("Job %s no longer current for reference %s", job_id, reference.id)

        started = time.monotonic()
        try:
            strategy = self.registry.get(job.job_type)
            response["strategy"] = strategy.name
            result = strategy.extract(reference)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Extraction job %s (%s) failed: %s", job_id, job.job_type, exc)
            response["processed_at"] = datetime.utcnow().isoformat()
            response["duration_s"] = round(time.monotonic() - started, 3)
            response["error_type"] = exc.__class__.__name__
            self.completion.complete(
                job_id,
                JobStatus.FAILED.value,
                error_message=str(exc) or exc.__class__.__name__,
                worker_response=response,
            )
            return

        response.update(result.details)
        response["processed_at"] = datetime.utcnow().isoformat()
        response["duration_s"] = round(time.monotonic() - started, 3)
        response["char_count"] = len(result.text or "")
        self.completion.complete(
            job_id,
            JobStatus.SUCCEEDED.value,
            extracted_text=result.text,
            worker_response=response,
            extracted_chunks=result.chunks,
        )
