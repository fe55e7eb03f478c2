from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Protocol, Set

from redis import Redis
from rq import Queue, Worker

from .access import AccessChecker, require_access
from .completion import CompletionHandler
from .config import IntakeSettings
from .errors import InvalidRequest, NotFound, RetryLimitExceeded
from .models import ExtractionJobRecord, JobStatus, job_type_for_kind
from .repository import IntakeRepository

logger = logging.getLogger(__name__)

JobRunner = Callable[[str], None]


def dispatch_key(reference_id: str, job_id: str) -> str:
    """Idempotency key for a dispatch; a second submit with the same key is a no-op."""
    return f"{reference_id}_{job_id}"


class JobExecutor(Protocol):
    def submit(self, reference_id: str, job_id: str) -> bool:
        ...


class InlineExecutor:
    """Runs each job to completion inside ``submit``. Used by tests and the demo CLI."""

    def __init__(self, runner: JobRunner):
        self.runner = runner

    def submit(self, reference_id: str, job_id: str) -> bool:
        self.runner(job_id)
        return True


class ThreadPoolJobExecutor:
    """
    Bounded in-process worker pool. At most ``max_workers`` strategies run at
    once; further jobs wait in the pool's queue.
    """

    def __init__(self, runner: JobRunner, max_workers: int = 4):
        self.runner = runner
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="extraction")
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()

    def submit(self, reference_id: str, job_id: str) -> bool:
        key = dispatch_key(reference_id, job_id)
        with self._lock:
            if key in self._in_flight:
                logger.info("Dispatch %s already in flight", key)
                return False
            self._in_flight.add(key)
        self._pool.submit(self._run, key, job_id)
        return True

    def _run(self, key: str, job_id: str) -> None:
        try:
            self.runner(job_id)
        except Exception:  # noqa: BLE001
            logger.exception("Unhandled error while running extraction job %s", job_id)
        finally:
            with self._lock:
                self._in_flight.discard(key)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)


def run_extraction_job(job_id: str, settings: IntakeSettings) -> None:
    """
    RQ task entrypoint. Creates all required components and executes an extraction job.
    """
    from .pipeline import build_pipeline

    pipeline = build_pipeline(settings, executor="inline")
    pipeline.dispatcher.run_job(job_id)


class RQJobExecutor:
    """
    Redis-backed durable queue using RQ. Jobs are pushed to Redis and workers
    can be started by calling `work()` in a dedicated process.
    """

    def __init__(self, settings: IntakeSettings):
        self.settings = settings
        self.redis = Redis.from_url(settings.redis_url)
        self.queue = Queue(settings.queue_name, connection=self.redis)

    def submit(self, reference_id: str, job_id: str) -> bool:
        """
        Enqueue an extraction job. The RQ job id is the dispatch key, so the
        same job is never pushed twice.
        """
        key = dispatch_key(reference_id, job_id)
        if self.queue.fetch_job(key) is not None:
            logger.info("Dispatch %s already queued in Redis", key)
            return False
        self.queue.enqueue(run_extraction_job, job_id, self.settings, job_id=key, retry=None)
        return True

    def work(self):
        worker = Worker([self.queue], connection=self.redis)
        worker.work(with_scheduler=True)


class ExtractionJobQueue:
    """
    Creates extraction job rows and hands them to an executor. ``enqueue``
    returns once dispatch has been started; it never waits for the strategy
    unless the executor is inline.
    """

    def __init__(
        self,
        repository: IntakeRepository,
        access: AccessChecker,
        completion: CompletionHandler,
        executor: JobExecutor,
        max_attempts: int = 0,
    ):
        self.repo = repository
        self.access = access
        self.completion = completion
        self.executor = executor
        self.max_attempts = max_attempts

    def enqueue(self, reference_id: str, job_type: str, user_id: str) -> ExtractionJobRecord:
        if not job_type:
            raise InvalidRequest("job_type is required")
        reference = self.repo.get_reference(reference_id)
        if not reference:
            raise NotFound(f"Reference file not found: {reference_id}")
        require_access(self.access, reference.project_id, user_id)
        if reference.metadata.get("pasted"):
            raise InvalidRequest("Pasted text references have nothing to extract")
        if self.max_attempts > 0 and reference.attempt_count >= self.max_attempts:
            raise RetryLimitExceeded(
                f"Reference {reference_id} reached the maximum of {self.max_attempts} extraction attempts"
            )

        job = ExtractionJobRecord(
            id=str(uuid.uuid4()),
            reference_id=reference.id,
            project_id=reference.project_id,
            requested_by=user_id,
            job_type=job_type,
            status=JobStatus.QUEUED,
            attempt=reference.attempt_count + 1,
        )
        self.repo.create_job(job)
        logger.info("Queued %s job %s for reference %s (attempt %d)", job_type, job.id, reference.id, job.attempt)

        try:
            self.executor.submit(reference.id, job.id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to dispatch extraction job %s", job.id)
            self.completion.complete(job.id, JobStatus.FAILED.value, error_message=f"Dispatch failed: {exc}")
        return job

    def retry(self, reference_id: str, user_id: str, job_type: Optional[str] = None) -> ExtractionJobRecord:
        """Queue a fresh job for a reference, reusing the previous job type when none is given."""
        if not job_type:
            reference = self.repo.get_reference(reference_id)
            if not reference:
                raise NotFound(f"Reference file not found: {reference_id}")
            previous = self.repo.list_jobs(reference_id=reference_id)
            job_type = previous[-1].job_type if previous else job_type_for_kind(reference.source_kind)
        return self.enqueue(reference_id, job_type, user_id)

    def get_job(self, job_id: str, user_id: str) -> ExtractionJobRecord:
        job = self.repo.get_job(job_id)
        if not job:
            raise NotFound(f"Extraction job not found: {job_id}")
        require_access(self.access, job.project_id, user_id)
        return job

    def list_jobs(self, project_id: str, user_id: str) -> List[ExtractionJobRecord]:
        require_access(self.access, project_id, user_id)
        return self.repo.list_jobs(project_id=project_id)
