from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from .models import JobStatus, ReferenceStatus
from .repository import IntakeRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectStatus:
    project_id: str
    total_jobs: int
    completed_jobs: int
    active_jobs: int
    failed_jobs: int
    total_references: int
    done_references: int
    failed_references: int
    active_references: int
    stale_jobs: int = 0

    @property
    def all_jobs_complete(self) -> bool:
        return self.active_jobs == 0

    @property
    def pending_jobs(self) -> int:
        """Active jobs that some reference still points at as its current job."""
        return self.active_jobs - self.stale_jobs

    @property
    def has_failed_references(self) -> bool:
        return self.failed_references > 0

    @property
    def ready_to_consolidate(self) -> bool:
        return self.pending_jobs == 0 and self.done_references > 0

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload.update(
            all_jobs_complete=self.all_jobs_complete,
            pending_jobs=self.pending_jobs,
            has_failed_references=self.has_failed_references,
            ready_to_consolidate=self.ready_to_consolidate,
        )
        return payload


class StatusAggregator:
    """Read-side projection of job and reference state for one project."""

    def __init__(self, repository: IntakeRepository):
        self.repo = repository

    def snapshot(self, project_id: str) -> ProjectStatus:
        jobs = self.repo.list_jobs(project_id=project_id)
        references = self.repo.list_references(project_id)
        current = {r.current_job_id for r in references if r.current_job_id}
        active = [j for j in jobs if j.status in (JobStatus.QUEUED, JobStatus.RUNNING)]
        return ProjectStatus(
            project_id=project_id,
            total_jobs=len(jobs),
            completed_jobs=sum(1 for j in jobs if j.status.is_terminal),
            active_jobs=len(active),
            failed_jobs=sum(1 for j in jobs if j.status == JobStatus.FAILED),
            total_references=len(references),
            done_references=sum(1 for r in references if r.status == ReferenceStatus.DONE),
            failed_references=sum(1 for r in references if r.status == ReferenceStatus.FAILED),
            active_references=sum(
                1 for r in references if r.status in (ReferenceStatus.QUEUED, ReferenceStatus.EXTRACTING)
            ),
            stale_jobs=sum(1 for j in active if j.id not in current),
        )


StatusListener = Callable[[ProjectStatus], None]


class ProjectStatusSubscription:
    """
    Polls the aggregator for one project on a background thread and notifies
    ``listener`` whenever the snapshot changes. ``invalidate()`` forces an
    immediate refresh, e.g. after a retry, upload or delete.
    """

    def __init__(
        self,
        aggregator: StatusAggregator,
        project_id: str,
        interval: float = 5.0,
        listener: Optional[StatusListener] = None,
    ):
        self.aggregator = aggregator
        self.project_id = project_id
        self.interval = interval
        self.listener = listener
        self._current: Optional[ProjectStatus] = None
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def current(self) -> Optional[ProjectStatus]:
        with self._lock:
            return self._current

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def refresh(self) -> ProjectStatus:
        snapshot = self.aggregator.snapshot(self.project_id)
        with self._lock:
            changed = snapshot != self._current
            self._current = snapshot
        if changed and self.listener:
            self.listener(snapshot)
        return snapshot

    def invalidate(self) -> None:
        if self.running:
            self._wake.set()
        else:
            self.refresh()

    def start(self) -> "ProjectStatusSubscription":
        if self.running:
            return self
        self._stopped.clear()
        self._thread = threading.Thread(target=self._loop, name=f"status-{self.project_id}", daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopped.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stopped.is_set():
            try:
                self.refresh()
            except Exception:  # noqa: BLE001
                logger.exception("Status refresh failed for project %s", self.project_id)
            self._wake.wait(self.interval)
            self._wake.clear()

    def __enter__(self) -> "ProjectStatusSubscription":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()
