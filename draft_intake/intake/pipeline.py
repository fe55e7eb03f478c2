"""
Wiring for the intake pipeline. ``build_pipeline`` is the single place where
settings turn into concrete repository, storage, model and executor objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .access import MembershipAccessChecker, ProjectDirectory
from .completion import CompletionHandler
from .config import IntakeSettings
from .consolidation import DraftGenerator
from .dispatcher import WorkerDispatcher
from .errors import ConfigurationError
from .fetch import HttpFetcher, PageFetcher
from .intake import ReferenceIntakeManager
from .job_queue import ExtractionJobQueue, InlineExecutor, JobExecutor, RQJobExecutor, ThreadPoolJobExecutor
from .llm import GeminiClient, GenerativeModel
from .repository import IntakeRepository, SqlAlchemyIntakeRepository
from .status import ProjectStatusSubscription, StatusAggregator
from .storage import LocalBlobStorage, StoragePaths
from .strategies import StrategyRegistry, build_default_registry
from .youtube import TranscriptSource

logger = logging.getLogger(__name__)


@dataclass
class IntakePipeline:
    settings: IntakeSettings
    repo: IntakeRepository
    storage: LocalBlobStorage
    access: MembershipAccessChecker
    projects: ProjectDirectory
    completion: CompletionHandler
    registry: StrategyRegistry
    dispatcher: WorkerDispatcher
    executor: JobExecutor
    queue: ExtractionJobQueue
    intake: ReferenceIntakeManager
    aggregator: StatusAggregator
    generator: DraftGenerator

    def subscribe(self, project_id: str, listener=None) -> ProjectStatusSubscription:
        return ProjectStatusSubscription(
            self.aggregator, project_id, interval=self.settings.poll_interval, listener=listener
        )

    def shutdown(self) -> None:
        if isinstance(self.executor, ThreadPoolJobExecutor):
            self.executor.shutdown(wait=True)


def build_pipeline(
    settings: IntakeSettings,
    executor: Optional[str] = None,
    repository: Optional[IntakeRepository] = None,
    model: Optional[GenerativeModel] = None,
    fetcher: Optional[PageFetcher] = None,
    storage: Optional[LocalBlobStorage] = None,
    transcripts: Optional[TranscriptSource] = None,
) -> IntakePipeline:
    """
    Build every component from ``settings``. ``executor`` overrides
    ``settings.executor`` and is one of ``inline``, ``thread`` or ``rq``.
    """
    repo = repository or SqlAlchemyIntakeRepository(settings.database_url)
    blob_storage = storage or LocalBlobStorage(StoragePaths(root=Path(settings.blob_storage_root)))
    llm = model or GeminiClient(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.request_timeout,
    )
    page_fetcher = fetcher or HttpFetcher(timeout=min(settings.request_timeout, 30.0))

    access = MembershipAccessChecker(repo)
    completion = CompletionHandler(repo)
    registry = build_default_registry(
        blob_storage,
        llm,
        page_fetcher,
        transcripts=transcripts,
        url_text_cap=settings.url_text_cap,
        caption_min_chars=settings.caption_min_chars,
    )
    dispatcher = WorkerDispatcher(repo, registry, completion)

    mode = (executor or settings.executor or "thread").lower()
    if mode == "inline":
        job_executor: JobExecutor = InlineExecutor(dispatcher.run_job)
    elif mode == "thread":
        job_executor = ThreadPoolJobExecutor(dispatcher.run_job, max_workers=settings.worker_concurrency)
    elif mode == "rq":
        job_executor = RQJobExecutor(settings)
    else:
        raise ConfigurationError(f"Unknown executor: {mode}")
    logger.info("Intake pipeline using %s executor", mode)

    queue = ExtractionJobQueue(repo, access, completion, job_executor, max_attempts=settings.max_attempts)
    aggregator = StatusAggregator(repo)
    return IntakePipeline(
        settings=settings,
        repo=repo,
        storage=blob_storage,
        access=access,
        projects=ProjectDirectory(repo, access),
        completion=completion,
        registry=registry,
        dispatcher=dispatcher,
        executor=job_executor,
        queue=queue,
        intake=ReferenceIntakeManager(repo, access, queue, blob_storage),
        aggregator=aggregator,
        generator=DraftGenerator(repo, access, aggregator, llm),
    )
