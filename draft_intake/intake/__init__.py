"""
Intake subsystem exports.
"""

from .access import AccessChecker, MembershipAccessChecker, ProjectDirectory, require_access
from .completion import CompletionHandler, append_to_raw_version
from .config import IntakeSettings
from .consolidation import GOALS, DraftGenerator, GenerationResult, consolidate
from .dispatcher import WorkerDispatcher
from .errors import (
    AccessDenied,
    ConfigurationError,
    DownloadFailure,
    ExtractionPending,
    IntakeError,
    InvalidRequest,
    NetworkFailure,
    NoReferencesAvailable,
    NotFound,
    ProviderFailure,
    RetryLimitExceeded,
    StrategyFailure,
    UnsupportedJobType,
    VersionConflict,
)
from .fetch import HttpFetcher, PageFetcher
from .intake import IntakeResult, ReferenceIntakeManager, resolve_source_kind
from .job_queue import (
    ExtractionJobQueue,
    InlineExecutor,
    RQJobExecutor,
    ThreadPoolJobExecutor,
    dispatch_key,
    run_extraction_job,
)
from .llm import GeminiClient, GenerativeModel
from .models import (
    ExtractionJobRecord,
    JobStatus,
    JobType,
    ProjectRecord,
    ReferenceRecord,
    ReferenceStatus,
    SourceKind,
    TimelineEventRecord,
    TimelineEventType,
    VersionRecord,
)
from .pipeline import IntakePipeline, build_pipeline
from .repository import InMemoryIntakeRepository, IntakeRepository, SqlAlchemyIntakeRepository
from .status import ProjectStatus, ProjectStatusSubscription, StatusAggregator
from .storage import LocalBlobStorage, StoragePaths
from .strategies import ExtractionResult, ExtractionStrategy, StrategyRegistry, build_default_registry

__all__ = [
    "AccessChecker",
    "AccessDenied",
    "CompletionHandler",
    "ConfigurationError",
    "DownloadFailure",
    "DraftGenerator",
    "ExtractionJobQueue",
    "ExtractionJobRecord",
    "ExtractionPending",
    "ExtractionResult",
    "ExtractionStrategy",
    "GOALS",
    "GeminiClient",
    "GenerationResult",
    "GenerativeModel",
    "HttpFetcher",
    "InMemoryIntakeRepository",
    "InlineExecutor",
    "IntakeError",
    "IntakePipeline",
    "IntakeRepository",
    "IntakeResult",
    "IntakeSettings",
    "InvalidRequest",
    "JobStatus",
    "JobType",
    "LocalBlobStorage",
    "MembershipAccessChecker",
    "NetworkFailure",
    "NoReferencesAvailable",
    "NotFound",
    "PageFetcher",
    "ProjectDirectory",
    "ProjectRecord",
    "ProjectStatus",
    "ProjectStatusSubscription",
    "ProviderFailure",
    "RQJobExecutor",
    "ReferenceIntakeManager",
    "ReferenceRecord",
    "ReferenceStatus",
    "RetryLimitExceeded",
    "SourceKind",
    "SqlAlchemyIntakeRepository",
    "StatusAggregator",
    "StoragePaths",
    "StrategyFailure",
    "StrategyRegistry",
    "ThreadPoolJobExecutor",
    "TimelineEventRecord",
    "TimelineEventType",
    "UnsupportedJobType",
    "VersionConflict",
    "VersionRecord",
    "WorkerDispatcher",
    "append_to_raw_version",
    "build_default_registry",
    "build_pipeline",
    "consolidate",
    "dispatch_key",
    "require_access",
    "resolve_source_kind",
    "run_extraction_job",
]
