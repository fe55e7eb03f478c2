from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./data/draft_intake.db"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


@dataclass
class IntakeSettings:
    """
    Runtime configuration shared by the API process and extraction workers.
    Instances are picklable so they can travel with RQ tasks.
    """

    database_url: str = DEFAULT_DATABASE_URL
    blob_storage_root: str = "./data"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    request_timeout: float = 120.0
    # Extraction policy.
    url_text_cap: int = 50_000
    caption_min_chars: int = 50
    max_attempts: int = 5
    executor: str = "thread"
    worker_concurrency: int = 4
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "extraction-jobs"
    poll_interval: float = 5.0
    worker_callback_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "IntakeSettings":
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            blob_storage_root=os.getenv("BLOB_STORAGE_ROOT", "./data"),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            gemini_base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL),
            request_timeout=_env_float("INTAKE_REQUEST_TIMEOUT", 120.0),
            url_text_cap=_env_int("INTAKE_URL_TEXT_CAP", 50_000),
            caption_min_chars=_env_int("INTAKE_CAPTION_MIN_CHARS", 50),
            max_attempts=_env_int("INTAKE_MAX_ATTEMPTS", 5),
            executor=os.getenv("INTAKE_EXECUTOR", "thread"),
            worker_concurrency=_env_int("INTAKE_WORKER_CONCURRENCY", 4),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            queue_name=os.getenv("INTAKE_QUEUE_NAME", "extraction-jobs"),
            poll_interval=_env_float("INTAKE_POLL_INTERVAL", 5.0),
            worker_callback_token=os.getenv("WORKER_CALLBACK_TOKEN") or None,
        )
