from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from draft_intake.intake import AccessDenied, IntakePipeline, IntakeSettings, build_pipeline


@lru_cache(maxsize=1)
def get_settings() -> IntakeSettings:
    return IntakeSettings.from_env()


@lru_cache(maxsize=1)
def get_pipeline() -> IntakePipeline:
    return build_pipeline(get_settings())


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity. Authentication happens in front of this service."""
    if not x_user_id:
        raise AccessDenied("Unauthorized")
    return x_user_id


def verify_worker_token(
    x_worker_token: Optional[str] = Header(None), settings: IntakeSettings = Depends(get_settings)
) -> None:
    expected = settings.worker_callback_token
    if expected and x_worker_token != expected:
        raise AccessDenied("Invalid worker token")


def serialize(record) -> dict:
    payload = {}
    for key, value in vars(record).items():
        if hasattr(value, "isoformat"):
            value = value.isoformat()
        elif hasattr(value, "value"):
            value = value.value
        payload[key] = value
    return payload
