from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from .errors import ConfigurationError, ProviderFailure

logger = logging.getLogger(__name__)

Part = Dict[str, Any]

BLOCKING_FINISH_REASONS = {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII", "IMAGE_SAFETY"}


def text_part(text: str) -> Part:
    return {"text": text}


def inline_part(data: bytes, mime_type: str) -> Part:
    return {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(data).decode("ascii")}}


def uri_part(uri: str, mime_type: Optional[str] = None) -> Part:
    file_data: Dict[str, str] = {"file_uri": uri}
    if mime_type:
        file_data["mime_type"] = mime_type
    return {"file_data": file_data}


class GenerativeModel(Protocol):
    def generate(self, parts: Sequence[Part], temperature: Optional[float] = None) -> str:
        ...


class GeminiClient:
    """
    Minimal client for the Gemini ``generateContent`` REST endpoint.

    Text, inline binaries (PDF, images, audio) and file URIs (YouTube links)
    all go through the same call. Transport errors, API errors, blocked
    prompts and empty candidates are all raised as ``ProviderFailure``; callers
    never get a degraded empty string back.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 120.0,
        max_output_tokens: int = 8192,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def generate(self, parts: Sequence[Part], temperature: Optional[float] = None) -> str:
        if not self.api_key:
            raise ConfigurationError("Gemini API key not configured")

        generation_config: Dict[str, Any] = {"maxOutputTokens": self.max_output_tokens}
        if temperature is not None:
            generation_config["temperature"] = temperature
        body = {"contents": [{"parts": list(parts)}], "generationConfig": generation_config}

        logger.info("Calling Gemini model %s with %d part(s)", self.model, len(parts))
        try:
            response = self.session.post(
                self.endpoint,
                json=body,
                headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderFailure(f"Gemini request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or "error" in data:
            message = (data.get("error") or {}).get("message") or response.text[:300]
            raise ProviderFailure(f"Gemini API error ({response.status_code}): {message}")

        return self.extract_text(data)

    @staticmethod
    def extract_text(data: Dict[str, Any]) -> str:
        feedback = data.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise ProviderFailure(f"Gemini blocked the request: {feedback['blockReason']}")

        candidates: List[Dict[str, Any]] = data.get("candidates") or []
        if not candidates:
            raise ProviderFailure("Gemini returned no candidates")

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        if finish_reason in BLOCKING_FINISH_REASONS:
            raise ProviderFailure(f"Gemini response was blocked: {finish_reason}")

        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            raise ProviderFailure("Gemini returned an empty response")
        return text
