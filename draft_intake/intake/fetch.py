from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

import requests

from .errors import NetworkFailure

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; draft-intake/0.1)"


class PageFetcher(Protocol):
    def get_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        ...


class HttpFetcher:
    """Plain HTTP GET with a shared session; any failure becomes ``NetworkFailure``."""

    def __init__(self, timeout: float = 30.0, user_agent: str = DEFAULT_USER_AGENT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent

    def get_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        logger.debug("Fetching %s", url)
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise NetworkFailure(f"Failed to fetch {url}: {exc}") from exc
        return response.text
