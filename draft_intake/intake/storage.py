from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .errors import DownloadFailure, InvalidRequest

logger = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStorage(Protocol):
    def download(self, path: str) -> bytes:
        ...

    def upload(self, path: str, data: bytes) -> str:
        ...

    def delete(self, path: str) -> None:
        ...


@dataclass
class StoragePaths:
    root: Path

    def references_dir(self) -> Path:
        return self.root / "project-references"

    def project_dir(self, project_id: str) -> Path:
        return self.references_dir() / str(project_id)

    def object_path(self, storage_path: str) -> Path:
        return self.references_dir() / storage_path


def safe_file_name(file_name: str) -> str:
    cleaned = _UNSAFE_NAME.sub("-", file_name.strip()).strip("-.")
    return cleaned or "upload"


class LocalBlobStorage:
    """
    Filesystem-backed blob store. Storage paths are relative keys of the form
    ``<project_id>/<object name>`` below ``<root>/project-references``.
    """

    def __init__(self, storage_paths: StoragePaths):
        self.paths = storage_paths

    def _resolve(self, path: str) -> Path:
        base = self.paths.references_dir().resolve()
        target = self.paths.object_path(path).resolve()
        if base != target and base not in target.parents:
            raise InvalidRequest(f"Storage path escapes the storage root: {path}")
        return target

    def project_object_path(self, project_id: str, object_name: str) -> str:
        return f"{project_id}/{safe_file_name(object_name)}"

    def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug("Stored %d bytes at %s", len(data), target)
        return path

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise DownloadFailure(f"Failed to download {path}: {exc}") from exc

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.exists():
            target.unlink()
        else:
            logger.warning("Blob %s already removed", path)
