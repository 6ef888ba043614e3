"""Archival collaborator called once per consensus seal."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from trinity.schemas.ritual import RitualPayload

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "ar:"


class Archiver(ABC):
    """Stores a sealed payload and returns an opaque pointer to it."""

    @abstractmethod
    async def archive(self, payload: RitualPayload) -> str:
        """Persist *payload* and return its archive location."""


def canonical_json(payload: RitualPayload) -> str:
    """Stable JSON form of a payload, used as archive content."""
    return json.dumps(payload.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))


class ContentAddressedArchiver(Archiver):
    """Keys each archived payload by the SHA-256 of its canonical JSON.

    Locations look like ``ar:<sha256>``. Content is kept in memory and,
    when *directory* is given, also written there as ``<sha256>.json``.
    """

    def __init__(self, directory: Path | None = None) -> None:
        self._directory = directory
        self._store: dict[str, str] = {}

    async def archive(self, payload: RitualPayload) -> str:
        content = canonical_json(payload)
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
        location = f"{ARCHIVE_PREFIX}{digest}"
        self._store[location] = content
        if self._directory is not None:
            await asyncio.to_thread(self._write, digest, content)
        logger.info("Archived %s to %s", payload.decision_id, location)
        return location

    def _write(self, digest: str, content: str) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        (self._directory / f"{digest}.json").write_text(content, encoding="utf-8")

    def retrieve(self, location: str) -> str | None:
        """Archived JSON for *location*, if this archiver stored it."""
        if location in self._store:
            return self._store[location]
        if self._directory is not None and location.startswith(ARCHIVE_PREFIX):
            path = self._directory / f"{location[len(ARCHIVE_PREFIX):]}.json"
            if path.is_file():
                return path.read_text(encoding="utf-8")
        return None
