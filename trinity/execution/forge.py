"""Forge: run the requested artifact generators for a sealed payload."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable

from trinity.errors import ExecutionFailure
from trinity.execution.base import ArtifactGenerator
from trinity.execution.generators import default_generators
from trinity.schemas.config import ExecutionType
from trinity.schemas.ritual import ArtifactRecord, ExecutionResult, RitualPayload

logger = logging.getLogger(__name__)


class ArtifactCache:
    """Every generated artifact, keyed by execution_id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, ArtifactRecord] = {}

    def put(self, result: ExecutionResult, decision_id: str = "") -> ArtifactRecord:
        record = ArtifactRecord(
            artifact_id=result.execution_id,
            artifact_type=result.artifact_type,
            artifact_url=result.artifact_url,
            artifact_hash=result.artifact_hash,
            decision_id=decision_id,
            metadata=dict(result.metadata),
        )
        with self._lock:
            self._records[record.artifact_id] = record
        return record

    def get(self, execution_id: str) -> ArtifactRecord | None:
        with self._lock:
            return self._records.get(execution_id)

    def all(self) -> list[ArtifactRecord]:
        with self._lock:
            return list(self._records.values())

    def for_decision(self, decision_id: str) -> list[ArtifactRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.decision_id == decision_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class Forge:
    """Runs generators concurrently and caches what they produce.

    Each requested type succeeds or fails on its own. An unknown or
    unregistered type, or a generator that raises or times out, only
    loses its own artifact; ExecutionFailure is raised only when every
    requested type fails.
    """

    def __init__(
        self,
        generators: dict[ExecutionType, ArtifactGenerator] | None = None,
        *,
        cache: ArtifactCache | None = None,
        timeout: float = 120.0,
    ) -> None:
        self._generators = generators if generators is not None else default_generators()
        self._cache = cache or ArtifactCache()
        self._timeout = timeout

    @property
    def cache(self) -> ArtifactCache:
        return self._cache

    async def run(
        self, payload: RitualPayload, execution_types: Iterable[ExecutionType | str],
    ) -> list[ExecutionResult]:
        """Generate one artifact per requested type.

        Results come back in request order, failures omitted.

        Raises:
            ExecutionFailure: If no type was requested or all of them failed.
        """
        types = list(execution_types)
        if not types:
            raise ExecutionFailure("No execution types requested")

        outcomes = await asyncio.gather(
            *(self._generate(payload, t) for t in types),
            return_exceptions=True,
        )

        results: list[ExecutionResult] = []
        errors: list[str] = []
        for requested, outcome in zip(types, outcomes):
            label = str(requested)
            if isinstance(outcome, BaseException):
                logger.warning("Generator %s failed: %s", label, outcome)
                errors.append(f"{label}: {type(outcome).__name__}: {outcome}")
                continue
            self._cache.put(outcome, payload.decision_id)
            results.append(outcome)
            logger.info("Generated %s artifact %s", label, outcome.execution_id)

        if not results:
            raise ExecutionFailure("All generators failed; " + "; ".join(errors))
        return results

    async def _generate(
        self, payload: RitualPayload, requested: ExecutionType | str,
    ) -> ExecutionResult:
        try:
            exec_type = ExecutionType(requested)
        except ValueError:
            raise ExecutionFailure(f"Unknown execution type {requested!r}") from None
        generator = self._generators.get(exec_type)
        if generator is None:
            raise ExecutionFailure(f"No generator registered for {exec_type.value}")
        result = await asyncio.wait_for(
            generator.generate(payload, exec_type), timeout=self._timeout,
        )
        if not result.artifact_type:
            result = result.model_copy(update={"artifact_type": exec_type.value})
        return result
