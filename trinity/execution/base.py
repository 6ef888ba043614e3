"""Artifact generator boundary for the execution phase."""

from __future__ import annotations

from abc import ABC, abstractmethod

from trinity.schemas.config import ExecutionType
from trinity.schemas.ritual import ExecutionResult, RitualPayload


class ArtifactGenerator(ABC):
    """Turns a sealed payload into one artifact of a given type.

    Generators may be slow and may raise; the Forge bounds and isolates
    each call.
    """

    #: The execution type this generator produces
    artifact_type: ExecutionType

    @abstractmethod
    async def generate(
        self, payload: RitualPayload, execution_type: ExecutionType,
    ) -> ExecutionResult:
        """Produce the artifact for *payload*."""
