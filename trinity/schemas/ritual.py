"""Ritual payload schemas.

Defines the RitualPayload envelope threaded through all three phases,
its status enum, the append-only cost ledger (CostLog, CostBreakdown),
and the execution artifacts recorded by the final phase.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class RitualStatus(StrEnum):
    """Pipeline status; order of declaration is the forward order."""

    THINKING = "thinking"
    DEBATING = "debating"
    SEALED = "sealed"
    EXECUTING = "executing"
    COMPLETE = "complete"
    FAILED = "failed"


class Shrine(StrEnum):
    """The phase that last touched a payload."""

    MIND = "mind"
    LAW = "law"
    FORGE = "forge"


class CostLog(BaseModel):
    """One append-only cost ledger entry."""

    model_config = ConfigDict(frozen=True)

    ritual_id: str = Field(default="", description="Decision ID the cost belongs to")
    operation: str = Field(description="Primitive or voter operation name")
    provider: str = Field(description="Backing service or model that incurred the cost")
    phase: str = Field(default="", description="Pipeline phase the entry was written in")
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0.0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


def _sum_by(entries: tuple[CostLog, ...], key: str) -> dict[str, float]:
    totals: dict[str, float] = defaultdict(float)
    for entry in entries:
        totals[getattr(entry, key)] += entry.cost_usd
    return dict(totals)


class CostBreakdown(BaseModel):
    """Monotonically growing cost ledger with derived totals."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[CostLog, ...] = Field(default=())

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_cost_usd(self) -> float:
        return sum(e.cost_usd for e in self.entries)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def by_provider(self) -> dict[str, float]:
        return _sum_by(self.entries, "provider")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def by_operation(self) -> dict[str, float]:
        return _sum_by(self.entries, "operation")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def by_phase(self) -> dict[str, float]:
        return _sum_by(self.entries, "phase")

    def extended(self, logs: tuple[CostLog, ...] | list[CostLog]) -> CostBreakdown:
        """Return a new breakdown with *logs* appended."""
        return CostBreakdown(entries=(*self.entries, *logs))


class RitualMetadata(BaseModel):
    """Bookkeeping about which phase handled the ritual and how."""

    shrine: Shrine = Field(default=Shrine.MIND)
    phase: int = Field(default=1, ge=1)
    agents_spawned: int = Field(default=0, ge=0)
    debate_iterations: int = Field(default=0, ge=0)
    models_used: list[str] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = Field(default=None)


class ExecutionResult(BaseModel):
    """What one artifact generator returned."""

    execution_id: str = Field(description="Unique execution identifier")
    artifact_url: str = Field(description="Where the artifact can be retrieved")
    artifact_hash: str = Field(description="SHA-256 hex digest of the artifact content")
    artifact_type: str = Field(default="", description="Generator type that produced it")
    execution_time_ms: int = Field(default=0, ge=0)
    success: bool = Field(default=True)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ArtifactRecord(BaseModel):
    """Cached artifact, retrievable by execution_id after the ritual ends."""

    artifact_id: str
    artifact_type: str
    artifact_url: str
    artifact_hash: str
    decision_id: str = Field(default="")
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RitualPayload(BaseModel):
    """The single envelope threaded through every phase.

    Instances are frozen. New versions are produced by
    trinity.ritual.advance(), which enforces the status order and the
    append-only rules for the snapshot, cost ledger, and notes.
    """

    model_config = ConfigDict(frozen=True)

    decision_id: str = Field(description="Unique ritual identifier")
    question_hash: str = Field(description="SHA-256 hex digest of the question")
    decision_snapshot: dict[str, Any] = Field(
        default_factory=dict, description="Phase working state; keys are never removed"
    )
    ritual_metadata: RitualMetadata = Field(default_factory=RitualMetadata)
    consensus_score: float = Field(default=0.0, ge=0.0, le=1.0)
    seal_count: int = Field(
        default=0, ge=0, description="How many times a consensus score was recorded"
    )
    cost_breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    status: RitualStatus = Field(default=RitualStatus.THINKING)
    execution_result: ExecutionResult | None = Field(default=None)
    archive_location: str | None = Field(default=None)
    witness_nft_id: str | None = Field(default=None)
    error: str | None = Field(default=None)
    notes: tuple[str, ...] = Field(default=(), description="Append-only phase notes")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = Field(default=None)

    @property
    def question(self) -> str:
        """The original question text, if the snapshot carries it."""
        return str(self.decision_snapshot.get("question", ""))

    @property
    def is_terminal(self) -> bool:
        return self.status in (RitualStatus.COMPLETE, RitualStatus.FAILED)


class RitualSummary(BaseModel):
    """Lightweight row for listing stored rituals."""

    decision_id: str
    question_preview: str = Field(default="", description="First 100 chars of the question")
    status: RitualStatus
    consensus_score: float = Field(default=0.0)
    verdict: str = Field(default="", description="Consensus verdict, if the ritual was sealed")
    total_cost: float = Field(default=0.0)
    created_at: datetime
    completed_at: datetime | None = None
