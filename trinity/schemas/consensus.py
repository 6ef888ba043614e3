"""Consensus schemas for the weighted voting seal.

Defines the voter request/response boundary (VoteRequest, VoteResponse),
the immutable per-voter audit record (Vote), and the aggregated outcome
(ConsensusResult) produced by the WeightedConsensusEngine.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class VoteAnswer(StrEnum):
    """A single voter's answer."""

    YES = "YES"
    NO = "NO"
    UNCERTAIN = "UNCERTAIN"


class Verdict(StrEnum):
    """Aggregated consensus verdict."""

    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    UNCERTAIN = "UNCERTAIN"


class VoteRequest(BaseModel):
    """What a voter adapter is asked to judge."""

    voter_name: str = Field(description="Display name of the voting throne")
    question: str = Field(description="The ritual's original question")
    proposal_summaries: list[str] = Field(
        default_factory=list, description="Candidate proposals, each truncated"
    )
    context_text: str = Field(default="", description="Debate and merge context")
    prior_score: float = Field(
        default=0.0, ge=0.0, le=1.0,
        description="Consensus score carried over from the proposal phase",
    )


class VoteResponse(BaseModel):
    """Normalised voter adapter reply."""

    answer: VoteAnswer = Field(default=VoteAnswer.UNCERTAIN)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = Field(default="")
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0.0)
    responded: bool = Field(
        default=True, description="False when the adapter fell back instead of answering"
    )


class Vote(BaseModel):
    """Immutable audit record of one voter's contribution to a seal."""

    model_config = ConfigDict(frozen=True)

    voter_id: int = Field(description="Throne identifier from the roster")
    voter_name: str = Field(default="", description="Throne display name")
    answer: VoteAnswer = Field(description="The voter's answer")
    confidence: float = Field(ge=0.0, le=1.0, description="Voter's self-reported confidence")
    reasoning: str = Field(default="")
    weight: float = Field(gt=0.0, description="Static roster weight")
    responded: bool = Field(default=True, description="False when the voter fell back")
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0.0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def weighted_contribution(self) -> float:
        """+weight for YES, -weight for NO, 0 for UNCERTAIN."""
        if self.answer == VoteAnswer.YES:
            return self.weight
        if self.answer == VoteAnswer.NO:
            return -self.weight
        return 0.0


class ConsensusResult(BaseModel):
    """Outcome of a weighted consensus tally."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    question_hash: str = Field(default="")
    votes: list[Vote] = Field(default_factory=list)
    total_weight: float = Field(gt=0.0, description="Sum of every roster weight")
    weighted_sum: float = Field(description="Sum of weighted contributions")
    normalized_score: float = Field(ge=0.0, le=1.0, description="Weighted score mapped to [0,1]")
    verdict: Verdict
    confidence: float = Field(
        ge=0.0, le=1.0, description="Distance of the score from 0.5, rescaled to [0,1]"
    )
    yes_count: int = Field(default=0, ge=0)
    no_count: int = Field(default=0, ge=0)
    uncertain_count: int = Field(default=0, ge=0)
    responding_voters: int = Field(default=0, ge=0)
    epistemic_frontier: list[str] = Field(default_factory=list)
    archive_location: str | None = Field(default=None)

    @property
    def is_consensus_reached(self) -> bool:
        """Whether the verdict is anything other than UNCERTAIN."""
        return self.verdict != Verdict.UNCERTAIN
