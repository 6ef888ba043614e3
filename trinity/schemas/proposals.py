"""Proposal-phase schemas.

Defines the agent roles, the immutable AgentProposal produced by spawn,
and the derived structures produced by debate (DebateOutcome) and
guard (GuardResult).
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AgentRole(StrEnum):
    """Built-in agent roles recognised by role derivation and debate bias."""

    ENGINEER = "engineer"
    DEVOPS = "devops"
    QA = "qa"
    ARCHITECT = "architect"
    CRITIC = "critic"
    DATA_ENGINEER = "data-engineer"


class AgentProposal(BaseModel):
    """A single agent's proposal.

    Created once by spawn and never edited afterwards; debate and merge
    produce new structures that reference proposals.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str = Field(description="Unique agent identifier")
    agent_role: str = Field(description="Role the agent was spawned for")
    proposal: dict[str, Any] = Field(
        default_factory=dict, description="Opaque proposal payload"
    )
    confidence: float = Field(ge=0.0, le=1.0, description="Self-assessed confidence")
    reasoning: str = Field(default="", description="Why the agent proposes this")


class DebateOutcome(BaseModel):
    """Result of resolving a set of competing proposals."""

    winner_proposal: AgentProposal = Field(description="The selected proposal")
    all_proposals: list[AgentProposal] = Field(
        default_factory=list, description="Every proposal that took part"
    )
    resolution_method: str = Field(description="How the winner was picked")
    resolution_rationale: str = Field(default="", description="Why the winner was picked")
    consensus_score: float = Field(
        ge=0.0, le=1.0, description="Agreement level across the proposals"
    )
    total_cost_usd: float = Field(default=0.0, ge=0.0, description="Cost of the resolution")


class GuardResult(BaseModel):
    """Outcome of a guard check."""

    valid: bool = Field(description="Whether the value passed the rule")
    reason: str = Field(default="", description="Human-readable explanation")
    cost: float = Field(default=0.0, ge=0.0, description="Cost reported for the check")
