"""Seeded mock backing service for tests and offline runs."""

from __future__ import annotations

import random
import uuid
from datetime import UTC, datetime
from typing import Any

from trinity.errors import EmptyInputError
from trinity.schemas.proposals import AgentProposal, DebateOutcome, GuardResult
from trinity.services.base import BackingService


def pick_highest_confidence(proposals: list[AgentProposal]) -> AgentProposal:
    """Highest confidence wins; ties go to the first proposal seen."""
    if not proposals:
        raise EmptyInputError("No proposals to resolve")
    winner = proposals[0]
    for candidate in proposals[1:]:
        if candidate.confidence > winner.confidence:
            winner = candidate
    return winner


class MockBackingService(BackingService):
    """Backing service with seeded pseudo-random confidences and costs.

    Two instances built with the same seed produce the same confidences
    and costs for the same call sequence.
    """

    name = "mock"

    def __init__(self, seed: int = 0) -> None:
        self._rng = random.Random(seed)

    async def spawn_agents(
        self, roles: list[str], context: dict[str, Any],
    ) -> list[AgentProposal]:
        return [
            AgentProposal(
                agent_id=f"agent-{uuid.uuid4().hex}",
                agent_role=role,
                proposal={"role": role, "timestamp": datetime.now(UTC).isoformat()},
                confidence=round(0.7 + self._rng.random() * 0.3, 4),
                reasoning=f"Mock agent with role: {role}",
            )
            for role in roles
        ]

    async def estimate_cost(self, proposals: list[AgentProposal]) -> float:
        return round(0.10 + self._rng.random() * 0.50, 4)

    async def resolve_conflict(
        self,
        proposals: list[AgentProposal],
        strategy: str,
        prompt: str,
        max_rounds: int,
    ) -> DebateOutcome:
        winner = pick_highest_confidence(proposals)
        return DebateOutcome(
            winner_proposal=winner,
            all_proposals=list(proposals),
            resolution_method="mock_voting",
            resolution_rationale="Mock resolution selected highest confidence",
            consensus_score=winner.confidence,
            total_cost_usd=0.25,
        )

    async def validate_phase(
        self, value: Any, guard_name: str, phase: int,
    ) -> GuardResult:
        return GuardResult(
            valid=bool(value),
            reason=f"Mock validation for {guard_name}",
            cost=0.05,
        )
