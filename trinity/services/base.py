"""Abstract backing service behind the Dispatcher primitives.

The Dispatcher never does the expensive work itself; it routes each
primitive to one of these four methods. Implementations are injected at
construction time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from trinity.schemas.proposals import AgentProposal, DebateOutcome, GuardResult


class BackingService(ABC):
    """Capability interface used by the Dispatcher."""

    #: Provider tag written to the cost ledger for calls routed here
    name: str = "service"

    @abstractmethod
    async def spawn_agents(
        self, roles: list[str], context: dict[str, Any],
    ) -> list[AgentProposal]:
        """Produce one proposal per role, in the same order as *roles*."""

    @abstractmethod
    async def estimate_cost(self, proposals: list[AgentProposal]) -> float:
        """Estimate the USD cost of producing *proposals*."""

    @abstractmethod
    async def resolve_conflict(
        self,
        proposals: list[AgentProposal],
        strategy: str,
        prompt: str,
        max_rounds: int,
    ) -> DebateOutcome:
        """Pick a winner among competing proposals.

        Raises:
            EmptyInputError: If *proposals* is empty.
        """

    @abstractmethod
    async def validate_phase(
        self, value: Any, guard_name: str, phase: int,
    ) -> GuardResult:
        """Check *value* against the rule for *phase*."""
