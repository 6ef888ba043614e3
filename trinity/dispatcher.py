"""Dispatcher: the spawn, debate, merge, and guard primitives.

Routes each primitive to an injected BackingService, bounds every
service call with a timeout, and records one cost ledger entry per call.
Without a service (or when the service errors or times out) each
primitive takes a local fallback path instead of failing.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import uuid
from collections.abc import Awaitable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, TypeVar

from trinity.errors import BudgetExceeded, EmptyInputError
from trinity.ledger import CostLedger
from trinity.schemas.config import DispatcherConfig
from trinity.schemas.proposals import AgentProposal, DebateOutcome, GuardResult
from trinity.schemas.ritual import CostLog
from trinity.services.base import BackingService
from trinity.services.mock import pick_highest_confidence

logger = logging.getLogger(__name__)

T = TypeVar("T")

FALLBACK_PROVIDER = "fallback"
FALLBACK_CONFIDENCE = 0.8


class _Fallback:
    """Marker returned by _call when the service was skipped or failed."""

    __slots__ = ("reason",)

    def __init__(self, reason: str) -> None:
        self.reason = reason


_NOT_CONFIGURED = _Fallback("backing service not configured")


class Dispatcher:
    """Issues the four proposal-phase primitives for one ritual.

    Shared state is limited to the cost ledger and the map of the most
    recently spawned agents, both guarded by a lock.
    """

    def __init__(
        self,
        config: DispatcherConfig | None = None,
        service: BackingService | None = None,
        *,
        ledger: CostLedger | None = None,
    ) -> None:
        self._config = config or DispatcherConfig()
        self._service = service
        self._ledger = ledger or CostLedger(verbose=self._config.enable_cost_tracking)
        self._agents_lock = threading.Lock()
        self._active_agents: dict[str, AgentProposal] = {}
        self.phase = "proposal"

    @property
    def config(self) -> DispatcherConfig:
        return self._config

    @property
    def ledger(self) -> CostLedger:
        return self._ledger

    @property
    def provider(self) -> str:
        """Provider tag for cost entries routed to the backing service."""
        return self._service.name if self._service is not None else FALLBACK_PROVIDER

    @property
    def active_agents(self) -> Mapping[str, AgentProposal]:
        """Read-only view of the agents from the most recent spawn."""
        with self._agents_lock:
            return MappingProxyType(dict(self._active_agents))

    def cost_summary(self) -> tuple[float, tuple[CostLog, ...]]:
        """Total cost and every ledger entry so far."""
        logs = self._ledger.logs
        return sum(log.cost_usd for log in logs), logs

    # ── Primitives ─────────────────────────────────────────────

    async def spawn(
        self,
        roles: list[str],
        context: dict[str, Any],
        budget: float | None = None,
    ) -> list[AgentProposal]:
        """Create one proposal per role, in role order.

        An estimated cost above *budget* is logged as a warning; the
        proposals are still returned.
        """
        logger.info("[spawn] Creating %d agents: %s", len(roles), ", ".join(roles))
        if len(roles) > self._config.max_parallel_agents:
            logger.warning(
                "[spawn] %d roles requested, above max_parallel_agents=%d",
                len(roles), self._config.max_parallel_agents,
            )

        proposals = _NOT_CONFIGURED
        if self._service is not None:
            proposals = await self._call(
                self._service.spawn_agents(list(roles), dict(context)), "spawn_agents",
            )
            if not isinstance(proposals, _Fallback) and len(proposals) != len(roles):
                logger.warning(
                    "[spawn] Service returned %d proposals for %d roles, falling back",
                    len(proposals), len(roles),
                )
                proposals = _Fallback(
                    f"spawn_agents returned {len(proposals)} proposals for {len(roles)} roles",
                )

        if isinstance(proposals, _Fallback):
            reason = proposals.reason
            proposals = [_fallback_proposal(role, context, reason) for role in roles]
            provider, cost = FALLBACK_PROVIDER, 0.0
        else:
            provider = self.provider
            estimate = await self._call(self._service.estimate_cost(proposals), "estimate_cost")
            cost = 0.0 if isinstance(estimate, _Fallback) else float(estimate)

        if budget is not None and cost > budget:
            logger.warning("[spawn] %s", BudgetExceeded(cost, budget))

        with self._agents_lock:
            self._active_agents = {p.agent_id: p for p in proposals}
        self._ledger.record(
            "spawn", provider, cost, input_tokens=len(proposals), phase=self.phase,
        )
        return proposals

    async def debate(
        self,
        proposals: list[AgentProposal],
        prompt: str,
        max_rounds: int = 3,
    ) -> DebateOutcome:
        """Resolve competing proposals into a single winner.

        Raises:
            EmptyInputError: If *proposals* is empty.
        """
        if not proposals:
            raise EmptyInputError("debate requires at least one proposal")
        logger.info("[debate] Resolving %d proposals", len(proposals))

        outcome = _NOT_CONFIGURED
        if self._service is not None:
            outcome = await self._call(
                self._service.resolve_conflict(
                    list(proposals),
                    self._config.conflict_resolution_strategy.value,
                    prompt,
                    max_rounds,
                ),
                "resolve_conflict",
            )

        if isinstance(outcome, _Fallback):
            winner = pick_highest_confidence(proposals)
            outcome = DebateOutcome(
                winner_proposal=winner,
                all_proposals=list(proposals),
                resolution_method="mock_voting",
                resolution_rationale=(
                    f"[Fallback] Picked highest confidence ({outcome.reason})"
                ),
                consensus_score=winner.confidence,
                total_cost_usd=0.0,
            )
            provider = FALLBACK_PROVIDER
        else:
            provider = self.provider

        self._ledger.record(
            "debate", provider, outcome.total_cost_usd,
            input_tokens=len(proposals), phase=self.phase,
        )
        return outcome

    def merge(
        self, proposals: list[AgentProposal], consensus_score: float,
    ) -> dict[str, Any]:
        """Combine proposals into an indexed record weighted by confidence.

        Apart from the timestamp, the result depends only on the inputs.
        """
        logger.info(
            "[merge] Merging %d proposals (consensus: %.3f)", len(proposals), consensus_score,
        )
        merged_proposal: dict[str, Any] = {}
        for i, proposal in enumerate(proposals):
            merged_proposal[f"proposal_{i}"] = dict(proposal.proposal)
            merged_proposal[f"weight_{i}"] = proposal.confidence

        merged = {
            "consensus_score": consensus_score,
            "timestamp": datetime.now(UTC).isoformat(),
            "proposals_merged": len(proposals),
            "merged_proposal": merged_proposal,
            "total_weight": math.fsum(p.confidence for p in proposals),
        }
        self._ledger.record(
            "merge", self.provider, 0.0, input_tokens=len(proposals), phase=self.phase,
        )
        return merged

    async def guard(self, value: Any, guard_name: str, phase: int) -> GuardResult:
        """Check *value* against a phase rule. Never raises."""
        logger.info("[guard] %s (phase %d)", guard_name, phase)

        result = _NOT_CONFIGURED
        if self._service is not None:
            result = await self._call(
                self._service.validate_phase(value, guard_name, phase), "validate_phase",
            )

        if isinstance(result, _Fallback):
            result = GuardResult(
                valid=True,
                reason=f"[Fallback] Guard {guard_name} passed ({result.reason})",
                cost=0.0,
            )
            provider = FALLBACK_PROVIDER
        else:
            provider = self.provider

        self._ledger.record("guard", provider, result.cost, input_tokens=1, phase=self.phase)
        return result

    # ── Internals ─────────────────────────────────────────────

    async def _call(self, awaitable: Awaitable[T], what: str) -> T | _Fallback:
        """Await a service call under the configured timeout.

        Any error or timeout is logged and turned into a _Fallback naming
        the cause so the caller can take its fallback path.
        """
        timeout = self._config.call_timeout
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except TimeoutError:
            logger.warning(
                "%s.%s timed out after %.1fs, using fallback", self.provider, what, timeout,
            )
            return _Fallback(f"{what} timed out after {timeout:.1f}s")
        except Exception as exc:
            logger.warning("%s.%s failed, using fallback: %s", self.provider, what, exc)
            return _Fallback(f"{what} failed: {type(exc).__name__}: {exc}")


def _fallback_proposal(
    role: str, context: Mapping[str, Any], reason: str,
) -> AgentProposal:
    return AgentProposal(
        agent_id=f"agent-{uuid.uuid4().hex}",
        agent_role=role,
        proposal={"role": role, "context": dict(context)},
        confidence=FALLBACK_CONFIDENCE,
        reasoning=f"[Fallback] Agent proposal ({reason})",
    )
