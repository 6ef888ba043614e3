"""Scoring backing service.

Prices proposals with a per-1K-token table, resolves debates with a
weighted multi-criteria score, and applies the numbered phase checks.
When a ModelProvider is supplied, spawn asks the model to write each
role's proposal; otherwise proposals are synthesised locally.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import math
import re
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from trinity.errors import EmptyInputError
from trinity.prompts import render_prompt
from trinity.providers.base import ModelProvider
from trinity.schemas.config import ResolutionStrategy
from trinity.schemas.proposals import AgentProposal, DebateOutcome, GuardResult
from trinity.services.base import BackingService

logger = logging.getLogger(__name__)

# USD per 1K tokens
MODEL_PRICING: dict[str, dict[str, float]] = {
    "gemini-3-pro-preview": {"input": 0.00125, "output": 0.005},
    "gemini-3-flash-preview": {"input": 0.000075, "output": 0.0003},
    "gpt-4o": {"input": 0.003, "output": 0.006},
    "o1-mini": {"input": 0.003, "output": 0.012},
    "o1-preview": {"input": 0.015, "output": 0.06},
    "claude-3-5-sonnet": {"input": 0.003, "output": 0.015},
    "claude-3-opus": {"input": 0.015, "output": 0.06},
}
DEFAULT_PRICING_MODEL = "gpt-4o"

# Roughly 150 characters of serialised JSON per token
CHARS_PER_TOKEN = 150

# (low, high) range of each criterion score
SCORE_RANGES: dict[str, tuple[float, float]] = {
    "alignment": (0.70, 1.00),
    "technical": (0.65, 1.00),
    "ethics": (0.80, 1.00),
    "coherence": (0.75, 1.00),
}

SCORE_WEIGHTS: dict[str, float] = {
    "alignment": 0.25,
    "technical": 0.30,
    "ethics": 0.20,
    "coherence": 0.15,
    "confidence": 0.10,
}

# Hierarchical strategy bias; unknown roles weigh 1
ROLE_WEIGHTS: dict[str, float] = {
    "engineer": 3,
    "architect": 3,
    "devops": 2,
    "qa": 1,
    "critic": 0,
}

GUARD_CHECK_COST = 0.001


def _phase_exists(v: Any) -> bool:
    return v is not None


def _phase_structured(v: Any) -> bool:
    return isinstance(v, dict | list | str)


def _phase_non_empty(v: Any) -> bool:
    return isinstance(v, list) or bool(v)


def _phase_pass(v: Any) -> bool:
    return True


def _phase_final_gate(v: Any) -> bool:
    return v is not False and v is not None


# Phase number -> check; phases with no entry always pass
PHASE_CHECKS: dict[int, Callable[[Any], bool]] = {
    1: _phase_exists,
    2: _phase_structured,
    3: _phase_non_empty,
    4: _phase_pass,  # cost optimisation
    5: _phase_pass,  # caching
    6: _phase_pass,  # health
    7: _phase_final_gate,
}

_CONFIDENCE_RE = re.compile(r"CONFIDENCE\s*:\s*([0-9]*\.?[0-9]+)", re.IGNORECASE)


def _unit_hash(*parts: str) -> float:
    """Map *parts* to a stable float in [0, 1)."""
    digest = hashlib.sha256("|".join(parts).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") / 2**64


def _scaled(low: float, high: float, *parts: str) -> float:
    return low + _unit_hash(*parts) * (high - low)


def _extract_confidence(text: str, default: float = 0.75) -> float:
    """Read a trailing ``CONFIDENCE: x`` line, clamped to [0, 1]."""
    match = _CONFIDENCE_RE.search(text or "")
    if not match:
        return default
    try:
        return max(0.0, min(1.0, float(match.group(1))))
    except ValueError:
        return default


def score_proposal(proposal: AgentProposal) -> float:
    """Weighted final score across the four criteria plus confidence.

    Criterion scores are derived from the agent id, so the same proposal
    always scores the same.
    """
    total = proposal.confidence * SCORE_WEIGHTS["confidence"]
    for criterion, (low, high) in SCORE_RANGES.items():
        total += _scaled(low, high, proposal.agent_id, criterion) * SCORE_WEIGHTS[criterion]
    return total


def _argmax(items: list[tuple[AgentProposal, float]]) -> AgentProposal:
    # Strict comparison keeps the first-seen item on ties
    best, best_key = items[0]
    for proposal, key in items[1:]:
        if key > best_key:
            best, best_key = proposal, key
    return best


def pick_winner(
    scored: list[tuple[AgentProposal, float]], strategy: str,
) -> AgentProposal:
    """Apply a resolution strategy to (proposal, final_score) pairs."""
    if strategy == ResolutionStrategy.VOTING:
        return _argmax(scored)
    if strategy == ResolutionStrategy.HIERARCHICAL:
        return _argmax([
            (p, score * ROLE_WEIGHTS.get(p.agent_role, 1)) for p, score in scored
        ])
    # meta_reasoning and anything unrecognised
    return _argmax([(p, score * p.confidence) for p, score in scored])


class RealBackingService(BackingService):
    """Backing service that scores proposals instead of picking at random."""

    name = "scoring"

    def __init__(
        self,
        provider: ModelProvider | None = None,
        *,
        pricing_model: str = DEFAULT_PRICING_MODEL,
        timeout: float = 60.0,
    ) -> None:
        self._provider = provider
        self._pricing = MODEL_PRICING.get(pricing_model, MODEL_PRICING[DEFAULT_PRICING_MODEL])
        self._timeout = timeout

    async def spawn_agents(
        self, roles: list[str], context: dict[str, Any],
    ) -> list[AgentProposal]:
        if self._provider is None:
            return [self._synthesise(role, context) for role in roles]

        results = await asyncio.gather(
            *(self._ask_model(role, context) for role in roles),
            return_exceptions=True,
        )
        proposals: list[AgentProposal] = []
        for role, result in zip(roles, results):
            if isinstance(result, BaseException):
                logger.warning("Proposal for %s failed, synthesising: %s", role, result)
                proposals.append(self._synthesise(role, context))
            else:
                proposals.append(result)
        return proposals

    def _synthesise(self, role: str, context: dict[str, Any]) -> AgentProposal:
        question = str(context.get("question", ""))
        return AgentProposal(
            agent_id=f"agent-{uuid.uuid4().hex}",
            agent_role=role,
            proposal={
                "role": role,
                "context_received": bool(context),
                "timestamp": datetime.now(UTC).isoformat(),
            },
            confidence=round(_scaled(0.75, 1.0, role, question), 4),
            reasoning=f"Agent {role} proposes solution based on context",
        )

    async def _ask_model(self, role: str, context: dict[str, Any]) -> AgentProposal:
        assert self._provider is not None
        question = str(context.get("question", ""))
        extra = {k: v for k, v in context.items() if k != "question"}
        prompt = render_prompt(
            "propose",
            role=role,
            question=question,
            context=json.dumps(extra, default=str, indent=2) if extra else "",
        )
        reply = await self._provider.complete(
            [{"role": "user", "content": prompt}],
            system=f"You are the {role} agent.",
            timeout=self._timeout,
        )
        return AgentProposal(
            agent_id=f"agent-{uuid.uuid4().hex}",
            agent_role=role,
            proposal={
                "role": role,
                "context_received": True,
                "timestamp": datetime.now(UTC).isoformat(),
                "text": reply.content,
                "model": reply.model,
            },
            confidence=_extract_confidence(reply.content),
            reasoning=f"Agent {role} proposal written by {reply.model}",
        )

    async def estimate_cost(self, proposals: list[AgentProposal]) -> float:
        total = 0.0
        for proposal in proposals:
            input_tokens = math.ceil(len(proposal.model_dump_json()) / CHARS_PER_TOKEN)
            output_tokens = math.ceil(
                len(json.dumps(proposal.proposal, default=str)) / CHARS_PER_TOKEN
            )
            total += (input_tokens / 1000) * self._pricing["input"]
            total += (output_tokens / 1000) * self._pricing["output"]
        return round(total, 4)

    async def resolve_conflict(
        self,
        proposals: list[AgentProposal],
        strategy: str,
        prompt: str,
        max_rounds: int,
    ) -> DebateOutcome:
        if not proposals:
            raise EmptyInputError("No proposals to resolve")

        scored = [(p, score_proposal(p)) for p in proposals]
        winner = pick_winner(scored, strategy)
        consensus = sum(score for _, score in scored) / len(scored)

        return DebateOutcome(
            winner_proposal=winner,
            all_proposals=list(proposals),
            resolution_method=str(strategy),
            resolution_rationale=(
                f"Resolved via {strategy} after {max_rounds} rounds. "
                f"Winner: {winner.agent_role}({winner.agent_id})"
            ),
            consensus_score=min(1.0, round(consensus, 3)),
            total_cost_usd=await self.estimate_cost(proposals),
        )

    async def validate_phase(
        self, value: Any, guard_name: str, phase: int,
    ) -> GuardResult:
        check = PHASE_CHECKS.get(phase, _phase_pass)
        valid = check(value)
        verb = "passed" if valid else "failed"
        return GuardResult(
            valid=valid,
            reason=f"Guard {guard_name} {verb} phase {phase}",
            cost=GUARD_CHECK_COST,
        )
