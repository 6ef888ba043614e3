"""Tests for the Dispatcher primitives (spawn, debate, merge, guard)."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from trinity.dispatcher import FALLBACK_CONFIDENCE, Dispatcher
from trinity.errors import EmptyInputError
from trinity.ledger import CostLedger
from trinity.schemas.config import DispatcherConfig
from trinity.schemas.proposals import AgentProposal
from trinity.services.mock import MockBackingService

# ── Factories ──────────────────────────────────────────────────────


def _make_proposal(role: str, confidence: float, agent_id: str | None = None) -> AgentProposal:
    return AgentProposal(
        agent_id=agent_id or f"agent-{role}",
        agent_role=role,
        proposal={"role": role, "plan": f"{role} plan"},
        confidence=confidence,
    )


def _make_dispatcher(service=None, **config) -> Dispatcher:
    return Dispatcher(DispatcherConfig(**config), service, ledger=CostLedger("ritual-test"))


_ROLES = ["engineer", "devops", "qa"]
_CONTEXT = {"question": "Should we migrate to Postgres?"}


# ── spawn ──────────────────────────────────────────────────────────


class TestSpawn:
    @pytest.mark.asyncio
    async def test_one_proposal_per_role_in_order(self):
        dispatcher = _make_dispatcher(MockBackingService(seed=1))
        proposals = await dispatcher.spawn(_ROLES, _CONTEXT)
        assert [p.agent_role for p in proposals] == _ROLES
        assert all(0.7 <= p.confidence <= 1.0 for p in proposals)
        assert len({p.agent_id for p in proposals}) == 3

    @pytest.mark.asyncio
    async def test_concurrent_spawns_have_unique_ids(self):
        dispatcher = _make_dispatcher(MockBackingService())
        batches = await asyncio.gather(*(dispatcher.spawn(_ROLES, _CONTEXT) for _ in range(3)))
        ids = [p.agent_id for batch in batches for p in batch]
        assert len(ids) == 9
        assert len(set(ids)) == 9
        assert len(dispatcher.ledger) == 3

    @pytest.mark.asyncio
    async def test_records_cost_entry(self):
        dispatcher = _make_dispatcher(MockBackingService(seed=3))
        await dispatcher.spawn(_ROLES, _CONTEXT)
        total, logs = dispatcher.cost_summary()
        assert len(logs) == 1
        assert logs[0].operation == "spawn"
        assert logs[0].provider == "mock"
        assert logs[0].phase == "proposal"
        assert logs[0].ritual_id == "ritual-test"
        assert 0.10 <= total <= 0.60

    @pytest.mark.asyncio
    async def test_seeded_services_agree(self):
        a = await _make_dispatcher(MockBackingService(seed=9)).spawn(_ROLES, _CONTEXT)
        b = await _make_dispatcher(MockBackingService(seed=9)).spawn(_ROLES, _CONTEXT)
        assert [p.confidence for p in a] == [p.confidence for p in b]

    @pytest.mark.asyncio
    async def test_no_service_uses_fallback(self):
        dispatcher = _make_dispatcher()
        proposals = await dispatcher.spawn(_ROLES, _CONTEXT)
        assert len(proposals) == 3
        assert all(p.confidence == FALLBACK_CONFIDENCE for p in proposals)
        assert all(p.reasoning.startswith("[Fallback]") for p in proposals)
        assert proposals[0].proposal == {"role": "engineer", "context": _CONTEXT}
        _, logs = dispatcher.cost_summary()
        assert logs[0].provider == "fallback"
        assert logs[0].cost_usd == 0.0

    @pytest.mark.asyncio
    async def test_service_error_uses_fallback(self):
        service = MockBackingService()
        service.spawn_agents = AsyncMock(side_effect=RuntimeError("service down"))
        proposals = await _make_dispatcher(service).spawn(_ROLES, _CONTEXT)
        assert [p.agent_role for p in proposals] == _ROLES
        assert all(p.confidence == FALLBACK_CONFIDENCE for p in proposals)
        assert "spawn_agents failed: RuntimeError: service down" in proposals[0].reasoning
        assert "not configured" not in proposals[0].reasoning

    @pytest.mark.asyncio
    async def test_wrong_proposal_count_uses_fallback(self):
        service = MockBackingService()
        service.spawn_agents = AsyncMock(return_value=[_make_proposal("engineer", 0.9)])
        proposals = await _make_dispatcher(service).spawn(_ROLES, _CONTEXT)
        assert len(proposals) == 3
        assert all(p.confidence == FALLBACK_CONFIDENCE for p in proposals)
        assert "returned 1 proposals for 3 roles" in proposals[0].reasoning

    @pytest.mark.asyncio
    async def test_timeout_uses_fallback(self):
        async def _slow(roles, context):
            await asyncio.sleep(5)
            return []

        service = MockBackingService()
        service.spawn_agents = _slow
        dispatcher = _make_dispatcher(service, call_timeout=0.05)
        proposals = await dispatcher.spawn(_ROLES, _CONTEXT)
        assert all(p.confidence == FALLBACK_CONFIDENCE for p in proposals)
        assert all("spawn_agents timed out after" in p.reasoning for p in proposals)

    @pytest.mark.asyncio
    async def test_budget_exceeded_only_warns(self, caplog):
        service = MockBackingService()
        service.estimate_cost = AsyncMock(return_value=2.5)
        dispatcher = _make_dispatcher(service)
        with caplog.at_level(logging.WARNING, logger="trinity.dispatcher"):
            proposals = await dispatcher.spawn(_ROLES, _CONTEXT, budget=1.0)
        assert len(proposals) == 3
        assert "exceeds budget" in caplog.text
        assert dispatcher.cost_summary()[0] == 2.5

    @pytest.mark.asyncio
    async def test_too_many_roles_warns(self, caplog):
        dispatcher = _make_dispatcher(MockBackingService(), max_parallel_agents=2)
        with caplog.at_level(logging.WARNING, logger="trinity.dispatcher"):
            proposals = await dispatcher.spawn(_ROLES, _CONTEXT)
        assert len(proposals) == 3
        assert "max_parallel_agents" in caplog.text

    @pytest.mark.asyncio
    async def test_active_agents_read_only(self):
        dispatcher = _make_dispatcher(MockBackingService())
        proposals = await dispatcher.spawn(_ROLES, _CONTEXT)
        agents = dispatcher.active_agents
        assert set(agents) == {p.agent_id for p in proposals}
        with pytest.raises(TypeError):
            agents["intruder"] = proposals[0]


# ── debate ─────────────────────────────────────────────────────────


class TestDebate:
    @pytest.mark.asyncio
    async def test_empty_input_raises(self):
        with pytest.raises(EmptyInputError):
            await _make_dispatcher(MockBackingService()).debate([], "prompt")

    @pytest.mark.asyncio
    async def test_empty_input_raises_without_service(self):
        with pytest.raises(EmptyInputError):
            await _make_dispatcher().debate([], "prompt")

    @pytest.mark.asyncio
    async def test_winner_is_one_of_the_inputs(self):
        proposals = [_make_proposal("engineer", 0.7), _make_proposal("qa", 0.95)]
        outcome = await _make_dispatcher(MockBackingService()).debate(proposals, "prompt")
        assert outcome.winner_proposal in proposals
        assert outcome.winner_proposal.agent_role == "qa"
        assert outcome.consensus_score == 0.95
        assert outcome.resolution_method == "mock_voting"

    @pytest.mark.asyncio
    async def test_fallback_picks_highest_confidence(self):
        proposals = [
            _make_proposal("engineer", 0.8),
            _make_proposal("devops", 0.9),
            _make_proposal("qa", 0.9),
        ]
        dispatcher = _make_dispatcher()
        outcome = await dispatcher.debate(proposals, "prompt")
        assert outcome.winner_proposal.agent_role == "devops"
        assert outcome.resolution_rationale == (
            "[Fallback] Picked highest confidence (backing service not configured)"
        )
        assert outcome.total_cost_usd == 0.0
        assert dispatcher.cost_summary()[1][0].operation == "debate"

    @pytest.mark.asyncio
    async def test_service_error_falls_back(self):
        service = MockBackingService()
        service.resolve_conflict = AsyncMock(side_effect=ValueError("nope"))
        proposals = [_make_proposal("engineer", 0.6), _make_proposal("qa", 0.7)]
        outcome = await _make_dispatcher(service).debate(proposals, "prompt")
        assert outcome.winner_proposal.agent_role == "qa"
        assert outcome.resolution_method == "mock_voting"
        assert "resolve_conflict failed: ValueError: nope" in outcome.resolution_rationale
        assert "not configured" not in outcome.resolution_rationale


# ── merge ──────────────────────────────────────────────────────────


class TestMerge:
    def test_structure(self):
        proposals = [_make_proposal("engineer", 0.8), _make_proposal("qa", 0.9)]
        merged = _make_dispatcher().merge(proposals, 0.85)
        assert merged["consensus_score"] == 0.85
        assert merged["proposals_merged"] == 2
        assert merged["merged_proposal"]["proposal_0"] == proposals[0].proposal
        assert merged["merged_proposal"]["weight_1"] == 0.9
        assert merged["total_weight"] == pytest.approx(1.7)
        assert "timestamp" in merged

    def test_total_weight_independent_of_order(self):
        proposals = [
            _make_proposal("engineer", 0.1),
            _make_proposal("devops", 0.2),
            _make_proposal("qa", 0.3),
        ]
        dispatcher = _make_dispatcher()
        forward = dispatcher.merge(proposals, 0.5)
        backward = dispatcher.merge(list(reversed(proposals)), 0.5)
        assert forward["total_weight"] == backward["total_weight"]

    def test_deterministic_apart_from_timestamp(self):
        proposals = [_make_proposal("engineer", 0.8)]
        dispatcher = _make_dispatcher()
        first = dispatcher.merge(proposals, 0.8)
        second = dispatcher.merge(proposals, 0.8)
        first.pop("timestamp")
        second.pop("timestamp")
        assert first == second


# ── guard ──────────────────────────────────────────────────────────


class TestGuard:
    @pytest.mark.asyncio
    async def test_delegates_to_service(self):
        result = await _make_dispatcher(MockBackingService()).guard({"x": 1}, "truth_density", 1)
        assert result.valid is True
        assert result.reason == "Mock validation for truth_density"
        assert result.cost == 0.05

    @pytest.mark.asyncio
    async def test_service_error_never_raises(self):
        service = MockBackingService()
        service.validate_phase = AsyncMock(side_effect=RuntimeError("rule engine crashed"))
        result = await _make_dispatcher(service).guard({}, "truth_density", 1)
        assert result.valid is True
        assert result.reason.startswith("[Fallback] Guard truth_density passed")
        assert "validate_phase failed: RuntimeError: rule engine crashed" in result.reason

    @pytest.mark.asyncio
    async def test_timeout_reason_names_the_timeout(self):
        async def _slow(value, guard_name, phase):
            await asyncio.sleep(5)

        service = MockBackingService()
        service.validate_phase = _slow
        result = await _make_dispatcher(service, call_timeout=0.05).guard({}, "truth_density", 1)
        assert result.valid is True
        assert "validate_phase timed out" in result.reason
        assert "not configured" not in result.reason

    @pytest.mark.asyncio
    async def test_no_service_passes(self):
        dispatcher = _make_dispatcher()
        result = await dispatcher.guard(None, "truth_density", 3)
        assert result.valid is True
        assert result.reason == (
            "[Fallback] Guard truth_density passed (backing service not configured)"
        )
        assert dispatcher.cost_summary()[1][-1].operation == "guard"
