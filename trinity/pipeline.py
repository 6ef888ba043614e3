"""Ritual pipeline: proposal, consensus seal, execution.

Drives a RitualPayload through the three phases in order:

1. propose: derive roles, then spawn, debate, merge and guard through
   the Dispatcher (thinking -> debating -> sealed).
2. seal: run every voter concurrently, tally the weighted votes, and
   archive the sealed payload (sealed, score recorded).
3. execute: run the requested artifact generators
   (sealed -> executing -> complete).

Each phase takes a payload and returns a new one. An uncaught error
inside a phase turns the payload FAILED, and FAILED payloads never
run another phase.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any

from trinity.archive import Archiver, ContentAddressedArchiver
from trinity.consensus.engine import WeightedConsensusEngine
from trinity.consensus.seal import ConsensusSeal
from trinity.dispatcher import Dispatcher
from trinity.errors import (
    GuardFailure,
    InvalidTransitionError,
    RitualCancelled,
)
from trinity.execution.forge import Forge
from trinity.ledger import CostLedger
from trinity.persistence.store import RitualStore
from trinity.providers.registry import DEFAULT_THRONES
from trinity.ritual import advance, create_ritual_payload, fail
from trinity.roles import derive_roles
from trinity.schemas.config import (
    ExecutionType,
    GuardPolicy,
    PipelineConfig,
    ThroneConfig,
)
from trinity.schemas.consensus import ConsensusResult
from trinity.schemas.ritual import (
    ArtifactRecord,
    RitualPayload,
    RitualStatus,
    Shrine,
)
from trinity.services.base import BackingService
from trinity.voters import create_voters
from trinity.voters.base import VoterAdapter

logger = logging.getLogger(__name__)


class RitualPipeline:
    """Runs rituals and keeps an in-memory registry of their payloads.

    Args:
        config: Pipeline settings; defaults come from PipelineConfig.
        service: Backing service for the Dispatcher. None runs the
                 proposal phase in fallback mode.
        thrones: Voter roster. Defaults to the packaged twelve thrones.
        voters: One adapter per throne. Defaults to create_voters().
        archiver: Called once per seal.
        forge: Runs artifact generators.
        store: When given, run() saves every final payload to it.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        service: BackingService | None = None,
        thrones: Iterable[ThroneConfig] | None = None,
        voters: list[VoterAdapter] | None = None,
        archiver: Archiver | None = None,
        forge: Forge | None = None,
        store: RitualStore | None = None,
    ) -> None:
        self._config = config or PipelineConfig()
        self._service = service
        self._engine = WeightedConsensusEngine(
            thrones if thrones is not None else DEFAULT_THRONES
        )
        self._voters = voters if voters is not None else create_voters(self._engine.thrones)
        self._archiver = archiver or ContentAddressedArchiver()
        self._forge = forge or Forge(timeout=self._config.execution_timeout)
        self._store = store

        self._rituals: dict[str, RitualPayload] = {}
        self._ledgers: dict[str, CostLedger] = {}
        self._consensus: dict[str, ConsensusResult] = {}
        self._cancelled: set[str] = set()

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def engine(self) -> WeightedConsensusEngine:
        return self._engine

    # ── Whole ritual ──────────────────────────────────────────

    async def run(
        self,
        question: str,
        structured_input: Mapping[str, Any] | None = None,
        execution_types: Iterable[ExecutionType | str] | None = None,
    ) -> RitualPayload:
        """Run all three phases and persist the final payload once.

        Always returns a terminal payload: COMPLETE with an
        execution_result, or FAILED with an error.
        """
        payload = self.start(question, structured_input)
        payload = await self.propose(payload)
        if not payload.is_terminal:
            payload = await self.seal(payload)
        if not payload.is_terminal:
            payload = await self.execute(payload, execution_types)

        await self._persist(payload)
        logger.info(
            "Ritual %s finished: %s ($%.4f)",
            payload.decision_id, payload.status.value,
            payload.cost_breakdown.total_cost_usd,
        )
        return payload

    def start(
        self, question: str, structured_input: Mapping[str, Any] | None = None,
    ) -> RitualPayload:
        """Create and register a fresh THINKING payload."""
        snapshot: dict[str, Any] = {}
        if structured_input:
            snapshot["structured_input"] = dict(structured_input)
        payload = create_ritual_payload(question, snapshot=snapshot)
        self._ledgers[payload.decision_id] = CostLedger(
            payload.decision_id, verbose=self._config.dispatcher.enable_cost_tracking,
        )
        self._register(payload)
        logger.info("Starting ritual %s: %s", payload.decision_id, question)
        return payload

    # ── Phase 1: proposal ─────────────────────────────────────

    async def propose(self, payload: RitualPayload) -> RitualPayload:
        """Spawn, debate, merge and guard; returns a SEALED payload."""
        self._require(payload, RitualStatus.THINKING)
        if payload.status != RitualStatus.THINKING:
            return self._reject(payload, RitualStatus.THINKING)

        ledger = self._ledger(payload)
        marker = len(ledger)
        dispatcher = Dispatcher(self._config.dispatcher, self._service, ledger=ledger)
        dispatcher.phase = "proposal"

        try:
            self._checkpoint(payload)
            question = payload.question
            max_roles = min(self._config.max_roles, self._config.dispatcher.max_parallel_agents)
            roles = derive_roles(
                question,
                payload.decision_snapshot.get("structured_input"),
                max_roles=max_roles,
            )
            context = {"question": question, **payload.decision_snapshot}

            proposals = await dispatcher.spawn(
                roles, context, budget=self._config.spawn_budget_usd,
            )
            self._checkpoint(payload)

            metadata = payload.ritual_metadata.model_copy(update={
                "shrine": Shrine.MIND,
                "phase": 2,
                "agents_spawned": len(proposals),
                "debate_iterations": 1,
                "models_used": [dispatcher.provider],
            })
            payload = advance(
                payload,
                RitualStatus.DEBATING,
                ritual_metadata=metadata,
                snapshot={
                    "roles": roles,
                    "proposals": [p.model_dump(mode="json") for p in proposals],
                },
                costs=ledger.since(marker),
            )
            marker = len(ledger)
            self._register(payload)

            outcome = await dispatcher.debate(
                proposals, question, self._config.max_debate_rounds,
            )
            merged = dispatcher.merge(proposals, outcome.consensus_score)
            guard = await dispatcher.guard(
                merged, self._config.guard_name, self._config.guard_phase,
            )
            self._checkpoint(payload)

            if not guard.valid:
                failure = GuardFailure(
                    self._config.guard_name, self._config.guard_phase, guard.reason,
                )
                if self._config.guard_policy == GuardPolicy.BLOCKING:
                    raise failure
                logger.warning("Advisory %s", failure)

            payload = advance(
                payload,
                RitualStatus.SEALED,
                consensus_score=outcome.consensus_score,
                snapshot={
                    "winner": outcome.winner_proposal.model_dump(mode="json"),
                    "debate": {
                        "resolution_method": outcome.resolution_method,
                        "resolution_rationale": outcome.resolution_rationale,
                        "consensus_score": outcome.consensus_score,
                        "total_cost_usd": outcome.total_cost_usd,
                    },
                    "merged_output": merged,
                    "guard_check": guard.model_dump(mode="json"),
                },
                costs=ledger.since(marker),
                note=(
                    f"Proposal: {outcome.winner_proposal.agent_role} won "
                    f"{outcome.resolution_method} over {len(proposals)} proposals "
                    f"(consensus {outcome.consensus_score:.3f})"
                ),
            )
        except RitualCancelled:
            return self._rituals[payload.decision_id]
        except Exception as exc:
            return self._fail(payload, exc, ledger, marker, "Proposal")

        self._register(payload)
        logger.info(
            "Proposal phase sealed %s (consensus %.3f)",
            payload.decision_id, payload.consensus_score,
        )
        return payload

    # ── Phase 2: consensus seal ───────────────────────────────

    async def seal(self, payload: RitualPayload) -> RitualPayload:
        """Run the weighted vote and record its confidence as the score.

        Re-sealing an already sealed payload overwrites the score.
        """
        self._require(payload, RitualStatus.SEALED)
        if payload.status != RitualStatus.SEALED:
            return self._reject(payload, RitualStatus.SEALED)

        ledger = self._ledger(payload)
        marker = len(ledger)
        decision_id = payload.decision_id
        seal = ConsensusSeal(
            self._engine,
            self._voters,
            vote_timeout=self._config.vote_timeout,
            ledger=ledger,
        )

        try:
            self._checkpoint(payload)
            result = await seal.seal(payload, is_live=lambda: self.is_live(decision_id))

            responding = [
                v.voter_name for v in result.votes if v.responded
            ]
            metadata = payload.ritual_metadata.model_copy(update={
                "shrine": Shrine.LAW,
                "phase": 3,
                "models_used": [*payload.ritual_metadata.models_used, *responding],
            })
            payload = advance(
                payload,
                RitualStatus.SEALED,
                consensus_score=result.confidence,
                ritual_metadata=metadata,
                snapshot={"consensus": result.model_dump(mode="json")},
                costs=ledger.since(marker),
                note=(
                    f"Consensus: {result.verdict.value} via {len(result.votes)}-throne "
                    f"consensus (confidence {result.confidence:.3f})"
                ),
            )

            location = await self._archive(payload)
            self._checkpoint(payload)
            if location is not None:
                result = result.model_copy(update={"archive_location": location})
                payload = advance(
                    payload,
                    RitualStatus.SEALED,
                    archive_location=location,
                    snapshot={"consensus": result.model_dump(mode="json")},
                )
        except RitualCancelled:
            return self._rituals[decision_id]
        except Exception as exc:
            return self._fail(payload, exc, ledger, marker, "Consensus seal")

        self._consensus[decision_id] = result
        self._register(payload)
        return payload

    # ── Phase 3: execution ────────────────────────────────────

    async def execute(
        self,
        payload: RitualPayload,
        execution_types: Iterable[ExecutionType | str] | None = None,
    ) -> RitualPayload:
        """Generate artifacts; the first success becomes execution_result."""
        self._require(payload, RitualStatus.SEALED)
        if payload.status != RitualStatus.SEALED:
            return self._reject(payload, RitualStatus.SEALED)

        ledger = self._ledger(payload)
        marker = len(ledger)
        types = list(execution_types) if execution_types else list(self._config.execution_types)
        start = time.monotonic()

        try:
            self._checkpoint(payload)
            metadata = payload.ritual_metadata.model_copy(update={
                "shrine": Shrine.FORGE,
                "phase": 4,
            })
            payload = advance(payload, RitualStatus.EXECUTING, ritual_metadata=metadata)
            self._register(payload)

            results = await self._forge.run(payload, types)
            self._checkpoint(payload)

            witness = next(
                (r.artifact_url for r in results if r.artifact_type == ExecutionType.NPC),
                None,
            )
            elapsed_ms = int((time.monotonic() - start) * 1000)
            payload = advance(
                payload,
                RitualStatus.COMPLETE,
                execution_result=results[0],
                witness_nft_id=witness,
                snapshot={
                    "artifacts": [
                        {
                            "execution_id": r.execution_id,
                            "artifact_type": r.artifact_type,
                            "artifact_url": r.artifact_url,
                            "artifact_hash": r.artifact_hash,
                        }
                        for r in results
                    ],
                },
                costs=ledger.since(marker),
                note=f"Forge: {len(results)} artifacts generated in {elapsed_ms}ms",
            )
        except RitualCancelled:
            return self._rituals[payload.decision_id]
        except Exception as exc:
            return self._fail(payload, exc, ledger, marker, "Execution")

        self._register(payload)
        return payload

    # ── Cancellation and lookups ──────────────────────────────

    def cancel(self, decision_id: str, reason: str = "Ritual cancelled") -> RitualPayload | None:
        """Mark a ritual FAILED; in-flight results for it are discarded.

        Returns the failed payload, or None for an unknown ritual.
        """
        payload = self._rituals.get(decision_id)
        if payload is None:
            return None
        self._cancelled.add(decision_id)
        failed = fail(payload, RitualCancelled(reason))
        self._rituals[decision_id] = failed
        logger.warning("Ritual %s cancelled: %s", decision_id, reason)
        return failed

    def is_live(self, decision_id: str) -> bool:
        """False once a ritual has been cancelled or has failed."""
        if decision_id in self._cancelled:
            return False
        payload = self._rituals.get(decision_id)
        return payload is None or not payload.is_terminal

    def get_ritual(self, decision_id: str) -> RitualPayload | None:
        return self._rituals.get(decision_id)

    def all_rituals(self) -> list[RitualPayload]:
        return list(self._rituals.values())

    def get_consensus_result(self, decision_id: str) -> ConsensusResult | None:
        return self._consensus.get(decision_id)

    def get_artifact(self, execution_id: str) -> ArtifactRecord | None:
        return self._forge.cache.get(execution_id)

    def all_artifacts(self) -> list[ArtifactRecord]:
        return self._forge.cache.all()

    # ── Internals ─────────────────────────────────────────────

    def _ledger(self, payload: RitualPayload) -> CostLedger:
        ledger = self._ledgers.get(payload.decision_id)
        if ledger is None:
            ledger = CostLedger(
                payload.decision_id, verbose=self._config.dispatcher.enable_cost_tracking,
            )
            self._ledgers[payload.decision_id] = ledger
        return ledger

    def _register(self, payload: RitualPayload) -> None:
        # A cancelled ritual keeps its failed payload
        if payload.decision_id in self._cancelled:
            return
        self._rituals[payload.decision_id] = payload

    def _checkpoint(self, payload: RitualPayload) -> None:
        if not self.is_live(payload.decision_id):
            raise RitualCancelled(f"Ritual {payload.decision_id} is no longer live")

    def _require(self, payload: RitualPayload, expected: RitualStatus) -> None:
        """Refuse to run any phase on a terminal payload."""
        if payload.is_terminal:
            raise InvalidTransitionError(
                f"Ritual {payload.decision_id} is {payload.status.value}; "
                f"cannot run a phase that needs {expected.value}"
            )

    def _reject(self, payload: RitualPayload, expected: RitualStatus) -> RitualPayload:
        """Fail a payload handed to the wrong phase."""
        error = InvalidTransitionError(
            f"Phase needs a {expected.value} payload, got {payload.status.value}"
        )
        logger.error("Ritual %s: %s", payload.decision_id, error)
        failed = fail(payload, error)
        self._register(failed)
        return failed

    def _fail(
        self,
        payload: RitualPayload,
        exc: Exception,
        ledger: CostLedger,
        marker: int,
        phase_name: str,
    ) -> RitualPayload:
        logger.error("%s failed for %s: %s", phase_name, payload.decision_id, exc)
        failed = advance(
            payload,
            RitualStatus.FAILED,
            error=f"{phase_name} failed: {type(exc).__name__}: {exc}",
            costs=ledger.since(marker),
        )
        self._register(failed)
        return failed

    async def _archive(self, payload: RitualPayload) -> str | None:
        try:
            return await self._archiver.archive(payload)
        except Exception as exc:
            logger.warning("Archiving %s failed: %s", payload.decision_id, exc)
            return None

    async def _persist(self, payload: RitualPayload) -> None:
        if self._store is None:
            return
        try:
            await self._store.save_ritual(payload)
        except Exception as exc:
            logger.error("Could not save ritual %s: %s", payload.decision_id, exc)
