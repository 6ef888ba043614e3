"""Consensus seal: fan a payload out to every voter and tally the votes.

Voter calls run concurrently, one task per voter, each bounded by a
timeout. gather() collects exceptions as values, so one bad voter never
cancels the others, and the tally only starts once every voter has
settled.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable

from trinity.consensus.engine import WeightedConsensusEngine
from trinity.errors import RitualCancelled
from trinity.ledger import CostLedger
from trinity.schemas.consensus import ConsensusResult, VoteRequest, VoteResponse
from trinity.schemas.ritual import RitualPayload
from trinity.voters.base import VoterAdapter, truncate_summary

logger = logging.getLogger(__name__)

# Extra seconds granted on top of the adapter's own timeout
_TIMEOUT_GRACE = 1.0


def summarize_proposals(payload: RitualPayload) -> list[str]:
    """One line per proposal recorded by the proposal phase."""
    summaries: list[str] = []
    for entry in payload.decision_snapshot.get("proposals", []):
        role = entry.get("agent_role", "agent")
        confidence = float(entry.get("confidence", 0.0))
        body = json.dumps(entry.get("proposal", {}), default=str, sort_keys=True)
        summaries.append(truncate_summary(f"[{role}, confidence {confidence:.2f}] {body}"))
    return summaries


def build_vote_request(payload: RitualPayload, voter_name: str = "") -> VoteRequest:
    """Build the question a voter is asked about *payload*."""
    snapshot = payload.decision_snapshot
    context: list[str] = []
    debate = snapshot.get("debate") or {}
    if debate.get("resolution_rationale"):
        context.append(str(debate["resolution_rationale"]))
    winner = snapshot.get("winner") or {}
    if winner.get("agent_role"):
        context.append(f"Winning role: {winner['agent_role']}")
    guard = snapshot.get("guard_check") or {}
    if guard:
        context.append(f"Guard: {guard.get('reason', '')}")
    context.append(f"Proposal-phase consensus: {payload.consensus_score:.3f}")

    return VoteRequest(
        voter_name=voter_name,
        question=payload.question,
        proposal_summaries=summarize_proposals(payload),
        context_text="\n".join(context),
        prior_score=payload.consensus_score,
    )


class ConsensusSeal:
    """Runs every voter for a payload and tallies the result.

    Args:
        engine: The pure tally engine holding the roster.
        voters: One adapter per throne; adapters whose throne is not in
                the engine's roster are dropped with a warning.
        vote_timeout: Seconds each voter may take.
        ledger: Where per-vote costs are recorded.
    """

    def __init__(
        self,
        engine: WeightedConsensusEngine,
        voters: list[VoterAdapter],
        *,
        vote_timeout: float = 30.0,
        ledger: CostLedger | None = None,
    ) -> None:
        roster_ids = {t.id for t in engine.thrones}
        self._voters = []
        for voter in voters:
            if voter.throne.id not in roster_ids:
                logger.warning("Voter %s has no throne in the roster, skipping", voter.name)
                continue
            self._voters.append(voter)
        self._engine = engine
        self._vote_timeout = vote_timeout
        self._ledger = ledger or CostLedger()

    @property
    def engine(self) -> WeightedConsensusEngine:
        return self._engine

    @property
    def voters(self) -> tuple[VoterAdapter, ...]:
        return tuple(self._voters)

    async def seal(
        self,
        payload: RitualPayload,
        *,
        is_live: Callable[[], bool] | None = None,
    ) -> ConsensusResult:
        """Collect every vote for *payload* and tally them.

        Raises:
            RitualCancelled: If *is_live* reports the ritual is no longer
                             live once the votes are in. The votes are
                             discarded and no costs are recorded.
        """
        logger.info(
            "Sealing %s with %d voters", payload.decision_id, len(self._voters),
        )
        requests = [build_vote_request(payload, v.name) for v in self._voters]
        gathered = asyncio.gather(
            *(self._cast(voter, request) for voter, request in zip(self._voters, requests)),
            return_exceptions=True,
        )
        # In-flight votes finish in the background if this task is cancelled
        outcomes = await asyncio.shield(gathered)

        if is_live is not None and not is_live():
            raise RitualCancelled(
                f"Ritual {payload.decision_id} is no longer live; discarding votes"
            )

        votes = []
        for voter, outcome in zip(self._voters, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Voter %s raised past its adapter: %s", voter.name, outcome)
                outcome = voter.fallback(f"{voter.name} vote failed", attempted=True)
            self._ledger.record(
                "vote",
                voter.throne.model.provider,
                outcome.cost_usd,
                input_tokens=outcome.input_tokens,
                output_tokens=outcome.output_tokens,
                phase="consensus",
            )
            votes.append(self._engine.make_vote(voter.throne, outcome))

        result = self._engine.tally(votes, question_hash=payload.question_hash)
        logger.info(
            "Verdict %s (score %.3f, confidence %.3f, %d/%d responding)",
            result.verdict.value, result.normalized_score, result.confidence,
            result.responding_voters, len(self._voters),
        )
        return result

    async def _cast(self, voter: VoterAdapter, request: VoteRequest) -> VoteResponse:
        return await asyncio.wait_for(
            voter.cast_vote(request, timeout=self._vote_timeout),
            timeout=self._vote_timeout + _TIMEOUT_GRACE,
        )
