"""Weighted consensus engine.

A pure tally over an immutable throne roster: no adapters, no I/O, no
mutable state. Every roster weight counts toward the denominator, so a
throne that did not vote dilutes the result instead of being ignored.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from trinity.schemas.config import ThroneConfig
from trinity.schemas.consensus import (
    ConsensusResult,
    Verdict,
    Vote,
    VoteAnswer,
    VoteResponse,
)

logger = logging.getLogger(__name__)

ACCEPT_ABOVE = 0.75
REJECT_BELOW = 0.35

DISAGREEMENT_MARGIN = 3
UNCERTAIN_LIMIT = 3
MIN_PARTICIPATION = 10

FRONTIER_DISAGREEMENT = "Strong disagreement on acceptance"
FRONTIER_INSUFFICIENT = "Epistemic frontier: insufficient consensus"
FRONTIER_LOW_PARTICIPATION = "Low throne participation"
FRONTIER_MET = "Consensus threshold met"


def normalize_score(weighted_sum: float, total_weight: float) -> float:
    """Map a weighted sum in [-total, total] onto [0, 1]."""
    if total_weight <= 0:
        raise ValueError("total_weight must be positive")
    score = (weighted_sum / total_weight + 1) / 2
    return max(0.0, min(1.0, score))


def classify_verdict(score: float) -> Verdict:
    """ACCEPTED strictly above 0.75, REJECTED strictly below 0.35."""
    if score > ACCEPT_ABOVE:
        return Verdict.ACCEPTED
    if score < REJECT_BELOW:
        return Verdict.REJECTED
    return Verdict.UNCERTAIN


def verdict_confidence(score: float) -> float:
    return min(1.0, abs(score - 0.5) * 2)


def epistemic_frontier(
    yes_count: int, no_count: int, uncertain_count: int, responding: int,
) -> list[str]:
    """Flag the disagreement and uncertainty conditions of a tally."""
    flags: list[str] = []
    if abs(yes_count - no_count) <= DISAGREEMENT_MARGIN:
        flags.append(FRONTIER_DISAGREEMENT)
    if uncertain_count > UNCERTAIN_LIMIT:
        flags.append(FRONTIER_INSUFFICIENT)
    if responding < MIN_PARTICIPATION:
        flags.append(FRONTIER_LOW_PARTICIPATION)
    return flags or [FRONTIER_MET]


class WeightedConsensusEngine:
    """Tallies votes against a fixed, weighted roster.

    Args:
        thrones: The roster. Ids must be unique and weights positive;
                 ThroneConfig already enforces the latter.

    Raises:
        ValueError: If the roster is empty or has duplicate ids.
    """

    def __init__(self, thrones: Iterable[ThroneConfig]) -> None:
        roster = tuple(thrones)
        if not roster:
            raise ValueError("Consensus roster must contain at least one throne")
        ids = [t.id for t in roster]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate throne ids in roster: {ids}")
        self._thrones = roster
        self._by_id = {t.id: t for t in roster}
        self._total_weight = math.fsum(t.weight for t in roster)

    @property
    def thrones(self) -> tuple[ThroneConfig, ...]:
        return self._thrones

    @property
    def total_weight(self) -> float:
        return self._total_weight

    def throne(self, throne_id: int) -> ThroneConfig:
        return self._by_id[throne_id]

    def make_vote(self, throne: ThroneConfig, response: VoteResponse) -> Vote:
        """Freeze a voter's response into an audit record."""
        return Vote(
            voter_id=throne.id,
            voter_name=throne.name,
            answer=response.answer,
            confidence=response.confidence,
            reasoning=response.reasoning,
            weight=throne.weight,
            responded=response.responded,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cost_usd=response.cost_usd,
        )

    def tally(self, votes: Iterable[Vote], *, question_hash: str = "") -> ConsensusResult:
        """Aggregate *votes* into a verdict.

        Contributions use roster weights. Votes from unknown thrones and
        repeat votes from the same throne are ignored.
        """
        accepted: dict[int, Vote] = {}
        for vote in votes:
            if vote.voter_id not in self._by_id:
                logger.warning("Ignoring vote from unknown throne %s", vote.voter_id)
                continue
            if vote.voter_id in accepted:
                logger.warning("Ignoring repeat vote from throne %s", vote.voter_id)
                continue
            accepted[vote.voter_id] = vote

        # Sum in roster order so identical tallies give identical floats
        contributions: list[float] = []
        for throne in self._thrones:
            vote = accepted.get(throne.id)
            if vote is None:
                continue
            if vote.answer == VoteAnswer.YES:
                contributions.append(throne.weight)
            elif vote.answer == VoteAnswer.NO:
                contributions.append(-throne.weight)
        weighted_sum = math.fsum(contributions)

        ordered = [accepted[t.id] for t in self._thrones if t.id in accepted]
        yes_count = sum(1 for v in ordered if v.answer == VoteAnswer.YES)
        no_count = sum(1 for v in ordered if v.answer == VoteAnswer.NO)
        uncertain_count = len(ordered) - yes_count - no_count
        responding = sum(1 for v in ordered if v.responded)

        score = normalize_score(weighted_sum, self._total_weight)
        return ConsensusResult(
            question_hash=question_hash,
            votes=ordered,
            total_weight=self._total_weight,
            weighted_sum=weighted_sum,
            normalized_score=score,
            verdict=classify_verdict(score),
            confidence=verdict_confidence(score),
            yes_count=yes_count,
            no_count=no_count,
            uncertain_count=uncertain_count,
            responding_voters=responding,
            epistemic_frontier=epistemic_frontier(
                yes_count, no_count, uncertain_count, responding,
            ),
        )
