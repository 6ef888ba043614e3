"""Weighted consensus: the pure tally engine and the parallel seal."""

from trinity.consensus.engine import (
    WeightedConsensusEngine,
    classify_verdict,
    epistemic_frontier,
    normalize_score,
    verdict_confidence,
)
from trinity.consensus.seal import ConsensusSeal, build_vote_request

__all__ = [
    "ConsensusSeal",
    "WeightedConsensusEngine",
    "build_vote_request",
    "classify_verdict",
    "epistemic_frontier",
    "normalize_score",
    "verdict_confidence",
]
