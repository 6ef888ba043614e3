"""Offline voter used when a throne has no API key, and in tests."""

from __future__ import annotations

import asyncio
import random
from typing import Any

from trinity.schemas.config import ThroneConfig
from trinity.schemas.consensus import VoteAnswer, VoteRequest
from trinity.voters.base import VoterAdapter

# Prior used when the proposal phase recorded no score
DEFAULT_PRIOR = 0.75
YES_ABOVE = 0.8
NO_BELOW = 0.6


def answer_for_score(score: float) -> VoteAnswer:
    if score > YES_ABOVE:
        return VoteAnswer.YES
    if score < NO_BELOW:
        return VoteAnswer.NO
    return VoteAnswer.UNCERTAIN


class MockVoter(VoterAdapter):
    """Votes from the prior consensus score, or a scripted answer.

    With no scripted *answer*, the vote is the request's prior score
    plus up to ±*jitter*: YES above 0.8, NO below 0.6, otherwise
    UNCERTAIN.
    """

    def __init__(
        self,
        throne: ThroneConfig,
        *,
        answer: VoteAnswer | str | None = None,
        confidence: float | None = None,
        jitter: float = 0.05,
        seed: int | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__(throne)
        self._answer = answer
        self._confidence = confidence
        self._jitter = jitter
        self._rng = random.Random(seed if seed is not None else throne.id)
        self._delay = delay

    async def _vote(self, request: VoteRequest) -> dict[str, Any]:
        if self._delay:
            await asyncio.sleep(self._delay)

        model = self._throne.model
        reasoning = f"{self.name} evaluated via {model.display_name or model.model}"
        if self._answer is not None:
            return {
                "answer": self._answer,
                "confidence": 1.0 if self._confidence is None else self._confidence,
                "reasoning": reasoning,
            }

        prior = request.prior_score or DEFAULT_PRIOR
        score = prior + self._rng.uniform(-self._jitter, self._jitter)
        return {
            "answer": answer_for_score(score),
            "confidence": self._confidence if self._confidence is not None else score,
            "reasoning": reasoning,
        }
