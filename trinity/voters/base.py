"""Voter adapter boundary.

A VoterAdapter turns a VoteRequest into a normalised VoteResponse for one
throne. cast_vote() never raises: a missing credential, a timeout, a
backend error, or a malformed reply all become an UNCERTAIN vote with
confidence 0.5 and responded=False.
"""

from __future__ import annotations

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Any

from trinity.schemas.config import ThroneConfig
from trinity.schemas.consensus import VoteAnswer, VoteRequest, VoteResponse

logger = logging.getLogger(__name__)

MAX_PROPOSAL_CHARS = 500
DEFAULT_CONFIDENCE = 0.5


def truncate_summary(text: str, limit: int = MAX_PROPOSAL_CHARS) -> str:
    return text if len(text) <= limit else text[:limit]


def normalize_answer(value: Any) -> VoteAnswer:
    """Map a raw answer to a VoteAnswer; anything unrecognised is UNCERTAIN."""
    if isinstance(value, VoteAnswer):
        return value
    if isinstance(value, str):
        try:
            return VoteAnswer(value.strip().upper())
        except ValueError:
            pass
    return VoteAnswer.UNCERTAIN


def clamp_confidence(value: Any) -> float:
    """Parse a raw confidence and clamp it to [0, 1]; 0.5 when unusable."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if math.isnan(number):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


class VoterAdapter(ABC):
    """Abstract voter for one throne.

    Subclasses implement _vote(), which may raise freely; cast_vote()
    owns truncation, timeouts, normalisation, and the fallback.
    """

    #: Cost charged when a backend call was attempted and failed
    failure_cost_estimate: float = 0.0005

    def __init__(self, throne: ThroneConfig) -> None:
        self._throne = throne

    @property
    def throne(self) -> ThroneConfig:
        return self._throne

    @property
    def name(self) -> str:
        return self._throne.name

    @property
    def is_configured(self) -> bool:
        """Whether the backend can be called at all."""
        return True

    @property
    def missing_reason(self) -> str:
        return f"{self.name} not configured"

    @abstractmethod
    async def _vote(self, request: VoteRequest) -> dict[str, Any]:
        """Ask the backend for a vote.

        Returns a mapping with ``answer``, ``confidence``, ``reasoning`` and
        optionally ``input_tokens``, ``output_tokens`` and ``cost_usd``.
        """

    async def cast_vote(
        self, request: VoteRequest, timeout: float | None = None,
    ) -> VoteResponse:
        """Return this throne's vote. Never raises."""
        request = request.model_copy(update={
            "proposal_summaries": [truncate_summary(s) for s in request.proposal_summaries],
        })

        if not self.is_configured:
            logger.debug("%s: %s", self.name, self.missing_reason)
            return self.fallback(self.missing_reason, attempted=False)

        try:
            raw = await asyncio.wait_for(self._vote(request), timeout=timeout)
        except TimeoutError:
            logger.warning("%s: vote timed out after %ss", self.name, timeout)
            return self.fallback(f"{self.name} vote timed out", attempted=True)
        except Exception as exc:
            logger.warning("%s: vote failed: %s", self.name, exc)
            return self.fallback(f"{self.name} API call failed", attempted=True)

        try:
            return VoteResponse(
                answer=normalize_answer(raw.get("answer")),
                confidence=clamp_confidence(raw.get("confidence")),
                reasoning=str(raw.get("reasoning") or f"{self.name} vote"),
                input_tokens=max(0, int(raw.get("input_tokens") or 0)),
                output_tokens=max(0, int(raw.get("output_tokens") or 0)),
                cost_usd=max(0.0, float(raw.get("cost_usd") or 0.0)),
            )
        except (AttributeError, TypeError, ValueError, OverflowError) as exc:
            # pydantic's ValidationError is a ValueError
            logger.warning("%s: malformed vote reply %r: %s", self.name, raw, exc)
            return self.fallback(f"{self.name} malformed reply", attempted=True)

    def fallback(self, reason: str, *, attempted: bool) -> VoteResponse:
        """The deterministic UNCERTAIN vote used whenever the backend can't answer."""
        return VoteResponse(
            answer=VoteAnswer.UNCERTAIN,
            confidence=DEFAULT_CONFIDENCE,
            reasoning=reason,
            cost_usd=self.failure_cost_estimate if attempted else 0.0,
            responded=False,
        )
