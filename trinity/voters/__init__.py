"""Voter adapters for the consensus seal."""

from __future__ import annotations

import logging

from trinity.keys import is_throne_live
from trinity.schemas.config import ThroneConfig
from trinity.voters.base import MAX_PROPOSAL_CHARS, VoterAdapter
from trinity.voters.litellm_voter import LiteLLMVoter, parse_vote_json
from trinity.voters.mock import MockVoter

logger = logging.getLogger(__name__)


def create_voter(throne: ThroneConfig, *, offline: bool = False) -> VoterAdapter:
    """Build the voter for a throne.

    Returns a LiteLLMVoter when the throne's API key is set, and a
    MockVoter otherwise (or when *offline* is True).
    """
    if not offline and is_throne_live(throne):
        return LiteLLMVoter(throne)
    logger.debug("Throne %s has no key, using mock voter", throne.name)
    return MockVoter(throne)


def create_voters(
    thrones: tuple[ThroneConfig, ...] | list[ThroneConfig], *, offline: bool = False,
) -> list[VoterAdapter]:
    return [create_voter(t, offline=offline) for t in thrones]


__all__ = [
    "MAX_PROPOSAL_CHARS",
    "LiteLLMVoter",
    "MockVoter",
    "VoterAdapter",
    "create_voter",
    "create_voters",
    "parse_vote_json",
]
