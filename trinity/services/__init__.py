"""Backing services the Dispatcher delegates spawn/debate/guard to."""

from trinity.services.base import BackingService
from trinity.services.mock import MockBackingService, pick_highest_confidence
from trinity.services.real import RealBackingService, pick_winner, score_proposal

__all__ = [
    "BackingService",
    "MockBackingService",
    "RealBackingService",
    "pick_highest_confidence",
    "pick_winner",
    "score_proposal",
]
