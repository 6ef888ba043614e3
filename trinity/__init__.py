"""Trinity: proposal debate, weighted consensus seal, artifact forge."""

__version__ = "0.1.0"

from .pipeline import RitualPipeline
from .ritual import advance, create_ritual_payload, fail
from .schemas.ritual import RitualPayload, RitualStatus

__all__ = [
    "RitualPayload",
    "RitualPipeline",
    "RitualStatus",
    "advance",
    "create_ritual_payload",
    "fail",
]
