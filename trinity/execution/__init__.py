"""Execution phase: artifact generators and the forge that runs them."""

from trinity.execution.base import ArtifactGenerator
from trinity.execution.forge import ArtifactCache, Forge
from trinity.execution.generators import (
    BookGenerator,
    DataProcessGenerator,
    NpcGenerator,
    VideoGenerator,
    default_generators,
)

__all__ = [
    "ArtifactCache",
    "ArtifactGenerator",
    "BookGenerator",
    "DataProcessGenerator",
    "Forge",
    "NpcGenerator",
    "VideoGenerator",
    "default_generators",
]
