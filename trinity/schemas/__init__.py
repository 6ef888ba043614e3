"""Trinity schema definitions.

All Pydantic v2 models used across the dispatcher, consensus seal,
execution phase, and persistence layer.
"""

from trinity.schemas.config import (
    DispatcherConfig,
    ExecutionType,
    GuardPolicy,
    ModelConfig,
    PipelineConfig,
    ResolutionStrategy,
    ThroneConfig,
)
from trinity.schemas.consensus import (
    ConsensusResult,
    Verdict,
    Vote,
    VoteAnswer,
    VoteRequest,
    VoteResponse,
)
from trinity.schemas.messages import ModelReply, TokenUsage
from trinity.schemas.proposals import (
    AgentProposal,
    AgentRole,
    DebateOutcome,
    GuardResult,
)
from trinity.schemas.ritual import (
    ArtifactRecord,
    CostBreakdown,
    CostLog,
    ExecutionResult,
    RitualMetadata,
    RitualPayload,
    RitualStatus,
    RitualSummary,
    Shrine,
)

__all__ = [
    "AgentProposal",
    "AgentRole",
    "ArtifactRecord",
    "ConsensusResult",
    "CostBreakdown",
    "CostLog",
    "DebateOutcome",
    "DispatcherConfig",
    "ExecutionResult",
    "ExecutionType",
    "GuardPolicy",
    "GuardResult",
    "ModelConfig",
    "ModelReply",
    "PipelineConfig",
    "ResolutionStrategy",
    "RitualMetadata",
    "RitualPayload",
    "RitualStatus",
    "RitualSummary",
    "Shrine",
    "ThroneConfig",
    "TokenUsage",
    "Verdict",
    "Vote",
    "VoteAnswer",
    "VoteRequest",
    "VoteResponse",
]
