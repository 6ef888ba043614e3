"""Configuration schemas for the ritual pipeline.

Defines the model registry entry (ModelConfig), the weighted voter
roster entry (ThroneConfig), and the Dispatcher and pipeline settings
loaded from defaults.toml.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ResolutionStrategy(StrEnum):
    """How the backing service picks a debate winner."""

    VOTING = "voting"
    HIERARCHICAL = "hierarchical"
    META_REASONING = "meta_reasoning"


class GuardPolicy(StrEnum):
    """Whether a failed guard blocks sealing.

    ADVISORY logs the failure and seals anyway; BLOCKING fails the ritual.
    """

    ADVISORY = "advisory"
    BLOCKING = "blocking"


class ExecutionType(StrEnum):
    """Artifact kinds the execution phase can generate."""

    VIDEO = "video"
    BOOK = "book"
    NPC = "npc"
    DATA_PROCESS = "data_process"


class ModelConfig(BaseModel):
    """Routing and pricing information for a single LLM.

    Each entry provides the LiteLLM model identifier, the environment
    variable holding its API key, and per-1M-token pricing.
    """

    provider: str = Field(description="Provider identifier (e.g. 'anthropic', 'openai', 'groq')")
    model: str = Field(description="LiteLLM model identifier (e.g. 'gpt-4o')")
    display_name: str = Field(default="", description="Human-friendly model name for CLI output")
    api_key_env: str = Field(default="", description="Environment variable name holding the API key")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    supports_structured: bool = Field(
        default=False, description="Whether the model supports JSON response mode"
    )
    max_tokens: int = Field(default=300, gt=0, description="Completion token cap per call")
    cost_input: float = Field(default=0.0, ge=0.0, description="Cost per 1M input tokens in USD")
    cost_output: float = Field(default=0.0, ge=0.0, description="Cost per 1M output tokens in USD")


class ThroneConfig(BaseModel):
    """One weighted voter in the consensus roster.

    The roster is static for the lifetime of a consensus engine; weights
    are always strictly positive.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Stable voter identifier within the roster")
    name: str = Field(description="Display name of the throne")
    weight: float = Field(gt=0.0, description="Static voting weight")
    model: ModelConfig = Field(description="Model backing this throne's votes")


class DispatcherConfig(BaseModel):
    """Settings for the spawn/debate/merge/guard dispatcher."""

    conflict_resolution_strategy: ResolutionStrategy = Field(
        default=ResolutionStrategy.META_REASONING,
        description="Strategy passed to the backing service when resolving debates",
    )
    enable_cost_tracking: bool = Field(
        default=True, description="Whether primitive costs are logged at INFO level"
    )
    max_parallel_agents: int = Field(
        default=5, gt=0, description="Upper bound on roles accepted by a single spawn"
    )
    call_timeout: float = Field(
        default=60.0, gt=0.0, description="Seconds to wait on any backing service call"
    )


class PipelineConfig(BaseModel):
    """Top-level configuration for a ritual run.

    Loaded from defaults.toml and overridden by CLI flags.
    """

    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    guard_policy: GuardPolicy = Field(
        default=GuardPolicy.ADVISORY, description="Whether guard failures block sealing"
    )
    guard_name: str = Field(default="truth_density", description="Guard rule applied in phase 1")
    guard_phase: int = Field(default=1, ge=1, description="Guard phase number applied in phase 1")
    spawn_budget_usd: float | None = Field(
        default=5.0, ge=0.0, description="Advisory budget for a single spawn (None = unbounded)"
    )
    max_debate_rounds: int = Field(default=3, ge=1, description="Rounds passed to debate")
    max_roles: int = Field(default=5, ge=1, description="Maximum agent roles per ritual")
    vote_timeout: float = Field(default=30.0, gt=0.0, description="Seconds to wait on each voter")
    execution_timeout: float = Field(
        default=120.0, gt=0.0, description="Seconds to wait on each artifact generator"
    )
    execution_types: list[ExecutionType] = Field(
        default_factory=lambda: [ExecutionType.VIDEO, ExecutionType.BOOK],
        description="Artifact kinds generated when the caller does not choose",
    )
    persist_rituals: bool = Field(
        default=True, description="Whether final payloads are written to SQLite"
    )
    ritual_db_path: str = Field(
        default="~/.trinity/rituals.db", description="Path to the ritual database file"
    )
