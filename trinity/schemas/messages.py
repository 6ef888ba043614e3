"""Model call schemas shared by the provider layer.

Defines token accounting (TokenUsage) and the plain reply envelope
(ModelReply) returned by every ModelProvider.complete() call.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    """Token consumption and cost tracking for a single model call."""

    prompt_tokens: int = Field(ge=0, description="Number of input tokens consumed")
    completion_tokens: int = Field(ge=0, description="Number of output tokens generated")
    cost: float = Field(ge=0.0, description="Estimated cost in USD for this call")


class ModelReply(BaseModel):
    """Text reply from a single model call."""

    content: str = Field(default="", description="Raw text returned by the model")
    token_usage: TokenUsage | None = Field(
        default=None, description="Token consumption and cost for this call"
    )
    model: str = Field(default="", description="Model identifier that produced the reply")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the reply was received",
    )
