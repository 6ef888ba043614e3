"""Abstract base class for model providers.

Voters and the real backing service talk to LLMs only through this
interface; neither imports a provider SDK directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from trinity.schemas.config import ModelConfig
from trinity.schemas.messages import ModelReply


class ModelProvider(ABC):
    """Abstract interface for an LLM that can vote or synthesise proposals.

    Initialized from a ModelConfig taken from the throne roster.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config

    @property
    def provider_id(self) -> str:
        return self._config.provider

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.model

    @property
    def display_name(self) -> str:
        return self._config.display_name or self._config.model

    @property
    def cost_per_1m_input(self) -> float:
        return self._config.cost_input

    @property
    def cost_per_1m_output(self) -> float:
        return self._config.cost_output

    @property
    def config(self) -> ModelConfig:
        return self._config

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        *,
        json_mode: bool = False,
        timeout: float = 60.0,
    ) -> ModelReply:
        """Send one completion request and return the reply.

        Args:
            messages: Conversation messages in OpenAI format.
            system: System prompt for this call.
            json_mode: Request a JSON object response when the model
                       supports it.
            timeout: Timeout in seconds for the model call.

        Raises:
            TimeoutError: If the model call exceeds the timeout.
            RuntimeError: If the model call fails.
        """

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Calculate the USD cost for a given token count."""
        input_cost = (prompt_tokens / 1_000_000) * self.cost_per_1m_input
        output_cost = (completion_tokens / 1_000_000) * self.cost_per_1m_output
        return input_cost + output_cost
