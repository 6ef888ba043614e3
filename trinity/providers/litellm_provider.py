"""LiteLLM adapter implementing the ModelProvider interface.

Routes completion requests to any LLM provider via LiteLLM's unified API.
Each call is a single attempt: the consensus seal has no retries, and a
failed voter simply falls back to UNCERTAIN.
"""

from __future__ import annotations

import logging
import os

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from trinity.providers.base import ModelProvider
from trinity.schemas.config import ModelConfig
from trinity.schemas.messages import ModelReply, TokenUsage

logger = logging.getLogger(__name__)


def _short_error_reason(error: BaseException) -> str:
    """Extract a short, user-friendly reason from a LiteLLM error.

    Maps error types and status codes to concise descriptions instead
    of dumping full JSON error payloads.
    """
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    return str(error)[:80]


class LiteLLMProvider(ModelProvider):
    """Universal LLM adapter powered by LiteLLM.

    Routes calls to any provider (Anthropic, OpenAI, Gemini, Groq, ...)
    through litellm.acompletion().
    """

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._api_key = os.environ.get(config.api_key_env, "") if config.api_key_env else ""

    @property
    def has_credentials(self) -> bool:
        """Whether an API key was found (or none is required)."""
        return bool(self._api_key) or not self._config.api_key_env

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        *,
        json_mode: bool = False,
        timeout: float = 60.0,
    ) -> ModelReply:
        """Send a completion request via LiteLLM and return a ModelReply.

        Raises:
            TimeoutError: If the call exceeds *timeout*.
            RuntimeError: For authentication, request, or transport errors.
        """
        full_messages = [{"role": "system", "content": system}, *messages]
        kwargs = self._build_completion_kwargs(full_messages, json_mode, timeout)

        try:
            response = await litellm.acompletion(**kwargs)
        except TimeoutError:
            raise TimeoutError(
                f"Model call to {self._config.model} timed out after {timeout}s"
            ) from None
        except litellm.AuthenticationError:
            raise RuntimeError(
                f"Authentication failed for {self._config.model}. "
                f"Check that {self._config.api_key_env} is set correctly."
            ) from None
        except litellm.BadRequestError as e:
            raise RuntimeError(f"Bad request to {self._config.model}: {e}") from e
        except (
            litellm.RateLimitError,
            litellm.ServiceUnavailableError,
            litellm.InternalServerError,
            litellm.APIConnectionError,
        ) as e:
            logger.warning(
                "Call to %s failed (%s)", self.display_name, _short_error_reason(e),
            )
            raise RuntimeError(
                f"Model call to {self._config.model} failed: {_short_error_reason(e)}"
            ) from e

        return ModelReply(
            content=self._extract_content(response),
            token_usage=self._build_token_usage(response),
            model=self._config.model,
        )

    def _build_completion_kwargs(
        self,
        messages: list[dict[str, str]],
        json_mode: bool,
        timeout: float,
    ) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": messages,
            "timeout": float(timeout),
            "max_tokens": self._config.max_tokens,
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base
        if json_mode and self._config.supports_structured:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    def _extract_content(self, response: litellm.ModelResponse) -> str:
        if not response.choices:
            return ""
        message = response.choices[0].message
        return message.content or "" if message else ""

    def _build_token_usage(self, response: litellm.ModelResponse) -> TokenUsage:
        """Build TokenUsage from the LiteLLM response usage data."""
        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost=self.calculate_cost(prompt_tokens, completion_tokens),
        )
