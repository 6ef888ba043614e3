"""Tests for trinity.providers.litellm_provider: LiteLLM adapter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from trinity.providers.litellm_provider import LiteLLMProvider, _short_error_reason
from trinity.schemas.config import ModelConfig

# Shorthand for the mock target
_ACOMP = "trinity.providers.litellm_provider.litellm.acompletion"


# ── Helpers ───────────────────────────────────────────────────


def _make_config(**overrides) -> ModelConfig:
    """Create a ModelConfig with sensible defaults."""
    defaults = {
        "provider": "anthropic",
        "model": "claude-sonnet-4-5-20250929",
        "display_name": "Claude Sonnet 4.5",
        "api_key_env": "ANTHROPIC_API_KEY",
        "supports_structured": True,
        "max_tokens": 300,
        "cost_input": 3.00,
        "cost_output": 15.00,
    }
    defaults.update(overrides)
    return ModelConfig(**defaults)


def _make_response(
    content: str | None = "Hello",
    prompt_tokens: int = 100,
    completion_tokens: int = 50,
) -> SimpleNamespace:
    """Build a mock LiteLLM ModelResponse-like object."""
    message = SimpleNamespace(content=content, tool_calls=None)
    choice = SimpleNamespace(message=message, finish_reason="stop", index=0)
    usage = SimpleNamespace(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )
    return SimpleNamespace(choices=[choice], usage=usage, model="claude-sonnet-4-5-20250929")


_MESSAGES = [{"role": "user", "content": "Vote on the charter"}]


# ── Completion ───────────────────────────────────────────────


class TestLiteLLMProviderComplete:
    @pytest.fixture
    def provider(self):
        with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "sk-test"}):
            return LiteLLMProvider(_make_config())

    @pytest.mark.asyncio
    async def test_returns_reply_with_usage(self, provider):
        mock_acomp = AsyncMock(return_value=_make_response('{"answer": "YES"}'))
        with patch(_ACOMP, mock_acomp):
            reply = await provider.complete(_MESSAGES, "You are a throne.")

        assert reply.content == '{"answer": "YES"}'
        assert reply.model == "claude-sonnet-4-5-20250929"
        assert reply.token_usage.prompt_tokens == 100
        assert reply.token_usage.completion_tokens == 50
        expected = (100 / 1_000_000) * 3.00 + (50 / 1_000_000) * 15.00
        assert reply.token_usage.cost == pytest.approx(expected)
        assert mock_acomp.call_count == 1

    @pytest.mark.asyncio
    async def test_request_kwargs(self, provider):
        mock_acomp = AsyncMock(return_value=_make_response())
        with patch(_ACOMP, mock_acomp):
            await provider.complete(_MESSAGES, "system text", json_mode=True, timeout=12)

        kwargs = mock_acomp.call_args.kwargs
        assert kwargs["model"] == "claude-sonnet-4-5-20250929"
        assert kwargs["messages"][0] == {"role": "system", "content": "system text"}
        assert kwargs["messages"][1:] == _MESSAGES
        assert kwargs["timeout"] == 12.0
        assert kwargs["max_tokens"] == 300
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "api_base" not in kwargs

    @pytest.mark.asyncio
    async def test_json_mode_ignored_without_structured_support(self):
        with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "sk-test"}):
            provider = LiteLLMProvider(
                _make_config(supports_structured=False, api_base="http://localhost:4000"),
            )
        mock_acomp = AsyncMock(return_value=_make_response())
        with patch(_ACOMP, mock_acomp):
            await provider.complete(_MESSAGES, "s", json_mode=True)

        kwargs = mock_acomp.call_args.kwargs
        assert "response_format" not in kwargs
        assert kwargs["api_base"] == "http://localhost:4000"

    @pytest.mark.asyncio
    async def test_auth_error(self, provider):
        import litellm as litellm_mod

        mock_acomp = AsyncMock(
            side_effect=litellm_mod.AuthenticationError(
                message="bad key", model="test", llm_provider="test",
            ),
        )
        with patch(_ACOMP, mock_acomp), pytest.raises(
            RuntimeError, match="Authentication failed",
        ):
            await provider.complete(_MESSAGES, "s")

        assert mock_acomp.call_count == 1

    @pytest.mark.asyncio
    async def test_bad_request(self, provider):
        import litellm as litellm_mod

        mock_acomp = AsyncMock(
            side_effect=litellm_mod.BadRequestError(
                message="invalid params", model="test", llm_provider="test",
            ),
        )
        with patch(_ACOMP, mock_acomp), pytest.raises(RuntimeError, match="Bad request"):
            await provider.complete(_MESSAGES, "s")

    @pytest.mark.asyncio
    async def test_rate_limit_is_single_attempt(self, provider):
        import litellm as litellm_mod

        mock_acomp = AsyncMock(
            side_effect=litellm_mod.RateLimitError(
                message="rate limited", model="test", llm_provider="test",
            ),
        )
        with patch(_ACOMP, mock_acomp), pytest.raises(RuntimeError, match="rate limit"):
            await provider.complete(_MESSAGES, "s")

        assert mock_acomp.call_count == 1

    @pytest.mark.asyncio
    async def test_timeout_raises_timeout_error(self, provider):
        mock_acomp = AsyncMock(side_effect=TimeoutError())
        with patch(_ACOMP, mock_acomp), pytest.raises(TimeoutError, match="timed out"):
            await provider.complete(_MESSAGES, "s", timeout=30)


class TestLiteLLMProviderEdgeCases:
    @pytest.fixture
    def provider(self):
        with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "sk-test"}):
            return LiteLLMProvider(_make_config())

    @pytest.mark.asyncio
    async def test_empty_response_content(self, provider):
        with patch(_ACOMP, AsyncMock(return_value=_make_response(content=None))):
            reply = await provider.complete(_MESSAGES, "s")
        assert reply.content == ""

    @pytest.mark.asyncio
    async def test_no_choices(self, provider):
        response = SimpleNamespace(choices=[], usage=None)
        with patch(_ACOMP, AsyncMock(return_value=response)):
            reply = await provider.complete(_MESSAGES, "s")
        assert reply.content == ""
        assert reply.token_usage.cost == 0.0

    def test_credentials(self, monkeypatch):
        monkeypatch.delenv("TRINITY_MISSING_KEY", raising=False)
        assert not LiteLLMProvider(_make_config(api_key_env="TRINITY_MISSING_KEY")).has_credentials
        assert LiteLLMProvider(_make_config(api_key_env="")).has_credentials
        monkeypatch.setenv("TRINITY_MISSING_KEY", "sk-x")
        assert LiteLLMProvider(_make_config(api_key_env="TRINITY_MISSING_KEY")).has_credentials


class TestShortErrorReason:
    def test_known_reasons(self):
        assert _short_error_reason(RuntimeError("HTTP 429 Too Many Requests")) == "rate limit"
        assert _short_error_reason(RuntimeError("model overloaded")) == "overloaded"
        assert _short_error_reason(TimeoutError()) == "timeout"
        assert _short_error_reason(RuntimeError("503 from upstream")) == "service unavailable"
        assert _short_error_reason(RuntimeError("connection reset")) == "connection error"

    def test_unknown_reason_truncated(self):
        assert _short_error_reason(RuntimeError("x" * 200)) == "x" * 80
