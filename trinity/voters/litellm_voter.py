"""Voter adapter backed by a LiteLLM model call."""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any

from trinity.errors import AdapterFailure
from trinity.prompts import render_prompt
from trinity.providers.base import ModelProvider
from trinity.providers.litellm_provider import LiteLLMProvider
from trinity.schemas.config import ThroneConfig
from trinity.schemas.consensus import VoteRequest
from trinity.voters.base import VoterAdapter

logger = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)
_BARE_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

_SYSTEM_PROMPT = "You are a careful judge. Answer only with the JSON object requested."


def parse_vote_json(text: str) -> dict[str, Any] | None:
    """Extract the vote object from a model reply.

    Accepts raw JSON, a fenced ```json block, or the first {...} span.
    ``vote`` is accepted as an alias for ``answer``.
    """
    if not text:
        return None
    candidates = [text.strip()]
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    bare = _BARE_OBJECT_RE.search(text)
    if bare:
        candidates.append(bare.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            if "answer" not in data and "vote" in data:
                data["answer"] = data["vote"]
            return data
    return None


class LiteLLMVoter(VoterAdapter):
    """Casts a throne's vote through its configured LiteLLM model."""

    def __init__(
        self, throne: ThroneConfig, provider: ModelProvider | None = None,
    ) -> None:
        super().__init__(throne)
        self._provider = provider or LiteLLMProvider(throne.model)

    @property
    def is_configured(self) -> bool:
        env_var = self._throne.model.api_key_env
        return not env_var or bool(os.environ.get(env_var))

    @property
    def missing_reason(self) -> str:
        return (
            f"{self.name} API not configured "
            f"({self._throne.model.api_key_env} missing)"
        )

    async def _vote(self, request: VoteRequest) -> dict[str, Any]:
        prompt = render_prompt(
            "vote",
            voter_name=request.voter_name or self.name,
            question=request.question,
            proposal_summaries=request.proposal_summaries,
            context_text=request.context_text,
        )
        reply = await self._provider.complete(
            [{"role": "user", "content": prompt}],
            system=_SYSTEM_PROMPT,
            json_mode=True,
        )
        parsed = parse_vote_json(reply.content)
        if parsed is None:
            raise AdapterFailure(f"Unparseable vote reply from {reply.model}")

        usage = reply.token_usage
        return {
            **parsed,
            "input_tokens": usage.prompt_tokens if usage else 0,
            "output_tokens": usage.completion_tokens if usage else 0,
            "cost_usd": usage.cost if usage else 0.0,
        }
