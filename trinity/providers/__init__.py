"""Model providers and the throne roster loader."""

from trinity.providers.base import ModelProvider
from trinity.providers.litellm_provider import LiteLLMProvider
from trinity.providers.registry import DEFAULT_THRONES, load_pipeline_config, load_thrones

__all__ = [
    "DEFAULT_THRONES",
    "LiteLLMProvider",
    "ModelProvider",
    "load_pipeline_config",
    "load_thrones",
]
