"""API key loading for throne voters.

Keys are read from the environment with this priority:
  1. Environment variables (highest, already set in shell)
  2. ~/.trinity/keys.env
  3. .env in the current directory
A throne whose key is missing votes through the mock fallback.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from trinity.schemas.config import ThroneConfig

logger = logging.getLogger(__name__)

TRINITY_HOME = Path.home() / ".trinity"
KEYS_FILE = TRINITY_HOME / "keys.env"


def load_keys_env() -> None:
    """Load API keys from ~/.trinity/keys.env and .env into os.environ.

    Existing env vars are NOT overwritten, and an earlier file wins over
    a later one.
    """
    for env_file in (KEYS_FILE, Path.cwd() / ".env"):
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    """Parse a simple KEY=VALUE .env file and set vars that aren't already set."""
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and not os.environ.get(key):
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, path)
    except OSError:
        logger.debug("Could not read %s", path)


def is_throne_live(throne: ThroneConfig) -> bool:
    """Whether the throne's API key is present in the environment."""
    env_var = throne.model.api_key_env
    return bool(env_var) and bool(os.environ.get(env_var))


def live_thrones(thrones: Iterable[ThroneConfig]) -> list[ThroneConfig]:
    """Thrones that will make real model calls."""
    return [t for t in thrones if is_throne_live(t)]
