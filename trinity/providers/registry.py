"""Throne roster and TOML configuration loader.

Loads the weighted voter roster from thrones.toml and pipeline defaults
from defaults.toml.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from trinity.schemas.config import (
    DispatcherConfig,
    ModelConfig,
    PipelineConfig,
    ThroneConfig,
)

# Default config directory relative to the trinity package
_CONFIG_DIR = Path(__file__).parent.parent / "config"

# Keys of a [[thrones]] entry that belong to the throne, not its model
_THRONE_KEYS = ("id", "name", "weight")


def load_thrones(config_path: Path | None = None) -> tuple[ThroneConfig, ...]:
    """Load the voter roster from a TOML file.

    Args:
        config_path: Path to thrones.toml. Defaults to trinity/config/thrones.toml.

    Returns:
        Roster in file order. The tuple is immutable so an engine can
        hold it for its whole lifetime.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the roster is empty or has duplicate ids.
    """
    path = config_path or _CONFIG_DIR / "thrones.toml"
    if not path.exists():
        raise FileNotFoundError(f"Throne roster not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    entries = raw.get("thrones")
    if not entries or not isinstance(entries, list):
        raise ValueError(f"No [[thrones]] entries found in {path}")

    roster: list[ThroneConfig] = []
    seen: set[int] = set()
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        model_data = {k: v for k, v in entry.items() if k not in _THRONE_KEYS}
        throne = ThroneConfig(
            id=entry["id"],
            name=entry["name"],
            weight=entry["weight"],
            model=ModelConfig(**model_data),
        )
        if throne.id in seen:
            raise ValueError(f"Duplicate throne id {throne.id} in {path}")
        seen.add(throne.id)
        roster.append(throne)

    return tuple(roster)


def load_pipeline_config(config_path: Path | None = None) -> PipelineConfig:
    """Load pipeline and dispatcher defaults from a TOML file.

    Args:
        config_path: Path to defaults.toml. Defaults to trinity/config/defaults.toml.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    pipeline_section = dict(raw.get("pipeline", {}))
    dispatcher = DispatcherConfig(**raw.get("dispatcher", {}))
    return PipelineConfig(dispatcher=dispatcher, **pipeline_section)


# The twelve-throne roster shipped with the package
DEFAULT_THRONES: tuple[ThroneConfig, ...] = load_thrones()
