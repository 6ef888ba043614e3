"""Tests for the throne roster loader, pipeline config, keys, and roles."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from trinity.keys import _load_env_file, is_throne_live, live_thrones
from trinity.providers.registry import (
    DEFAULT_THRONES,
    load_pipeline_config,
    load_thrones,
)
from trinity.roles import derive_roles, role_hints
from trinity.schemas.config import ExecutionType, GuardPolicy, ModelConfig, ThroneConfig

# ── Helpers ───────────────────────────────────────────────────


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def _make_throne(env: str) -> ThroneConfig:
    return ThroneConfig(
        id=1, name="t", weight=1.0,
        model=ModelConfig(provider="p", model="m", api_key_env=env),
    )


# ── Roster ────────────────────────────────────────────────────


class TestLoadThrones:
    def test_default_roster(self):
        assert len(DEFAULT_THRONES) == 12
        assert [t.id for t in DEFAULT_THRONES] == list(range(1, 13))
        assert DEFAULT_THRONES[0].name == "Ọbàtálá"
        assert DEFAULT_THRONES[0].weight == 2.0
        assert DEFAULT_THRONES[0].model.model == "gemini/gemini-3-pro-preview"
        assert all(t.weight > 0 for t in DEFAULT_THRONES)

    def test_custom_roster(self, tmp_path):
        path = _write(tmp_path, "thrones.toml", """
[[thrones]]
id = 7
name = "Solo"
weight = 1.25
provider = "openai"
model = "gpt-4o-mini"
api_key_env = "OPENAI_API_KEY"
""")
        roster = load_thrones(path)
        assert len(roster) == 1
        assert roster[0].id == 7
        assert roster[0].model.provider == "openai"
        assert roster[0].model.api_key_env == "OPENAI_API_KEY"

    def test_duplicate_ids(self, tmp_path):
        entry = '[[thrones]]\nid = 1\nname = "A"\nweight = 1.0\nprovider = "x"\nmodel = "y"\n'
        path = _write(tmp_path, "thrones.toml", entry + entry)
        with pytest.raises(ValueError, match="Duplicate"):
            load_thrones(path)

    def test_empty_roster(self, tmp_path):
        path = _write(tmp_path, "thrones.toml", "# nothing here\n")
        with pytest.raises(ValueError):
            load_thrones(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_thrones(tmp_path / "absent.toml")

    def test_roster_is_immutable(self):
        with pytest.raises(ValidationError):
            DEFAULT_THRONES[0].weight = 9.0


class TestLoadPipelineConfig:
    def test_defaults(self):
        config = load_pipeline_config()
        assert config.guard_policy == GuardPolicy.ADVISORY
        assert config.execution_types == [ExecutionType.VIDEO, ExecutionType.BOOK]
        assert config.dispatcher.max_parallel_agents == 5
        assert config.dispatcher.conflict_resolution_strategy == "meta_reasoning"

    def test_overrides(self, tmp_path):
        path = _write(tmp_path, "defaults.toml", """
[pipeline]
guard_policy = "blocking"
vote_timeout = 5.0

[dispatcher]
call_timeout = 2.5
""")
        config = load_pipeline_config(path)
        assert config.guard_policy == GuardPolicy.BLOCKING
        assert config.vote_timeout == 5.0
        assert config.dispatcher.call_timeout == 2.5
        assert config.max_roles == 5


# ── Keys ──────────────────────────────────────────────────────


class TestKeys:
    def test_live_when_env_set(self, monkeypatch):
        monkeypatch.setenv("TRINITY_TEST_KEY", "secret")
        assert is_throne_live(_make_throne("TRINITY_TEST_KEY"))

    def test_not_live_without_env(self, monkeypatch):
        monkeypatch.delenv("TRINITY_TEST_KEY", raising=False)
        assert not is_throne_live(_make_throne("TRINITY_TEST_KEY"))
        assert not is_throne_live(_make_throne(""))

    def test_live_thrones_filters(self, monkeypatch):
        monkeypatch.setenv("TRINITY_TEST_KEY", "secret")
        monkeypatch.delenv("TRINITY_OTHER_KEY", raising=False)
        thrones = [_make_throne("TRINITY_TEST_KEY"), _make_throne("TRINITY_OTHER_KEY")]
        assert live_thrones(thrones) == thrones[:1]

    def test_env_file_does_not_overwrite(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRINITY_SET_KEY", "from-shell")
        monkeypatch.setenv("TRINITY_NEW_KEY", "")
        path = _write(
            tmp_path, "keys.env",
            "# comment\nTRINITY_SET_KEY=from-file\nTRINITY_NEW_KEY='quoted'\nnot a pair\n",
        )
        _load_env_file(path)
        assert os.environ["TRINITY_SET_KEY"] == "from-shell"
        assert os.environ["TRINITY_NEW_KEY"] == "quoted"


# ── Roles ─────────────────────────────────────────────────────


class TestDeriveRoles:
    def test_baseline(self):
        assert derive_roles("Should we launch on Friday?") == ["engineer", "devops", "qa"]

    def test_keywords(self):
        assert derive_roles("Review the architecture") == ["architect", "engineer", "devops", "qa"]
        assert derive_roles("Is it a safety risk?")[-1] == "critic"
        assert "data-engineer" in derive_roles("Migrate the data warehouse")

    def test_capped(self):
        roles = derive_roles("architecture, safety and data", max_roles=5)
        assert roles == ["architect", "engineer", "devops", "qa", "critic"]

    def test_structured_hints(self):
        structured = {
            "nodes": [
                {"kind": "agent", "data": {"role": "security"}},
                {"kind": "tool", "data": {"role": "ignored"}},
                {"kind": "agent", "data": {"role": "qa"}},
            ],
            "roles": ["ux"],
        }
        assert role_hints(structured) == ["security", "qa", "ux"]
        assert derive_roles("Plan it", structured) == ["engineer", "devops", "qa", "security", "ux"]

    def test_no_hints(self):
        assert role_hints(None) == []
        assert role_hints({}) == []
