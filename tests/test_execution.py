"""Tests for artifact generators, the forge, and the archiver."""

from __future__ import annotations

import asyncio
import hashlib
import json
import threading

import pytest

from trinity.archive import ContentAddressedArchiver, canonical_json
from trinity.errors import ExecutionFailure
from trinity.execution import ArtifactGenerator, Forge, default_generators
from trinity.execution.generators import (
    BookGenerator,
    DataProcessGenerator,
    NpcGenerator,
    VideoGenerator,
)
from trinity.ritual import advance, create_ritual_payload
from trinity.schemas.config import ExecutionType
from trinity.schemas.ritual import ExecutionResult, RitualPayload, RitualStatus

# ── Factories ──────────────────────────────────────────────────────


def _make_payload() -> RitualPayload:
    payload = create_ritual_payload(
        "Which storage engine should the ledger use?",
        decision_id="ritual-0123456789abcdef",
    )
    payload = advance(
        payload,
        RitualStatus.DEBATING,
        snapshot={
            "proposals": [
                {"agent_role": "engineer", "confidence": 0.9, "proposal": {"role": "engineer"}},
                {"agent_role": "qa", "confidence": 0.8, "proposal": {"role": "qa"}},
            ],
        },
    )
    return advance(
        payload,
        RitualStatus.SEALED,
        consensus_score=0.6,
        snapshot={
            "winner": {"agent_role": "engineer"},
            "merged_output": {"proposals_merged": 2},
            "consensus": {"verdict": "ACCEPTED"},
        },
    )


class _BrokenGenerator(ArtifactGenerator):
    artifact_type = ExecutionType.VIDEO

    async def generate(self, payload, execution_type):
        raise RuntimeError("renderer offline")


class _SlowGenerator(ArtifactGenerator):
    artifact_type = ExecutionType.BOOK

    async def generate(self, payload, execution_type):
        await asyncio.sleep(5)
        raise AssertionError("unreachable")


# ── Generators ─────────────────────────────────────────────────────


class TestGenerators:
    @pytest.mark.asyncio
    async def test_video(self):
        result = await VideoGenerator().generate(_make_payload(), ExecutionType.VIDEO)
        assert result.execution_id.startswith("beat-")
        assert result.artifact_url == f"file:///output/eternal/beat-{result.execution_id}.mp4"
        assert result.artifact_type == "video"
        assert result.metadata["duration_seconds"] == 6
        assert result.metadata["tension"] == 65
        assert len(result.artifact_hash) == 64

    @pytest.mark.asyncio
    async def test_book_hash_covers_narrative(self):
        result = await BookGenerator().generate(_make_payload(), ExecutionType.BOOK)
        assert result.artifact_url == f"file:///output/books/{result.execution_id}.epub"
        assert result.metadata["chapters"] == 4
        assert result.metadata["word_count"] > 0

    @pytest.mark.asyncio
    async def test_npc(self):
        result = await NpcGenerator().generate(_make_payload(), ExecutionType.NPC)
        assert result.artifact_url.startswith("sui:0x")
        assert len(result.artifact_url) == len("sui:0x") + 64
        assert result.metadata["npc_name"] == "Witness_01234567"
        assert result.metadata["personality"]["truth_density"] == 0.6

    @pytest.mark.asyncio
    async def test_data_process_hashes_snapshot(self):
        payload = _make_payload()
        result = await DataProcessGenerator().generate(payload, ExecutionType.DATA_PROCESS)
        expected = hashlib.sha256(
            json.dumps(payload.decision_snapshot, default=str, sort_keys=True).encode("utf-8")
        ).hexdigest()
        assert result.artifact_hash == expected
        assert result.artifact_url == f"data:processed/{result.execution_id}.json"

    def test_default_generators_cover_every_type(self):
        assert set(default_generators()) == set(ExecutionType)


# ── Forge ──────────────────────────────────────────────────────────


class TestForge:
    @pytest.mark.asyncio
    async def test_results_in_request_order_and_cached(self):
        forge = Forge()
        payload = _make_payload()
        results = await forge.run(payload, ["npc", ExecutionType.VIDEO, "book"])
        assert [r.artifact_type for r in results] == ["npc", "video", "book"]
        assert len(forge.cache) == 3

        record = forge.cache.get(results[0].execution_id)
        assert record is not None
        assert record.artifact_url == results[0].artifact_url
        assert record.decision_id == payload.decision_id
        assert len(forge.cache.for_decision(payload.decision_id)) == 3

    @pytest.mark.asyncio
    async def test_one_failure_keeps_others(self):
        generators = default_generators()
        generators[ExecutionType.VIDEO] = _BrokenGenerator()
        forge = Forge(generators)
        results = await forge.run(_make_payload(), ["video", "book"])
        assert [r.artifact_type for r in results] == ["book"]

    @pytest.mark.asyncio
    async def test_all_failures_raise(self):
        forge = Forge({ExecutionType.VIDEO: _BrokenGenerator()})
        with pytest.raises(ExecutionFailure):
            await forge.run(_make_payload(), ["video", "npc"])
        assert len(forge.cache) == 0

    @pytest.mark.asyncio
    async def test_no_types_raises(self):
        with pytest.raises(ExecutionFailure):
            await Forge().run(_make_payload(), [])

    @pytest.mark.asyncio
    async def test_generator_timeout(self):
        generators = default_generators()
        generators[ExecutionType.BOOK] = _SlowGenerator()
        forge = Forge(generators, timeout=0.05)
        results = await forge.run(_make_payload(), ["book", "data_process"])
        assert [r.artifact_type for r in results] == ["data_process"]

    @pytest.mark.asyncio
    async def test_unknown_type_alone_raises_execution_failure(self):
        with pytest.raises(ExecutionFailure, match="Unknown execution type 'hologram'"):
            await Forge().run(_make_payload(), ["hologram"])

    @pytest.mark.asyncio
    async def test_unknown_type_only_loses_its_own_artifact(self):
        forge = Forge()
        results = await forge.run(_make_payload(), ["video", "hologram"])
        assert [r.artifact_type for r in results] == ["video"]
        assert len(forge.cache) == 1


# ── Archive ────────────────────────────────────────────────────────


class TestArchiver:
    @pytest.mark.asyncio
    async def test_location_is_content_address(self):
        archiver = ContentAddressedArchiver()
        payload = _make_payload()
        location = await archiver.archive(payload)
        digest = hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
        assert location == f"ar:{digest}"
        assert archiver.retrieve(location) == canonical_json(payload)

    @pytest.mark.asyncio
    async def test_same_payload_same_location(self):
        archiver = ContentAddressedArchiver()
        payload = _make_payload()
        assert await archiver.archive(payload) == await archiver.archive(payload)

    @pytest.mark.asyncio
    async def test_writes_to_directory(self, tmp_path):
        archiver = ContentAddressedArchiver(tmp_path / "archive")
        location = await archiver.archive(_make_payload())
        digest = location.removeprefix("ar:")
        assert (tmp_path / "archive" / f"{digest}.json").is_file()
        assert ContentAddressedArchiver(tmp_path / "archive").retrieve(location) is not None

    @pytest.mark.asyncio
    async def test_directory_write_runs_off_event_loop(self, tmp_path, monkeypatch):
        writer_threads: list[int] = []
        original = ContentAddressedArchiver._write

        def _recording_write(archiver, digest, content):
            writer_threads.append(threading.get_ident())
            original(archiver, digest, content)

        monkeypatch.setattr(ContentAddressedArchiver, "_write", _recording_write)
        location = await ContentAddressedArchiver(tmp_path / "archive").archive(_make_payload())

        assert len(writer_threads) == 1
        assert writer_threads[0] != threading.get_ident()
        assert (tmp_path / "archive" / f"{location.removeprefix('ar:')}.json").is_file()

    def test_unknown_location(self):
        assert ContentAddressedArchiver().retrieve("ar:missing") is None


def test_execution_result_defaults():
    result = ExecutionResult(execution_id="x", artifact_url="u", artifact_hash="h")
    assert result.success is True
    assert result.metadata == {}
