"""Built-in artifact generators.

These produce deterministic local artifacts (URLs, content hashes and
metadata) without calling out to a renderer or a chain; real backends
plug in through the same ArtifactGenerator interface.
"""

from __future__ import annotations

import hashlib
import json
import secrets
import time
import uuid

from trinity.execution.base import ArtifactGenerator
from trinity.prompts import render_prompt
from trinity.schemas.config import ExecutionType
from trinity.schemas.ritual import ExecutionResult, RitualPayload


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class VideoGenerator(ArtifactGenerator):
    """A single six-second video beat."""

    artifact_type = ExecutionType.VIDEO

    tension = 65
    duration_seconds = 6

    async def generate(
        self, payload: RitualPayload, execution_type: ExecutionType,
    ) -> ExecutionResult:
        start = time.perf_counter()
        beat_id = f"beat-{uuid.uuid4().hex[:12]}"
        merged = payload.decision_snapshot.get("merged_output") or "abstract"
        prompt = (
            f"Generate a {self.duration_seconds}-second video beat based on: "
            f"{json.dumps(merged, default=str, sort_keys=True)}"
        )
        return ExecutionResult(
            execution_id=beat_id,
            artifact_url=f"file:///output/eternal/beat-{beat_id}.mp4",
            artifact_hash=_sha256(f"{beat_id}-{prompt}"),
            artifact_type=self.artifact_type.value,
            execution_time_ms=_elapsed_ms(start),
            metadata={
                "beat_number": 1,
                "tension": self.tension,
                "duration_seconds": self.duration_seconds,
                "prompt": prompt[:100],
            },
        )


class BookGenerator(ArtifactGenerator):
    """A four-chapter narrative of the ritual, rendered from book.md."""

    artifact_type = ExecutionType.BOOK

    title = "The Ritual of Consensus"

    async def generate(
        self, payload: RitualPayload, execution_type: ExecutionType,
    ) -> ExecutionResult:
        start = time.perf_counter()
        book_id = f"book-{uuid.uuid4().hex[:12]}"
        snapshot = payload.decision_snapshot
        proposals = snapshot.get("proposals") or []
        consensus = snapshot.get("consensus") or {}
        narrative = render_prompt(
            "book",
            title=self.title,
            question=payload.question or "A profound inquiry into the nature of consensus",
            agents_spawned=len(proposals) or payload.ritual_metadata.agents_spawned,
            roles=[p.get("agent_role", "") for p in proposals],
            debate_iterations=payload.ritual_metadata.debate_iterations,
            winner_role=(snapshot.get("winner") or {}).get("agent_role", "council"),
            consensus_score=payload.consensus_score,
            verdict=consensus.get("verdict", ""),
            decision_id=payload.decision_id,
        )
        return ExecutionResult(
            execution_id=book_id,
            artifact_url=f"file:///output/books/{book_id}.epub",
            artifact_hash=_sha256(narrative),
            artifact_type=self.artifact_type.value,
            execution_time_ms=_elapsed_ms(start),
            metadata={
                "title": self.title,
                "chapters": 4,
                "word_count": len(narrative.split()),
                "format": "EPUB",
                "exportable_to": ["MOBI", "PDF", "HTML"],
            },
        )


class NpcGenerator(ArtifactGenerator):
    """A witness NPC whose memory records the ritual."""

    artifact_type = ExecutionType.NPC

    async def generate(
        self, payload: RitualPayload, execution_type: ExecutionType,
    ) -> ExecutionResult:
        start = time.perf_counter()
        npc_id = f"npc-{secrets.token_hex(8)}"
        # decision ids start with "ritual-"; the tail is the distinguishing part
        tag = payload.decision_id.removeprefix("ritual-")[:8].upper()
        personality = {
            "name": f"Witness_{tag}",
            "role": "Epistemic Witness",
            "personality_traits": {
                "wisdom": 95,
                "truth_density": payload.consensus_score,
                "adaptability": 80,
            },
            "memory": {
                "ritual_id": payload.decision_id,
                "question_hash": payload.question_hash,
                "consensus_score": payload.consensus_score,
            },
        }
        return ExecutionResult(
            execution_id=npc_id,
            artifact_url=f"sui:0x{secrets.token_hex(32)}",
            artifact_hash=_sha256(json.dumps(personality, sort_keys=True)),
            artifact_type=self.artifact_type.value,
            execution_time_ms=_elapsed_ms(start),
            metadata={
                "npc_name": personality["name"],
                "npc_role": personality["role"],
                "personality": personality["personality_traits"],
                "blockchain": "Sui",
                "testnet": True,
            },
        )


class DataProcessGenerator(ArtifactGenerator):
    """A JSON snapshot of the decision record."""

    artifact_type = ExecutionType.DATA_PROCESS

    async def generate(
        self, payload: RitualPayload, execution_type: ExecutionType,
    ) -> ExecutionResult:
        start = time.perf_counter()
        process_id = f"proc-{uuid.uuid4().hex[:12]}"
        snapshot_json = json.dumps(payload.decision_snapshot, default=str, sort_keys=True)
        return ExecutionResult(
            execution_id=process_id,
            artifact_url=f"data:processed/{process_id}.json",
            artifact_hash=_sha256(snapshot_json),
            artifact_type=self.artifact_type.value,
            execution_time_ms=_elapsed_ms(start),
            metadata={"records_processed": 1, "output_format": "JSON"},
        )


def default_generators() -> dict[ExecutionType, ArtifactGenerator]:
    """One built-in generator per execution type."""
    generators: list[ArtifactGenerator] = [
        VideoGenerator(),
        BookGenerator(),
        NpcGenerator(),
        DataProcessGenerator(),
    ]
    return {g.artifact_type: g for g in generators}
