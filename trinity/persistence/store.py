"""Ritual store for saving, retrieving, listing, and deleting rituals.

Each ritual is stored as a single JSON snapshot of its final payload,
keyed by decision_id. Saving the same decision_id again replaces it.
"""

from __future__ import annotations

import logging
from datetime import datetime

import aiosqlite

from trinity.schemas.ritual import RitualPayload, RitualStatus, RitualSummary

logger = logging.getLogger(__name__)

_ID_PREFIX = "ritual-"
_MIN_PREFIX = 4


class RitualStore:
    """Persistent ritual store backed by SQLite.

    All methods are async and operate on an aiosqlite connection
    initialized by database.init_db().
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def save_ritual(self, payload: RitualPayload) -> None:
        """Write the payload snapshot, replacing any earlier one."""
        consensus = payload.decision_snapshot.get("consensus") or {}
        await self._db.execute(
            """
            INSERT OR REPLACE INTO rituals
                (decision_id, question, question_hash, status, consensus_score,
                 verdict, total_cost, error, created_at, completed_at, payload_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                payload.decision_id,
                payload.question,
                payload.question_hash,
                payload.status.value,
                payload.consensus_score,
                str(consensus.get("verdict", "")),
                payload.cost_breakdown.total_cost_usd,
                payload.error,
                payload.created_at.isoformat(),
                payload.completed_at.isoformat() if payload.completed_at else None,
                payload.model_dump_json(),
            ),
        )
        await self._db.commit()
        logger.info("Saved ritual %s (%s)", payload.decision_id, payload.status.value)

    async def resolve_decision_id(self, prefix: str) -> str | None:
        """Resolve a decision_id prefix to a full decision_id.

        An exact match always wins. Otherwise a prefix of at least four
        characters must match exactly one ritual; the ``ritual-`` part of
        the id may be left off.
        """
        self._db.row_factory = aiosqlite.Row
        async with self._db.execute(
            "SELECT decision_id FROM rituals WHERE decision_id = ?",
            (prefix,),
        ) as cursor:
            row = await cursor.fetchone()
        if row:
            return row["decision_id"]

        if len(prefix) < _MIN_PREFIX:
            return None
        candidates = [prefix]
        if not prefix.startswith(_ID_PREFIX):
            candidates.append(_ID_PREFIX + prefix)
        for candidate in candidates:
            async with self._db.execute(
                "SELECT decision_id FROM rituals WHERE decision_id LIKE ? LIMIT 2",
                (candidate + "%",),
            ) as cursor:
                rows = await cursor.fetchall()
            if len(rows) == 1:
                return rows[0]["decision_id"]
        return None

    async def get_ritual(self, decision_id: str) -> RitualPayload | None:
        """Load a ritual by full id or unique prefix."""
        full_id = await self.resolve_decision_id(decision_id)
        if not full_id:
            return None
        async with self._db.execute(
            "SELECT payload_json FROM rituals WHERE decision_id = ?",
            (full_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None
        return RitualPayload.model_validate_json(row["payload_json"])

    async def list_rituals(
        self,
        *,
        status: RitualStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[RitualSummary]:
        """Summaries sorted by created_at, most recent first."""
        where = "WHERE status = ?" if status else ""
        params: list[object] = [status.value] if status else []
        params.extend([limit, offset])

        self._db.row_factory = aiosqlite.Row
        summaries: list[RitualSummary] = []
        async with self._db.execute(
            f"""
            SELECT decision_id, question, status, consensus_score, verdict,
                   total_cost, created_at, completed_at
            FROM rituals
            {where}
            ORDER BY created_at DESC
            LIMIT ? OFFSET ?
            """,  # noqa: S608
            params,
        ) as cursor:
            async for row in cursor:
                summaries.append(RitualSummary(
                    decision_id=row["decision_id"],
                    question_preview=row["question"][:100],
                    status=RitualStatus(row["status"]),
                    consensus_score=row["consensus_score"],
                    verdict=row["verdict"],
                    total_cost=row["total_cost"],
                    created_at=datetime.fromisoformat(row["created_at"]),
                    completed_at=(
                        datetime.fromisoformat(row["completed_at"])
                        if row["completed_at"]
                        else None
                    ),
                ))
        return summaries

    async def delete_ritual(self, decision_id: str) -> bool:
        """Delete a ritual by full id or unique prefix.

        Returns True if a ritual was deleted.
        """
        full_id = await self.resolve_decision_id(decision_id)
        if not full_id:
            return False
        cursor = await self._db.execute(
            "DELETE FROM rituals WHERE decision_id = ?",
            (full_id,),
        )
        await self._db.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted ritual %s", full_id)
        return deleted

    async def export_ritual(self, decision_id: str) -> dict | None:
        """A ritual as a JSON-serializable dict, or None if missing."""
        payload = await self.get_ritual(decision_id)
        if payload is None:
            return None
        return payload.model_dump(mode="json")
