"""Ritual payload state machine.

Payloads are frozen; every change goes through advance(), which returns
a new payload after checking that:

- status moves one step forward, stays put (an update), or jumps to
  FAILED, and never leaves COMPLETE or FAILED;
- identity fields, the snapshot, the cost ledger, and the notes are only
  ever extended, never replaced;
- a consensus score is recorded before SEALED, and never written once
  the ritual is executing;
- COMPLETE carries an execution_result and FAILED carries an error.
"""

from __future__ import annotations

import hashlib
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from trinity.errors import InvalidTransitionError, PayloadInvariantError
from trinity.schemas.ritual import (
    CostLog,
    RitualMetadata,
    RitualPayload,
    RitualStatus,
)

# Forward order; FAILED sits outside it
STATUS_ORDER: tuple[RitualStatus, ...] = (
    RitualStatus.THINKING,
    RitualStatus.DEBATING,
    RitualStatus.SEALED,
    RitualStatus.EXECUTING,
    RitualStatus.COMPLETE,
)

TERMINAL_STATUSES = frozenset({RitualStatus.COMPLETE, RitualStatus.FAILED})

# Fields advance() manages itself or that never change after creation
_PROTECTED_FIELDS = frozenset({
    "decision_id",
    "question_hash",
    "created_at",
    "completed_at",
    "status",
    "seal_count",
    "cost_breakdown",
    "decision_snapshot",
    "notes",
})

_UPDATABLE_FIELDS = frozenset({
    "consensus_score",
    "ritual_metadata",
    "execution_result",
    "archive_location",
    "witness_nft_id",
    "error",
})

_POST_SEAL = frozenset({RitualStatus.EXECUTING, RitualStatus.COMPLETE})


def hash_question(question: str) -> str:
    """SHA-256 hex digest of the question text."""
    return hashlib.sha256(question.encode("utf-8")).hexdigest()


def new_decision_id() -> str:
    return f"ritual-{uuid.uuid4().hex}"


def create_ritual_payload(
    question: str,
    decision_id: str | None = None,
    snapshot: Mapping[str, Any] | None = None,
) -> RitualPayload:
    """Create a fresh THINKING payload for a question."""
    initial: dict[str, Any] = {"question": question}
    if snapshot:
        initial.update(snapshot)
    return RitualPayload(
        decision_id=decision_id or new_decision_id(),
        question_hash=hash_question(question),
        decision_snapshot=initial,
        ritual_metadata=RitualMetadata(),
    )


def can_transition(current: RitualStatus, target: RitualStatus) -> bool:
    """Whether *current* may move to *target*.

    Staying on the same non-terminal status is allowed; it is how a
    phase writes fields without changing status (e.g. a re-seal).
    """
    if current in TERMINAL_STATUSES:
        return False
    if target == RitualStatus.FAILED or target == current:
        return True
    return STATUS_ORDER.index(target) == STATUS_ORDER.index(current) + 1


def advance(
    payload: RitualPayload,
    status: RitualStatus,
    *,
    snapshot: Mapping[str, Any] | None = None,
    costs: Iterable[CostLog] = (),
    note: str | None = None,
    **updates: Any,
) -> RitualPayload:
    """Return a new payload moved to *status* with *updates* applied.

    Args:
        payload: The current payload (left untouched).
        status: Target status.
        snapshot: Keys to add to decision_snapshot. Existing keys may be
                  refreshed but are never dropped.
        costs: Cost ledger entries to append.
        note: Human-readable note to append.
        **updates: Values for the updatable fields.

    Raises:
        InvalidTransitionError: If the status change is not allowed.
        PayloadInvariantError: If an update breaks a payload invariant.
    """
    if not can_transition(payload.status, status):
        raise InvalidTransitionError(
            f"Ritual {payload.decision_id}: cannot move "
            f"{payload.status.value} -> {status.value}"
        )

    protected = _PROTECTED_FIELDS.intersection(updates)
    if protected:
        raise PayloadInvariantError(
            f"Fields {sorted(protected)} cannot be set directly"
        )
    unknown = set(updates) - _UPDATABLE_FIELDS
    if unknown:
        raise PayloadInvariantError(f"Unknown payload fields: {sorted(unknown)}")

    changes: dict[str, Any] = dict(updates)
    seal_count = payload.seal_count

    if "consensus_score" in updates:
        if payload.status in _POST_SEAL or status in _POST_SEAL:
            raise PayloadInvariantError(
                "consensus_score cannot be written once execution has started"
            )
        score = float(updates["consensus_score"])
        if not 0.0 <= score <= 1.0:
            raise PayloadInvariantError(f"consensus_score {score} is outside [0, 1]")
        changes["consensus_score"] = score
        seal_count += 1

    if status == RitualStatus.SEALED and seal_count == 0:
        raise PayloadInvariantError("A consensus score must be recorded before sealing")

    if status == RitualStatus.COMPLETE and changes.get(
        "execution_result", payload.execution_result
    ) is None:
        raise PayloadInvariantError("execution_result must be set before completing")

    if status == RitualStatus.FAILED and not changes.get("error", payload.error):
        raise PayloadInvariantError("error must be set before failing")

    changes["status"] = status
    changes["seal_count"] = seal_count

    if snapshot:
        changes["decision_snapshot"] = {**payload.decision_snapshot, **snapshot}

    new_costs = tuple(costs)
    if new_costs:
        changes["cost_breakdown"] = payload.cost_breakdown.extended(new_costs)

    if note:
        changes["notes"] = (*payload.notes, note)

    if status in TERMINAL_STATUSES:
        now = datetime.now(UTC)
        changes["completed_at"] = now
        metadata = changes.get("ritual_metadata", payload.ritual_metadata)
        changes["ritual_metadata"] = metadata.model_copy(update={"end_time": now})

    return payload.model_copy(update=changes)


def fail(payload: RitualPayload, error: BaseException | str) -> RitualPayload:
    """Move a payload to FAILED, recording the error text.

    A payload that is already terminal is returned unchanged.
    """
    if payload.status in TERMINAL_STATUSES:
        return payload
    if isinstance(error, BaseException):
        text = f"{type(error).__name__}: {error}"
    else:
        text = error
    return advance(payload, RitualStatus.FAILED, error=text or "unknown error")
