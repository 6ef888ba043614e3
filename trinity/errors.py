"""Exception taxonomy for the ritual pipeline.

Structural failures (EmptyInputError, ExecutionFailure, state machine
violations) end a ritual. Advisory conditions (BudgetExceeded, and
GuardFailure under the advisory policy) are logged and never raised
past the component that detects them. AdapterFailure never escapes a
voter adapter.
"""

from __future__ import annotations


class TrinityError(Exception):
    """Base class for all ritual pipeline errors."""


class EmptyInputError(TrinityError):
    """A primitive that needs at least one proposal received none."""


class AdapterFailure(TrinityError):
    """A voter backend failed; converted to an UNCERTAIN vote locally."""


class BudgetExceeded(TrinityError):
    """A spawn's estimated cost exceeded its budget."""

    def __init__(self, cost_usd: float, budget_usd: float) -> None:
        super().__init__(f"Cost ${cost_usd:.4f} exceeds budget ${budget_usd:.4f}")
        self.cost_usd = cost_usd
        self.budget_usd = budget_usd


class GuardFailure(TrinityError):
    """A guard rule rejected a value."""

    def __init__(self, guard_name: str, phase: int, reason: str) -> None:
        super().__init__(f"Guard {guard_name} (phase {phase}) failed: {reason}")
        self.guard_name = guard_name
        self.phase = phase
        self.reason = reason


class ExecutionFailure(TrinityError):
    """Every requested artifact generator failed."""


class InvalidTransitionError(TrinityError):
    """A payload status change that would move backwards or leave a terminal state."""


class PayloadInvariantError(TrinityError):
    """An update would break a payload invariant (immutable field, missing score, ...)."""


class RitualCancelled(TrinityError):
    """The ritual was cancelled while a phase was in flight."""
