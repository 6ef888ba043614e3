"""Append-only cost ledger shared by the Dispatcher and the consensus seal."""

from __future__ import annotations

import logging
import threading

from trinity.schemas.ritual import CostLog

logger = logging.getLogger(__name__)


class CostLedger:
    """Thread-safe, append-only list of CostLog entries for one ritual."""

    def __init__(self, ritual_id: str = "", *, verbose: bool = True) -> None:
        self._ritual_id = ritual_id
        self._verbose = verbose
        self._lock = threading.Lock()
        self._logs: list[CostLog] = []

    @property
    def ritual_id(self) -> str:
        return self._ritual_id

    def record(
        self,
        operation: str,
        provider: str,
        cost_usd: float,
        *,
        input_tokens: int = 0,
        output_tokens: int = 0,
        phase: str = "",
    ) -> CostLog:
        """Append one entry and return it."""
        entry = CostLog(
            ritual_id=self._ritual_id,
            operation=operation,
            provider=provider,
            phase=phase,
            input_tokens=max(0, input_tokens),
            output_tokens=max(0, output_tokens),
            cost_usd=max(0.0, cost_usd),
        )
        with self._lock:
            self._logs.append(entry)
        if self._verbose:
            logger.info("[cost] %s via %s: $%.4f", operation, provider, entry.cost_usd)
        return entry

    @property
    def logs(self) -> tuple[CostLog, ...]:
        with self._lock:
            return tuple(self._logs)

    def since(self, index: int) -> tuple[CostLog, ...]:
        """Entries appended after the first *index* entries."""
        with self._lock:
            return tuple(self._logs[index:])

    @property
    def total(self) -> float:
        with self._lock:
            return sum(log.cost_usd for log in self._logs)

    def __len__(self) -> int:
        with self._lock:
            return len(self._logs)
