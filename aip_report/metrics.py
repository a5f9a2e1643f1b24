from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class ProbeStat:
    target: str
    operation: str
    calls: int = 0
    errors: int = 0
    total_seconds: float = 0.0
    last_seconds: float = 0.0
    last_error: str = ""


class ProbeMetrics:
    """Call counters and durations for upstream operations.

    Passed to the service explicitly; nothing here is module-global.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats: dict[tuple[str, str], ProbeStat] = {}

    def record(self, target: str, operation: str, seconds: float, error: BaseException | None = None) -> None:
        with self._lock:
            stat = self._stats.setdefault((target, operation), ProbeStat(target=target, operation=operation))
            stat.calls += 1
            stat.total_seconds += seconds
            stat.last_seconds = seconds
            if error is not None:
                stat.errors += 1
                stat.last_error = type(error).__name__

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            stats = sorted(self._stats.values(), key=lambda s: (s.target, s.operation))
            return [asdict(s) for s in stats]

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
