"""In-process counters and gauges for the tick scheduler."""

from __future__ import annotations

import threading
from typing import Dict, Tuple


class Metrics:
    """Counters and gauges shared by the scheduler and its collaborators.

    Names are rendered with ``namespace`` as a prefix so several engines can be
    scraped side by side.
    """

    def __init__(self, namespace: str = "perps") -> None:
        self.namespace = namespace
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._lock = threading.Lock()

    def inc(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + amount

    def set(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def counter(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def gauge(self, name: str) -> float | None:
        with self._lock:
            return self._gauges.get(name)

    def snapshot(self) -> Tuple[Dict[str, float], Dict[str, float]]:
        with self._lock:
            return dict(self._counters), dict(self._gauges)

    def render(self) -> str:
        """Prometheus text exposition of the current values."""

        counters, gauges = self.snapshot()
        prefix = f"{self.namespace}_" if self.namespace else ""
        out = []
        for kind, values in (("counter", counters), ("gauge", gauges)):
            for key in sorted(values):
                name = prefix + key
                out.append(f"# TYPE {name} {kind}\n{name} {values[key]}")
        return "\n".join(out) + "\n"


__all__ = ["Metrics"]
