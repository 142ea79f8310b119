from __future__ import annotations
import threading
import time
from contextlib import contextmanager
from typing import Dict


class Metrics:
    """In-memory counters, gauges and timers for the simulation loop."""

    def __init__(self, prefix: str = "seismos") -> None:
        self.prefix = prefix
        self.counters: Dict[str, float] = {}
        self.gauges: Dict[str, float] = {}
        self.timings: Dict[str, float] = {}
        self._lock = threading.Lock()

    def inc(self, name: str, value: float = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + value

    def gauge(self, name: str, value: float) -> None:
        with self._lock:
            self.gauges[name] = float(value)

    @contextmanager
    def timer(self, name: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            with self._lock:
                self.timings[name] = self.timings.get(name, 0) + duration
                self.counters[f"{name}_count"] = self.counters.get(f"{name}_count", 0) + 1

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            return {"counters": dict(self.counters), "gauges": dict(self.gauges), "timings": dict(self.timings)}

    def to_prometheus(self) -> str:
        snap = self.snapshot()
        lines = []
        for name, value in sorted(snap["counters"].items()):
            lines.append(f"# TYPE {self.prefix}_{name}_total counter")
            lines.append(f"{self.prefix}_{name}_total {value:g}")
        for name, value in sorted(snap["gauges"].items()):
            lines.append(f"# TYPE {self.prefix}_{name} gauge")
            lines.append(f"{self.prefix}_{name} {value:g}")
        for name, value in sorted(snap["timings"].items()):
            lines.append(f"# TYPE {self.prefix}_{name}_seconds_total counter")
            lines.append(f"{self.prefix}_{name}_seconds_total {value:.6f}")
        return "\n".join(lines) + "\n"
