from __future__ import annotations

"""Tick drivers for a SeismicWorld.

 - SimulationRunner: real time, a daemon worker thread with a stop signal;
   sleeps the world's current tick interval (200 ms idle, 50 ms in an event)
 - drive_virtual / run_earthquake / settle: virtual time on a ManualClock,
   no sleeping, fully deterministic for a seeded world
"""

import threading
from typing import Callable, Dict, List, Optional

from .clock import ManualClock
from .types import EarthquakeConfig
from .world import SeismicWorld, WorldTick


class SimulationRunner:
    def __init__(self, world: SeismicWorld):
        self.world = world
        self.error: Optional[BaseException] = None
        self._stop_flag = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_flag.clear()
        self.error = None
        self._thread = threading.Thread(target=self._loop, name="seismos-ticker", daemon=True)
        self._thread.start()
        self.world.journal.write("runner_start", {"interval_ms": self.world.tick_interval_ms})

    def _loop(self) -> None:
        try:
            while not self._stop_flag.is_set():
                self.world.tick()
                self._stop_flag.wait(self.world.tick_interval_ms / 1000.0)
        except Exception as exc:
            self.error = exc
            self.world.journal.write("runner_error", {"error": repr(exc)})
        finally:
            self._stop_flag.set()

    def stop(self, timeout: float = 2.0) -> None:
        """Stop ticking; re-raises the exception that ended the worker, if any."""
        self._stop_flag.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            self.world.journal.write("runner_stop", {"error": repr(self.error) if self.error else None})
        if self.error is not None:
            error, self.error = self.error, None
            raise error

    def __enter__(self) -> "SimulationRunner":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()


def drive_virtual(
    world: SeismicWorld,
    clock: ManualClock,
    ticks: Optional[int] = None,
    until: Optional[Callable[[WorldTick], bool]] = None,
    max_ticks: int = 100_000,
) -> List[WorldTick]:
    """Advance the clock by the world's tick interval, then tick; repeat."""
    results: List[WorldTick] = []
    limit = ticks if ticks is not None else max_ticks
    for _ in range(limit):
        clock.advance(world.tick_interval_ms)
        result = world.tick()
        results.append(result)
        if until is not None and until(result):
            break
    return results


def settle(world: SeismicWorld, clock: ManualClock, duration_ms: int) -> List[WorldTick]:
    ticks = max(0, duration_ms // max(1, world.tick_interval_ms))
    return drive_virtual(world, clock, ticks=ticks)


def run_earthquake(world: SeismicWorld, clock: ManualClock, quake: EarthquakeConfig) -> Optional[Dict[str, int]]:
    """Trigger and drive one event to completion; None if the trigger was rejected."""
    run = world.trigger_earthquake(quake)
    if run is None:
        return None
    ticks = drive_virtual(world, clock, until=lambda t: t.damages is not None, max_ticks=run.total_ticks + 1)
    return ticks[-1].damages if ticks else None
