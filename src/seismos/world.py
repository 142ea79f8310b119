"""One simulated world: a fixed building population and everything that happens to it.

The world is a two-state machine. While ``idle`` every tick produces an
idle reading per building (optionally overlaid with a short noise pulse on
one building). While ``running_event`` every tick advances the active
earthquake run instead. Exactly one of the two produces readings on any tick.

Per tick, all readings are computed first, then committed together with the
heartbeats, then the collapse-inference check runs against the snapshot
taken when the tick started, and finally one readings notification goes out.
"""
from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .clock import Clock, SystemClock
from .config import SimulationConfig
from .consensus import ConsensusDetector
from .earthquake import EarthquakeEngine, EarthquakeRun, EventTick
from .fatigue import BaselineTracker
from .journal import EventJournal
from .ledger import ConsensusChange, DamageLedger, LedgerSnapshot, category_for
from .metrics import Metrics
from .population import generate_buildings
from .pubsub import Topic
from .synthesizer import ReadingSynthesizer, half_sine_envelope
from .triage import rank_triage
from .types import (
    Building,
    BuildingSummary,
    DamageRecord,
    EarthquakeConfig,
    FatigueIndicator,
    SensorReading,
    TriageEntry,
)


IDLE = "idle"
RUNNING_EVENT = "running_event"


@dataclass
class _NoisePulse:
    building_id: str
    total_ticks: int
    tick: int = 0


@dataclass
class WorldTick:
    state: str  # state the tick ran in
    now_ms: int
    readings: int
    progress: Optional[float] = None
    event: Optional[EventTick] = None
    consensus: ConsensusChange = field(default_factory=ConsensusChange)
    damages: Optional[Dict[str, int]] = None


class SeismicWorld:
    def __init__(
        self,
        cfg: Optional[SimulationConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
        buildings: Optional[Sequence[Building]] = None,
        journal: Optional[EventJournal] = None,
        metrics: Optional[Metrics] = None,
    ):
        self.cfg = cfg or SimulationConfig()
        self.rng = rng or random.Random(self.cfg.seed)
        self.clock = clock or SystemClock()
        self.buildings: List[Building] = list(buildings) if buildings is not None else generate_buildings(rng=self.rng, cfg=self.cfg.population)
        self._by_id: Dict[str, Building] = {b.id: b for b in self.buildings}
        self.journal = journal or EventJournal(path=self.cfg.journal.path or None, actor=self.cfg.journal.actor)
        self.metrics = metrics or Metrics()

        self.synthesizer = ReadingSynthesizer(self.cfg.synthesizer, self.rng, self.clock)
        self.ledger = DamageLedger(self.buildings, self.cfg.ledger, self.rng, self.clock, damage_sink=self.synthesizer.update_damages)
        self.engine = EarthquakeEngine(self.buildings, self.synthesizer, self.cfg.earthquake, self.rng)
        self.detector = ConsensusDetector(self.buildings, self.cfg.consensus)
        self.tracker = BaselineTracker(self.cfg.fatigue)

        self.readings_topic: Topic[Dict[str, SensorReading]] = Topic("readings")
        self.earthquake_topic: Topic[EventTick] = Topic("earthquake")
        self._readings: Dict[str, SensorReading] = {}
        self._state = IDLE
        self._run: Optional[EarthquakeRun] = None
        self._progress = 0.0
        self._last_quake: Optional[EarthquakeConfig] = None
        self._last_damages: Dict[str, int] = {}
        self._noise: Optional[_NoisePulse] = None
        self._lock = threading.RLock()

        self.journal.write("world_init", {"buildings": len(self.buildings), "summary": self.ledger.summary().as_dict()})
        with self._lock:
            self._commit(self._idle_batch(), self.clock.now_ms())
            self._publish_readings()

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    @property
    def is_earthquake_active(self) -> bool:
        return self.state == RUNNING_EVENT

    @property
    def progress(self) -> float:
        with self._lock:
            return self._progress

    @property
    def tick_interval_ms(self) -> int:
        with self._lock:
            if self._state == RUNNING_EVENT:
                return self.cfg.earthquake.tick_ms
            return self.cfg.idle_tick_ms

    # -- subscriptions -----------------------------------------------------

    def subscribe_readings(self, callback: Callable[[Dict[str, SensorReading]], None]) -> Callable[[], None]:
        return self.readings_topic.subscribe(callback)

    def subscribe_damage(self, callback: Callable[[LedgerSnapshot], None]) -> Callable[[], None]:
        return self.ledger.subscribe(callback)

    def subscribe_earthquake(self, callback: Callable[[EventTick], None]) -> Callable[[], None]:
        return self.earthquake_topic.subscribe(callback)

    # -- commands ----------------------------------------------------------

    def trigger_earthquake(self, quake: EarthquakeConfig) -> Optional[EarthquakeRun]:
        """Start an event; returns None (and changes nothing) while one is already running."""
        with self._lock:
            run = None if self._state == RUNNING_EVENT else self.engine.trigger(quake, self.ledger.scores())
            if run is None:
                self.metrics.inc("earthquakes_rejected")
                self.journal.write("earthquake_rejected", {"progress": self._progress})
                return None
            self._run = run
            self._state = RUNNING_EVENT
            self._progress = 0.0
            self._last_quake = quake
            self._noise = None
            self.metrics.inc("earthquakes_triggered")
            self.journal.write(
                "earthquake_start",
                {
                    "intensity": quake.intensity,
                    "duration_ms": quake.duration_ms,
                    "epicenter": [quake.epicenter_lat, quake.epicenter_lng],
                    "total_ticks": run.total_ticks,
                },
            )
            return run

    def trigger_noise_pulse(self, building_id: str) -> bool:
        with self._lock:
            if self._state != IDLE or building_id not in self._by_id or self.engine.is_silenced(building_id):
                return False
            total = max(1, self.cfg.synthesizer.noise_duration_ms // max(1, self.cfg.idle_tick_ms))
            self._noise = _NoisePulse(building_id=building_id, total_ticks=total)
            self.journal.write("noise_pulse_start", {"building": building_id, "ticks": total})
            return True

    def reset_all(self) -> None:
        """Fresh base scores for everyone; drops any running event, silences, inferences and fatigue history."""
        with self._lock:
            self.engine.reset()
            self._run = None
            self._state = IDLE
            self._progress = 0.0
            self._noise = None
            self._last_damages = {}
            self.tracker.reset()
            self.ledger.reset()
            self._readings = {}
            self._commit(self._idle_batch(), self.clock.now_ms())
            self.journal.write("world_reset", {"summary": self.ledger.summary().as_dict()})
            self._publish_readings()

    def tick(self) -> WorldTick:
        with self._lock, self.metrics.timer("tick"):
            now = self.clock.now_ms()
            snapshot = self.ledger.snapshot()
            state = self._state
            event_tick: Optional[EventTick] = None
            if state == RUNNING_EVENT and self._run is not None:
                event_tick = self._run.step()
                batch = event_tick.readings
                self._progress = event_tick.progress
                for building_id in event_tick.silenced:
                    self.metrics.inc("sensors_silenced")
                    self.journal.write("sensor_silenced", {"building": building_id, "progress": event_tick.progress})
                self.metrics.inc("ticks_event")
            else:
                batch = self._idle_batch()
                self.metrics.inc("ticks_idle")

            self._commit(batch, now)
            change = self.detector.evaluate(snapshot, now, state == RUNNING_EVENT)
            if self.ledger.apply_consensus(change):
                self._journal_consensus(change)

            result = WorldTick(state=state, now_ms=now, readings=len(self._readings), consensus=change)
            if event_tick is not None:
                result.event = event_tick
                result.progress = event_tick.progress
                if event_tick.done:
                    result.damages = self._finish_event(event_tick)
                self.earthquake_topic.publish(event_tick)
            self._publish_readings()
            return result

    # -- queries -----------------------------------------------------------

    def building(self, building_id: str) -> Optional[Building]:
        return self._by_id.get(building_id)

    def get_reading(self, building_id: str) -> Optional[SensorReading]:
        with self._lock:
            if self.engine.is_silenced(building_id):
                return None
            return self._readings.get(building_id)

    def readings(self) -> Dict[str, SensorReading]:
        with self._lock:
            return dict(self._readings)

    def get_fatigue_indicator(self, building_id: str) -> Optional[FatigueIndicator]:
        if building_id not in self._by_id:
            return None
        return self.tracker.indicator(building_id)

    def damage_record(self, building_id: str) -> Optional[DamageRecord]:
        return self.ledger.record(building_id)

    def status(self, building_id: str) -> Optional[str]:
        return self.ledger.status(building_id)

    def evidence(self, building_id: str) -> Optional[List[str]]:
        return self.ledger.evidence(building_id)

    def summary(self) -> BuildingSummary:
        return self.ledger.summary()

    def silenced(self) -> List[str]:
        return sorted(self.engine.silenced)

    @property
    def last_damages(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._last_damages)

    @property
    def last_earthquake(self) -> Optional[EarthquakeConfig]:
        with self._lock:
            return self._last_quake

    def buildings_in_category(self, category: str) -> List[Building]:
        snap = self.ledger.snapshot()
        matches = [b for b in self.buildings if category_for(snap.statuses[b.id]) == category]
        return sorted(matches, key=lambda b: snap.records[b.id].total_score, reverse=True)

    def triage(self, limit: int = 10) -> List[TriageEntry]:
        snap = self.ledger.snapshot()
        return rank_triage(self.buildings, snap.records, limit=limit, statuses=snap.statuses)

    # -- internals ---------------------------------------------------------

    def _idle_batch(self) -> Dict[str, Optional[SensorReading]]:
        batch: Dict[str, Optional[SensorReading]] = {}
        for b in self.buildings:
            batch[b.id] = None if self.engine.is_silenced(b.id) else self.synthesizer.idle_reading(b.id)
        pulse = self._noise
        if pulse is not None:
            pulse.tick += 1
            if pulse.tick >= pulse.total_ticks or self.engine.is_silenced(pulse.building_id):
                self._noise = None
                self.journal.write("noise_pulse_filtered", {"building": pulse.building_id, "ticks": pulse.tick})
            else:
                envelope = half_sine_envelope(pulse.tick / pulse.total_ticks)
                batch[pulse.building_id] = self.synthesizer.noise_reading(envelope)
        return batch

    def _commit(self, batch: Dict[str, Optional[SensorReading]], now: int) -> None:
        alive: List[str] = []
        for building_id, reading in batch.items():
            if reading is None:
                self._readings.pop(building_id, None)
                continue
            self._readings[building_id] = reading
            alive.append(building_id)
            if reading.signal_type == "idle":
                self._feed_fatigue(building_id, reading.frequency)
        self.ledger.touch(alive, now)
        self.metrics.inc("readings_published", len(alive))

    def _feed_fatigue(self, building_id: str, frequency: float) -> None:
        was_warning = self.tracker.was_warning(building_id)
        indicator = self.tracker.update(building_id, frequency)
        if indicator.has_warning and not was_warning:
            self.metrics.inc("fatigue_warnings")
            self.journal.write(
                "fatigue_warning",
                {
                    "building": building_id,
                    "slope": indicator.trend_slope,
                    "confidence": indicator.trend_confidence,
                    "deviation_percent": indicator.deviation_percent,
                },
            )

    def _journal_consensus(self, change: ConsensusChange) -> None:
        for building_id, witnesses in change.inferred.items():
            self.metrics.inc("collapse_inferred")
            self.journal.write("collapse_inferred", {"building": building_id, "witnesses": witnesses})
        for building_id in change.retracted:
            self.metrics.inc("inference_retracted")
            self.journal.write("inference_retracted", {"building": building_id, "status": self.ledger.status(building_id)})

    def _finish_event(self, event_tick: EventTick) -> Dict[str, int]:
        damages = dict(event_tick.damages or {})
        applied = self.ledger.apply_damage(damages)
        self._last_damages = damages
        self._run = None
        self._state = IDLE
        self._progress = 100.0
        self.journal.write(
            "earthquake_end",
            {
                "ticks": event_tick.tick,
                "silenced": self.silenced(),
                "max_damage": max(damages.values()) if damages else 0,
                "summary": self.ledger.summary().as_dict(),
            },
        )
        self.journal.write("damage_applied", {"buildings": len(applied), "total": sum(applied.values())})
        self.metrics.gauge("buildings_silenced", len(self.engine.silenced))
        return damages

    def _publish_readings(self) -> None:
        self.readings_topic.publish(dict(self._readings))
