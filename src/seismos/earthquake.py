from __future__ import annotations

import math
import random
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Set

from .config import EarthquakeParams
from .synthesizer import ReadingSynthesizer, half_sine_envelope
from .types import Building, BuildingMetadata, EarthquakeConfig, SensorReading
from .utils import degree_distance


def vulnerability(meta: BuildingMetadata, params: EarthquakeParams) -> float:
    factor = 1.0
    if meta.structure_type == "masonry":
        factor = params.masonry_factor
    if meta.structure_type == "timber":
        factor = params.timber_factor
    if meta.year_built < params.old_building_year:
        factor *= params.old_building_factor
    if meta.floors > params.tall_building_floors:
        factor *= params.tall_building_factor
    return factor


def damage_distance_factor(building: Building, quake: EarthquakeConfig, params: EarthquakeParams) -> float:
    distance = degree_distance(building.lat, building.lng, quake.epicenter_lat, quake.epicenter_lng)
    return max(params.min_distance_factor, 1.0 - distance * params.damage_decay)


def compute_damage(
    buildings: Sequence[Building],
    quake: EarthquakeConfig,
    current_scores: Mapping[str, float],
    rng: random.Random,
    params: Optional[EarthquakeParams] = None,
) -> Dict[str, int]:
    """Per-building damage delta of one event; buildings without a score are skipped."""
    params = params or EarthquakeParams()
    damages: Dict[str, int] = {}
    for b in buildings:
        if b.id not in current_scores:
            continue
        jitter = 0.5 + rng.random() * 0.5
        raw = quake.intensity * params.damage_scale * damage_distance_factor(b, quake, params) * vulnerability(b.metadata, params) * jitter
        damages[b.id] = min(100, max(0, int(math.floor(raw + 0.5))))
    return damages


@dataclass
class EventTick:
    tick: int
    total_ticks: int
    progress: float  # 0..100
    envelope: float
    readings: Dict[str, Optional[SensorReading]]  # None marks a silent sensor
    silenced: List[str] = field(default_factory=list)  # newly silenced on this tick
    done: bool = False
    damages: Optional[Dict[str, int]] = None


class EarthquakeRun:
    """One event, advanced a tick at a time. Iterating yields ticks until the final one."""

    def __init__(self, engine: "EarthquakeEngine", quake: EarthquakeConfig, current_scores: Mapping[str, float], damages: Dict[str, int]):
        self.engine = engine
        self.quake = quake
        self.current_scores = dict(current_scores)
        self.damages = damages
        self.tick_count = 0
        self.total_ticks = max(1, math.ceil(quake.duration_ms / engine.params.tick_ms))
        self.progress = 0.0
        self.done = False
        self.cancelled = False

    def step(self) -> EventTick:
        if self.done:
            raise RuntimeError("Earthquake run already finished")
        engine = self.engine
        params = engine.params
        self.tick_count += 1
        self.progress = min(100.0, self.tick_count / self.total_ticks * 100.0)
        envelope = half_sine_envelope(self.progress / 100.0)

        readings: Dict[str, Optional[SensorReading]] = {}
        for b in engine.buildings:
            if engine.is_silenced(b.id):
                readings[b.id] = None
                continue
            readings[b.id] = engine.synthesizer.seismic_reading(b, self.quake, envelope)

        newly_silenced: List[str] = []
        if envelope > params.violent_envelope:
            for building_id, delta in self.damages.items():
                projected = min(100, self.current_scores.get(building_id, 0) + delta)
                if projected >= params.destruction_threshold and not engine.is_silenced(building_id):
                    if engine.rng.random() < params.silence_probability:
                        engine.silence(building_id)
                        newly_silenced.append(building_id)

        tick = EventTick(
            tick=self.tick_count,
            total_ticks=self.total_ticks,
            progress=self.progress,
            envelope=envelope,
            readings=readings,
            silenced=newly_silenced,
        )
        if self.tick_count >= self.total_ticks:
            for b in engine.buildings:
                readings[b.id] = None if engine.is_silenced(b.id) else engine.synthesizer.idle_reading(b.id)
            tick.done = True
            tick.damages = dict(self.damages)
            self.done = True
            engine._finish(self)
        return tick

    def __iter__(self) -> Iterator[EventTick]:
        while not self.done and not self.cancelled:
            yield self.step()


class EarthquakeEngine:
    """Owns damage computation and the event tick loop; at most one run at a time."""

    def __init__(
        self,
        buildings: Sequence[Building],
        synthesizer: ReadingSynthesizer,
        params: Optional[EarthquakeParams] = None,
        rng: Optional[random.Random] = None,
    ):
        self.buildings = list(buildings)
        self.synthesizer = synthesizer
        self.params = params or EarthquakeParams()
        self.rng = rng or random.Random()
        self._silenced: Set[str] = set()
        self._run: Optional[EarthquakeRun] = None
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        with self._lock:
            return self._run is not None

    def trigger(self, quake: EarthquakeConfig, current_scores: Mapping[str, float]) -> Optional[EarthquakeRun]:
        with self._lock:
            if self._run is not None:
                return None
            damages = compute_damage(self.buildings, quake, current_scores, self.rng, self.params)
            self._run = EarthquakeRun(self, quake, current_scores, damages)
            return self._run

    def _finish(self, run: EarthquakeRun) -> None:
        with self._lock:
            if self._run is run:
                self._run = None

    def cancel(self) -> None:
        with self._lock:
            if self._run is not None:
                self._run.cancelled = True
            self._run = None

    def silence(self, building_id: str) -> None:
        with self._lock:
            self._silenced.add(building_id)

    def is_silenced(self, building_id: str) -> bool:
        with self._lock:
            return building_id in self._silenced

    @property
    def silenced(self) -> Set[str]:
        with self._lock:
            return set(self._silenced)

    def reset(self) -> None:
        with self._lock:
            self.cancel()
            self._silenced.clear()
