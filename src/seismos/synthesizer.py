"""Synthetic accelerometer readings.

Three generators share one spectrum shape (a Gaussian bump over 20 bins of
0.5 Hz plus a little symmetric noise):

 - idle: low-amplitude noise, natural frequency set by accumulated damage
   (frequency hysteresis, ~4.5 Hz intact down to ~1.0 Hz destroyed)
 - seismic: amplitude follows the event envelope and epicenter distance,
   frequency sits in the 2-3 Hz resonant band
 - noise: short 8-10 Hz pulse on a single building (traffic, trucks)

Generators are pure with respect to the reading table: committing a batch and
refreshing heartbeats is the world's job.
"""
from __future__ import annotations

import math
import random
import threading
from typing import Dict, List, Mapping, Optional

import numpy as np

from .clock import Clock, SystemClock
from .config import SynthesizerConfig
from .types import Building, EarthquakeConfig, SensorReading
from .utils import degree_distance


def half_sine_envelope(fraction: float) -> float:
    """Single half-sine pulse over ``fraction`` in [0, 1]."""
    fraction = min(1.0, max(0.0, fraction))
    return math.sin(fraction * math.pi)


def natural_frequency(damage: float, cfg: Optional[SynthesizerConfig] = None) -> float:
    cfg = cfg or SynthesizerConfig()
    health = max(0.0, 1.0 - damage / 100.0)
    return cfg.idle_frequency_floor + cfg.idle_frequency_span * health


class ReadingSynthesizer:
    def __init__(self, cfg: Optional[SynthesizerConfig] = None, rng: Optional[random.Random] = None, clock: Optional[Clock] = None):
        self.cfg = cfg or SynthesizerConfig()
        self.rng = rng or random.Random()
        self.clock = clock or SystemClock()
        self._damages: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._bin_hz = np.arange(self.cfg.spectrum_bins) * self.cfg.bin_width_hz

    # -- damage input port -------------------------------------------------

    def update_damages(self, scores: Mapping[str, float]) -> None:
        with self._lock:
            self._damages = {k: float(v) for k, v in scores.items()}

    def damage_for(self, building_id: str) -> float:
        with self._lock:
            return self._damages.get(building_id, 0.0)

    # -- generators --------------------------------------------------------

    def spectrum(self, peak_hz: float, spread: float = 0.5, amplitude: float = 1.0) -> List[float]:
        distance = self._bin_hz - peak_hz
        bump = amplitude * np.exp(-(distance * distance) / (2 * spread * spread))
        noise = np.array([(self.rng.random() - 0.5) * self.cfg.spectrum_noise for _ in range(len(bump))])
        return [float(v) for v in np.maximum(0.0, bump + noise)]

    def _reading(self, ax: float, ay: float, az: float, frequency: float, spectrum: List[float], signal_type: str) -> SensorReading:
        return SensorReading(
            timestamp_ms=self.clock.now_ms(),
            accel_x=ax,
            accel_y=ay,
            accel_z=az,
            magnitude=math.sqrt(ax * ax + ay * ay + az * az),
            frequency=frequency,
            fft_spectrum=spectrum,
            signal_type=signal_type,
        )

    def idle_reading(self, building_id: str) -> SensorReading:
        cfg = self.cfg
        base = natural_frequency(self.damage_for(building_id), cfg)
        ax = (self.rng.random() - 0.5) * cfg.idle_noise
        ay = (self.rng.random() - 0.5) * cfg.idle_noise
        az = (self.rng.random() - 0.5) * cfg.idle_noise
        spectrum = self.spectrum(base, cfg.idle_spread, cfg.idle_amplitude)
        frequency = base + self.rng.random() * cfg.idle_frequency_jitter
        return self._reading(ax, ay, az, frequency, spectrum, "idle")

    def seismic_distance_factor(self, building: Building, quake: EarthquakeConfig) -> float:
        distance = degree_distance(building.lat, building.lng, quake.epicenter_lat, quake.epicenter_lng)
        return max(self.cfg.seismic_min_distance_factor, 1.0 - distance * self.cfg.seismic_decay)

    def seismic_reading(self, building: Building, quake: EarthquakeConfig, envelope: float) -> SensorReading:
        cfg = self.cfg
        amplitude = quake.intensity * envelope * self.seismic_distance_factor(building, quake)
        ax = (self.rng.random() - 0.5) * amplitude
        ay = (self.rng.random() - 0.5) * amplitude
        az = (self.rng.random() - 0.5) * amplitude + amplitude * cfg.seismic_vertical_bias
        frequency = cfg.seismic_center_hz + (self.rng.random() - 0.5)
        spectrum = self.spectrum(frequency, cfg.seismic_spread, cfg.seismic_amplitude + envelope * (1.0 - cfg.seismic_amplitude))
        return self._reading(ax, ay, az, frequency, spectrum, "seismic")

    def noise_reading(self, envelope: float) -> SensorReading:
        cfg = self.cfg
        amplitude = cfg.noise_intensity * envelope
        ax = (self.rng.random() - 0.5) * amplitude
        ay = (self.rng.random() - 0.5) * amplitude
        az = (self.rng.random() - 0.5) * amplitude
        frequency = cfg.noise_center_hz + self.rng.random()
        spectrum = self.spectrum(frequency, cfg.noise_spread, cfg.noise_amplitude * envelope)
        return self._reading(ax, ay, az, frequency, spectrum, "noise")
