"""Configuration sections for a simulated world, loaded from YAML."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple, Type, TypeVar

import yaml

from .types import BUILDING_TYPES, EarthquakeConfig
from .utils import validate_json


T = TypeVar("T")


@dataclass(frozen=True)
class PopulationConfig:
    count: int = 80
    min_lat: float = 41.0275
    max_lat: float = 41.0315
    min_lng: float = 28.9435
    max_lng: float = 28.9495
    type_weights: Tuple[Tuple[str, float], ...] = (
        ("reinforced_concrete", 0.5),
        ("masonry", 0.35),
        ("steel", 0.1),
        ("timber", 0.05),
    )


@dataclass(frozen=True)
class SynthesizerConfig:
    spectrum_bins: int = 20
    bin_width_hz: float = 0.5
    spectrum_noise: float = 0.05
    idle_noise: float = 0.003
    idle_frequency_floor: float = 1.0
    idle_frequency_span: float = 3.5
    idle_frequency_jitter: float = 0.2
    idle_spread: float = 0.8
    idle_amplitude: float = 0.3
    seismic_decay: float = 40.0
    seismic_min_distance_factor: float = 0.1
    seismic_center_hz: float = 2.5
    seismic_spread: float = 1.2
    seismic_amplitude: float = 0.8
    seismic_vertical_bias: float = 0.2
    noise_center_hz: float = 8.5
    noise_intensity: float = 0.4
    noise_spread: float = 0.8
    noise_amplitude: float = 0.7
    noise_duration_ms: int = 2000


@dataclass(frozen=True)
class EarthquakeParams:
    tick_ms: int = 50
    damage_scale: float = 25.0
    damage_decay: float = 50.0
    min_distance_factor: float = 0.2
    masonry_factor: float = 1.4
    timber_factor: float = 1.6
    old_building_year: int = 1980
    old_building_factor: float = 1.3
    tall_building_floors: int = 4
    tall_building_factor: float = 1.2
    violent_envelope: float = 0.8
    destruction_threshold: int = 85
    silence_probability: float = 0.4


@dataclass(frozen=True)
class ConsensusConfig:
    silence_threshold_ms: int = 1000
    neighbor_radius: float = 0.0015
    min_witnesses: int = 3


@dataclass(frozen=True)
class FatigueConfig:
    baseline_window: int = 20
    history_window: int = 50
    slope_threshold: float = -0.005
    min_confidence: float = 0.3
    min_samples: int = 30
    default_baseline_hz: float = 5.0


@dataclass(frozen=True)
class LedgerConfig:
    elevated_count: int = 2
    elevated_min: int = 30
    elevated_span: int = 15
    base_max: int = 25


@dataclass(frozen=True)
class JournalConfig:
    path: str = ""
    actor: str = "seismos"


@dataclass(frozen=True)
class SimulationConfig:
    idle_tick_ms: int = 200
    seed: int | None = None
    population: PopulationConfig = field(default_factory=PopulationConfig)
    synthesizer: SynthesizerConfig = field(default_factory=SynthesizerConfig)
    earthquake: EarthquakeParams = field(default_factory=EarthquakeParams)
    consensus: ConsensusConfig = field(default_factory=ConsensusConfig)
    fatigue: FatigueConfig = field(default_factory=FatigueConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    journal: JournalConfig = field(default_factory=JournalConfig)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "SimulationConfig":
        raw = dict(raw or {})
        sim = dict(raw.get("simulation") or {})
        population = dict(raw.get("population") or {})
        if "type_weights" in population:
            weights = population["type_weights"]
            if isinstance(weights, Mapping):
                weights = weights.items()
            population["type_weights"] = tuple((str(k), float(v)) for k, v in weights)
            unknown = [name for name, _ in population["type_weights"] if name not in BUILDING_TYPES]
            if unknown:
                raise ValueError(f"Unknown structure types in population.type_weights: {unknown}")
        seed = sim.get("seed")
        return cls(
            idle_tick_ms=int(sim.get("idle_tick_ms", cls.idle_tick_ms)),
            seed=int(seed) if seed is not None else None,
            population=_section(PopulationConfig, population),
            synthesizer=_section(SynthesizerConfig, raw.get("synthesizer")),
            earthquake=_section(EarthquakeParams, raw.get("earthquake")),
            consensus=_section(ConsensusConfig, raw.get("consensus")),
            fatigue=_section(FatigueConfig, raw.get("fatigue")),
            ledger=_section(LedgerConfig, raw.get("ledger")),
            journal=_section(JournalConfig, raw.get("journal")),
        )


def _section(cls: Type[T], raw: Mapping[str, Any] | None) -> T:
    known = {f.name for f in fields(cls)}
    kwargs = {k: v for k, v in (raw or {}).items() if k in known}
    return cls(**kwargs)


def _resolve_config_path(path: str) -> Path:
    p = Path(path)
    if p.is_absolute() or p.exists():
        return p
    project_root = Path(__file__).resolve().parents[2]
    candidate = project_root / p
    if candidate.exists():
        return candidate
    return p


def load_config(path: str) -> Dict[str, Any]:
    with _resolve_config_path(path).open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_simulation_config(path: str) -> SimulationConfig:
    return SimulationConfig.from_dict(load_config(path))


def earthquake_config_from_dict(raw: Mapping[str, Any]) -> EarthquakeConfig:
    """Build an EarthquakeConfig from untrusted input; raises jsonschema.ValidationError."""
    obj = dict(raw)
    validate_json("earthquake_config.schema.json", obj)
    return EarthquakeConfig(
        intensity=float(obj["intensity"]),
        duration_ms=int(obj["duration_ms"]),
        epicenter_lat=float(obj["epicenter_lat"]),
        epicenter_lng=float(obj["epicenter_lng"]),
    )
