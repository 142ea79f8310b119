from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional


BUILDING_TYPES = ("reinforced_concrete", "masonry", "steel", "timber")

SIGNAL_TYPES = ("idle", "seismic", "noise", "anomaly")

# Ordered from healthiest to worst; collapse_inferred is an override, never score-derived.
STATUSES = ("stable", "anomaly", "warning", "critical", "collapse", "collapse_inferred")

SUMMARY_CATEGORIES = ("safe", "damaged", "critical", "collapsed")


@dataclass(frozen=True)
class BuildingMetadata:
    floors: int
    year_built: int
    structure_type: str
    last_inspection: str
    sensor_id: str


@dataclass(frozen=True)
class Building:
    id: str
    name: str
    lat: float
    lng: float
    metadata: BuildingMetadata


@dataclass(frozen=True)
class SensorReading:
    timestamp_ms: int
    accel_x: float
    accel_y: float
    accel_z: float
    magnitude: float
    frequency: float  # dominant, Hz
    fft_spectrum: List[float]  # 20 bins over 0-10 Hz
    signal_type: str = "idle"

    def as_dict(self) -> Dict[str, object]:
        return {
            "timestamp_ms": self.timestamp_ms,
            "accel_x": self.accel_x,
            "accel_y": self.accel_y,
            "accel_z": self.accel_z,
            "magnitude": self.magnitude,
            "frequency": self.frequency,
            "fft_spectrum": list(self.fft_spectrum),
            "signal_type": self.signal_type,
        }


@dataclass
class DamageRecord:
    base_score: int
    earthquake_damage: int = 0
    total_score: int = field(init=False)

    def __post_init__(self) -> None:
        self.total_score = min(100, self.base_score + self.earthquake_damage)

    def add(self, delta: int) -> None:
        self.earthquake_damage += max(0, int(delta))
        self.total_score = min(100, self.base_score + self.earthquake_damage)


@dataclass(frozen=True)
class EarthquakeConfig:
    intensity: float
    duration_ms: int
    epicenter_lat: float
    epicenter_lng: float


@dataclass(frozen=True)
class FatigueIndicator:
    has_warning: bool
    trend_slope: float
    baseline_frequency: float
    current_frequency: float
    deviation_percent: float
    sample_count: int
    trend_confidence: float


@dataclass(frozen=True)
class BuildingSummary:
    safe: int = 0
    damaged: int = 0
    critical: int = 0
    collapsed: int = 0

    def total(self) -> int:
        return self.safe + self.damaged + self.critical + self.collapsed

    def as_dict(self) -> Dict[str, int]:
        return {"safe": self.safe, "damaged": self.damaged, "critical": self.critical, "collapsed": self.collapsed}


@dataclass
class TriageEntry:
    id: str
    name: str
    score: int
    priority: int
    label: str
    floors: int
    year_built: int
    structure_type: str
    reasons: List[str] = field(default_factory=list)
    status: Optional[str] = None
