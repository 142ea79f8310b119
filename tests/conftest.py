import random
import sys
from pathlib import Path

import pytest

# Ensure the package under src/ is importable during tests without installation.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from seismos.clock import ManualClock  # noqa: E402
from seismos.types import Building, BuildingMetadata  # noqa: E402


class FixedRandom(random.Random):
    """random() always returns ``value``; integer draws still come from the seeded generator."""

    def __init__(self, value: float, seed: int = 0):
        super().__init__(seed)
        self.value = value

    def random(self) -> float:
        return self.value


def make_building(idx, lat, lng, structure_type="reinforced_concrete", floors=3, year_built=2000):
    return Building(
        id=f"b{idx}",
        name=f"Building {idx}",
        lat=lat,
        lng=lng,
        metadata=BuildingMetadata(
            floors=floors,
            year_built=year_built,
            structure_type=structure_type,
            last_inspection="2022-05-12",
            sensor_id=f"SEN-{idx:03d}",
        ),
    )


@pytest.fixture
def clock():
    return ManualClock(start_ms=10_000)


@pytest.fixture
def cluster():
    """One centre building with four close neighbours and one far away building."""
    return [
        make_building(0, 41.0000, 29.0000),
        make_building(1, 41.0010, 29.0000),
        make_building(2, 41.0000, 29.0010),
        make_building(3, 40.9990, 29.0000),
        make_building(4, 41.0000, 28.9990),
        make_building(5, 41.0200, 29.0200),
    ]
