from __future__ import annotations

import random
from typing import List, Optional

from .config import PopulationConfig
from .types import Building, BuildingMetadata


def _pick_structure_type(rng: random.Random, weights) -> str:
    roll = rng.random()
    cumulative = 0.0
    for name, weight in weights:
        cumulative += weight
        if roll < cumulative:
            return name
    return weights[0][0]


def _build_metadata(index: int, rng: random.Random, cfg: PopulationConfig) -> BuildingMetadata:
    return BuildingMetadata(
        floors=1 + rng.randrange(6),
        year_built=1960 + rng.randrange(60),
        structure_type=_pick_structure_type(rng, cfg.type_weights),
        last_inspection=f"{2020 + rng.randrange(4)}-0{1 + rng.randrange(9)}-{10 + rng.randrange(18)}",
        sensor_id=f"SEN-{index:03d}",
    )


def generate_buildings(count: Optional[int] = None, rng: Optional[random.Random] = None, cfg: Optional[PopulationConfig] = None) -> List[Building]:
    """Scatter ``count`` buildings uniformly inside the configured bounding box."""
    cfg = cfg or PopulationConfig()
    rng = rng or random.Random()
    total = cfg.count if count is None else count
    buildings: List[Building] = []
    for i in range(1, total + 1):
        buildings.append(
            Building(
                id=f"node-{i}",
                name=f"Building {i}",
                lat=cfg.min_lat + rng.random() * (cfg.max_lat - cfg.min_lat),
                lng=cfg.min_lng + rng.random() * (cfg.max_lng - cfg.min_lng),
                metadata=_build_metadata(i, rng, cfg),
            )
        )
    return buildings
