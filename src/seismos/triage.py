from __future__ import annotations
import math
from typing import Dict, List, Mapping, Optional, Sequence

from .types import Building, DamageRecord, TriageEntry


STRUCTURE_RISK: Dict[str, float] = {
    "timber": 1.5,
    "masonry": 1.3,
    "reinforced_concrete": 1.0,
    "steel": 0.8,
}

DAMAGED_SCORE = 30
HEAVY_SCORE = 70


def priority_label(priority: int) -> str:
    if priority >= 100:
        return "urgent"
    if priority >= 70:
        return "high"
    return "medium"


def _reasons(building: Building, score: int) -> List[str]:
    meta = building.metadata
    reasons = ["heavily damaged" if score >= HEAVY_SCORE else "damaged"]
    if meta.floors >= 5:
        reasons.append(f"{meta.floors} floors")
    if meta.year_built < 1980:
        reasons.append("pre-1980")
    if meta.structure_type in ("masonry", "timber"):
        reasons.append(meta.structure_type)
    return reasons[:2]


def rank_triage(
    buildings: Sequence[Building],
    records: Mapping[str, DamageRecord],
    limit: int = 10,
    statuses: Optional[Mapping[str, str]] = None,
) -> List[TriageEntry]:
    """Damaged buildings ordered by inspection priority (score weighted by type, age and height)."""
    entries: List[TriageEntry] = []
    for b in buildings:
        record = records.get(b.id)
        if record is None or record.total_score < DAMAGED_SCORE:
            continue
        meta = b.metadata
        structure_risk = STRUCTURE_RISK.get(meta.structure_type, 1.0)
        age_risk = 1.3 if meta.year_built < 1980 else 1.1 if meta.year_built < 2000 else 1.0
        floor_risk = 1 + meta.floors * 0.1
        priority = int(math.floor(record.total_score * structure_risk * age_risk * floor_risk + 0.5))
        entries.append(
            TriageEntry(
                id=b.id,
                name=b.name,
                score=record.total_score,
                priority=priority,
                label=priority_label(priority),
                floors=meta.floors,
                year_built=meta.year_built,
                structure_type=meta.structure_type,
                reasons=_reasons(b, record.total_score),
                status=(statuses or {}).get(b.id),
            )
        )
    entries.sort(key=lambda e: e.priority, reverse=True)
    return entries[:limit]
