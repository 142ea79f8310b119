"""Implicit Node Silence Detection (INSD).

A destroyed sensor looks exactly like a network fault. During an earthquake,
a silent building surrounded by enough neighbours that are still reporting is
taken to have collapsed; the reporting neighbours are kept as witnesses.
When the silent building's heartbeat comes back, the inference is retracted
and its status falls back to the score-derived one.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .config import ConsensusConfig
from .ledger import ConsensusChange, DamageLedger, LedgerSnapshot
from .types import Building
from .utils import degree_distance


class ConsensusDetector:
    def __init__(self, buildings: Sequence[Building], cfg: Optional[ConsensusConfig] = None):
        self.buildings = list(buildings)
        self.cfg = cfg or ConsensusConfig()
        # Positions never change, so neighbourhoods are fixed.
        self._neighbors: Dict[str, List[str]] = {}
        for b in self.buildings:
            self._neighbors[b.id] = [
                other.id
                for other in self.buildings
                if other.id != b.id and degree_distance(b.lat, b.lng, other.lat, other.lng) < self.cfg.neighbor_radius
            ]

    def neighbors(self, building_id: str) -> List[str]:
        return list(self._neighbors.get(building_id, []))

    def active_ids(self, snapshot: LedgerSnapshot, now_ms: int) -> set:
        threshold = self.cfg.silence_threshold_ms
        return {bid for bid, seen in snapshot.heartbeats.items() if now_ms - seen < threshold}

    def evaluate(self, snapshot: LedgerSnapshot, now_ms: int, earthquake_active: bool) -> ConsensusChange:
        """Pure decision over one snapshot; nothing is mutated."""
        threshold = self.cfg.silence_threshold_ms
        active = self.active_ids(snapshot, now_ms)
        change = ConsensusChange()
        for b in self.buildings:
            status = snapshot.statuses.get(b.id)
            if status is None:
                continue
            silent = now_ms - snapshot.heartbeats.get(b.id, 0) > threshold
            if silent and status not in ("collapse", "collapse_inferred"):
                if not earthquake_active:
                    continue
                witnesses = [n for n in self._neighbors[b.id] if n in active]
                if len(witnesses) >= self.cfg.min_witnesses:
                    change.inferred[b.id] = witnesses
            elif not silent and status == "collapse_inferred":
                change.retracted.append(b.id)
        return change

    def check(self, ledger: DamageLedger, now_ms: int, earthquake_active: bool) -> ConsensusChange:
        change = self.evaluate(ledger.snapshot(), now_ms, earthquake_active)
        ledger.apply_consensus(change)
        return change
