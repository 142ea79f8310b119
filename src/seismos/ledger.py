from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .clock import Clock, SystemClock
from .config import LedgerConfig
from .pubsub import Topic
from .types import SUMMARY_CATEGORIES, Building, BuildingSummary, DamageRecord


def status_from_score(score: float) -> str:
    if score >= 90:
        return "collapse"
    if score >= 70:
        return "critical"
    if score >= 30:
        return "warning"
    if score >= 15:
        return "anomaly"
    return "stable"


def category_for(status: str) -> str:
    if status in ("collapse", "collapse_inferred"):
        return "collapsed"
    if status == "critical":
        return "critical"
    if status == "warning":
        return "damaged"
    return "safe"


def summarize(statuses: Iterable[str]) -> BuildingSummary:
    counts = dict.fromkeys(SUMMARY_CATEGORIES, 0)
    for status in statuses:
        counts[category_for(status)] += 1
    return BuildingSummary(**counts)


@dataclass(frozen=True)
class LedgerSnapshot:
    records: Dict[str, DamageRecord]
    statuses: Dict[str, str]
    heartbeats: Dict[str, int]
    evidence: Dict[str, List[str]]
    summary: BuildingSummary
    taken_at_ms: int = 0

    def scores(self) -> Dict[str, int]:
        return {bid: rec.total_score for bid, rec in self.records.items()}


@dataclass
class ConsensusChange:
    inferred: Dict[str, List[str]] = field(default_factory=dict)  # silent id -> witness ids
    retracted: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.inferred or self.retracted)


class DamageLedger:
    """Authoritative damage records, heartbeats and collapse-inference overrides.

    Displayed status is never stored: it is derived on read from the total
    score, except while a building carries an inferred-collapse override.
    Every mutation is committed under the lock and followed by exactly one
    publish of a fresh snapshot.
    """

    def __init__(
        self,
        buildings: Sequence[Building],
        cfg: Optional[LedgerConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
        damage_sink: Optional[Callable[[Dict[str, int]], None]] = None,
    ):
        self.buildings = list(buildings)
        self.cfg = cfg or LedgerConfig()
        self.rng = rng or random.Random()
        self.clock = clock or SystemClock()
        self.damage_sink = damage_sink
        self.topic: Topic[LedgerSnapshot] = Topic("damage")
        self._records: Dict[str, DamageRecord] = {}
        self._heartbeats: Dict[str, int] = {}
        self._inferred: Set[str] = set()
        self._evidence: Dict[str, List[str]] = {}
        self._lock = threading.RLock()
        self._assign_base_scores()
        self._push_scores()

    def subscribe(self, callback: Callable[[LedgerSnapshot], None]) -> Callable[[], None]:
        return self.topic.subscribe(callback)

    def _assign_base_scores(self) -> None:
        cfg = self.cfg
        now = self.clock.now_ms()
        self._records = {}
        for index, b in enumerate(self.buildings):
            if index < cfg.elevated_count:
                base = cfg.elevated_min + self.rng.randrange(cfg.elevated_span)
            else:
                base = self.rng.randrange(cfg.base_max + 1)
            self._records[b.id] = DamageRecord(base_score=base)
        self._heartbeats = {b.id: now for b in self.buildings}
        self._inferred.clear()
        self._evidence.clear()

    def _push_scores(self) -> None:
        if self.damage_sink is not None:
            self.damage_sink(self.scores())

    # -- mutations ---------------------------------------------------------

    def reset(self) -> LedgerSnapshot:
        with self._lock:
            self._assign_base_scores()
            self._push_scores()
            snap = self.snapshot()
        self.topic.publish(snap)
        return snap

    def apply_damage(self, deltas: Mapping[str, int]) -> Dict[str, int]:
        """Merge event deltas; unknown ids are ignored and negative deltas count as zero."""
        applied: Dict[str, int] = {}
        with self._lock:
            for building_id, delta in deltas.items():
                record = self._records.get(building_id)
                if record is None:
                    continue
                record.add(delta)
                applied[building_id] = max(0, int(delta))
            self._push_scores()
            snap = self.snapshot()
        self.topic.publish(snap)
        return applied

    def touch(self, building_ids: Iterable[str], now_ms: Optional[int] = None) -> None:
        now = self.clock.now_ms() if now_ms is None else now_ms
        with self._lock:
            for building_id in building_ids:
                if building_id in self._records:
                    self._heartbeats[building_id] = now

    def apply_consensus(self, change: ConsensusChange) -> bool:
        if not change:
            return False
        with self._lock:
            for building_id, witnesses in change.inferred.items():
                if building_id not in self._records:
                    continue
                self._inferred.add(building_id)
                self._evidence[building_id] = list(witnesses)
            for building_id in change.retracted:
                self._inferred.discard(building_id)
                self._evidence.pop(building_id, None)
            snap = self.snapshot()
        self.topic.publish(snap)
        return True

    # -- queries -----------------------------------------------------------

    def _status(self, building_id: str) -> str:
        if building_id in self._inferred:
            return "collapse_inferred"
        return status_from_score(self._records[building_id].total_score)

    def status(self, building_id: str) -> Optional[str]:
        with self._lock:
            if building_id not in self._records:
                return None
            return self._status(building_id)

    def record(self, building_id: str) -> Optional[DamageRecord]:
        with self._lock:
            rec = self._records.get(building_id)
            return replace(rec) if rec is not None else None

    def heartbeat(self, building_id: str) -> Optional[int]:
        with self._lock:
            return self._heartbeats.get(building_id)

    def evidence(self, building_id: str) -> Optional[List[str]]:
        with self._lock:
            witnesses = self._evidence.get(building_id)
            return list(witnesses) if witnesses is not None else None

    def scores(self) -> Dict[str, int]:
        with self._lock:
            return {bid: rec.total_score for bid, rec in self._records.items()}

    def summary(self) -> BuildingSummary:
        with self._lock:
            return summarize(self._status(bid) for bid in self._records)

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            statuses = {bid: self._status(bid) for bid in self._records}
            return LedgerSnapshot(
                records={bid: replace(rec) for bid, rec in self._records.items()},
                statuses=statuses,
                heartbeats=dict(self._heartbeats),
                evidence={k: list(v) for k, v in self._evidence.items()},
                summary=summarize(statuses.values()),
                taken_at_ms=self.clock.now_ms(),
            )
