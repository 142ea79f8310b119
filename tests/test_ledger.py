import random

import pytest

from seismos.config import LedgerConfig
from seismos.ledger import ConsensusChange, DamageLedger, category_for, status_from_score, summarize
from seismos.population import generate_buildings
from seismos.types import STATUSES

from conftest import make_building


@pytest.mark.parametrize(
    "score,status",
    [(0, "stable"), (14, "stable"), (15, "anomaly"), (29, "anomaly"), (30, "warning"), (69, "warning"), (70, "critical"), (89, "critical"), (90, "collapse"), (100, "collapse")],
)
def test_status_thresholds(score, status):
    assert status_from_score(score) == status
    assert status in STATUSES


def test_categories():
    assert category_for("stable") == "safe"
    assert category_for("anomaly") == "safe"
    assert category_for("warning") == "damaged"
    assert category_for("critical") == "critical"
    assert category_for("collapse") == "collapsed"
    assert category_for("collapse_inferred") == "collapsed"
    summary = summarize(["stable", "warning", "collapse_inferred", "collapse", "critical"])
    assert summary.as_dict() == {"safe": 1, "damaged": 1, "critical": 1, "collapsed": 2}


def test_base_scores_for_a_full_population(clock):
    rng = random.Random(11)
    buildings = generate_buildings(80, rng)
    ledger = DamageLedger(buildings, rng=rng, clock=clock)
    snap = ledger.snapshot()
    assert snap.summary.total() == 80
    for b in buildings[:2]:
        assert 30 <= snap.records[b.id].base_score <= 44
    for b in buildings[2:]:
        assert 0 <= snap.records[b.id].base_score <= 25
    damaged_or_worse = [s for s in snap.statuses.values() if s not in ("stable", "anomaly")]
    assert len(damaged_or_worse) >= 2
    assert all(rec.earthquake_damage == 0 for rec in snap.records.values())
    assert set(snap.heartbeats.values()) == {clock.now_ms()}


def test_apply_damage_accumulates_and_clamps(clock):
    buildings = [make_building(i, 41.0, 29.0 + i) for i in range(3)]
    ledger = DamageLedger(buildings, LedgerConfig(elevated_count=0, base_max=0), random.Random(1), clock)
    applied = ledger.apply_damage({"b0": 40, "b1": -5, "nope": 30})
    assert applied == {"b0": 40, "b1": 0}
    assert ledger.record("b0").total_score == 40
    assert ledger.record("b1").total_score == 0
    assert ledger.status("nope") is None

    ledger.apply_damage({"b0": 80})
    rec = ledger.record("b0")
    assert rec.earthquake_damage == 120
    assert rec.total_score == 100
    assert rec.total_score == min(100, rec.base_score + rec.earthquake_damage)
    assert ledger.status("b0") == "collapse"


def test_record_is_a_copy(clock):
    ledger = DamageLedger([make_building(0, 41.0, 29.0)], LedgerConfig(elevated_count=0, base_max=0), random.Random(1), clock)
    rec = ledger.record("b0")
    rec.add(50)
    assert ledger.record("b0").total_score == 0


def test_inferred_collapse_is_an_override(clock):
    buildings = [make_building(i, 41.0, 29.0 + i) for i in range(4)]
    ledger = DamageLedger(buildings, LedgerConfig(elevated_count=0, base_max=0), random.Random(1), clock)
    assert ledger.apply_consensus(ConsensusChange(inferred={"b0": ["b1", "b2", "b3"]}))
    assert ledger.status("b0") == "collapse_inferred"
    assert ledger.evidence("b0") == ["b1", "b2", "b3"]

    # more damage does not clear the override
    ledger.apply_damage({"b0": 20})
    assert ledger.status("b0") == "collapse_inferred"
    assert ledger.summary().collapsed == 1

    assert ledger.apply_consensus(ConsensusChange(retracted=["b0"]))
    assert ledger.status("b0") == "anomaly"
    assert ledger.evidence("b0") is None
    assert not ledger.apply_consensus(ConsensusChange())


def test_every_mutation_publishes_once(clock):
    buildings = [make_building(i, 41.0, 29.0 + i) for i in range(2)]
    pushed = []
    ledger = DamageLedger(buildings, rng=random.Random(2), clock=clock, damage_sink=pushed.append)
    assert len(pushed) == 1

    seen = []
    unsubscribe = ledger.subscribe(seen.append)
    ledger.apply_damage({"b0": 10})
    ledger.apply_consensus(ConsensusChange(inferred={"b1": ["b0"]}))
    ledger.reset()
    assert len(seen) == 3
    assert seen[1].statuses["b1"] == "collapse_inferred"
    assert seen[2].statuses["b1"] != "collapse_inferred"
    assert len(pushed) == 3
    assert pushed[1]["b0"] == seen[0].records["b0"].total_score

    unsubscribe()
    ledger.apply_damage({"b0": 10})
    assert len(seen) == 3


def test_touch_moves_heartbeats(clock):
    ledger = DamageLedger([make_building(0, 41.0, 29.0)], rng=random.Random(1), clock=clock)
    start = ledger.heartbeat("b0")
    clock.advance(500)
    ledger.touch(["b0", "ghost"])
    assert ledger.heartbeat("b0") == start + 500
    assert ledger.heartbeat("ghost") is None
