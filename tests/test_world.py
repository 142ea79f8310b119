import random
import time

import pytest

from seismos.clock import ManualClock
from seismos.config import LedgerConfig, SimulationConfig
from seismos.runner import SimulationRunner, drive_virtual, run_earthquake, settle
from seismos.types import EarthquakeConfig
from seismos.world import IDLE, RUNNING_EVENT, SeismicWorld


def _world(seed=1, clock=None, **kwargs):
    return SeismicWorld(rng=random.Random(seed), clock=clock or ManualClock(10_000), **kwargs)


def _quake(world, intensity=1.8, duration_ms=1000, target=None):
    target = target or world.buildings[0]
    return EarthquakeConfig(intensity=intensity, duration_ms=duration_ms, epicenter_lat=target.lat, epicenter_lng=target.lng)


def test_world_starts_idle_with_a_full_reading_table():
    world = _world()
    assert world.state == IDLE
    assert len(world.buildings) == 80
    assert len(world.readings()) == 80
    assert world.tick_interval_ms == 200
    assert world.summary().total() == 80
    assert all(r.signal_type == "idle" for r in world.readings().values())
    assert world.journal.kinds()[0] == "world_init"


def test_tick_publishes_one_reading_batch():
    clock = ManualClock(10_000)
    world = _world(clock=clock)
    batches, snapshots = [], []
    world.subscribe_readings(batches.append)
    world.subscribe_damage(snapshots.append)
    drive_virtual(world, clock, ticks=3)
    assert len(batches) == 3
    assert all(len(b) == 80 for b in batches)
    # heartbeats alone do not produce damage notifications
    assert snapshots == []


def test_earthquake_runs_to_completion_and_applies_damage():
    clock = ManualClock(10_000)
    world = _world(clock=clock)
    before = world.ledger.scores()
    events = []
    world.subscribe_earthquake(events.append)

    damages = run_earthquake(world, clock, _quake(world))
    assert damages is not None
    assert len(events) == 20
    assert events[-1].done
    assert world.state == IDLE
    assert world.progress == pytest.approx(100.0)
    assert world.last_damages == damages
    for b in world.buildings:
        rec = world.damage_record(b.id)
        assert rec.earthquake_damage == damages[b.id]
        assert rec.total_score == min(100, before[b.id] + damages[b.id])
    kinds = world.journal.kinds()
    assert kinds.index("earthquake_start") < kinds.index("earthquake_end") < kinds.index("damage_applied")
    assert world.metrics.counters["ticks_event"] == 20


def test_second_trigger_is_rejected_while_running():
    clock = ManualClock(10_000)
    world = _world(clock=clock)
    quake = _quake(world)
    assert world.trigger_earthquake(quake) is not None
    assert world.state == RUNNING_EVENT
    assert world.tick_interval_ms == 50
    assert world.trigger_earthquake(quake) is None
    assert world.metrics.counters["earthquakes_rejected"] == 1
    assert run_earthquake(world, clock, quake) is None


def test_event_readings_do_not_feed_fatigue():
    clock = ManualClock(10_000)
    world = _world(clock=clock)
    building_id = world.buildings[3].id
    settle(world, clock, 1000)
    assert world.get_fatigue_indicator(building_id).sample_count == 6

    world.trigger_earthquake(_quake(world, duration_ms=2000))
    drive_virtual(world, clock, ticks=10)
    assert world.get_reading(building_id).signal_type == "seismic"
    assert world.get_fatigue_indicator(building_id).sample_count == 6


def test_silent_building_inside_a_reporting_cluster_is_inferred_collapsed(cluster):
    clock = ManualClock(10_000)
    cfg = SimulationConfig(ledger=LedgerConfig(elevated_count=0, base_max=0))
    world = SeismicWorld(cfg, rng=random.Random(3), clock=clock, buildings=cluster)
    # weak, far away event: nothing gets close to destruction on its own
    world.trigger_earthquake(_quake(world, intensity=0.05, duration_ms=5000, target=cluster[5]))
    drive_virtual(world, clock, ticks=1)
    world.engine.silence("b0")

    ticks = drive_virtual(world, clock, until=lambda t: "b0" in t.consensus.inferred, max_ticks=40)
    assert "b0" in ticks[-1].consensus.inferred
    assert world.is_earthquake_active
    assert world.status("b0") == "collapse_inferred"
    assert sorted(world.evidence("b0")) == ["b1", "b2", "b3", "b4"]
    assert world.get_reading("b0") is None
    assert world.summary().collapsed == 1
    assert world.journal.of_kind("collapse_inferred")[0]["payload"]["building"] == "b0"

    # the inference outlives the event while the sensor stays dark
    drive_virtual(world, clock, until=lambda t: t.damages is not None)
    settle(world, clock, 2000)
    assert world.status("b0") == "collapse_inferred"
    assert [b.id for b in world.buildings_in_category("collapsed")] == ["b0"]

    world.reset_all()
    assert world.status("b0") == "stable"
    assert world.evidence("b0") is None
    assert world.silenced() == []
    assert world.get_reading("b0") is not None


def test_no_inference_while_idle(cluster):
    clock = ManualClock(10_000)
    cfg = SimulationConfig(ledger=LedgerConfig(elevated_count=0, base_max=0))
    world = SeismicWorld(cfg, rng=random.Random(3), clock=clock, buildings=cluster)
    world.engine.silence("b0")
    settle(world, clock, 3000)
    assert world.status("b0") == "stable"
    assert world.get_reading("b0") is None


def test_reset_all_cancels_the_event_without_damage():
    clock = ManualClock(10_000)
    world = _world(clock=clock)
    world.trigger_earthquake(_quake(world, duration_ms=5000))
    drive_virtual(world, clock, ticks=5)
    world.reset_all()
    assert world.state == IDLE
    assert world.progress == 0.0
    assert all(world.damage_record(b.id).earthquake_damage == 0 for b in world.buildings)
    assert len(world.readings()) == 80
    assert world.journal.kinds()[-1] == "world_reset"
    # a new event is accepted straight away
    assert run_earthquake(world, clock, _quake(world)) is not None


def test_noise_pulse_overlays_one_building():
    clock = ManualClock(10_000)
    world = _world(clock=clock)
    target = world.buildings[7].id
    assert world.trigger_noise_pulse(target)
    signals, frequencies = [], []
    for _ in range(11):
        drive_virtual(world, clock, ticks=1)
        reading = world.get_reading(target)
        signals.append(reading.signal_type)
        if reading.signal_type == "noise":
            frequencies.append(reading.frequency)
    assert signals[:9] == ["noise"] * 9
    assert signals[9:] == ["idle", "idle"]
    assert all(8.5 <= f <= 9.5 for f in frequencies)
    # only idle samples count towards fatigue: init plus two idle ticks
    assert world.get_fatigue_indicator(target).sample_count == 3
    assert "noise_pulse_filtered" in world.journal.kinds()


def test_noise_pulse_refused_when_not_idle_or_unknown():
    clock = ManualClock(10_000)
    world = _world(clock=clock)
    assert not world.trigger_noise_pulse("ghost")
    world.trigger_earthquake(_quake(world))
    assert not world.trigger_noise_pulse(world.buildings[0].id)


def test_unknown_ids_answer_none():
    world = _world()
    assert world.get_reading("ghost") is None
    assert world.get_fatigue_indicator("ghost") is None
    assert world.damage_record("ghost") is None
    assert world.status("ghost") is None
    assert world.evidence("ghost") is None
    assert world.building("ghost") is None


def test_category_listing_and_triage():
    clock = ManualClock(10_000)
    world = _world(clock=clock)
    run_earthquake(world, clock, _quake(world, intensity=2.0, duration_ms=2000))
    listed = []
    for category in ("safe", "damaged", "critical", "collapsed"):
        members = world.buildings_in_category(category)
        scores = [world.damage_record(b.id).total_score for b in members]
        assert scores == sorted(scores, reverse=True)
        listed.extend(b.id for b in members)
    assert sorted(listed) == sorted(b.id for b in world.buildings)

    triage = world.triage()
    assert 0 < len(triage) <= 10
    assert [t.priority for t in triage] == sorted((t.priority for t in triage), reverse=True)
    assert all(t.score >= 30 for t in triage)


def test_runner_ticks_on_wall_clock():
    world = SeismicWorld(rng=random.Random(5))
    with SimulationRunner(world) as runner:
        time.sleep(0.5)
        assert runner.running
    assert not runner.running
    assert world.metrics.counters["ticks_idle"] >= 2
    assert "runner_stop" in world.journal.kinds()


def test_runner_surfaces_subscriber_errors():
    world = SeismicWorld(rng=random.Random(5))

    def boom(_):
        raise RuntimeError("listener failed")

    world.subscribe_readings(boom)
    runner = SimulationRunner(world)
    runner.start()
    deadline = time.time() + 2.0
    while runner.running and time.time() < deadline:
        time.sleep(0.01)
    with pytest.raises(RuntimeError, match="listener failed"):
        runner.stop()
    assert "runner_error" in world.journal.kinds()
