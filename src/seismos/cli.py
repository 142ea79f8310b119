from __future__ import annotations
import argparse
import datetime
import os
import random
from dataclasses import asdict
from typing import Any, Dict, Optional

from jsonschema import ValidationError

from .clock import ManualClock
from .config import SimulationConfig, earthquake_config_from_dict, load_config
from .journal import EventJournal
from .runner import run_earthquake, settle
from .utils import pretty_json, validate_json
from .world import SeismicWorld


SCHEMA_VERSION = "0.1"


def build_export(world: SeismicWorld, damages: Optional[Dict[str, int]]) -> Dict[str, Any]:
    snap = world.ledger.snapshot()
    silenced = set(world.silenced())
    readings = world.readings()
    buildings = []
    for b in world.buildings:
        rec = snap.records[b.id]
        fatigue = world.get_fatigue_indicator(b.id)
        reading = readings.get(b.id)
        buildings.append(
            {
                "id": b.id,
                "name": b.name,
                "lat": b.lat,
                "lng": b.lng,
                "structure_type": b.metadata.structure_type,
                "status": snap.statuses[b.id],
                "base_score": rec.base_score,
                "earthquake_damage": rec.earthquake_damage,
                "total_score": rec.total_score,
                "silenced": b.id in silenced,
                "fatigue": asdict(fatigue) if fatigue else None,
                "reading": reading.as_dict() if reading else None,
            }
        )
    quake = world.last_earthquake
    return {
        "schema_version": SCHEMA_VERSION,
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "earthquake": asdict(quake) if quake else None,
        "summary": snap.summary.as_dict(),
        "buildings": buildings,
        "evidence": snap.evidence,
        "triage": [asdict(t) for t in world.triage()],
        "damage_deltas": damages or {},
    }


def run_scenario(args: argparse.Namespace) -> Dict[str, str]:
    raw = load_config(args.config)
    cfg = SimulationConfig.from_dict(raw)
    scenario = dict(raw.get("scenario") or {})
    seed = args.seed if args.seed is not None else cfg.seed
    rng = random.Random(seed)
    clock = ManualClock(start_ms=0)
    os.makedirs(args.out, exist_ok=True)
    journal = EventJournal(os.path.join(args.out, "journal.jsonl"), actor=cfg.journal.actor)
    world = SeismicWorld(cfg, rng=rng, clock=clock, journal=journal)

    if args.epicenter:
        target = world.building(args.epicenter)
        if target is None:
            raise ValueError(f"Unknown epicenter building: {args.epicenter}")
    else:
        target = world.buildings[rng.randrange(len(world.buildings))]
    quake = earthquake_config_from_dict(
        {
            "intensity": args.intensity if args.intensity is not None else float(scenario.get("intensity", 1.5 + rng.random() * 0.5)),
            "duration_ms": args.duration if args.duration is not None else int(scenario.get("duration_ms", 5000)),
            "epicenter_lat": target.lat,
            "epicenter_lng": target.lng,
        }
    )
    settle_ms = args.settle_ms if args.settle_ms is not None else int(scenario.get("settle_ms", 2000))

    settle(world, clock, settle_ms)
    damages = run_earthquake(world, clock, quake)
    settle(world, clock, settle_ms)

    export = build_export(world, damages)
    validate_json("summary.schema.json", export)
    paths = {
        "summary": os.path.join(args.out, "summary.json"),
        "journal": journal.path,
        "metrics": os.path.join(args.out, "metrics.prom"),
    }
    with open(paths["summary"], "w", encoding="utf-8") as f:
        f.write(pretty_json(export))
    with open(paths["metrics"], "w", encoding="utf-8") as f:
        f.write(world.metrics.to_prometheus())
    journal.write("export_done", {"paths": paths, "summary": export["summary"]})
    return paths


def main(argv: Optional[list] = None) -> int:
    p = argparse.ArgumentParser(prog="seismos")
    sub = p.add_subparsers(dest="cmd", required=True)

    sim = sub.add_parser("simulate", help="Run one headless earthquake scenario on virtual time.")
    sim.add_argument("--config", default="configs/default.yaml", help="Path to config YAML.")
    sim.add_argument("--out", required=True, help="Output directory.")
    sim.add_argument("--seed", type=int, default=None, help="Seed for every random choice.")
    sim.add_argument("--intensity", type=float, default=None, help="Earthquake intensity (> 0).")
    sim.add_argument("--duration", type=int, default=None, help="Earthquake duration in ms.")
    sim.add_argument("--epicenter", default=None, help="Building id to use as epicenter (random if omitted).")
    sim.add_argument("--settle-ms", dest="settle_ms", type=int, default=None, help="Idle time before and after the event.")

    args = p.parse_args(argv)
    if args.cmd == "simulate":
        try:
            paths = run_scenario(args)
        except (ValueError, ValidationError) as exc:
            p.error(str(exc))
        print(pretty_json(paths))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
