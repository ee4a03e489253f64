#!/usr/bin/env python3
"""
Create the shop-floor schema, install triggers and seed protected statuses.

Usage:
    python scripts/init_floor_db.py [--config path/to/floor.yaml] [--drop] [--demo]

DATABASE_URL overrides the URL in the configuration file.  ``--drop``
removes every table and trigger first.  ``--demo`` adds a worker, two
stations and a job item with a two-step pipeline, and prints their ids.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from shopfloor_config import get_active_config
from shopfloor_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    session_scope,
)
from shopfloor_kernel.models import Job, JobItem, Station, Worker
from shopfloor_services import FloorOperations


def seed_demo(ops: FloorOperations) -> None:
    with session_scope() as session:
        worker = Worker(worker_code="W-001", full_name="Demo Worker")
        cutting = Station(code="CUT-1", name="Cutting", station_type="cutting")
        welding = Station(code="WLD-1", name="Welding", station_type="welding")
        job = Job(job_number="J-1000", customer_name="Demo Customer")
        session.add_all([worker, cutting, welding, job])
        session.flush()
        item = JobItem(job_id=job.id, name="Bracket", planned_quantity=100)
        session.add(item)
        session.flush()
        ids = {
            "worker": worker.id,
            "station_cutting": cutting.id,
            "station_welding": welding.id,
            "job": job.id,
            "job_item": item.id,
        }

    steps = ops.setup_pipeline(ids["job_item"], [ids["station_cutting"], ids["station_welding"]])
    for name, value in ids.items():
        print(f"  {name:16} {value}")
    for step in steps:
        print(f"  step {step.position:<11} {step.id}{'  (terminal)' if step.is_terminal else ''}")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    parser.add_argument("--demo", action="store_true", help="insert demo reference data")
    args = parser.parse_args()

    config = get_active_config(args.config)
    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
        pool_timeout=config.database.pool_timeout,
        pool_recycle=config.database.pool_recycle,
    )

    if args.drop:
        print("Dropping tables...")
        drop_tables()
    print("Creating tables and triggers...")
    create_tables()

    ops = FloorOperations.from_config(config)
    seeded = ops.ensure_protected_statuses()
    print(f"Protected statuses: {len(seeded)}")
    for status in seeded:
        print(f"  {status.protected_key:12} {status.id}")

    if args.demo:
        print("Demo data:")
        seed_demo(ops)
    return 0


if __name__ == "__main__":
    sys.exit(main())
