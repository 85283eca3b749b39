"""
src/data/seed.py
────────────────
Demo data for a fresh database.

Creates:
  - the default gauge types
  - one demo machine per entry in DEMO_MACHINES, each with numbered stations
    and one gauge of every default type per station
  - a reproducible history of readings (every READING_INTERVAL_HOURS over
    `days`), recorded through the ingestion service so gauge caches and
    status snapshots are built exactly as for operator input

Design:
  - Reproducible with SIMULATION_SEED for consistent demos
  - Numeric readings are drawn around the middle of the gauge's range and
    occasionally pushed outside it; Runtime only ever grows
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import numpy as np

from config.settings import settings
from config.statuses import CONDITION_OPTIONS
from src.data.models import GaugeWithType, ReadingInput
from src.data.store import SQLiteStore
from src.services.ingestion import ReadingIngestor

logger = logging.getLogger(__name__)

DEMO_MACHINES: list[dict] = [
    {
        "name": "Default Machine",
        "machine_no": "MACH001",
        "stations": [
            ("Station 1: Assembly Line", "Main assembly line for product components"),
            ("Station 2: Packaging", "Final packaging area"),
            ("Station 3: Quality Control", "Inspection and testing station"),
        ],
    },
    {
        "name": "Press Line",
        "machine_no": "MACH010",
        "stations": [
            ("Station 1: Molding", "Injection molding presses"),
            ("Station 2: Painting", "Paint booth and curing oven"),
        ],
    },
]

# Gauge name per default type, prefixed with its display number
DEMO_GAUGES: list[tuple[str, str]] = [
    ("Pressure", "1. Line Pressure"),
    ("Temperature", "2. Ambient Temperature"),
    ("Runtime", "3. Runtime"),
    ("Electrical Power", "4. Power Consumption"),
    ("Electrical Current", "5. Motor Current"),
    ("Visual Inspection", "6. Visual Check"),
]

DEMO_USERS: list[tuple[str, bool]] = [("admin", True), ("operator", False)]

READING_INTERVAL_HOURS = 12
OUT_OF_RANGE_PROBABILITY = 0.05
CONDITION_WEIGHTS = [0.82, 0.06, 0.04, 0.08]   # aligned with CONDITION_OPTIONS


@dataclass
class SeedResult:
    machines: int = 0
    stations: int = 0
    gauges: int = 0
    readings: int = 0


def _numeric_value(gauge: GaugeWithType, hour: int, rng: np.random.Generator) -> float:
    lo, hi = gauge.min_value, gauge.max_value
    if lo is None:
        # Runtime style: counter below its service limit
        limit = hi if hi is not None else 1000.0
        return round(float(limit * 0.4 + hour + rng.uniform(0.0, 2.0)), 1)

    span = (hi - lo) if hi is not None else lo
    mid = lo + span / 2.0
    if rng.random() < OUT_OF_RANGE_PROBABILITY:
        value = (hi if hi is not None else mid) + span * rng.uniform(0.05, 0.3)
    else:
        value = rng.normal(mid, span * 0.15)
        value = float(np.clip(value, lo, hi if hi is not None else value))
    return round(float(value), 1)


def seed_demo_data(
    store: SQLiteStore,
    seed: int = settings.SIMULATION_SEED,
    days: int = settings.HISTORY_DAYS,
    now: datetime | None = None,
) -> SeedResult:
    """Populate an empty store. Does nothing if machines already exist."""
    result = SeedResult()
    if not store.is_empty():
        logger.info("Database already holds machines; skipping demo seed")
        return result

    registry = store.registry()
    if len(registry) == 0:
        store.ensure_default_gauge_types()
        registry = store.registry()

    users = [store.create_user(name, is_admin=admin) for name, admin in DEMO_USERS]
    operator = users[-1]

    gauges: list[GaugeWithType] = []
    for m in DEMO_MACHINES:
        machine = store.create_machine(m["name"], m["machine_no"])
        result.machines += 1
        for station_name, description in m["stations"]:
            station = store.create_station(machine.id, station_name, description)
            result.stations += 1
            for type_name, gauge_name in DEMO_GAUGES:
                gauge_type = registry.by_name(type_name)
                if gauge_type is None:
                    continue
                gauges.append(store.create_gauge(station.id, gauge_type.id, gauge_name))
                result.gauges += 1

    rng = np.random.default_rng(seed)
    ingestor = ReadingIngestor(store=store)
    end_ts = (now or datetime.now(tz=UTC)).replace(minute=0, second=0, microsecond=0)
    total_hours = days * 24
    hours = list(range(0, total_hours, READING_INTERVAL_HOURS))

    for hour in hours:
        ts = end_ts - timedelta(hours=total_hours - hour - READING_INTERVAL_HOURS)
        for gauge in gauges:
            if gauge.gauge_type.has_condition:
                condition = str(rng.choice(CONDITION_OPTIONS, p=CONDITION_WEIGHTS))
                data = ReadingInput(
                    station_id=gauge.station_id, gauge_id=gauge.id, condition=condition,
                    user_id=operator.id, timestamp=ts,
                )
            else:
                data = ReadingInput(
                    station_id=gauge.station_id, gauge_id=gauge.id,
                    value=_numeric_value(gauge, hour, rng), user_id=operator.id, timestamp=ts,
                )
            ingestor.record_reading(data)
            result.readings += 1

    logger.info(
        "Seeded %d machine(s), %d station(s), %d gauge(s), %d reading(s)",
        result.machines, result.stations, result.gauges, result.readings,
    )
    return result
