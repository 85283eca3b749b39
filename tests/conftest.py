"""
tests/conftest.py
─────────────────
Shared pytest fixtures for the Gauge Status Monitor test suite.
"""
import os
import threading
import pytest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

# Use in-memory SQLite for tests
os.environ.setdefault("DATABASE_URL", ":memory:")
os.environ.setdefault("HISTORY_DAYS", "2")
os.environ.setdefault("SIMULATION_SEED", "42")
os.environ.setdefault("MACHINE_RESET_ENABLED", "false")


class ManualClock:
    """Clock whose time only moves when the test says so."""

    def __init__(self, start: datetime):
        self.current = start
        self.tz = start.tzinfo

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, when: datetime) -> None:
        self.current = when

    def wait(self, seconds: float, stop_event: threading.Event) -> bool:
        self.advance(seconds=seconds)
        return stop_event.is_set()


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def local_tz() -> ZoneInfo:
    return ZoneInfo("America/New_York")


@pytest.fixture
def clock(local_tz) -> ManualClock:
    return ManualClock(datetime(2024, 6, 1, 12, 0, 0, tzinfo=local_tz))


# ── Gauge types (pure, no store) ──────────────────────────────────────────────

@pytest.fixture
def temperature_type():
    from src.data.models import GaugeType
    return GaugeType(
        id=1, name="Temperature", has_unit=True, has_min_value=True, has_max_value=True,
        has_step=True, default_unit="°C", default_min_value=10.0, default_max_value=50.0,
        default_step=0.5,
    )


@pytest.fixture
def runtime_type():
    from src.data.models import GaugeType
    return GaugeType(
        id=2, name="Runtime", has_unit=True, has_max_value=True, has_step=True,
        default_unit="hours", default_max_value=8000.0,
    )


@pytest.fixture
def condition_type():
    from src.data.models import GaugeType
    return GaugeType(id=3, name="Visual Inspection", has_condition=True, has_instruction=True)


@pytest.fixture
def plain_type():
    from src.data.models import GaugeType
    return GaugeType(id=4, name="Note")


@pytest.fixture
def make_gauge():
    """Factory for GaugeWithType objects built in memory."""
    from src.data.models import GaugeWithType

    def _make(gauge_type, id=1, station_id=1, name="Gauge", **fields):
        defaults = {
            "unit": gauge_type.default_unit,
            "min_value": gauge_type.default_min_value,
            "max_value": gauge_type.default_max_value,
        }
        defaults.update(fields)
        return GaugeWithType(
            id=id, station_id=station_id, gauge_type_id=gauge_type.id, name=name,
            gauge_type=gauge_type, **defaults,
        )

    return _make


@pytest.fixture
def make_reading(now):
    """Factory for Reading objects timestamped relative to `now`."""
    from src.data.models import Reading

    counter = {"id": 0}

    def _make(gauge_id, hours_ago=0.0, value=0.0, station_id=1, **fields):
        counter["id"] += 1
        return Reading(
            id=counter["id"], station_id=station_id, gauge_id=gauge_id, value=value,
            timestamp=now - timedelta(hours=hours_ago), **fields,
        )

    return _make


# ── Store-backed fixtures ─────────────────────────────────────────────────────

@pytest.fixture
def store():
    from src.data.store import SQLiteStore
    s = SQLiteStore(":memory:")
    s.initialize()
    yield s
    s.close()


@pytest.fixture
def blob_store(tmp_path):
    from src.data.blob_store import FileBlobStore
    return FileBlobStore(root=tmp_path / "uploads", url_prefix="/uploads/", max_bytes=1024)


@pytest.fixture
def plant(store):
    """One machine, one station, a temperature gauge (10–50 °C) and a condition gauge."""
    registry = store.registry()
    machine = store.create_machine("Default Machine", "MACH001")
    station = store.create_station(machine.id, "Station 1: Assembly Line")
    temperature = store.create_gauge(
        station.id, registry.by_name("Temperature").id, "2. Temperature", min_value=10.0, max_value=50.0
    )
    visual = store.create_gauge(station.id, registry.by_name("Visual Inspection").id, "1. Visual Check")
    return {"machine": machine, "station": station, "temperature": temperature, "visual": visual}


@pytest.fixture
def ingestor(store, blob_store, now):
    from src.services.ingestion import ReadingIngestor
    return ReadingIngestor(store=store, blob_store=blob_store, clock=ManualClock(now))
