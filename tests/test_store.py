"""
tests/test_store.py
───────────────────
Tests for the SQLite store.
"""
from datetime import timedelta

import pandas as pd
import pytest

from config.gauge_types import DEFAULT_GAUGE_TYPES, GaugeTypeSpec
from config.statuses import MachineStatus, ObservedStatus
from src.data.store import SQLiteStore
from src.errors import NotFoundError, PersistenceError, ValidationError


class TestSchema:
    def test_default_gauge_types_created(self, store):
        names = [gt.name for gt in store.get_all_gauge_types()]
        assert names == [spec.name for spec in DEFAULT_GAUGE_TYPES]

    def test_initialize_is_idempotent(self, store):
        store.initialize()
        assert len(store.get_all_gauge_types()) == len(DEFAULT_GAUGE_TYPES)

    def test_new_store_is_empty(self, store):
        assert store.is_empty()


class TestMachinesAndStations:
    def test_create_and_get(self, store):
        machine = store.create_machine("Press", "M1")
        assert store.get_machine(machine.id) == machine
        assert machine.status == MachineStatus.RUNNING

    def test_update_status(self, store):
        machine = store.create_machine("Press", "M1")
        updated = store.set_machine_status(machine.id, MachineStatus.DURING_MAINTENANCE)
        assert updated.status == MachineStatus.DURING_MAINTENANCE

    def test_update_unknown_machine(self, store):
        with pytest.raises(NotFoundError):
            store.update_machine(42, name="x")

    def test_station_requires_machine(self, store):
        with pytest.raises(NotFoundError):
            store.create_station(42, "Orphan")

    def test_machine_with_stations(self, plant, store):
        machine = store.get_machine_with_stations(plant["machine"].id)
        assert [s.name for s in machine.stations] == ["Station 1: Assembly Line"]
        assert [g.name for g in machine.stations[0].gauges] == ["2. Temperature", "1. Visual Check"]

    def test_cascade_delete(self, plant, store, ingestor):
        from src.data.models import ReadingInput
        ingestor.record_reading(ReadingInput(
            station_id=plant["station"].id, gauge_id=plant["temperature"].id, value=20,
        ))
        store.delete_machine(plant["machine"].id)
        assert store.get_station(plant["station"].id) is None
        assert store.get_gauge(plant["temperature"].id) is None
        assert store.get_readings() == []

    def test_reset_all_machine_status(self, store):
        store.create_machine("Press", "M1", MachineStatus.STOP)
        store.create_machine("Lathe", "M2", MachineStatus.OUT_OF_ORDER)
        assert store.reset_all_machine_status() == 2
        assert {m.status for m in store.get_all_machines()} == {MachineStatus.TO_CHECK}


class TestGauges:
    def test_fields_follow_type(self, plant):
        temperature = plant["temperature"]
        assert temperature.unit == "°C"
        assert temperature.min_value == 10.0
        assert temperature.step == 0.5
        assert temperature.current_reading == 0.0
        assert temperature.last_checked == ""

    def test_uncarried_fields_are_null(self, store, plant):
        visual = store.get_gauge(plant["visual"].id)
        assert visual.unit is None
        assert visual.min_value is None
        assert visual.instruction is not None
        assert visual.gauge_type.has_condition

    def test_update_rejects_cached_fields(self, store, plant):
        with pytest.raises(ValidationError):
            store.update_gauge(plant["temperature"].id, current_reading=5.0)
        with pytest.raises(ValidationError):
            store.update_gauge(plant["visual"].id, condition="Bad")

    def test_update_limits(self, store, plant):
        gauge = store.update_gauge(plant["temperature"].id, max_value=40.0)
        assert gauge.max_value == 40.0

    def test_gauge_type_in_use_cannot_be_deleted(self, store, plant):
        with pytest.raises(ValidationError):
            store.delete_gauge_type(plant["temperature"].gauge_type_id)

    def test_custom_gauge_type(self, store):
        gt = store.create_gauge_type(GaugeTypeSpec(name="Flow", has_unit=True, default_unit="L/min"))
        assert store.registry().by_name("flow").id == gt.id
        store.delete_gauge_type(gt.id)
        assert store.get_gauge_type(gt.id) is None


class TestReadings:
    def test_save_updates_cache_atomically(self, store, plant, now):
        gauge = plant["temperature"]
        reading = store.save_reading(
            station_id=plant["station"].id, gauge_id=gauge.id, value=33.0, timestamp=now,
            observed_status=ObservedStatus.NORMAL,
        )
        cached = store.get_gauge(gauge.id)
        assert cached.current_reading == 33.0
        assert cached.last_checked.startswith("2024-06-01T12:00:00")
        assert store.get_reading(reading.id).timestamp == now

    def test_save_for_missing_gauge_writes_nothing(self, store, plant, now):
        with pytest.raises(PersistenceError):
            store.save_reading(station_id=plant["station"].id, gauge_id=999, value=1.0, timestamp=now)
        assert store.get_readings() == []

    def test_newest_first(self, store, plant, now):
        gauge = plant["temperature"]
        for hours in (3, 1, 2):
            store.save_reading(
                station_id=plant["station"].id, gauge_id=gauge.id, value=float(hours),
                timestamp=now - timedelta(hours=hours),
            )
        assert [r.value for r in store.get_readings(gauge_id=gauge.id)] == [1.0, 2.0, 3.0]
        assert len(store.get_readings(since=now - timedelta(hours=2))) == 2
        assert store.get_readings(gauge_ids=[]) == []

    def test_details_with_unknown_user(self, store, plant, now):
        store.save_reading(
            station_id=plant["station"].id, gauge_id=plant["temperature"].id, value=20.0,
            timestamp=now, user_id=77,
        )
        detail = store.get_readings_with_details()[0]
        assert detail.username == "Unknown"
        assert detail.station_name == "Station 1: Assembly Line"
        assert detail.gauge_name == "2. Temperature"
        assert detail.machine_name == "Default Machine"
        assert detail.unit == "°C"

    def test_details_with_user(self, store, plant, now):
        user = store.create_user("Operator")
        store.save_reading(
            station_id=plant["station"].id, gauge_id=plant["temperature"].id, value=20.0,
            timestamp=now, user_id=user.id,
        )
        assert store.get_readings_with_details()[0].username == "operator"

    def test_frame(self, store, plant, now):
        store.save_reading(
            station_id=plant["station"].id, gauge_id=plant["temperature"].id, value=20.0,
            timestamp=now, observed_status=ObservedStatus.NORMAL,
        )
        df = store.get_readings_frame()
        assert isinstance(df, pd.DataFrame)
        assert len(df) == 1
        assert df["timestamp"].iloc[0] == pd.Timestamp(now)
        assert df["observed_status"].iloc[0] == "normal"


class TestUsersAndSettings:
    def test_username_is_lowercased_and_unique(self, store):
        user = store.create_user("Alice", is_admin=True)
        assert user.username == "alice"
        assert store.get_user_by_username("ALICE").id == user.id
        with pytest.raises(ValidationError):
            store.create_user("alice")

    def test_get_user_and_list(self, store):
        admin = store.create_user("Admin", is_admin=True)
        operator = store.create_user("operator")
        assert store.get_user(admin.id) == admin
        assert store.get_user(999) is None
        assert [u.username for u in store.get_all_users()] == ["admin", "operator"]
        assert store.get_all_users()[1].is_admin is False
        assert operator.id != admin.id

    def test_setting_upsert(self, store):
        assert store.get_system_setting("machine_reset_time") is None
        store.set_system_setting("machine_reset_time", "06:00", True)
        store.set_system_setting("machine_reset_time", "07:00", False)
        setting = store.get_system_setting("machine_reset_time")
        assert setting.value == "07:00"
        assert setting.enabled is False


class TestSeparateStores:
    def test_memory_stores_are_isolated(self, store):
        other = SQLiteStore(":memory:")
        other.initialize()
        store.create_machine("Press", "M1")
        assert other.is_empty()
        other.close()
