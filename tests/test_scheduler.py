"""
tests/test_scheduler.py
───────────────────────
Tests for the daily machine status reset.
"""
import threading
from datetime import datetime, timedelta

import pytest

from config.statuses import MACHINE_RESET_SETTING, MachineStatus
from src.errors import ConfigurationError, PersistenceError
from src.services.scheduler import (
    MachineStatusScheduler,
    SchedulerState,
    TimeOfDay,
    next_fire_time,
    parse_time_of_day,
)


@pytest.fixture
def machines(store):
    return [
        store.create_machine("Press", "M1", MachineStatus.RUNNING),
        store.create_machine("Lathe", "M2", MachineStatus.STOP),
        store.create_machine("Mill", "M3", MachineStatus.OUT_OF_ORDER),
    ]


@pytest.fixture
def scheduler(store, clock):
    return MachineStatusScheduler(store=store, clock=clock, poll_seconds=0.01)


class TestParseTimeOfDay:
    def test_valid(self):
        assert parse_time_of_day("06:00") == TimeOfDay(6, 0)
        assert parse_time_of_day("23:59") == TimeOfDay(23, 59)
        assert parse_time_of_day("7:05") == TimeOfDay(7, 5)

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "", None, "6", "06:00:00"])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError):
            parse_time_of_day(value)

    def test_str_round_trips(self):
        assert str(TimeOfDay(6, 5)) == "06:05"


class TestNextFireTime:
    def test_later_today(self, local_tz):
        now = datetime(2024, 6, 1, 5, 0, tzinfo=local_tz)
        assert next_fire_time(now, TimeOfDay(6, 0)) == datetime(2024, 6, 1, 6, 0, tzinfo=local_tz)

    def test_already_passed_means_tomorrow(self, local_tz):
        now = datetime(2024, 6, 1, 12, 0, tzinfo=local_tz)
        assert next_fire_time(now, TimeOfDay(6, 0)) == datetime(2024, 6, 2, 6, 0, tzinfo=local_tz)

    def test_exactly_now_means_tomorrow(self, local_tz):
        now = datetime(2024, 6, 1, 6, 0, tzinfo=local_tz)
        assert next_fire_time(now, TimeOfDay(6, 0)).day == 2


class TestConfiguration:
    def test_starts_disabled(self, scheduler):
        assert scheduler.state == SchedulerState.DISABLED
        assert scheduler.next_fire_at is None

    def test_enable_schedules(self, scheduler, store, clock, local_tz):
        assert scheduler.configure_reset(True, "06:00") == SchedulerState.SCHEDULED
        assert scheduler.next_fire_at == datetime(2024, 6, 2, 6, 0, tzinfo=local_tz)
        setting = store.get_system_setting(MACHINE_RESET_SETTING)
        assert setting.value == "06:00"
        assert setting.enabled is True

    def test_disable(self, scheduler):
        scheduler.configure_reset(True, "06:00")
        assert scheduler.configure_reset(False, "06:00") == SchedulerState.DISABLED
        assert scheduler.next_fire_at is None

    def test_rearm_on_change(self, scheduler, local_tz):
        scheduler.configure_reset(True, "06:00")
        scheduler.configure_reset(True, "18:30")
        assert scheduler.state == SchedulerState.SCHEDULED
        assert scheduler.next_fire_at == datetime(2024, 6, 1, 18, 30, tzinfo=local_tz)

    def test_invalid_time_keeps_schedule(self, scheduler, store, local_tz):
        scheduler.configure_reset(True, "06:00")
        with pytest.raises(ConfigurationError):
            scheduler.configure_reset(True, "25:00")
        assert scheduler.state == SchedulerState.SCHEDULED
        assert scheduler.next_fire_at == datetime(2024, 6, 2, 6, 0, tzinfo=local_tz)
        assert store.get_system_setting(MACHINE_RESET_SETTING).value == "06:00"

    def test_invalid_time_keeps_disabled(self, scheduler):
        with pytest.raises(ConfigurationError):
            scheduler.configure_reset(True, "6am")
        assert scheduler.state == SchedulerState.DISABLED

    def test_invalid_stored_value_logged_not_raised(self, scheduler, store, caplog):
        store.set_system_setting(MACHINE_RESET_SETTING, "99:99", True)
        assert scheduler.update_schedule() == SchedulerState.DISABLED
        assert "Ignoring machine reset configuration" in caplog.text

    def test_removed_setting_disables(self, scheduler, store):
        scheduler.configure_reset(True, "06:00")
        store.set_system_setting(MACHINE_RESET_SETTING, "06:00", False)
        assert scheduler.update_schedule() == SchedulerState.DISABLED

    def test_initialize_persists_environment_default(self, scheduler, store):
        assert scheduler.initialize() == SchedulerState.DISABLED
        setting = store.get_system_setting(MACHINE_RESET_SETTING)
        assert setting is not None
        assert setting.enabled is False

    def test_initialize_keeps_stored_setting(self, scheduler, store):
        store.set_system_setting(MACHINE_RESET_SETTING, "07:15", True)
        assert scheduler.initialize() == SchedulerState.SCHEDULED
        assert scheduler.time_of_day == TimeOfDay(7, 15)


class TestFiring:
    def test_fires_once_at_configured_time(self, scheduler, store, machines, clock, local_tz, monkeypatch):
        calls = []
        original = store.reset_all_machine_status

        def counting(status):
            calls.append(status)
            return original(status)

        monkeypatch.setattr(store, "reset_all_machine_status", counting)
        scheduler.configure_reset(True, "06:00")

        clock.set(datetime(2024, 6, 2, 5, 59, 59, tzinfo=local_tz))
        assert scheduler.tick() is False

        clock.set(datetime(2024, 6, 2, 6, 0, 0, tzinfo=local_tz))
        assert scheduler.tick() is True
        assert scheduler.tick() is False
        assert len(calls) == 1

        assert {m.status for m in store.get_all_machines()} == {MachineStatus.TO_CHECK}
        assert scheduler.next_fire_at == datetime(2024, 6, 3, 6, 0, tzinfo=local_tz)

    def test_fires_again_next_day(self, scheduler, store, machines, clock, local_tz):
        scheduler.configure_reset(True, "06:00")
        clock.set(datetime(2024, 6, 2, 6, 0, tzinfo=local_tz))
        scheduler.tick()
        store.set_machine_status(machines[0].id, MachineStatus.RUNNING)

        clock.set(datetime(2024, 6, 3, 6, 0, 30, tzinfo=local_tz))
        assert scheduler.tick() is True
        assert store.get_machine(machines[0].id).status == MachineStatus.TO_CHECK

    def test_disabled_never_fires(self, scheduler, store, machines, clock):
        clock.advance(days=2)
        assert scheduler.tick() is False
        assert store.get_machine(machines[0].id).status == MachineStatus.RUNNING

    def test_missed_firing_is_not_replayed(self, scheduler, store, machines, clock, local_tz):
        scheduler.configure_reset(True, "06:00")
        clock.set(datetime(2024, 6, 4, 12, 0, tzinfo=local_tz))
        assert scheduler.tick() is False
        assert store.get_machine(machines[0].id).status == MachineStatus.RUNNING
        assert scheduler.next_fire_at == datetime(2024, 6, 5, 6, 0, tzinfo=local_tz)

    def test_failure_is_logged_and_scheduler_survives(self, scheduler, store, machines, clock, local_tz, monkeypatch, caplog):
        def broken(status):
            raise PersistenceError("reset machine status")

        monkeypatch.setattr(store, "reset_all_machine_status", broken)
        scheduler.configure_reset(True, "06:00")
        clock.set(datetime(2024, 6, 2, 6, 0, tzinfo=local_tz))

        assert scheduler.tick() is True
        assert "Machine status reset failed" in caplog.text
        assert scheduler.state == SchedulerState.SCHEDULED
        assert scheduler.next_fire_at == datetime(2024, 6, 3, 6, 0, tzinfo=local_tz)

    def test_reset_returns_count(self, scheduler, machines):
        assert scheduler.reset_all_machine_status() == 3


class TestBackgroundThread:
    def test_thread_fires_and_stops(self, scheduler, store, machines, clock, local_tz):
        fired = threading.Event()
        original = scheduler.reset_all_machine_status

        def reset():
            count = original()
            fired.set()
            return count

        scheduler.reset_all_machine_status = reset
        scheduler.configure_reset(True, "12:01")
        scheduler.start()
        try:
            assert fired.wait(timeout=5)
        finally:
            scheduler.stop()
        assert store.get_machine(machines[1].id).status == MachineStatus.TO_CHECK

    def test_start_is_idempotent(self, scheduler):
        scheduler.start()
        thread = scheduler._thread
        scheduler.start()
        assert scheduler._thread is thread
        scheduler.stop()
        assert scheduler._thread is None
