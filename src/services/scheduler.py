"""
src/services/scheduler.py
─────────────────────────
Daily machine status reset.

Once per calendar day, at a configured local wall-clock time, every
machine's status is set to "To Check" in a single bulk update. The gauge
alert state is never consulted.

Configuration lives in the system setting `machine_reset_time`
(value "HH:MM", plus an enabled flag).

States:
  DISABLED  → SCHEDULED   valid, enabled configuration (re)loaded
  SCHEDULED → DISABLED    configuration disabled or removed
  SCHEDULED → SCHEDULED   re-armed when the configured time changes

The timer is explicit: compute the next fire time, wait, fire, re-arm from
the current time. Missed firings are not replayed. A firing that fails is
logged and the timer carries on.
"""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from enum import Enum

from config.settings import settings
from config.statuses import MACHINE_RESET_SETTING, MachineStatus
from src.data.store import SQLiteStore, get_store
from src.errors import ConfigurationError, PersistenceError
from src.services.clock import SystemClock

logger = logging.getLogger(__name__)

_HH_MM = re.compile(r"^(\d{1,2}):(\d{2})$")

# Longest the loop sleeps before re-reading its schedule
DEFAULT_POLL_SECONDS = 60.0
# A firing more than this late (process suspended, clock jump) is skipped
MISFIRE_GRACE = timedelta(hours=1)


@dataclass(frozen=True)
class TimeOfDay:
    hour: int
    minute: int

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def parse_time_of_day(value: str | None) -> TimeOfDay:
    """Parse "HH:MM" with hour 0–23 and minute 0–59, else ConfigurationError."""
    match = _HH_MM.match((value or "").strip())
    if not match:
        raise ConfigurationError(MACHINE_RESET_SETTING, value, "expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if not 0 <= hour <= 23:
        raise ConfigurationError(MACHINE_RESET_SETTING, value, "hour must be 0-23")
    if not 0 <= minute <= 59:
        raise ConfigurationError(MACHINE_RESET_SETTING, value, "minute must be 0-59")
    return TimeOfDay(hour, minute)


def next_fire_time(now: datetime, at: TimeOfDay) -> datetime:
    """First occurrence of `at` strictly after `now`, in `now`'s timezone."""
    today = datetime.combine(now.date(), time(at.hour, at.minute), tzinfo=now.tzinfo)
    if today > now:
        return today
    tomorrow = now.date() + timedelta(days=1)
    return datetime.combine(tomorrow, time(at.hour, at.minute), tzinfo=now.tzinfo)


class SchedulerState(str, Enum):
    DISABLED = "disabled"
    SCHEDULED = "scheduled"


class MachineStatusScheduler:
    """
    Owns the reset timer and its configuration.

    tick() does the firing, so tests drive the scheduler with a manual clock
    without starting the background thread.
    """

    def __init__(
        self,
        store: SQLiteStore | None = None,
        clock: SystemClock | None = None,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
    ) -> None:
        self._store = store or get_store()
        self._clock = clock or SystemClock()
        self._poll = poll_seconds
        self._state = SchedulerState.DISABLED
        self._time_of_day: TimeOfDay | None = None
        self._next_fire_at: datetime | None = None
        self._lock = threading.RLock()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._started = False

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def next_fire_at(self) -> datetime | None:
        return self._next_fire_at

    @property
    def time_of_day(self) -> TimeOfDay | None:
        return self._time_of_day

    # ── Configuration ─────────────────────────────────────────────────────────

    def initialize(self) -> SchedulerState:
        """Seed the setting from the environment if the database has none, then load it."""
        if self._store.get_system_setting(MACHINE_RESET_SETTING) is None:
            self._store.set_system_setting(
                MACHINE_RESET_SETTING, settings.MACHINE_RESET_TIME, settings.MACHINE_RESET_ENABLED
            )
        return self.update_schedule()

    def update_schedule(self) -> SchedulerState:
        """
        Reload the stored configuration and re-arm.

        An invalid stored time leaves the current schedule (or DISABLED) in
        place; the error is logged, not raised.
        """
        setting = self._store.get_system_setting(MACHINE_RESET_SETTING)
        with self._lock:
            if setting is None or not setting.enabled:
                if self._state is SchedulerState.SCHEDULED:
                    logger.info("Machine status reset disabled")
                self._disarm()
                return self._state
            try:
                at = parse_time_of_day(setting.value)
            except ConfigurationError as exc:
                logger.error("Ignoring machine reset configuration: %s", exc.message)
                return self._state
            self._arm(at, self._clock.now())
            logger.info(
                "Machine status reset scheduled daily at %s (next: %s)",
                at, self._next_fire_at.isoformat(),
            )
            return self._state

    def configure_reset(self, enabled: bool, time_of_day: str) -> SchedulerState:
        """
        Validate, persist and apply a new reset configuration.

        Raises ConfigurationError for a malformed time; nothing is stored
        and the running schedule is untouched.
        """
        try:
            at = parse_time_of_day(time_of_day)
        except ConfigurationError as exc:
            logger.error("Rejected machine reset configuration: %s", exc.message)
            raise
        self._store.set_system_setting(MACHINE_RESET_SETTING, str(at), enabled)
        return self.update_schedule()

    def _arm(self, at: TimeOfDay, now: datetime) -> None:
        self._time_of_day = at
        self._next_fire_at = next_fire_time(now, at)
        self._state = SchedulerState.SCHEDULED

    def _disarm(self) -> None:
        self._time_of_day = None
        self._next_fire_at = None
        self._state = SchedulerState.DISABLED

    # ── Firing ────────────────────────────────────────────────────────────────

    def reset_all_machine_status(self) -> int | None:
        """Set every machine to "To Check". Returns the count, or None on failure."""
        try:
            count = self._store.reset_all_machine_status(MachineStatus.TO_CHECK)
        except PersistenceError:
            logger.exception("Machine status reset failed")
            return None
        logger.info("Reset %d machine(s) to %r", count, MachineStatus.TO_CHECK.value)
        return count

    def tick(self, now: datetime | None = None) -> bool:
        """Fire if the scheduled time has been reached. Returns True when a firing ran."""
        now = now or self._clock.now()
        with self._lock:
            if self._state is not SchedulerState.SCHEDULED or self._next_fire_at is None:
                return False
            if now < self._next_fire_at:
                return False
            due = self._next_fire_at
            at = self._time_of_day
            self._arm(at, now)
        if now - due > MISFIRE_GRACE:
            logger.warning("Skipped machine status reset due at %s (now %s)", due.isoformat(), now.isoformat())
            return False
        self.reset_all_machine_status()
        return True

    def _seconds_until_next(self) -> float:
        with self._lock:
            if self._next_fire_at is None:
                return self._poll
            remaining = (
                self._next_fire_at.astimezone(UTC) - self._clock.now().astimezone(UTC)
            ).total_seconds()
        return min(self._poll, max(0.0, remaining))

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            if self._clock.wait(self._seconds_until_next(), self._stop_event):
                break
            try:
                self.tick()
            except Exception:
                logger.exception("Machine status scheduler loop error")

    def start(self) -> None:
        """Start the background timer thread. Idempotent."""
        with self._lock:
            if self._started:
                return
            self._started = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="machine-status-reset", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Signal the timer thread to exit and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=max(self._poll * 2, 1.0))
            self._thread = None
        with self._lock:
            self._started = False
