"""
src/services/clock.py
─────────────────────
Wall clock used by ingestion (reading timestamps) and the scheduler.

Tests replace it with a manual clock whose time only moves when told to.
"""
from __future__ import annotations

import threading
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo

from config.settings import settings


class SystemClock:
    def __init__(self, tz: str | tzinfo = settings.TIMEZONE):
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def now(self) -> datetime:
        """Current time, timezone-aware, in the configured zone."""
        return datetime.now(tz=self.tz)

    def wait(self, seconds: float, stop_event: threading.Event) -> bool:
        """Sleep up to `seconds`; returns True if `stop_event` was set meanwhile."""
        return stop_event.wait(timeout=max(0.0, seconds))
