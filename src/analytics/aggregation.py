"""
src/analytics/aggregation.py
────────────────────────────
Station / machine rollups for dashboards.

Alert rollup (strict OR):
  station ALERT  ⇐ any gauge classifies ALERT       (no gauges → NORMAL)
  machine ALERT  ⇐ any owned station is ALERT

Freshness rollup (trailing window, default 24 h):
  no gauges, or no readings for any gauge  → UNKNOWN
  every gauge's latest reading in window   → RECENT
  otherwise (incl. a gauge never read)     → OLD

Both are pure functions over already-loaded data. The derived alert signal
is independent of the operator-set Machine.status.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from config.settings import settings
from config.statuses import FRESHNESS_LABELS, Freshness, GaugeStatus, MachineStatus
from src.analytics.classification import classify
from src.data.models import GaugeWithType, MachineWithStations, Reading, StationWithGauges, as_utc
from src.data.ordering import sort_gauges, sort_machines

# ── Alert rollup ──────────────────────────────────────────────────────────────


def gauge_status(gauge: GaugeWithType) -> GaugeStatus:
    """Live status of a gauge from its cached reading / condition."""
    return classify(gauge, gauge.gauge_type)


def alerting_gauges(station: StationWithGauges) -> list[GaugeWithType]:
    return [g for g in sort_gauges(station.gauges) if gauge_status(g) is GaugeStatus.ALERT]


def station_status(station: StationWithGauges) -> GaugeStatus:
    if any(gauge_status(g) is GaugeStatus.ALERT for g in station.gauges):
        return GaugeStatus.ALERT
    return GaugeStatus.NORMAL


def machine_status(
    machine: MachineWithStations,
    stations: Iterable[StationWithGauges] | None = None,
) -> GaugeStatus:
    """`stations` defaults to the machine's own; others are filtered out."""
    owned = machine.stations if stations is None else [s for s in stations if s.machine_id == machine.id]
    if any(station_status(s) is GaugeStatus.ALERT for s in owned):
        return GaugeStatus.ALERT
    return GaugeStatus.NORMAL


# ── Freshness rollup ──────────────────────────────────────────────────────────


def latest_reading_times(readings: Iterable[Reading]) -> dict[int, datetime]:
    """Most recent reading timestamp per gauge id."""
    latest: dict[int, datetime] = {}
    for r in readings:
        current = latest.get(r.gauge_id)
        if current is None or r.timestamp > current:
            latest[r.gauge_id] = r.timestamp
    return latest


def _freshness(
    gauge_ids: set[int],
    readings: Iterable[Reading],
    now: datetime,
    window_hours: float,
) -> Freshness:
    now = as_utc(now)
    if not gauge_ids:
        return Freshness.UNKNOWN
    latest = latest_reading_times(r for r in readings if r.gauge_id in gauge_ids)
    if not latest:
        return Freshness.UNKNOWN

    window = timedelta(hours=window_hours)
    for gauge_id in gauge_ids:
        ts = latest.get(gauge_id)
        if ts is None or now - ts > window:
            return Freshness.OLD
    return Freshness.RECENT


def station_freshness(
    station: StationWithGauges,
    readings: Iterable[Reading],
    now: datetime,
    window_hours: float = settings.FRESHNESS_WINDOW_HOURS,
) -> Freshness:
    """
    Were all of the station's gauges read within the trailing window?

    Args:
        station: Station with its gauges
        readings: Readings to consider; readings of other gauges are ignored
        now: Evaluation time (naive values are taken as UTC)
        window_hours: Trailing window length

    Returns:
        Freshness.RECENT | OLD | UNKNOWN
    """
    return _freshness({g.id for g in station.gauges}, readings, now, window_hours)


def machine_freshness(
    machine: MachineWithStations,
    readings: Iterable[Reading],
    now: datetime,
    window_hours: float = settings.FRESHNESS_WINDOW_HOURS,
) -> Freshness:
    """Station rule applied to the union of the machine's gauges."""
    gauge_ids = {g.id for s in machine.stations for g in s.gauges}
    return _freshness(gauge_ids, readings, now, window_hours)


# ── Dashboard summaries ───────────────────────────────────────────────────────


@dataclass
class StationSummary:
    station_id: int
    name: str
    status: GaugeStatus
    freshness: Freshness
    gauge_count: int
    alert_count: int
    last_reading_at: datetime | None = None

    @property
    def freshness_label(self) -> str:
        return FRESHNESS_LABELS[self.freshness]


@dataclass
class MachineSummary:
    machine_id: int
    name: str
    machine_no: str
    operational_status: MachineStatus
    status: GaugeStatus
    freshness: Freshness
    alert_count: int
    stations: list[StationSummary] = field(default_factory=list)

    @property
    def alert_station_count(self) -> int:
        return sum(1 for s in self.stations if s.status is GaugeStatus.ALERT)


def station_summary(
    station: StationWithGauges,
    readings: list[Reading],
    now: datetime,
    window_hours: float = settings.FRESHNESS_WINDOW_HOURS,
) -> StationSummary:
    gauge_ids = {g.id for g in station.gauges}
    latest = latest_reading_times(r for r in readings if r.gauge_id in gauge_ids)
    alert_count = len(alerting_gauges(station))
    return StationSummary(
        station_id=station.id,
        name=station.name,
        status=GaugeStatus.ALERT if alert_count else GaugeStatus.NORMAL,
        freshness=station_freshness(station, readings, now, window_hours),
        gauge_count=len(station.gauges),
        alert_count=alert_count,
        last_reading_at=max(latest.values()) if latest else None,
    )


def machine_summary(
    machine: MachineWithStations,
    readings: list[Reading],
    now: datetime,
    window_hours: float = settings.FRESHNESS_WINDOW_HOURS,
) -> MachineSummary:
    stations = [station_summary(s, readings, now, window_hours) for s in machine.stations]
    alerting = any(s.status is GaugeStatus.ALERT for s in stations)
    return MachineSummary(
        machine_id=machine.id,
        name=machine.name,
        machine_no=machine.machine_no,
        operational_status=machine.status,
        status=GaugeStatus.ALERT if alerting else GaugeStatus.NORMAL,
        freshness=machine_freshness(machine, readings, now, window_hours),
        alert_count=sum(s.alert_count for s in stations),
        stations=stations,
    )


def fleet_overview(
    machines: list[MachineWithStations],
    readings: list[Reading],
    now: datetime,
    window_hours: float = settings.FRESHNESS_WINDOW_HOURS,
) -> list[MachineSummary]:
    """Per-machine summaries in natural machine-number order."""
    return [machine_summary(m, readings, now, window_hours) for m in sort_machines(machines)]
