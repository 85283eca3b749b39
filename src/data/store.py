"""
src/data/store.py
─────────────────
SQLite data store.

Provides:
  - machines / stations / gauge types / gauges / users CRUD
  - save_reading()              : append a reading and refresh the gauge cache
                                  in one transaction
  - get_readings*()             : reading history (models, details, DataFrame)
  - reset_all_machine_status()  : single bulk UPDATE used by the scheduler
  - get/set_system_setting()    : key/value/enabled settings

Thread safety: one connection with check_same_thread=False, guarded by a
re-entrant lock. Every sqlite3 failure surfaces as PersistenceError.
"""
from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

import pandas as pd

from config.gauge_types import DEFAULT_GAUGE_TYPES, GaugeTypeSpec
from config.settings import settings
from config.statuses import MachineStatus, ObservedStatus
from src.data.models import (
    Gauge,
    GaugeType,
    GaugeWithType,
    Machine,
    MachineWithStations,
    Reading,
    ReadingWithDetails,
    Station,
    StationWithGauges,
    SystemSetting,
    User,
)
from src.data.registry import GaugeTypeRegistry, gauge_fields_from_type, spec_to_row
from src.errors import NotFoundError, PersistenceError, ValidationError

# ── Schema ────────────────────────────────────────────────────────────────────

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS machines (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT NOT NULL,
    machine_no  TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'RUNNING'
);

CREATE TABLE IF NOT EXISTS stations (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    machine_id  INTEGER NOT NULL REFERENCES machines (id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    description TEXT
);

CREATE TABLE IF NOT EXISTS gauge_types (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    name                TEXT NOT NULL UNIQUE,
    has_unit            INTEGER NOT NULL DEFAULT 0,
    has_min_value       INTEGER NOT NULL DEFAULT 0,
    has_max_value       INTEGER NOT NULL DEFAULT 0,
    has_step            INTEGER NOT NULL DEFAULT 0,
    has_condition       INTEGER NOT NULL DEFAULT 0,
    has_instruction     INTEGER NOT NULL DEFAULT 0,
    default_unit        TEXT,
    default_min_value   REAL,
    default_max_value   REAL,
    default_step        REAL,
    default_instruction TEXT
);

CREATE TABLE IF NOT EXISTS gauges (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    station_id      INTEGER NOT NULL REFERENCES stations (id) ON DELETE CASCADE,
    gauge_type_id   INTEGER NOT NULL REFERENCES gauge_types (id),
    name            TEXT NOT NULL,
    unit            TEXT,
    min_value       REAL,
    max_value       REAL,
    step            REAL,
    current_reading REAL NOT NULL DEFAULT 0,
    last_checked    TEXT NOT NULL DEFAULT '',
    condition       TEXT,
    instruction     TEXT
);

CREATE TABLE IF NOT EXISTS readings (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    station_id      INTEGER NOT NULL REFERENCES stations (id) ON DELETE CASCADE,
    gauge_id        INTEGER NOT NULL REFERENCES gauges (id) ON DELETE CASCADE,
    value           REAL NOT NULL,
    timestamp       TEXT NOT NULL,
    user_id         INTEGER,
    image_url       TEXT,
    comment         TEXT,
    condition       TEXT,
    observed_status TEXT
);

CREATE TABLE IF NOT EXISTS users (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    username  TEXT NOT NULL UNIQUE,
    is_admin  INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS system_settings (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    enabled     INTEGER NOT NULL DEFAULT 0,
    updated_at  TEXT
);

CREATE INDEX IF NOT EXISTS idx_readings_gauge_ts   ON readings (gauge_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_readings_station_ts ON readings (station_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_gauges_station      ON gauges (station_id);
CREATE INDEX IF NOT EXISTS idx_stations_machine    ON stations (machine_id);
"""

_DETAILS_SQL = """
SELECT r.*,
       s.name                    AS station_name,
       g.name                    AS gauge_name,
       m.id                      AS machine_id,
       m.name                    AS machine_name,
       COALESCE(g.unit, '')      AS unit,
       g.min_value               AS min_value,
       g.max_value               AS max_value,
       COALESCE(u.username, 'Unknown') AS username
FROM readings r
JOIN stations s      ON s.id = r.station_id
JOIN gauges g        ON g.id = r.gauge_id
LEFT JOIN machines m ON m.id = s.machine_id
LEFT JOIN users u    ON u.id = r.user_id
"""

_GAUGE_TYPE_COLUMNS = (
    "name", "has_unit", "has_min_value", "has_max_value", "has_step", "has_condition",
    "has_instruction", "default_unit", "default_min_value", "default_max_value",
    "default_step", "default_instruction",
)

# Only ingestion writes these, through save_reading()
_GAUGE_CACHE_FIELDS = frozenset({"current_reading", "last_checked", "condition"})
_GAUGE_EDITABLE = frozenset({"name", "unit", "min_value", "max_value", "step", "instruction", "gauge_type_id"})


def to_timestamp(ts: datetime) -> str:
    """Stored form: UTC, fixed precision, so text order is time order."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat(timespec="microseconds")


# ── Row mapping ───────────────────────────────────────────────────────────────

def _gauge_type(row: sqlite3.Row) -> GaugeType:
    return GaugeType(**dict(row))


def _gauge_with_type(row: sqlite3.Row) -> GaugeWithType:
    data = dict(row)
    type_data = {k[3:]: data.pop(k) for k in list(data) if k.startswith("gt_")}
    return GaugeWithType(**data, gauge_type=GaugeType(**type_data))


_GAUGE_WITH_TYPE_SQL = (
    "SELECT g.*, gt.id AS gt_id, "
    + ", ".join(f"gt.{c} AS gt_{c}" for c in _GAUGE_TYPE_COLUMNS)
    + " FROM gauges g JOIN gauge_types gt ON gt.id = g.gauge_type_id"
)


class SQLiteStore:
    def __init__(self, path: str = settings.DATABASE_URL) -> None:
        self.path = path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ── Plumbing ──────────────────────────────────────────────────────────────

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as exc:
                raise PersistenceError(operation, exc) from exc

    def _fetchall(self, operation: str, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise PersistenceError(operation, exc) from exc

    def _fetchone(self, operation: str, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        rows = self._fetchall(operation, sql, params)
        return rows[0] if rows else None

    def initialize(self) -> None:
        """Create tables and register the default gauge types. Idempotent."""
        with self._lock:
            try:
                self._conn.executescript(_CREATE_TABLES)
            except sqlite3.Error as exc:
                raise PersistenceError("schema creation", exc) from exc
        self.ensure_default_gauge_types()

    def is_empty(self) -> bool:
        row = self._fetchone("count machines", "SELECT COUNT(*) AS n FROM machines")
        return row is None or row["n"] == 0

    # ── Machines ──────────────────────────────────────────────────────────────

    def create_machine(
        self, name: str, machine_no: str, status: MachineStatus = MachineStatus.RUNNING
    ) -> Machine:
        with self._transaction("create machine") as conn:
            cur = conn.execute(
                "INSERT INTO machines (name, machine_no, status) VALUES (?,?,?)",
                (name, machine_no, MachineStatus(status).value),
            )
        return Machine(id=cur.lastrowid, name=name, machine_no=machine_no, status=status)

    def get_machine(self, machine_id: int) -> Machine | None:
        row = self._fetchone("get machine", "SELECT * FROM machines WHERE id = ?", (machine_id,))
        return Machine(**dict(row)) if row else None

    def get_all_machines(self) -> list[Machine]:
        rows = self._fetchall("list machines", "SELECT * FROM machines ORDER BY id")
        return [Machine(**dict(r)) for r in rows]

    def update_machine(self, machine_id: int, **fields: Any) -> Machine:
        allowed = {"name", "machine_no", "status"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Cannot update machine fields: {sorted(unknown)}")
        if "status" in fields:
            fields["status"] = MachineStatus(fields["status"]).value
        if fields:
            assignments = ", ".join(f"{k} = ?" for k in fields)
            with self._transaction("update machine") as conn:
                cur = conn.execute(
                    f"UPDATE machines SET {assignments} WHERE id = ?", [*fields.values(), machine_id]
                )
            if cur.rowcount == 0:
                raise NotFoundError("Machine", machine_id)
        machine = self.get_machine(machine_id)
        if machine is None:
            raise NotFoundError("Machine", machine_id)
        return machine

    def set_machine_status(self, machine_id: int, status: MachineStatus) -> Machine:
        return self.update_machine(machine_id, status=status)

    def delete_machine(self, machine_id: int) -> None:
        """Delete a machine with its stations, gauges and readings."""
        with self._transaction("delete machine") as conn:
            cur = conn.execute("DELETE FROM machines WHERE id = ?", (machine_id,))
        if cur.rowcount == 0:
            raise NotFoundError("Machine", machine_id)

    def get_machine_with_stations(self, machine_id: int) -> MachineWithStations | None:
        machine = self.get_machine(machine_id)
        if machine is None:
            return None
        stations = self.get_all_stations_with_gauges(machine_id=machine_id)
        return MachineWithStations(**machine.model_dump(), stations=stations)

    def get_all_machines_with_stations(self) -> list[MachineWithStations]:
        stations = self.get_all_stations_with_gauges()
        by_machine: dict[int, list[StationWithGauges]] = {}
        for station in stations:
            by_machine.setdefault(station.machine_id, []).append(station)
        return [
            MachineWithStations(**m.model_dump(), stations=by_machine.get(m.id, []))
            for m in self.get_all_machines()
        ]

    def reset_all_machine_status(self, status: MachineStatus = MachineStatus.TO_CHECK) -> int:
        """Set every machine's status in one statement. Returns rows touched."""
        with self._transaction("reset machine status") as conn:
            cur = conn.execute("UPDATE machines SET status = ?", (MachineStatus(status).value,))
        return cur.rowcount

    # ── Stations ──────────────────────────────────────────────────────────────

    def create_station(self, machine_id: int, name: str, description: str | None = None) -> Station:
        if self.get_machine(machine_id) is None:
            raise NotFoundError("Machine", machine_id)
        with self._transaction("create station") as conn:
            cur = conn.execute(
                "INSERT INTO stations (machine_id, name, description) VALUES (?,?,?)",
                (machine_id, name, description),
            )
        return Station(id=cur.lastrowid, machine_id=machine_id, name=name, description=description)

    def get_station(self, station_id: int) -> Station | None:
        row = self._fetchone("get station", "SELECT * FROM stations WHERE id = ?", (station_id,))
        return Station(**dict(row)) if row else None

    def get_all_stations(self, machine_id: int | None = None) -> list[Station]:
        if machine_id is None:
            rows = self._fetchall("list stations", "SELECT * FROM stations ORDER BY id")
        else:
            rows = self._fetchall(
                "list stations", "SELECT * FROM stations WHERE machine_id = ? ORDER BY id", (machine_id,)
            )
        return [Station(**dict(r)) for r in rows]

    def update_station(self, station_id: int, **fields: Any) -> Station:
        allowed = {"name", "description", "machine_id"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Cannot update station fields: {sorted(unknown)}")
        if "machine_id" in fields and self.get_machine(fields["machine_id"]) is None:
            raise NotFoundError("Machine", fields["machine_id"])
        if fields:
            assignments = ", ".join(f"{k} = ?" for k in fields)
            with self._transaction("update station") as conn:
                cur = conn.execute(
                    f"UPDATE stations SET {assignments} WHERE id = ?", [*fields.values(), station_id]
                )
            if cur.rowcount == 0:
                raise NotFoundError("Station", station_id)
        station = self.get_station(station_id)
        if station is None:
            raise NotFoundError("Station", station_id)
        return station

    def delete_station(self, station_id: int) -> None:
        """Delete a station with its gauges and their readings."""
        with self._transaction("delete station") as conn:
            cur = conn.execute("DELETE FROM stations WHERE id = ?", (station_id,))
        if cur.rowcount == 0:
            raise NotFoundError("Station", station_id)

    def get_station_with_gauges(self, station_id: int) -> StationWithGauges | None:
        station = self.get_station(station_id)
        if station is None:
            return None
        return StationWithGauges(**station.model_dump(), gauges=self.get_gauges_by_station(station_id))

    def get_all_stations_with_gauges(self, machine_id: int | None = None) -> list[StationWithGauges]:
        stations = self.get_all_stations(machine_id=machine_id)
        gauges = self.get_all_gauges()
        by_station: dict[int, list[GaugeWithType]] = {}
        for gauge in gauges:
            by_station.setdefault(gauge.station_id, []).append(gauge)
        return [
            StationWithGauges(**s.model_dump(), gauges=by_station.get(s.id, []))
            for s in stations
        ]

    # ── Gauge types ───────────────────────────────────────────────────────────

    def create_gauge_type(self, spec: GaugeTypeSpec) -> GaugeType:
        row = spec_to_row(spec)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self._transaction("create gauge type") as conn:
            cur = conn.execute(
                f"INSERT INTO gauge_types ({columns}) VALUES ({placeholders})", list(row.values())
            )
        return GaugeType(id=cur.lastrowid, **row)

    def ensure_default_gauge_types(self) -> list[GaugeType]:
        existing = {gt.name for gt in self.get_all_gauge_types()}
        for spec in DEFAULT_GAUGE_TYPES:
            if spec.name not in existing:
                self.create_gauge_type(spec)
        return self.get_all_gauge_types()

    def get_gauge_type(self, gauge_type_id: int) -> GaugeType | None:
        row = self._fetchone("get gauge type", "SELECT * FROM gauge_types WHERE id = ?", (gauge_type_id,))
        return _gauge_type(row) if row else None

    def get_all_gauge_types(self) -> list[GaugeType]:
        return [_gauge_type(r) for r in self._fetchall("list gauge types", "SELECT * FROM gauge_types ORDER BY id")]

    def registry(self) -> GaugeTypeRegistry:
        return GaugeTypeRegistry(self.get_all_gauge_types())

    def update_gauge_type(self, gauge_type_id: int, **fields: Any) -> GaugeType:
        unknown = set(fields) - set(_GAUGE_TYPE_COLUMNS)
        if unknown:
            raise ValidationError(f"Cannot update gauge type fields: {sorted(unknown)}")
        if fields:
            assignments = ", ".join(f"{k} = ?" for k in fields)
            with self._transaction("update gauge type") as conn:
                cur = conn.execute(
                    f"UPDATE gauge_types SET {assignments} WHERE id = ?", [*fields.values(), gauge_type_id]
                )
            if cur.rowcount == 0:
                raise NotFoundError("GaugeType", gauge_type_id)
        gauge_type = self.get_gauge_type(gauge_type_id)
        if gauge_type is None:
            raise NotFoundError("GaugeType", gauge_type_id)
        return gauge_type

    def delete_gauge_type(self, gauge_type_id: int) -> None:
        in_use = self._fetchone(
            "check gauge type usage", "SELECT COUNT(*) AS n FROM gauges WHERE gauge_type_id = ?", (gauge_type_id,)
        )
        if in_use is not None and in_use["n"] > 0:
            raise ValidationError(f"Gauge type {gauge_type_id} is used by {in_use['n']} gauge(s)")
        with self._transaction("delete gauge type") as conn:
            cur = conn.execute("DELETE FROM gauge_types WHERE id = ?", (gauge_type_id,))
        if cur.rowcount == 0:
            raise NotFoundError("GaugeType", gauge_type_id)

    # ── Gauges ────────────────────────────────────────────────────────────────

    def create_gauge(self, station_id: int, gauge_type_id: int, name: str, **overrides: Any) -> GaugeWithType:
        """
        Create a gauge. Optional fields the type carries fall back to the
        type's defaults; fields it does not carry are stored as NULL.
        """
        if self.get_station(station_id) is None:
            raise NotFoundError("Station", station_id)
        gauge_type = self.get_gauge_type(gauge_type_id)
        if gauge_type is None:
            raise NotFoundError("GaugeType", gauge_type_id)

        fields = gauge_fields_from_type(gauge_type, **overrides)
        with self._transaction("create gauge") as conn:
            cur = conn.execute(
                """INSERT INTO gauges
                   (station_id, gauge_type_id, name, unit, min_value, max_value, step, instruction)
                   VALUES (?,?,?,?,?,?,?,?)""",
                (
                    station_id, gauge_type_id, name, fields["unit"], fields["min_value"],
                    fields["max_value"], fields["step"], fields["instruction"],
                ),
            )
        return GaugeWithType(
            id=cur.lastrowid, station_id=station_id, gauge_type_id=gauge_type_id, name=name,
            gauge_type=gauge_type, **fields,
        )

    def get_gauge(self, gauge_id: int) -> GaugeWithType | None:
        row = self._fetchone("get gauge", _GAUGE_WITH_TYPE_SQL + " WHERE g.id = ?", (gauge_id,))
        return _gauge_with_type(row) if row else None

    def get_gauges_by_station(self, station_id: int) -> list[GaugeWithType]:
        rows = self._fetchall(
            "list gauges", _GAUGE_WITH_TYPE_SQL + " WHERE g.station_id = ? ORDER BY g.id", (station_id,)
        )
        return [_gauge_with_type(r) for r in rows]

    def get_all_gauges(self) -> list[GaugeWithType]:
        rows = self._fetchall("list gauges", _GAUGE_WITH_TYPE_SQL + " ORDER BY g.id")
        return [_gauge_with_type(r) for r in rows]

    def update_gauge(self, gauge_id: int, **fields: Any) -> Gauge:
        cached = set(fields) & _GAUGE_CACHE_FIELDS
        if cached:
            raise ValidationError(
                f"{sorted(cached)} only change by recording a reading", field=sorted(cached)[0]
            )
        unknown = set(fields) - _GAUGE_EDITABLE
        if unknown:
            raise ValidationError(f"Cannot update gauge fields: {sorted(unknown)}")
        if "gauge_type_id" in fields and self.get_gauge_type(fields["gauge_type_id"]) is None:
            raise NotFoundError("GaugeType", fields["gauge_type_id"])
        if fields:
            assignments = ", ".join(f"{k} = ?" for k in fields)
            with self._transaction("update gauge") as conn:
                cur = conn.execute(f"UPDATE gauges SET {assignments} WHERE id = ?", [*fields.values(), gauge_id])
            if cur.rowcount == 0:
                raise NotFoundError("Gauge", gauge_id)
        gauge = self.get_gauge(gauge_id)
        if gauge is None:
            raise NotFoundError("Gauge", gauge_id)
        return gauge

    def delete_gauge(self, gauge_id: int) -> None:
        """Delete a gauge with its readings."""
        with self._transaction("delete gauge") as conn:
            cur = conn.execute("DELETE FROM gauges WHERE id = ?", (gauge_id,))
        if cur.rowcount == 0:
            raise NotFoundError("Gauge", gauge_id)

    # ── Readings ──────────────────────────────────────────────────────────────

    def save_reading(
        self,
        station_id: int,
        gauge_id: int,
        value: float,
        timestamp: datetime,
        user_id: int | None = None,
        image_url: str | None = None,
        comment: str | None = None,
        condition: str | None = None,
        observed_status: ObservedStatus | None = None,
    ) -> Reading:
        """
        Append a reading and point the gauge's cached state at it.

        Both writes share one transaction: either the reading exists and the
        gauge reflects it, or neither changed. The gauge keeps its previous
        condition when `condition` is None.
        """
        ts = to_timestamp(timestamp)
        status = ObservedStatus(observed_status).value if observed_status is not None else None
        with self._transaction("save reading") as conn:
            cur = conn.execute(
                """INSERT INTO readings
                   (station_id, gauge_id, value, timestamp, user_id, image_url,
                    comment, condition, observed_status)
                   VALUES (?,?,?,?,?,?,?,?,?)""",
                (station_id, gauge_id, value, ts, user_id, image_url, comment, condition, status),
            )
            reading_id = cur.lastrowid
            updated = conn.execute(
                """UPDATE gauges
                   SET current_reading = ?, last_checked = ?, condition = COALESCE(?, condition)
                   WHERE id = ?""",
                (value, ts, condition, gauge_id),
            )
            if updated.rowcount == 0:
                raise NotFoundError("Gauge", gauge_id)
        return Reading(
            id=reading_id, station_id=station_id, gauge_id=gauge_id, value=value,
            timestamp=timestamp, user_id=user_id, image_url=image_url, comment=comment,
            condition=condition, observed_status=observed_status,
        )

    def get_reading(self, reading_id: int) -> Reading | None:
        row = self._fetchone("get reading", "SELECT * FROM readings WHERE id = ?", (reading_id,))
        return Reading(**dict(row)) if row else None

    @staticmethod
    def _reading_filters(
        station_id: int | None,
        gauge_id: int | None,
        gauge_ids: list[int] | None,
        since: datetime | None,
        prefix: str = "",
    ) -> tuple[str, list]:
        where: list[str] = []
        params: list = []
        if station_id is not None:
            where.append(f"{prefix}station_id = ?")
            params.append(station_id)
        if gauge_id is not None:
            where.append(f"{prefix}gauge_id = ?")
            params.append(gauge_id)
        if gauge_ids is not None:
            if not gauge_ids:
                where.append("0")
            else:
                where.append(f"{prefix}gauge_id IN ({', '.join('?' for _ in gauge_ids)})")
                params.extend(gauge_ids)
        if since is not None:
            where.append(f"{prefix}timestamp >= ?")
            params.append(to_timestamp(since))
        clause = f" WHERE {' AND '.join(where)}" if where else ""
        return clause, params

    def get_readings(
        self,
        station_id: int | None = None,
        gauge_id: int | None = None,
        gauge_ids: list[int] | None = None,
        since: datetime | None = None,
    ) -> list[Reading]:
        """Readings, newest first."""
        clause, params = self._reading_filters(station_id, gauge_id, gauge_ids, since)
        rows = self._fetchall(
            "list readings", f"SELECT * FROM readings{clause} ORDER BY timestamp DESC, id DESC", params
        )
        return [Reading(**dict(r)) for r in rows]

    def get_readings_with_details(
        self,
        station_id: int | None = None,
        gauge_id: int | None = None,
        since: datetime | None = None,
    ) -> list[ReadingWithDetails]:
        """Readings joined with station, gauge, machine and user names, newest first."""
        clause, params = self._reading_filters(station_id, gauge_id, None, since, prefix="r.")
        rows = self._fetchall(
            "list reading details", f"{_DETAILS_SQL}{clause} ORDER BY r.timestamp DESC, r.id DESC", params
        )
        return [ReadingWithDetails(**dict(r)) for r in rows]

    def get_readings_frame(
        self,
        station_id: int | None = None,
        gauge_id: int | None = None,
        since: datetime | None = None,
    ) -> pd.DataFrame:
        """Detailed reading history as a DataFrame (UTC timestamps), newest first."""
        clause, params = self._reading_filters(station_id, gauge_id, None, since, prefix="r.")
        with self._lock:
            try:
                df = pd.read_sql_query(
                    f"{_DETAILS_SQL}{clause} ORDER BY r.timestamp DESC, r.id DESC",
                    self._conn,
                    params=params,
                )
            except (sqlite3.Error, pd.errors.DatabaseError) as exc:
                raise PersistenceError("reading history query", exc) from exc
        if not df.empty:
            df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, format="ISO8601")
        return df

    # ── Users ─────────────────────────────────────────────────────────────────

    def create_user(self, username: str, is_admin: bool = False) -> User:
        username = username.strip().lower()
        if not username:
            raise ValidationError("Username is required", field="username")
        if self.get_user_by_username(username) is not None:
            raise ValidationError("Username already exists", field="username")
        with self._transaction("create user") as conn:
            cur = conn.execute("INSERT INTO users (username, is_admin) VALUES (?,?)", (username, int(is_admin)))
        return User(id=cur.lastrowid, username=username, is_admin=is_admin)

    def get_user(self, user_id: int) -> User | None:
        row = self._fetchone("get user", "SELECT * FROM users WHERE id = ?", (user_id,))
        return User(**dict(row)) if row else None

    def get_user_by_username(self, username: str) -> User | None:
        row = self._fetchone("get user", "SELECT * FROM users WHERE username = ?", (username.lower(),))
        return User(**dict(row)) if row else None

    def get_all_users(self) -> list[User]:
        return [User(**dict(r)) for r in self._fetchall("list users", "SELECT * FROM users ORDER BY id")]

    # ── System settings ───────────────────────────────────────────────────────

    def get_system_setting(self, key: str) -> SystemSetting | None:
        row = self._fetchone("get setting", "SELECT * FROM system_settings WHERE key = ?", (key,))
        return SystemSetting(**dict(row)) if row else None

    def set_system_setting(self, key: str, value: str, enabled: bool) -> SystemSetting:
        now = datetime.now(tz=UTC)
        with self._transaction("set setting") as conn:
            conn.execute(
                """INSERT INTO system_settings (key, value, enabled, updated_at) VALUES (?,?,?,?)
                   ON CONFLICT (key) DO UPDATE SET
                       value = excluded.value, enabled = excluded.enabled, updated_at = excluded.updated_at""",
                (key, value, int(enabled), to_timestamp(now)),
            )
        return SystemSetting(key=key, value=value, enabled=enabled, updated_at=now)


# ── Process-wide instance ─────────────────────────────────────────────────────

_store_lock = threading.Lock()
_STORE: SQLiteStore | None = None


def get_store() -> SQLiteStore:
    global _STORE
    with _store_lock:
        if _STORE is None:
            _STORE = SQLiteStore(settings.DATABASE_URL)
            _STORE.initialize()
        return _STORE
