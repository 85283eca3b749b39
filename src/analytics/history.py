"""
src/analytics/history.py
────────────────────────
Reading history browser and report builder (pandas).

Status per reading comes from the observed_status snapshot stored at
recording time, so history agrees with the live gauge view. Rows that
predate the snapshot fall back to the 0/1 encoding (condition readings)
or to the gauge's limits.
"""
from __future__ import annotations

from datetime import date
from enum import Enum

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from config.settings import settings
from config.statuses import STATUS_LABELS, GaugeStatus
from src.data.models import Reading

ALERT_LABEL = STATUS_LABELS[GaugeStatus.ALERT]
NORMAL_LABEL = STATUS_LABELS[GaugeStatus.NORMAL]

REPORT_COLUMNS = [
    "timestamp", "machine_name", "station_name", "gauge_name", "value", "unit",
    "condition", "status", "username", "comment", "image_url",
]


class StatusFilter(str, Enum):
    ALL = "all"
    NORMAL = "normal"
    ALERT = "alert"


def to_dataframe(readings: list[Reading]) -> pd.DataFrame:
    """Readings (plain or with details) → DataFrame with UTC timestamps."""
    if not readings:
        return pd.DataFrame(columns=list(Reading.model_fields))
    df = pd.DataFrame([r.model_dump(mode="json") for r in readings])
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, format="ISO8601")
    return df


def _column(df: pd.DataFrame, name: str) -> pd.Series:
    if name in df.columns:
        return df[name]
    return pd.Series(None, index=df.index, dtype=object)


def annotate_status(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add a "status" column ("Alert" / "Normal") to a reading frame.

    Returns a copy of df.
    """
    df = df.copy()
    if df.empty:
        df["status"] = pd.Series(dtype=object)
        return df

    value = pd.to_numeric(df["value"], errors="coerce")
    observed = _column(df, "observed_status")
    condition = _column(df, "condition")
    lower = pd.to_numeric(_column(df, "min_value"), errors="coerce")
    upper = pd.to_numeric(_column(df, "max_value"), errors="coerce")

    out_of_range = (value < lower) | (value > upper)
    is_alert = np.where(
        observed.notna(),
        observed.eq(GaugeStatus.ALERT.value),
        np.where(condition.notna(), value > 0, out_of_range),
    )
    df["status"] = np.where(is_alert, ALERT_LABEL, NORMAL_LABEL)
    return df


def _status_mask(df: pd.DataFrame, status: StatusFilter) -> pd.Series:
    if status is StatusFilter.ALERT:
        return df["status"] == ALERT_LABEL
    if status is StatusFilter.NORMAL:
        return df["status"] == NORMAL_LABEL
    return pd.Series(True, index=df.index)


def filter_history(
    df: pd.DataFrame,
    station_id: int | None = None,
    gauge_name: str | None = None,
    status: StatusFilter | str = StatusFilter.ALL,
) -> pd.DataFrame:
    """History browser filters; newest first."""
    if "status" not in df.columns:
        df = annotate_status(df)
    status = StatusFilter(status)

    mask = _status_mask(df, status)
    if station_id is not None:
        mask &= df["station_id"] == station_id
    if gauge_name is not None:
        mask &= _column(df, "gauge_name") == gauge_name

    return df[mask].sort_values("timestamp", ascending=False, kind="stable").reset_index(drop=True)


class ReportQuery(BaseModel):
    """Report builder selection. Empty id lists mean "all"."""
    machine_ids: list[int] = Field(default_factory=list)
    station_ids: list[int] = Field(default_factory=list)
    gauge_ids: list[int] = Field(default_factory=list)
    date_from: date | None = None
    date_to: date | None = None
    status_filter: StatusFilter = StatusFilter.ALL
    include_images: bool = True
    include_comments: bool = True


def run_report(df: pd.DataFrame, query: ReportQuery, tz: str = settings.TIMEZONE) -> pd.DataFrame:
    """
    Apply a ReportQuery to a detailed reading frame.

    Date bounds are inclusive calendar days in `tz`. Image and comment
    columns are dropped unless requested.
    """
    if "status" not in df.columns:
        df = annotate_status(df)

    mask = _status_mask(df, query.status_filter)
    if query.machine_ids:
        mask &= _column(df, "machine_id").isin(query.machine_ids)
    if query.station_ids:
        mask &= df["station_id"].isin(query.station_ids)
    if query.gauge_ids:
        mask &= df["gauge_id"].isin(query.gauge_ids)
    if (query.date_from or query.date_to) and not df.empty:
        local_day = df["timestamp"].dt.tz_convert(tz).dt.date
        if query.date_from:
            mask &= local_day >= query.date_from
        if query.date_to:
            mask &= local_day <= query.date_to

    report = df[mask].sort_values("timestamp", ascending=False, kind="stable")
    columns = [c for c in REPORT_COLUMNS if c in report.columns]
    if not query.include_images and "image_url" in columns:
        columns.remove("image_url")
    if not query.include_comments and "comment" in columns:
        columns.remove("comment")
    return report[columns].reset_index(drop=True)
