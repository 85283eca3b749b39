"""
config/statuses.py
──────────────────
Status vocabularies: gauge classification, freshness, machine status,
and the condition words operators pick from.
"""

from enum import Enum


class GaugeStatus(str, Enum):
    ALERT = "alert"
    NORMAL = "normal"
    OTHER = "other"
    UNKNOWN = "unknown"


class ObservedStatus(str, Enum):
    """Status snapshot stored on every reading."""
    NORMAL = "normal"
    ALERT = "alert"

    @property
    def encoded(self) -> int:
        # Legacy 0/1 encoding kept in Reading.value for condition gauges
        return 1 if self is ObservedStatus.ALERT else 0


class Freshness(str, Enum):
    RECENT = "recent"
    OLD = "old"
    UNKNOWN = "unknown"


class MachineStatus(str, Enum):
    RUNNING = "RUNNING"
    STOP = "STOP"
    TO_CHECK = "To Check"
    DURING_MAINTENANCE = "During Maintenance"
    OUT_OF_ORDER = "Out of Order"


# ── Condition words ───────────────────────────────────────────────────────────
ALERT_CONDITIONS: frozenset[str] = frozenset({"Bad", "Problem"})
NORMAL_CONDITIONS: frozenset[str] = frozenset({"Good", "Good condition"})

# Options offered on the input form, in display order
CONDITION_OPTIONS: list[str] = ["Good", "Bad", "Problem", "Others"]

NOT_SET_LABEL = "Not Set"

# ── Display labels (history browser / report builder) ────────────────────────
STATUS_LABELS: dict[str, str] = {
    GaugeStatus.ALERT: "Alert",
    GaugeStatus.NORMAL: "Normal",
    GaugeStatus.OTHER: "Other",
    GaugeStatus.UNKNOWN: NOT_SET_LABEL,
}

FRESHNESS_LABELS: dict[str, str] = {
    Freshness.RECENT: "Updated",
    Freshness.OLD: "Needs update",
    Freshness.UNKNOWN: "No data",
}

# Setting key holding the daily reset time ("HH:MM") and its enabled flag
MACHINE_RESET_SETTING = "machine_reset_time"
