"""
src/analytics/classification.py
───────────────────────────────
Gauge classification engine.

Rules, in precedence order:
  1. Condition gauges   → Bad/Problem = ALERT, Good/Good condition = NORMAL,
                          any other word = OTHER, nothing set = UNKNOWN
  2. Range gauges       → outside [min, max] = ALERT, else NORMAL
  3. Anything else      → NORMAL (nothing to evaluate)

Every function here is pure, so the same rules apply to live gauge state
and, retroactively, to stored readings.
"""
from __future__ import annotations

from config.statuses import (
    ALERT_CONDITIONS,
    NORMAL_CONDITIONS,
    STATUS_LABELS,
    GaugeStatus,
    ObservedStatus,
)
from src.data.models import Gauge, GaugeType, Reading
from src.data.registry import RuleFamily, rule_family


def classify_condition(condition: str | None) -> GaugeStatus:
    if not condition:
        return GaugeStatus.UNKNOWN
    if condition in ALERT_CONDITIONS:
        return GaugeStatus.ALERT
    if condition in NORMAL_CONDITIONS:
        return GaugeStatus.NORMAL
    return GaugeStatus.OTHER


def is_out_of_range(value: float, gauge: Gauge, gauge_type: GaugeType) -> bool:
    """A bound only counts when the type carries it and the gauge sets it."""
    below = gauge_type.has_min_value and gauge.min_value is not None and value < gauge.min_value
    above = gauge_type.has_max_value and gauge.max_value is not None and value > gauge.max_value
    return bool(below or above)


def classify(
    gauge: Gauge,
    gauge_type: GaugeType,
    observed_value: float | None = None,
    observed_condition: str | None = None,
) -> GaugeStatus:
    """
    Classify a gauge observation.

    Args:
        gauge: Gauge definition (limits, cached state)
        gauge_type: The gauge's type; its flags pick the rule family
        observed_value: Candidate numeric value; defaults to gauge.current_reading
        observed_condition: Candidate condition; defaults to gauge.condition

    Returns:
        GaugeStatus.ALERT | NORMAL | OTHER | UNKNOWN
    """
    family = rule_family(gauge_type)

    if family is RuleFamily.CONDITION:
        condition = observed_condition if observed_condition is not None else gauge.condition
        return classify_condition(condition)

    if family is RuleFamily.RANGE:
        value = observed_value if observed_value is not None else gauge.current_reading
        return GaugeStatus.ALERT if is_out_of_range(value, gauge, gauge_type) else GaugeStatus.NORMAL

    return GaugeStatus.NORMAL


def encode_condition(condition: str) -> ObservedStatus:
    """Snapshot a condition for history: only Bad/Problem count as alert."""
    if classify_condition(condition) is GaugeStatus.ALERT:
        return ObservedStatus.ALERT
    return ObservedStatus.NORMAL


def to_observed(status: GaugeStatus) -> ObservedStatus:
    return ObservedStatus.ALERT if status is GaugeStatus.ALERT else ObservedStatus.NORMAL


def historical_status(reading: Reading, gauge: Gauge, gauge_type: GaugeType) -> GaugeStatus:
    """
    Status of a stored reading.

    Uses the snapshot taken at recording time, so later edits to the gauge's
    limits or cached condition do not rewrite history. Rows without a
    snapshot fall back to the 0/1 encoding (condition gauges) or to the
    gauge's current limits.
    """
    if reading.observed_status is not None:
        return GaugeStatus(reading.observed_status.value)
    if rule_family(gauge_type) is RuleFamily.CONDITION:
        return GaugeStatus.ALERT if reading.value > 0 else GaugeStatus.NORMAL
    return classify(gauge, gauge_type, observed_value=reading.value)


def status_label(status: GaugeStatus) -> str:
    return STATUS_LABELS[status]
