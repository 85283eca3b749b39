"""
config/gauge_types.py
─────────────────────
Default gauge type catalogue.

Each type declares which optional fields a gauge of that type carries:
  unit, min, max, step    → numeric reading checked against a range
  condition               → operator picks a condition word instead
  instruction             → free text shown next to the input
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class GaugeTypeSpec:
    name: str
    has_unit: bool = False
    has_min_value: bool = False
    has_max_value: bool = False
    has_step: bool = False
    has_condition: bool = False
    has_instruction: bool = False
    default_unit: str | None = None
    default_min_value: float | None = None
    default_max_value: float | None = None
    default_step: float | None = None
    default_instruction: str | None = None


_RANGE = dict(has_unit=True, has_min_value=True, has_max_value=True, has_step=True)

# ── Numeric types ─────────────────────────────────────────────────────────────
PRESSURE = GaugeTypeSpec(
    name="Pressure", **_RANGE,
    default_unit="PSI", default_min_value=50.0, default_max_value=100.0, default_step=1.0,
)
TEMPERATURE = GaugeTypeSpec(
    name="Temperature", **_RANGE,
    default_unit="°C", default_min_value=15.0, default_max_value=30.0, default_step=0.5,
)
RUNTIME = GaugeTypeSpec(
    name="Runtime", has_unit=True, has_max_value=True, has_step=True,
    default_unit="hours", default_max_value=8000.0, default_step=0.5,
)
ELECTRICAL_POWER = GaugeTypeSpec(
    name="Electrical Power", **_RANGE,
    default_unit="kW", default_min_value=5.0, default_max_value=30.0, default_step=0.1,
)
ELECTRICAL_CURRENT = GaugeTypeSpec(
    name="Electrical Current", **_RANGE,
    default_unit="A", default_min_value=1.0, default_max_value=15.0, default_step=0.1,
)

# ── Condition types ───────────────────────────────────────────────────────────
VISUAL_INSPECTION = GaugeTypeSpec(
    name="Visual Inspection", has_condition=True, has_instruction=True,
    default_instruction="Inspect for leaks, wear and loose parts.",
)

DEFAULT_GAUGE_TYPES: list[GaugeTypeSpec] = [
    PRESSURE,
    TEMPERATURE,
    RUNTIME,
    ELECTRICAL_POWER,
    ELECTRICAL_CURRENT,
    VISUAL_INSPECTION,
]
