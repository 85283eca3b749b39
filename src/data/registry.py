"""
src/data/registry.py
────────────────────
Gauge type capability lookup.

Answers, per gauge type, which rule family classifies its gauges, which
inputs a reading must carry, and which fields a new gauge inherits from
the type's defaults.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from config.gauge_types import GaugeTypeSpec
from src.data.models import GaugeType


class RuleFamily(str, Enum):
    CONDITION = "condition"
    RANGE = "range"
    NONE = "none"


def rule_family(gauge_type: GaugeType) -> RuleFamily:
    """Condition-based wins over range-based when a type sets both."""
    if gauge_type.has_condition:
        return RuleFamily.CONDITION
    if gauge_type.has_min_value or gauge_type.has_max_value:
        return RuleFamily.RANGE
    return RuleFamily.NONE


def requires_numeric_value(gauge_type: GaugeType) -> bool:
    return gauge_type.has_unit or gauge_type.has_min_value or gauge_type.has_max_value


def requires_condition(gauge_type: GaugeType) -> bool:
    return gauge_type.has_condition


def gauge_fields_from_type(gauge_type: GaugeType, **overrides: Any) -> dict[str, Any]:
    """
    Resolve the optional gauge fields for a new gauge of `gauge_type`.

    A field the type does not carry is always None. A carried field takes the
    override when one is given, else the type's default.
    """
    carried = {
        "unit": (gauge_type.has_unit, gauge_type.default_unit),
        "min_value": (gauge_type.has_min_value, gauge_type.default_min_value),
        "max_value": (gauge_type.has_max_value, gauge_type.default_max_value),
        "step": (gauge_type.has_step, gauge_type.default_step),
        "instruction": (gauge_type.has_instruction, gauge_type.default_instruction),
    }
    fields: dict[str, Any] = {}
    for name, (flag, default) in carried.items():
        if not flag:
            fields[name] = None
            continue
        value = overrides.get(name)
        fields[name] = default if value is None else value
    return fields


def spec_to_row(spec: GaugeTypeSpec) -> dict[str, Any]:
    return {
        "name": spec.name,
        "has_unit": spec.has_unit,
        "has_min_value": spec.has_min_value,
        "has_max_value": spec.has_max_value,
        "has_step": spec.has_step,
        "has_condition": spec.has_condition,
        "has_instruction": spec.has_instruction,
        "default_unit": spec.default_unit,
        "default_min_value": spec.default_min_value,
        "default_max_value": spec.default_max_value,
        "default_step": spec.default_step,
        "default_instruction": spec.default_instruction,
    }


class GaugeTypeRegistry:
    """In-memory index of gauge types loaded from the store."""

    def __init__(self, gauge_types: list[GaugeType]):
        self._by_id = {gt.id: gt for gt in gauge_types}
        self._by_name = {gt.name.lower(): gt for gt in gauge_types}

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, gauge_type_id: int) -> GaugeType | None:
        return self._by_id.get(gauge_type_id)

    def by_name(self, name: str) -> GaugeType | None:
        return self._by_name.get(name.lower())

    def condition_types(self) -> list[GaugeType]:
        return [gt for gt in self._by_id.values() if rule_family(gt) is RuleFamily.CONDITION]
