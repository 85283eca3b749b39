"""
src/data/ordering.py
────────────────────
Display ordering conventions.

Gauges are numbered by name ("2. Temperature"); machines sort naturally
by machine number ("M2" before "M10").
"""
from __future__ import annotations

import re
from collections.abc import Iterable
from typing import TypeVar

from src.data.models import Gauge, Machine

_PREFIX = re.compile(r"^(\d+)\.")
_DIGITS = re.compile(r"(\d+)")

UNNUMBERED = 999

G = TypeVar("G", bound=Gauge)


def gauge_display_order(name: str) -> int:
    match = _PREFIX.match(name)
    return int(match.group(1)) if match else UNNUMBERED


def sort_gauges(gauges: Iterable[G]) -> list[G]:
    # Ties (and unnumbered gauges) keep creation order
    return sorted(gauges, key=lambda g: (gauge_display_order(g.name), g.id))


def machine_sort_key(machine: Machine) -> list:
    parts = _DIGITS.split(machine.machine_no.lower())
    return [int(p) if p.isdigit() else p for p in parts]


def sort_machines(machines: Iterable[Machine]) -> list[Machine]:
    return sorted(machines, key=machine_sort_key)
