"""
src/services/ingestion.py
─────────────────────────
Reading ingestion and history encoding.

record_reading() is the only path that mutates a gauge's cached state:

  1. resolve station and gauge          → NotFoundError
  2. check the inputs the type requires → ValidationError
  3. compute the value to persist
       condition gauge : 0/1 encoding + literal condition + observed_status
       numeric gauge   : parsed value, no condition, observed_status from
                         classification at recording time
  4-5. insert the reading and refresh the gauge cache in one transaction
  6. return the persisted reading

Nothing is written until steps 1–3 pass. An uploaded image is stored after
validation and removed again if the transaction fails.
"""
from __future__ import annotations

import logging
import math

from src.analytics.classification import classify, encode_condition, to_observed
from src.data.blob_store import FileBlobStore
from src.data.models import GaugeWithType, Reading, ReadingInput
from src.data.registry import RuleFamily, requires_condition, requires_numeric_value, rule_family
from src.data.store import SQLiteStore, get_store
from src.errors import NotFoundError, ValidationError
from src.services.clock import SystemClock

logger = logging.getLogger(__name__)


def parse_numeric_value(raw: float | str | None) -> float | None:
    """Parse a submitted value. Blank means "not supplied"; junk, NaN and inf are rejected."""
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    if isinstance(raw, bool):
        raise ValidationError("Value must be a number", field="value")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Value {raw!r} is not a number", field="value") from exc
    if not math.isfinite(value):
        raise ValidationError(f"Value {raw!r} is not a finite number", field="value")
    return value


class ReadingIngestor:
    def __init__(
        self,
        store: SQLiteStore | None = None,
        blob_store: FileBlobStore | None = None,
        clock: SystemClock | None = None,
    ):
        self.store = store or get_store()
        self.blob_store = blob_store or FileBlobStore()
        self.clock = clock or SystemClock()

    def _resolve(self, data: ReadingInput) -> GaugeWithType:
        station = self.store.get_station(data.station_id)
        if station is None:
            raise NotFoundError("Station", data.station_id)
        gauge = self.store.get_gauge(data.gauge_id)
        if gauge is None:
            raise NotFoundError("Gauge", data.gauge_id)
        if gauge.station_id != station.id:
            raise ValidationError(
                f"Gauge {gauge.id} does not belong to station {station.id}", field="gauge_id"
            )
        return gauge

    def record_reading(self, data: ReadingInput) -> Reading:
        gauge = self._resolve(data)
        gauge_type = gauge.gauge_type

        numeric = parse_numeric_value(data.value)
        condition = (data.condition or "").strip() or None

        if requires_numeric_value(gauge_type) and numeric is None:
            raise ValidationError(f"A numeric value is required for {gauge.name}", field="value")
        if requires_condition(gauge_type) and condition is None:
            raise ValidationError(f"A condition is required for {gauge.name}", field="condition")

        if rule_family(gauge_type) is RuleFamily.CONDITION:
            observed = encode_condition(condition)
            value = float(observed.encoded)
        else:
            value = numeric if numeric is not None else 0.0
            observed = to_observed(classify(gauge, gauge_type, observed_value=value))
            condition = None

        timestamp = data.timestamp or self.clock.now()

        image_url = data.image_url
        stored_blob = None
        if data.image is not None:
            stored_blob = image_url = self.blob_store.save(data.image)

        try:
            reading = self.store.save_reading(
                station_id=data.station_id,
                gauge_id=gauge.id,
                value=value,
                timestamp=timestamp,
                user_id=data.user_id,
                image_url=image_url,
                comment=data.comment,
                condition=condition,
                observed_status=observed,
            )
        except Exception:
            if stored_blob is not None:
                self.blob_store.delete(stored_blob)
            logger.exception("Failed to record reading for gauge %s", gauge.id)
            raise

        logger.info(
            "Recorded reading %s for gauge %s (%s): value=%s status=%s",
            reading.id, gauge.id, gauge.name, value, observed.value,
        )
        return reading


def record_reading(data: ReadingInput, store: SQLiteStore | None = None) -> Reading:
    """Record one reading against the process-wide store."""
    return ReadingIngestor(store=store).record_reading(data)
