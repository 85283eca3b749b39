"""
src/data/models.py
──────────────────
Pydantic v2 data models for machines, stations, gauges, gauge types,
readings and system settings.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from config.statuses import MachineStatus, ObservedStatus


def as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC so that comparisons never mix kinds
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class GaugeType(BaseModel):
    id: int
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


class Gauge(BaseModel):
    id: int
    station_id: int
    gauge_type_id: int
    name: str
    unit: str | None = None
    min_value: float | None = None
    max_value: float | None = None
    step: float | None = None
    current_reading: float = 0.0
    last_checked: str = ""
    condition: str | None = None
    instruction: str | None = None


class GaugeWithType(Gauge):
    gauge_type: GaugeType


class Station(BaseModel):
    id: int
    machine_id: int
    name: str
    description: str | None = None


class StationWithGauges(Station):
    gauges: list[GaugeWithType] = Field(default_factory=list)


class Machine(BaseModel):
    id: int
    name: str
    machine_no: str
    status: MachineStatus = MachineStatus.RUNNING


class MachineWithStations(Machine):
    stations: list[StationWithGauges] = Field(default_factory=list)


class User(BaseModel):
    id: int
    username: str
    is_admin: bool = False


class Reading(BaseModel):
    id: int
    station_id: int
    gauge_id: int
    value: float
    timestamp: datetime
    user_id: int | None = None
    image_url: str | None = None
    comment: str | None = None
    condition: str | None = None
    observed_status: ObservedStatus | None = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def encoded_value(self) -> int | None:
        """0/1 status encoding for consumers that predate observed_status."""
        if self.observed_status is None:
            return None
        return self.observed_status.encoded


class ReadingWithDetails(Reading):
    station_name: str = "Unknown Station"
    gauge_name: str = "Unknown Gauge"
    machine_id: int | None = None
    machine_name: str | None = None
    unit: str = ""
    min_value: float | None = None
    max_value: float | None = None
    username: str = "Unknown"


class ReadingInput(BaseModel):
    """A reading as submitted from the input form, before validation."""
    station_id: int
    gauge_id: int
    value: float | str | None = None
    condition: str | None = None
    image: str | bytes | None = None        # raw payload, handed to the blob store
    image_url: str | None = None            # already-stored evidence
    comment: str | None = None
    user_id: int | None = None
    timestamp: datetime | None = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class SystemSetting(BaseModel):
    key: str
    value: str
    enabled: bool = False
    updated_at: datetime | None = None
