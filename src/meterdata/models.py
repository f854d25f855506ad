"""
Domain objects shared by the ESL and SDAT parsers.

- Reading: one observed register/interval value
- TimeSeries: per-meter store ordered by timestamp, at most one Reading per timestamp
- EnergyData: per-period aggregate used by the storage and export collaborators
- SensorData: epoch-keyed view produced by the sensor data assembler
"""

from bisect import bisect_left, bisect_right, insort
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import pandas as pd


class MeterType(Enum):
    """Direction of the metered energy."""

    PRODUCTION = "PRODUCTION"
    CONSUMPTION = "CONSUMPTION"


@dataclass
class Reading:
    """
    One observed value.

    relative_value stays 0.0 until the reconciler backfills it. A type of None
    marks a derived net reading, which is never stored in a TimeSeries.
    """

    timestamp: datetime
    absolute_value: float
    relative_value: float = 0.0
    unit: str | None = None
    type: MeterType | None = None
    # OBIS code (ESL) or sequence number (SDAT); only set on EnergyData readings
    identifier: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "absoluteValue": self.absolute_value,
            "relativeValue": self.relative_value,
            "unit": self.unit,
            "type": self.type.value if self.type else None,
            "identifier": self.identifier,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Reading":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            absolute_value=float(data["absoluteValue"]),
            relative_value=float(data.get("relativeValue", 0.0)),
            unit=data.get("unit"),
            type=MeterType(data["type"]) if data.get("type") else None,
            identifier=data.get("identifier"),
        )


class TimeSeries:
    """
    Readings of one meter keyed by timestamp, iterated in ascending order.

    Inserting a Reading whose timestamp is already present replaces the stored
    one (last write wins, regardless of type).
    """

    def __init__(self, meter_id: str) -> None:
        self.meter_id = meter_id
        self._readings: dict[datetime, Reading] = {}
        self._timestamps: list[datetime] = []

    def add(self, reading: Reading) -> None:
        if reading.timestamp not in self._readings:
            insort(self._timestamps, reading.timestamp)
        self._readings[reading.timestamp] = reading

    def get(self, timestamp: datetime) -> Reading | None:
        return self._readings.get(timestamp)

    def floor(self, timestamp: datetime) -> Reading | None:
        """Latest reading at or before timestamp."""
        idx = bisect_right(self._timestamps, timestamp)
        if idx == 0:
            return None
        return self._readings[self._timestamps[idx - 1]]

    def ceiling(self, timestamp: datetime) -> Reading | None:
        """Earliest reading at or after timestamp."""
        idx = bisect_left(self._timestamps, timestamp)
        if idx == len(self._timestamps):
            return None
        return self._readings[self._timestamps[idx]]

    def readings(self) -> list[Reading]:
        return [self._readings[ts] for ts in self._timestamps]

    def readings_of_type(self, meter_type: MeterType) -> list[Reading]:
        return [r for r in self.readings() if r.type == meter_type]

    def to_frame(self) -> pd.DataFrame:
        """Build a DataFrame indexed by timestamp, one row per reading."""
        readings = self.readings()
        df = pd.DataFrame(
            {
                "absolute_value": [r.absolute_value for r in readings],
                "relative_value": [r.relative_value for r in readings],
                "unit": [r.unit for r in readings],
                "type": [r.type.value if r.type else None for r in readings],
            },
            index=pd.DatetimeIndex([r.timestamp for r in readings], name="timestamp"),
        )
        return df

    def to_dict(self) -> dict[str, Any]:
        return {"meterId": self.meter_id, "readings": [r.to_dict() for r in self.readings()]}

    def __contains__(self, timestamp: object) -> bool:
        return timestamp in self._readings

    def __iter__(self) -> Iterator[Reading]:
        return iter(self.readings())

    def __len__(self) -> int:
        return len(self._timestamps)

    def __repr__(self) -> str:
        return f"TimeSeries(meter_id={self.meter_id!r}, readings={len(self)})"


@dataclass
class EnergyData:
    """Readings of one meter for one parsed time period or interval."""

    meter_id: str
    timestamp: datetime
    readings: list[Reading] = field(default_factory=list)

    def add_reading(self, reading: Reading) -> None:
        self.readings.append(reading)

    def to_dict(self) -> dict[str, Any]:
        return {
            "meterId": self.meter_id,
            "timestamp": self.timestamp.isoformat(),
            "measurements": [r.to_dict() for r in self.readings],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnergyData":
        return cls(
            meter_id=data["meterId"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            readings=[Reading.from_dict(r) for r in data.get("measurements", [])],
        )


@dataclass
class DataPoint:
    """Value at a UTC epoch-seconds timestamp (kept as a string)."""

    ts: str
    value: float


@dataclass
class SensorData:
    sensor_id: str
    data: list[DataPoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"sensorId": self.sensor_id, "data": [{"ts": p.ts, "value": p.value} for p in self.data]}
