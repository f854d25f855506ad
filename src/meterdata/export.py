"""
Export renderings of parsed meter data.

JSON structures are plain lists/dicts ready for json.dumps; the CSV and the
data lake rows are built with pandas.
"""

from collections.abc import Iterable, Mapping
from typing import Any

import pandas as pd

from meterdata.common import SENSOR_ROW_TIMESTAMP_FORMAT
from meterdata.models import EnergyData, MeterType, Reading, SensorData, TimeSeries

SENSOR_FRAME_COLUMNS = ["sensorId", "ts", "val", "unit", "its"]

# Keys used for grouped output, including the untyped net group
GROUP_NAMES: dict[MeterType | None, str] = {
    MeterType.PRODUCTION: "production",
    MeterType.CONSUMPTION: "consumption",
    None: "net",
}


def _data_points(readings: Iterable[Reading]) -> list[dict[str, Any]]:
    return [{"ts": r.timestamp.isoformat(), "value": r.absolute_value} for r in readings]


def _group_by_meter(energy_data: Iterable[EnergyData]) -> dict[str, list[Reading]]:
    # Meters keep first-seen order
    by_meter: dict[str, list[Reading]] = {}
    for item in energy_data:
        by_meter.setdefault(item.meter_id, []).extend(item.readings)
    return by_meter


def energy_data_to_json(energy_data: Iterable[EnergyData]) -> list[dict[str, Any]]:
    """One {"sensorId", "data"} entry per meter, in first-seen order."""
    return [
        {"sensorId": meter_id, "data": _data_points(readings)}
        for meter_id, readings in _group_by_meter(energy_data).items()
    ]


def energy_data_to_csv(energy_data: Iterable[EnergyData]) -> str:
    """
    Render aggregates as a 'timestamp,value' CSV.

    Rows are grouped by meter (first-seen order) and sorted by timestamp within
    each meter.
    """
    rows = []
    for readings in _group_by_meter(energy_data).values():
        for reading in sorted(readings, key=lambda r: r.timestamp):
            rows.append({"timestamp": reading.timestamp.isoformat(), "value": reading.absolute_value})

    df = pd.DataFrame(rows, columns=["timestamp", "value"])
    return df.to_csv(index=False)


def time_series_to_json(series_map: Mapping[str, TimeSeries]) -> list[dict[str, Any]]:
    return [{"sensorId": meter_id, "data": _data_points(series)} for meter_id, series in series_map.items()]


def grouped_to_json(grouping: Mapping[Any, list[Reading]]) -> dict[str, list[dict[str, Any]]]:
    """
    Render a production/consumption/net grouping.

    Accepts both the string-keyed and the MeterType-keyed grouping; empty
    groups are left out.
    """
    result = {}
    for key, readings in grouping.items():
        if not readings:
            continue
        name = key if isinstance(key, str) else GROUP_NAMES[key]
        result[name] = _data_points(readings)
    return result


def sensor_data_to_json(sensor_data: Iterable[SensorData]) -> list[dict[str, Any]]:
    return [item.to_dict() for item in sensor_data]


def time_series_to_sensor_frame(series_map: Mapping[str, TimeSeries]) -> pd.DataFrame:
    """
    Flatten per-meter series into data lake rows.

    Columns: sensorId, ts, val, unit, its. Both timestamp columns carry the
    reading timestamp formatted as %Y-%m-%d %H:%M:%S; val is the absolute value.
    """
    frames = []
    for meter_id, series in series_map.items():
        if not len(series):
            continue

        df = series.to_frame().reset_index()
        output_df = df[["timestamp", "absolute_value", "unit"]].copy()
        output_df["sensorId"] = meter_id
        output_df["unit"] = output_df["unit"].fillna("").str.lower()
        output_df = output_df.rename(columns={"timestamp": "ts", "absolute_value": "val"})
        output_df["its"] = output_df["ts"]
        output_df = output_df[SENSOR_FRAME_COLUMNS]

        output_df["ts"] = output_df["ts"].dt.strftime(SENSOR_ROW_TIMESTAMP_FORMAT)
        output_df["its"] = output_df["its"].dt.strftime(SENSOR_ROW_TIMESTAMP_FORMAT)
        frames.append(output_df)

    if not frames:
        return pd.DataFrame(columns=SENSOR_FRAME_COLUMNS)
    return pd.concat(frames, ignore_index=True)
