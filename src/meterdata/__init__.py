"""
Meter data ingestion core.

This package parses ESL billing exports and SDAT interval exports, merges
them into per-meter time series and derives relative, net and sensor views
used by the file processing pipeline.
"""

from meterdata.common import (
    CONSUMPTION_SENSOR_ID,
    DEVICE_METER_ID,
    OUTPUT_BUCKET,
    OUTPUT_PREFIX,
    PARSE_ERR_DIR,
    PROCESSED_DIR,
    PRODUCTION_SENSOR_ID,
)
from meterdata.errors import InvalidDocumentError, MeterDataError, UnknownFormatError
from meterdata.models import DataPoint, EnergyData, MeterType, Reading, SensorData, TimeSeries
from meterdata.net_values import derive_net_readings, group_by_type, group_energy_data_by_type
from meterdata.reconciler import Reconciler, parse_xml, parse_xml_to_time_series, process_multiple_files
from meterdata.sensor_data import assemble_sensor_data

__version__ = "0.1.0"

__all__ = [
    "CONSUMPTION_SENSOR_ID",
    "DEVICE_METER_ID",
    "OUTPUT_BUCKET",
    "OUTPUT_PREFIX",
    "PARSE_ERR_DIR",
    "PROCESSED_DIR",
    "PRODUCTION_SENSOR_ID",
    "DataPoint",
    "EnergyData",
    "InvalidDocumentError",
    "MeterDataError",
    "MeterType",
    "Reading",
    "Reconciler",
    "SensorData",
    "TimeSeries",
    "UnknownFormatError",
    "assemble_sensor_data",
    "derive_net_readings",
    "group_by_type",
    "group_energy_data_by_type",
    "parse_xml",
    "parse_xml_to_time_series",
    "process_multiple_files",
]
