# S3, storage and parsing constants for the meter data ingester

import os

# S3 layout
INPUT_BUCKET = os.environ.get("METERDATA_INPUT_BUCKET", "meter-data-ingester")
OUTPUT_BUCKET = os.environ.get("METERDATA_OUTPUT_BUCKET", "meter-data-lake")
OUTPUT_PREFIX = os.environ.get("METERDATA_OUTPUT_PREFIX", "sensorDataFiles")
INCOMING_DIR = os.environ.get("METERDATA_INCOMING_DIR", "incoming/")
PROCESSED_DIR = os.environ.get("METERDATA_PROCESSED_DIR", "processed/")
PARSE_ERR_DIR = os.environ.get("METERDATA_PARSE_ERR_DIR", "parseErr/")

# Local flat-file storage
STORAGE_DIR = os.environ.get("METERDATA_STORAGE_DIR", "data")

# Raw device meter whose ESL rows are passed through unfiltered in the sensor data view
DEVICE_METER_ID = os.environ.get("METERDATA_DEVICE_METER_ID", "38157930")

# Deltas above this magnitude are logged as suspicious
LARGE_DELTA_THRESHOLD = float(os.environ.get("METERDATA_LARGE_DELTA_THRESHOLD", "1000"))

# Dialect root elements
ESL_ROOT_TAG = "ESLBillingData"
SDAT_ROOT_MARKER = "ValidatedMeteredData"

# ESL rows carry no unit
ESL_UNIT = "KWH"

# Tariff components (Hochtarif / Niedertarif)
OBIS_CONSUMPTION_HIGH = "1-1:1.8.1"
OBIS_CONSUMPTION_LOW = "1-1:1.8.2"
OBIS_PRODUCTION_HIGH = "1-1:2.8.1"
OBIS_PRODUCTION_LOW = "1-1:2.8.2"

TARIFF_OBIS_CODES = frozenset(
    [OBIS_CONSUMPTION_HIGH, OBIS_CONSUMPTION_LOW, OBIS_PRODUCTION_HIGH, OBIS_PRODUCTION_LOW]
)

OBIS_CONSUMPTION_PREFIX = "1-1:1"
OBIS_PRODUCTION_PREFIX = "1-1:2"

# Synthetic meters the tariff components are combined under
CONSUMPTION_SENSOR_ID = "ID742"
PRODUCTION_SENSOR_ID = "ID735"

# SDAT DocumentID marker, e.g. eslevu180263_BR2294_ID735
DOCUMENT_ID_MARKER = "_ID"

# Timestamp format used for file names and data lake rows
FILENAME_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
SENSOR_ROW_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
