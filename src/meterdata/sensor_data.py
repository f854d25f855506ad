"""
Sensor data assembler: ESL and SDAT exports combined into absolute meter
values per sensor, keyed by UTC epoch seconds.

Sensors:
- ID742: consumption (Bezug), combined high + low tariff
- ID735: production (Einspeisung), combined high + low tariff
- the raw device meter (DEVICE_METER_ID): every ESL row of that meter

ESL documents are applied first and provide absolute anchor values. SDAT
documents are applied second: their interval volumes are accumulated on top of
the day's base value, and any value already known at an observation's
timestamp wins and re-anchors the running total.
"""

import xml.etree.ElementTree as ET
from collections.abc import Iterable
from datetime import datetime, time, timezone

from aws_lambda_powertools import Logger

from meterdata.common import (
    CONSUMPTION_SENSOR_ID,
    DEVICE_METER_ID,
    OBIS_CONSUMPTION_HIGH,
    OBIS_CONSUMPTION_LOW,
    OBIS_PRODUCTION_HIGH,
    OBIS_PRODUCTION_LOW,
    PRODUCTION_SENSOR_ID,
)
from meterdata.esl_parser import TariffValues, combine_tariffs, iter_time_periods
from meterdata.format_detector import XmlFormat, detect_format
from meterdata.models import DataPoint, Reading, SensorData, TimeSeries
from meterdata.sdat_parser import SdatBlock, extract_document_meter_id, iter_metering_blocks
from meterdata.xml_utils import XmlSource, load_document

logger = Logger(service="meter-data", child=True)

SENSOR_IDS = (CONSUMPTION_SENSOR_ID, PRODUCTION_SENSOR_ID)


def to_epoch_seconds(timestamp: datetime) -> int:
    """Epoch seconds of a naive wall-clock timestamp read as UTC."""
    return int(timestamp.replace(tzinfo=timezone.utc).timestamp())


class SensorDataAssembler:
    """
    Accumulates absolute values per sensor from a batch of documents.

    Values are kept in TimeSeries stores (one per sensor) so the SDAT pass can
    look up the latest value at or before a day's midnight.
    """

    def __init__(self, device_meter_id: str = DEVICE_METER_ID) -> None:
        self.device_meter_id = device_meter_id
        self.values: dict[str, TimeSeries] = {
            sensor_id: TimeSeries(sensor_id) for sensor_id in (*SENSOR_IDS, device_meter_id)
        }

    def _put(self, sensor_id: str, timestamp: datetime, value: float) -> None:
        self.values[sensor_id].add(Reading(timestamp=timestamp, absolute_value=value))

    def add_esl_document(self, root: ET.Element) -> None:
        """Apply the combined tariff values and device meter rows of one ESL document."""
        # obis -> timestamp -> value, across all meters of this document
        tariffs: dict[str, TariffValues] = {
            OBIS_CONSUMPTION_HIGH: {},
            OBIS_CONSUMPTION_LOW: {},
            OBIS_PRODUCTION_HIGH: {},
            OBIS_PRODUCTION_LOW: {},
        }

        for meter_id, _period_end, rows in iter_time_periods(root):
            is_device_meter = meter_id == self.device_meter_id
            for row in rows:
                if row.obis in tariffs:
                    tariffs[row.obis][row.timestamp] = row.value
                if is_device_meter:
                    self._put(self.device_meter_id, row.timestamp, row.value)

        consumption = combine_tariffs(tariffs[OBIS_CONSUMPTION_HIGH], tariffs[OBIS_CONSUMPTION_LOW])
        production = combine_tariffs(tariffs[OBIS_PRODUCTION_HIGH], tariffs[OBIS_PRODUCTION_LOW])
        for ts, value in consumption.items():
            self._put(CONSUMPTION_SENSOR_ID, ts, value)
        for ts, value in production.items():
            self._put(PRODUCTION_SENSOR_ID, ts, value)

        logger.debug(
            "Applied ESL document",
            extra={"consumption_values": len(consumption), "production_values": len(production)},
        )

    def _resolve_sensor_id(self, document_sensor_id: str, block: SdatBlock) -> str | None:
        if document_sensor_id:
            return document_sensor_id
        if block.is_production:
            return PRODUCTION_SENSOR_ID
        if block.is_consumption:
            return CONSUMPTION_SENSOR_ID
        return None

    def _base_value(self, store: TimeSeries, day_start: datetime) -> float:
        """Latest value at or before midnight, else the same day's earliest value, else 0."""
        base = store.floor(day_start)
        if base is not None:
            return base.absolute_value

        earliest = store.ceiling(day_start)
        if earliest is not None and earliest.timestamp.date() == day_start.date():
            return earliest.absolute_value

        logger.warning(
            "No base value found, using 0", extra={"sensor_id": store.meter_id, "day": str(day_start.date())}
        )
        return 0.0

    def add_sdat_document(self, root: ET.Element) -> None:
        """Accumulate the interval volumes of one SDAT document onto the known absolute values."""
        document_sensor_id = extract_document_meter_id(root)
        if document_sensor_id not in SENSOR_IDS:
            if document_sensor_id:
                logger.warning(
                    "DocumentID sensor is not a known sensor, using the metering point type",
                    extra={"sensor_id": document_sensor_id},
                )
            document_sensor_id = ""

        for index, block in enumerate(iter_metering_blocks(root)):
            sensor_id = self._resolve_sensor_id(document_sensor_id, block)
            if sensor_id is None:
                logger.warning("Could not determine sensor for metering data, skipping", extra={"block": index})
                continue

            store = self.values[sensor_id]
            cumulative = self._base_value(store, datetime.combine(block.start.date(), time.min))

            # sequence -> reading, the last observation wins for a repeated sequence
            by_sequence = {int(r.identifier): r for r in block.readings}
            for sequence in sorted(by_sequence):
                reading = by_sequence[sequence]
                cumulative += reading.absolute_value

                existing = store.get(reading.timestamp)
                if existing is None:
                    self._put(sensor_id, reading.timestamp, cumulative)
                else:
                    cumulative = existing.absolute_value

    def assemble(self) -> list[SensorData]:
        """Sensor values as epoch-keyed SensorData, skipping sensors without values."""
        result = []
        for sensor_id, store in self.values.items():
            if not len(store):
                logger.warning("No data points found for sensor", extra={"sensor_id": sensor_id})
                continue

            data = [DataPoint(ts=str(to_epoch_seconds(r.timestamp)), value=r.absolute_value) for r in store]
            result.append(SensorData(sensor_id=sensor_id, data=data))
            logger.info("Created sensor data", extra={"sensor_id": sensor_id, "data_points": len(data)})
        return result


def assemble_sensor_data(sources: Iterable[XmlSource], device_meter_id: str = DEVICE_METER_ID) -> list[SensorData]:
    """
    Build the epoch-keyed sensor view for a batch of ESL and SDAT documents.

    Every ESL document is applied before any SDAT document regardless of batch
    order. Unreadable or unrecognized documents are logged and skipped.

    Returns:
        SensorData for ID742, ID735 and the device meter, in that order,
        omitting sensors without values
    """
    assembler = SensorDataAssembler(device_meter_id)
    documents: list[tuple[int, XmlFormat, ET.Element]] = []

    for index, source in enumerate(sources):
        try:
            root = load_document(source)
            documents.append((index, detect_format(root), root))
        except Exception as e:
            logger.error(
                "Error reading file for sensor data", exc_info=True, extra={"file_index": index + 1, "error": str(e)}
            )

    passes = ((XmlFormat.ESL, assembler.add_esl_document), (XmlFormat.SDAT, assembler.add_sdat_document))
    for xml_format, apply in passes:
        for index, document_format, root in documents:
            if document_format is not xml_format:
                continue
            try:
                apply(root)
            except Exception as e:
                logger.error(
                    "Error applying file to sensor data",
                    exc_info=True,
                    extra={"file_index": index + 1, "format": xml_format.value, "error": str(e)},
                )

        logger.info(
            "Applied documents",
            extra={"format": xml_format.value, "sensor_values": {s: len(v) for s, v in assembler.values.items()}},
        )

    return assembler.assemble()
