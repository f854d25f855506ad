"""
Parser for SDAT interval-metering exports (ValidatedMeteredData).

Document structure:
- Root element: rsm:ValidatedMeteredData_12 (prefix and version vary)
- DocumentID in the header, e.g. eslevu180263_BR2294_ID735
- MeteringData blocks, each with:
  - ProductionMeteringPoint or ConsumptionMeteringPoint (VSENationalID)
  - Interval with StartDateTime and EndDateTime
  - Resolution with Resolution (minutes) and Unit
  - Product with MeasureUnit
  - Observation elements with Position/Sequence (1-based) and Volume

Observation timestamp = StartDateTime + (Sequence - 1) * Resolution minutes.
"""

import xml.etree.ElementTree as ET
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from aws_lambda_powertools import Logger

from meterdata.common import DOCUMENT_ID_MARKER
from meterdata.models import EnergyData, MeterType, Reading, TimeSeries
from meterdata.xml_utils import find_first, iter_descendants, parse_timestamp, text_of

logger = Logger(service="meter-data", child=True)


@dataclass
class SdatBlock:
    """One valid MeteringData block with its parsed observations."""

    meter_id: str
    type: MeterType
    start: datetime
    end: datetime | None
    resolution: int
    unit: str
    is_production: bool = False
    is_consumption: bool = False
    readings: list[Reading] = field(default_factory=list)


def extract_document_meter_id(root: ET.Element) -> str:
    """
    Take the meter id from the document's DocumentID.

    Everything after the last '_ID' is used, keeping the 'ID' itself
    (eslevu180263_BR2294_ID735 -> ID735). Returns '' when there is no
    DocumentID or it carries no '_ID' marker.
    """
    document_id = text_of(root, "DocumentID").strip()
    if DOCUMENT_ID_MARKER not in document_id:
        return ""
    return document_id[document_id.rfind(DOCUMENT_ID_MARKER) + 1 :]


def _parse_observations(
    block: ET.Element, start: datetime, resolution: int, meter_type: MeterType, unit: str
) -> list[Reading]:
    readings = []

    for index, observation in enumerate(iter_descendants(block, "Observation")):
        position = find_first(observation, "Position")
        if position is None:
            logger.warning("No position element for observation, skipping", extra={"observation": index})
            continue

        sequence_str = text_of(position, "Sequence")
        try:
            sequence = int(sequence_str)
        except ValueError:
            logger.warning("Invalid sequence format, skipping observation", extra={"sequence": sequence_str})
            continue

        volume_str = text_of(observation, "Volume")
        try:
            volume = float(volume_str)
        except ValueError:
            logger.warning("Invalid volume format, skipping observation", extra={"volume": volume_str})
            continue

        readings.append(
            Reading(
                timestamp=start + timedelta(minutes=(sequence - 1) * resolution),
                absolute_value=volume,
                unit=unit,
                type=meter_type,
                identifier=str(sequence),
            )
        )

    return readings


def iter_metering_blocks(root: ET.Element) -> Iterator[SdatBlock]:
    """
    Walk an SDAT document yielding one SdatBlock per usable MeteringData.

    Blocks missing Interval or Resolution, or with an unparseable start time
    or resolution, are skipped. Individual bad observations are dropped
    without affecting the rest of their block.
    """
    document_meter_id = extract_document_meter_id(root)
    if document_meter_id:
        logger.debug("Using meter id from DocumentID", extra={"meter_id": document_meter_id})

    for index, block in enumerate(iter_descendants(root, "MeteringData")):
        production_point = find_first(block, "ProductionMeteringPoint")
        consumption_point = find_first(block, "ConsumptionMeteringPoint")
        is_production = production_point is not None
        is_consumption = consumption_point is not None

        # TODO: confirm with the product owner whether blocks without a metering point should be rejected
        if not is_production and not is_consumption:
            logger.warning("No metering point in block, defaulting to consumption", extra={"block": index})
        meter_type = MeterType.PRODUCTION if is_production else MeterType.CONSUMPTION

        meter_id = document_meter_id
        if not meter_id:
            metering_point = production_point if is_production else consumption_point
            meter_id = text_of(metering_point, "VSENationalID").strip()

        interval = find_first(block, "Interval")
        if interval is None:
            logger.warning("No interval element, skipping block", extra={"block": index, "meter_id": meter_id})
            continue

        start_str = text_of(interval, "StartDateTime")
        try:
            start = parse_timestamp(start_str)
        except ValueError:
            logger.warning("Invalid start time, skipping block", extra={"block": index, "start": start_str})
            continue

        try:
            end = parse_timestamp(text_of(interval, "EndDateTime"))
        except ValueError:
            end = None

        resolution_element = find_first(block, "Resolution")
        if resolution_element is None:
            logger.warning("No resolution element, skipping block", extra={"block": index, "meter_id": meter_id})
            continue

        resolution_str = text_of(resolution_element, "Resolution")
        try:
            resolution = int(resolution_str)
        except ValueError:
            logger.warning(
                "Invalid resolution format, skipping block", extra={"block": index, "resolution": resolution_str}
            )
            continue

        unit = text_of(find_first(block, "Product"), "MeasureUnit").strip()

        yield SdatBlock(
            meter_id=meter_id,
            type=meter_type,
            start=start,
            end=end,
            resolution=resolution,
            unit=unit,
            is_production=is_production,
            is_consumption=is_consumption,
            readings=_parse_observations(block, start, resolution, meter_type, unit),
        )


def parse_sdat_energy_data(root: ET.Element) -> list[EnergyData]:
    """
    Parse an SDAT document into one EnergyData per MeteringData block.

    The aggregate timestamp is the interval end, or the start when the end is
    missing. Blocks without valid observations are not emitted.
    """
    result: list[EnergyData] = []

    for block in iter_metering_blocks(root):
        if not block.readings:
            logger.warning(
                "No valid measurements in interval", extra={"meter_id": block.meter_id, "start": str(block.start)}
            )
            continue

        result.append(EnergyData(meter_id=block.meter_id, timestamp=block.end or block.start, readings=block.readings))

    logger.info("Parsed SDAT document", extra={"energy_data_count": len(result)})
    return result


def parse_sdat_time_series(root: ET.Element) -> dict[str, TimeSeries]:
    """Parse an SDAT document into per-meter time series."""
    result: dict[str, TimeSeries] = {}

    for block in iter_metering_blocks(root):
        if not block.readings:
            continue

        series = result.get(block.meter_id)
        if series is None:
            series = result[block.meter_id] = TimeSeries(block.meter_id)
        for reading in block.readings:
            series.add(
                Reading(
                    timestamp=reading.timestamp,
                    absolute_value=reading.absolute_value,
                    unit=reading.unit,
                    type=reading.type,
                )
            )

    logger.info("Parsed SDAT document to time series", extra={"meters": len(result)})
    return result
