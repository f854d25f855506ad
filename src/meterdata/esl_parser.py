"""
Parser for ESL billing-register exports (EdmRegisterWertExport_*.xml).

Document structure:
- Root element: ESLBillingData
- Meter elements, attribute factoryNo = meter id
- TimePeriod elements per Meter, attribute end = default timestamp of its rows
- ValueRow elements per TimePeriod, attributes obis, value and an optional
  valueTimeStamp overriding the period end

Important OBIS codes:
- 1-1:1.8.1: Bezug Hochtarif (consumption, high tariff)
- 1-1:1.8.2: Bezug Niedertarif (consumption, low tariff)
- 1-1:2.8.1: Einspeisung Hochtarif (production, high tariff)
- 1-1:2.8.2: Einspeisung Niedertarif (production, low tariff)

The two tariff components of each quantity are summed and reported under the
synthetic meters ID742 (consumption) and ID735 (production).
"""

import xml.etree.ElementTree as ET
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime

from aws_lambda_powertools import Logger

from meterdata.common import (
    CONSUMPTION_SENSOR_ID,
    ESL_UNIT,
    OBIS_CONSUMPTION_HIGH,
    OBIS_CONSUMPTION_LOW,
    OBIS_CONSUMPTION_PREFIX,
    OBIS_PRODUCTION_HIGH,
    OBIS_PRODUCTION_LOW,
    OBIS_PRODUCTION_PREFIX,
    PRODUCTION_SENSOR_ID,
    TARIFF_OBIS_CODES,
)
from meterdata.models import EnergyData, MeterType, Reading, TimeSeries
from meterdata.xml_utils import iter_descendants, parse_timestamp

logger = Logger(service="meter-data", child=True)

# Type alias for a tariff component: timestamp -> register value
TariffValues = dict[datetime, float]


@dataclass
class EslValueRow:
    meter_id: str
    obis: str
    value: float
    timestamp: datetime


def determine_type(obis: str) -> MeterType:
    """
    Classify an OBIS code as production or consumption.

    Exact tariff codes are checked first, then the 1-1:1 (Bezug) and
    1-1:2 (Einspeisung) prefixes. Anything else counts as consumption.
    """
    if obis in (OBIS_CONSUMPTION_HIGH, OBIS_CONSUMPTION_LOW):
        return MeterType.CONSUMPTION
    if obis in (OBIS_PRODUCTION_HIGH, OBIS_PRODUCTION_LOW):
        return MeterType.PRODUCTION

    if obis.startswith(OBIS_CONSUMPTION_PREFIX):
        return MeterType.CONSUMPTION
    if obis.startswith(OBIS_PRODUCTION_PREFIX):
        return MeterType.PRODUCTION

    logger.warning("Unknown OBIS code pattern, defaulting to consumption", extra={"obis": obis})
    return MeterType.CONSUMPTION


def _parse_value_row(meter_id: str, period_end: datetime, element: ET.Element) -> EslValueRow | None:
    obis = element.get("obis", "")
    value_str = element.get("value", "")

    try:
        value = float(value_str)
    except ValueError:
        logger.warning(
            "Invalid value format, skipping row", extra={"meter_id": meter_id, "obis": obis, "value": value_str}
        )
        return None

    timestamp = period_end
    value_time_str = element.get("valueTimeStamp")
    if value_time_str is not None:
        try:
            timestamp = parse_timestamp(value_time_str)
        except ValueError:
            logger.warning(
                "Invalid valueTimeStamp, skipping row",
                extra={"meter_id": meter_id, "obis": obis, "value_time_stamp": value_time_str},
            )
            return None

    return EslValueRow(meter_id=meter_id, obis=obis, value=value, timestamp=timestamp)


def iter_time_periods(root: ET.Element) -> Iterator[tuple[str, datetime, list[EslValueRow]]]:
    """
    Walk an ESL document yielding (meter_id, period_end, rows) per TimePeriod.

    Rows with a non-numeric value are dropped individually; a period whose end
    cannot be parsed is dropped as a whole.
    """
    for meter in iter_descendants(root, "Meter"):
        meter_id = meter.get("factoryNo", "")
        logger.debug("Processing meter", extra={"meter_id": meter_id})

        for period in iter_descendants(meter, "TimePeriod"):
            end_str = period.get("end", "")
            try:
                period_end = parse_timestamp(end_str)
            except ValueError:
                logger.warning("Invalid time period end, skipping period", extra={"meter_id": meter_id, "end": end_str})
                continue

            rows = []
            for value_row in iter_descendants(period, "ValueRow"):
                row = _parse_value_row(meter_id, period_end, value_row)
                if row is not None:
                    rows.append(row)

            yield meter_id, period_end, rows


def combine_tariffs(high: TariffValues, low: TariffValues) -> TariffValues:
    """
    Sum the high and low tariff components of one quantity per timestamp.

    A missing low component counts as 0. Timestamps that only carry a low
    component are kept with that value alone.
    """
    combined = {ts: value + low.get(ts, 0.0) for ts, value in high.items()}
    for ts, value in low.items():
        if ts not in high:
            combined[ts] = value
    return combined


def parse_esl_energy_data(root: ET.Element) -> list[EnergyData]:
    """
    Parse an ESL document into one EnergyData per TimePeriod.

    Every valid ValueRow becomes a Reading identified by its OBIS code; no
    tariff combination happens in this view.
    """
    result: list[EnergyData] = []

    for meter_id, period_end, rows in iter_time_periods(root):
        if not rows:
            logger.warning("No valid measurements in time period", extra={"meter_id": meter_id, "end": str(period_end)})
            continue

        energy_data = EnergyData(meter_id=meter_id, timestamp=period_end)
        for row in rows:
            energy_data.add_reading(
                Reading(
                    timestamp=row.timestamp,
                    absolute_value=row.value,
                    unit=ESL_UNIT,
                    type=determine_type(row.obis),
                    identifier=row.obis,
                )
            )
        result.append(energy_data)

    logger.info("Parsed ESL document", extra={"energy_data_count": len(result)})
    return result


def _add_combined(
    result: dict[str, TimeSeries],
    high_by_meter: dict[str, TariffValues],
    low_by_meter: dict[str, TariffValues],
    target_meter_id: str,
    meter_type: MeterType,
) -> None:
    source_meters = list(high_by_meter) + [m for m in low_by_meter if m not in high_by_meter]
    if not source_meters:
        return

    series = result.get(target_meter_id)
    if series is None:
        series = result[target_meter_id] = TimeSeries(target_meter_id)

    for source_meter_id in source_meters:
        combined = combine_tariffs(high_by_meter.get(source_meter_id, {}), low_by_meter.get(source_meter_id, {}))
        for ts, value in combined.items():
            series.add(Reading(timestamp=ts, absolute_value=value, unit=ESL_UNIT, type=meter_type))


def parse_esl_time_series(root: ET.Element) -> dict[str, TimeSeries]:
    """
    Parse an ESL document into per-meter time series.

    The four tariff OBIS codes are combined per source meter and timestamp and
    stored under ID742 (consumption) and ID735 (production). Every other OBIS
    code is stored under the meter's own factoryNo.

    Returns:
        Dict mapping meter id to TimeSeries
    """
    result: dict[str, TimeSeries] = {}
    # obis -> source meter -> timestamp -> value, scoped to this document
    tariffs: dict[str, dict[str, TariffValues]] = {obis: {} for obis in TARIFF_OBIS_CODES}

    for meter_id, _period_end, rows in iter_time_periods(root):
        for row in rows:
            if row.obis in TARIFF_OBIS_CODES:
                tariffs[row.obis].setdefault(meter_id, {})[row.timestamp] = row.value
                continue

            series = result.get(meter_id)
            if series is None:
                series = result[meter_id] = TimeSeries(meter_id)
            series.add(
                Reading(timestamp=row.timestamp, absolute_value=row.value, unit=ESL_UNIT, type=determine_type(row.obis))
            )

    _add_combined(
        result,
        tariffs[OBIS_CONSUMPTION_HIGH],
        tariffs[OBIS_CONSUMPTION_LOW],
        CONSUMPTION_SENSOR_ID,
        MeterType.CONSUMPTION,
    )
    _add_combined(
        result,
        tariffs[OBIS_PRODUCTION_HIGH],
        tariffs[OBIS_PRODUCTION_LOW],
        PRODUCTION_SENSOR_ID,
        MeterType.PRODUCTION,
    )

    logger.info("Parsed ESL document to time series", extra={"meters": len(result)})
    return result
