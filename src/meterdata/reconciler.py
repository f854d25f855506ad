"""
Merge ESL and SDAT exports into per-meter time series.

Entry points:
- parse_xml: one document -> legacy EnergyData aggregates
- parse_xml_to_time_series: one document -> per-meter TimeSeries
- process_multiple_files / Reconciler: ordered batch -> merged TimeSeries
  per meter with relative values filled in

Within a batch a later file's reading replaces an earlier one at the same
meter and timestamp. A file that fails to parse is logged and skipped, and a
meter whose relative values fail is logged and left as is.
"""

from collections.abc import Iterable

from aws_lambda_powertools import Logger

from meterdata.common import LARGE_DELTA_THRESHOLD
from meterdata.esl_parser import parse_esl_energy_data, parse_esl_time_series
from meterdata.format_detector import XmlFormat, detect_format
from meterdata.models import EnergyData, MeterType, Reading, TimeSeries
from meterdata.sdat_parser import parse_sdat_energy_data, parse_sdat_time_series
from meterdata.xml_utils import XmlSource, load_document

logger = Logger(service="meter-data", child=True)


def parse_xml(source: XmlSource) -> list[EnergyData]:
    """
    Parse one ESL or SDAT document into EnergyData aggregates.

    Raises:
        InvalidDocumentError: If the source is not well-formed XML
        UnknownFormatError: If the root element matches neither dialect
    """
    root = load_document(source)
    if detect_format(root) is XmlFormat.ESL:
        return parse_esl_energy_data(root)
    return parse_sdat_energy_data(root)


def parse_xml_to_time_series(source: XmlSource) -> dict[str, TimeSeries]:
    """
    Parse one ESL or SDAT document into per-meter time series.

    Relative values are left at 0; they are only computed across a batch.

    Raises:
        InvalidDocumentError: If the source is not well-formed XML
        UnknownFormatError: If the root element matches neither dialect
    """
    root = load_document(source)
    if detect_format(root) is XmlFormat.ESL:
        return parse_esl_time_series(root)
    return parse_sdat_time_series(root)


def _check_delta(meter_id: str, meter_type: MeterType, reading: Reading, delta: float) -> None:
    """Log deltas that look implausible for the register type."""
    if delta < 0 and meter_type is MeterType.CONSUMPTION:
        logger.warning(
            "Negative relative value for consumption",
            extra={"meter_id": meter_id, "timestamp": str(reading.timestamp), "relative_value": delta},
        )
    elif delta > 0 and meter_type is MeterType.PRODUCTION:
        logger.warning(
            "Positive relative value for production",
            extra={"meter_id": meter_id, "timestamp": str(reading.timestamp), "relative_value": delta},
        )

    if abs(delta) > LARGE_DELTA_THRESHOLD:
        logger.warning(
            "Large relative value change",
            extra={"meter_id": meter_id, "timestamp": str(reading.timestamp), "relative_value": delta},
        )


def calculate_relative_values(series: TimeSeries) -> None:
    """
    Fill in relative_value for every reading of a meter, in place.

    Production and consumption are handled as separate chronological
    sequences: each reading's delta is taken against the previous reading of
    the same type. The first reading of each type keeps relative_value 0.
    """
    for meter_type in MeterType:
        typed = series.readings_of_type(meter_type)
        if len(typed) < 2:
            logger.debug(
                "Not enough measurements for relative values",
                extra={"meter_id": series.meter_id, "type": meter_type.value, "count": len(typed)},
            )
            continue

        for previous, current in zip(typed, typed[1:]):
            delta = current.absolute_value - previous.absolute_value
            _check_delta(series.meter_id, meter_type, current, delta)
            current.relative_value = delta

        logger.debug(
            "Calculated relative values",
            extra={"meter_id": series.meter_id, "type": meter_type.value, "updated": len(typed) - 1},
        )


class Reconciler:
    """
    Merges an ordered batch of documents into one TimeSeries per meter.

    Each instance owns its series; independent batches must use separate
    instances.
    """

    def __init__(self) -> None:
        self.series: dict[str, TimeSeries] = {}
        self.failed_sources: list[int] = []

    def merge(self, sources: Iterable[XmlSource]) -> dict[str, TimeSeries]:
        """
        Parse each source in order and merge its readings into the shared series.

        Returns:
            Dict mapping meter id to merged TimeSeries
        """
        sources = list(sources)
        total = len(sources)

        for index, source in enumerate(sources):
            try:
                file_result = parse_xml_to_time_series(source)
            except Exception as e:
                logger.error(
                    "Error processing file",
                    exc_info=True,
                    extra={"file_index": index + 1, "files_total": total, "error": str(e)},
                )
                self.failed_sources.append(index)
                continue

            for meter_id, file_series in file_result.items():
                combined = self.series.get(meter_id)
                if combined is None:
                    combined = self.series[meter_id] = TimeSeries(meter_id)

                before = len(combined)
                for reading in file_series:
                    combined.add(reading)

                logger.debug(
                    "Merged measurements",
                    extra={"meter_id": meter_id, "added": len(combined) - before, "file_index": index + 1},
                )

        logger.info(
            "Finished merging files",
            extra={"files_total": total, "files_failed": len(self.failed_sources), "meters": len(self.series)},
        )
        return self.series

    def calculate_relative_values(self) -> dict[str, TimeSeries]:
        for meter_id, series in self.series.items():
            try:
                calculate_relative_values(series)
            except Exception as e:
                logger.error(
                    "Error calculating relative values", exc_info=True, extra={"meter_id": meter_id, "error": str(e)}
                )
        return self.series

    def process(self, sources: Iterable[XmlSource]) -> dict[str, TimeSeries]:
        self.merge(sources)
        return self.calculate_relative_values()


def process_multiple_files(sources: Iterable[XmlSource]) -> dict[str, TimeSeries]:
    """
    Merge an ordered batch of ESL/SDAT documents and compute relative values.

    Never raises for a bad document; failed files are logged and skipped.

    Returns:
        Dict mapping meter id to merged TimeSeries
    """
    return Reconciler().process(sources)
