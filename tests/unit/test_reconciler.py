"""Tests for merging batches and computing relative values."""

import io
import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from conftest import build_esl_xml, build_sdat_xml

from meterdata.errors import InvalidDocumentError, UnknownFormatError
from meterdata.models import MeterType, Reading, TimeSeries
from meterdata.reconciler import (
    Reconciler,
    calculate_relative_values,
    parse_xml,
    parse_xml_to_time_series,
    process_multiple_files,
)

T1 = datetime(2023, 1, 1, 0, 0)
T2 = datetime(2023, 1, 1, 0, 15)
T3 = datetime(2023, 1, 1, 0, 30)
T4 = datetime(2023, 1, 1, 0, 45)


def _esl(meter_id: str, end: str, obis: str, value: float) -> bytes:
    return build_esl_xml([(meter_id, end, [{"obis": obis, "value": str(value)}])])


class TestSingleDocument:
    """Tests for parse_xml and parse_xml_to_time_series."""

    def test_parse_xml_esl(self, esl_sample_file: str) -> None:
        result = parse_xml(esl_sample_file)
        assert len(result) == 2

    def test_parse_xml_sdat(self, sdat_consumption_file: str) -> None:
        result = parse_xml(sdat_consumption_file)
        assert [e.meter_id for e in result] == ["ID742"]

    def test_parse_xml_to_time_series_dispatches(self, esl_sample_file: str, sdat_production_file: str) -> None:
        assert "ID742" in parse_xml_to_time_series(esl_sample_file)
        assert "CH1010301234500000000000000002" in parse_xml_to_time_series(sdat_production_file)

    def test_parse_xml_accepts_file_object(self, esl_sample_file: str) -> None:
        with Path(esl_sample_file).open("rb") as f:
            assert len(parse_xml(f)) == 2

    def test_unknown_format_raises(self, unknown_format_file: str) -> None:
        with pytest.raises(UnknownFormatError):
            parse_xml_to_time_series(unknown_format_file)

    def test_malformed_raises(self, malformed_file: str) -> None:
        with pytest.raises(InvalidDocumentError):
            parse_xml(malformed_file)


class TestCalculateRelativeValues:
    """Tests for the per-type delta computation."""

    def test_consumption_deltas_ignore_interleaved_production(self) -> None:
        series = TimeSeries("M1")
        series.add(Reading(T1, 100.0, type=MeterType.CONSUMPTION))
        series.add(Reading(T2, 50.0, type=MeterType.PRODUCTION))
        series.add(Reading(T3, 110.0, type=MeterType.CONSUMPTION))
        series.add(Reading(T4, 125.0, type=MeterType.CONSUMPTION))

        calculate_relative_values(series)

        consumption = series.readings_of_type(MeterType.CONSUMPTION)
        assert [r.relative_value for r in consumption] == [0.0, 10.0, 15.0]
        assert series.get(T2).relative_value == 0.0

    def test_production_deltas(self) -> None:
        series = TimeSeries("M1")
        series.add(Reading(T1, 10.0, type=MeterType.PRODUCTION))
        series.add(Reading(T2, 12.5, type=MeterType.PRODUCTION))

        with patch("meterdata.reconciler.logger") as mock_logger:
            calculate_relative_values(series)

            assert series.get(T2).relative_value == 2.5
            warnings = [c.args[0] for c in mock_logger.warning.call_args_list]
            assert "Positive relative value for production" in warnings

    def test_negative_consumption_delta_kept_and_flagged(self) -> None:
        series = TimeSeries("M1")
        series.add(Reading(T1, 100.0, type=MeterType.CONSUMPTION))
        series.add(Reading(T2, 90.0, type=MeterType.CONSUMPTION))

        with patch("meterdata.reconciler.logger") as mock_logger:
            calculate_relative_values(series)

            assert series.get(T2).relative_value == -10.0
            warnings = [c.args[0] for c in mock_logger.warning.call_args_list]
            assert warnings == ["Negative relative value for consumption"]

    def test_large_delta_flagged(self) -> None:
        series = TimeSeries("M1")
        series.add(Reading(T1, 0.0, type=MeterType.CONSUMPTION))
        series.add(Reading(T2, 1500.0, type=MeterType.CONSUMPTION))

        with patch("meterdata.reconciler.logger") as mock_logger:
            calculate_relative_values(series)

            assert series.get(T2).relative_value == 1500.0
            warnings = [c.args[0] for c in mock_logger.warning.call_args_list]
            assert warnings == ["Large relative value change"]

    def test_single_reading_untouched(self) -> None:
        series = TimeSeries("M1")
        series.add(Reading(T1, 100.0, type=MeterType.CONSUMPTION))

        calculate_relative_values(series)

        assert series.get(T1).relative_value == 0.0


class TestReconciler:
    """Tests for batch merging."""

    def test_later_file_wins(self) -> None:
        file_a = _esl("X", "2023-01-01T00:00:00", "1-1:1.6.1", 5.0)
        file_b = _esl("X", "2023-01-01T00:00:00", "1-1:1.6.1", 7.0)

        assert process_multiple_files([file_a, file_b])["X"].get(T1).absolute_value == 7.0
        assert process_multiple_files([file_b, file_a])["X"].get(T1).absolute_value == 5.0

    def test_malformed_file_does_not_abort_batch(self, malformed_file: str, esl_sample_file: str) -> None:
        reconciler = Reconciler()

        with patch("meterdata.reconciler.logger") as mock_logger:
            result = reconciler.process([malformed_file, esl_sample_file])

            assert mock_logger.error.called

        assert reconciler.failed_sources == [0]
        assert set(result) == {"ID742", "ID735", "38157930"}
        assert [r.relative_value for r in result["ID742"]] == [0.0, 40.0]

    def test_unknown_format_does_not_abort_batch(self, unknown_format_file: str, sdat_consumption_file: str) -> None:
        reconciler = Reconciler()
        result = reconciler.process([unknown_format_file, sdat_consumption_file])

        assert reconciler.failed_sources == [0]
        assert len(result["ID742"]) == 4

    def test_esl_and_sdat_merged_under_synthetic_meter(self, esl_sample_file: str, sdat_consumption_file: str) -> None:
        result = process_multiple_files([esl_sample_file, sdat_consumption_file])

        consumption = result["ID742"]
        # 2019-03-01T00:00 is in both files; the SDAT reading came later
        assert consumption.get(datetime(2019, 3, 1)).absolute_value == 1.5
        assert len(consumption) == 5
        assert consumption.get(datetime(2019, 3, 1, 0, 15)).relative_value == 0.5
        assert consumption.get(datetime(2019, 4, 1)).relative_value == 189.0

    def test_relative_values_computed_across_files(self) -> None:
        files = [
            build_sdat_xml(
                [{"point": "consumption", "start": start, "resolution": 15, "observations": [(1, volume)]}],
                document_id="doc_ID742",
            )
            for start, volume in [("2023-01-01T00:00:00", 100), ("2023-01-01T00:15:00", 110)]
        ]

        result = process_multiple_files(files)

        assert [r.relative_value for r in result["ID742"]] == [0.0, 10.0]

    def test_accepts_file_objects(self) -> None:
        result = process_multiple_files([io.BytesIO(_esl("X", "2023-01-01T00:00:00", "1-1:1.6.1", 1.0))])
        assert len(result["X"]) == 1

    def test_delta_failure_isolated_per_meter(self) -> None:
        reconciler = Reconciler()
        reconciler.merge(
            [
                _esl("A", "2023-01-01T00:00:00", "1-1:1.6.1", 1.0),
                _esl("B", "2023-01-01T00:00:00", "1-1:1.6.1", 1.0),
                _esl("B", "2023-01-01T00:15:00", "1-1:1.6.1", 3.0),
            ]
        )

        def fail_for_a(series: TimeSeries) -> None:
            if series.meter_id == "A":
                raise RuntimeError("boom")
            calculate_relative_values(series)

        with (
            patch("meterdata.reconciler.calculate_relative_values", side_effect=fail_for_a),
            patch("meterdata.reconciler.logger") as mock_logger,
        ):
            result = reconciler.calculate_relative_values()

            assert mock_logger.error.called

        assert [r.relative_value for r in result["B"]] == [0.0, 2.0]

    def test_empty_batch(self) -> None:
        assert process_multiple_files([]) == {}
