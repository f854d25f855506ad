"""Unit tests for common.py module (constants only)."""


class TestConstants:
    """Tests for module constants."""

    def test_bucket_constants_exist(self) -> None:
        """Test that bucket and directory defaults are defined."""
        from meterdata.common import (
            INCOMING_DIR,
            INPUT_BUCKET,
            OUTPUT_BUCKET,
            OUTPUT_PREFIX,
            PARSE_ERR_DIR,
            PROCESSED_DIR,
        )

        assert INPUT_BUCKET == "meter-data-ingester"
        assert OUTPUT_BUCKET == "meter-data-lake"
        assert OUTPUT_PREFIX == "sensorDataFiles"
        assert INCOMING_DIR == "incoming/"
        assert PROCESSED_DIR == "processed/"
        assert PARSE_ERR_DIR == "parseErr/"

    def test_processing_defaults(self) -> None:
        from meterdata.common import DEVICE_METER_ID, LARGE_DELTA_THRESHOLD

        assert DEVICE_METER_ID == "38157930"
        assert LARGE_DELTA_THRESHOLD == 1000.0

    def test_tariff_codes(self) -> None:
        """Test that the four tariff OBIS codes and synthetic meters are fixed."""
        from meterdata.common import CONSUMPTION_SENSOR_ID, PRODUCTION_SENSOR_ID, TARIFF_OBIS_CODES

        assert TARIFF_OBIS_CODES == {"1-1:1.8.1", "1-1:1.8.2", "1-1:2.8.1", "1-1:2.8.2"}
        assert CONSUMPTION_SENSOR_ID == "ID742"
        assert PRODUCTION_SENSOR_ID == "ID735"
