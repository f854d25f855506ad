"""
Flat-file JSON storage for parsed meter data.

Layout below the base directory:
- energy-data/<meterId>_<yyyyMMdd_HHmmss of the aggregate timestamp>.json
- time-series/<meterId>_<yyyyMMdd_HHmmss at save time>.json
"""

import json
from datetime import datetime
from pathlib import Path

from aws_lambda_powertools import Logger

from meterdata.common import FILENAME_TIMESTAMP_FORMAT, STORAGE_DIR
from meterdata.models import EnergyData, TimeSeries

logger = Logger(service="meter-data", child=True)

ENERGY_DATA_DIR = "energy-data"
TIME_SERIES_DIR = "time-series"


class LocalStorage:
    def __init__(self, base_dir: str | Path = STORAGE_DIR) -> None:
        self.base_dir = Path(base_dir)
        self.energy_data_dir = self.base_dir / ENERGY_DATA_DIR
        self.time_series_dir = self.base_dir / TIME_SERIES_DIR

        self.energy_data_dir.mkdir(parents=True, exist_ok=True)
        self.time_series_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("Initialized local storage", extra={"base_dir": str(self.base_dir)})

    def save_energy_data(self, energy_data: list[EnergyData]) -> list[EnergyData]:
        """
        Write one JSON file per aggregate.

        Aggregates of the same meter and timestamp share a file name, so a later
        one overwrites an earlier one. A failed write is logged and skipped.

        Returns:
            The aggregates that were written
        """
        saved = []
        for item in energy_data:
            file_name = f"{item.meter_id}_{item.timestamp.strftime(FILENAME_TIMESTAMP_FORMAT)}.json"
            path = self.energy_data_dir / file_name
            try:
                path.write_text(json.dumps(item.to_dict(), indent=2), encoding="utf-8")
                saved.append(item)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Failed to save energy data", exc_info=True, extra={"path": str(path), "error": str(e)})

        logger.info("Saved energy data", extra={"saved": len(saved), "total": len(energy_data)})
        return saved

    def save_time_series(self, series_map: dict[str, TimeSeries]) -> list[Path]:
        """Write one JSON file per meter, named with the current time."""
        now = datetime.now().strftime(FILENAME_TIMESTAMP_FORMAT)
        paths = []
        for meter_id, series in series_map.items():
            path = self.time_series_dir / f"{meter_id}_{now}.json"
            try:
                path.write_text(json.dumps(series.to_dict(), indent=2), encoding="utf-8")
                paths.append(path)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Failed to save time series", exc_info=True, extra={"path": str(path), "error": str(e)})

        logger.info("Saved time series", extra={"saved": len(paths), "total": len(series_map)})
        return paths

    def _load_energy_data(self, path: Path) -> EnergyData | None:
        try:
            return EnergyData.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error("Failed to read energy data file", exc_info=True, extra={"path": str(path), "error": str(e)})
            return None

    def get_all_energy_data(self) -> list[EnergyData]:
        result = []
        for path in sorted(self.energy_data_dir.glob("*.json")):
            item = self._load_energy_data(path)
            if item is not None:
                result.append(item)
        return result

    def get_energy_data_by_meter_id(self, meter_id: str) -> list[EnergyData]:
        return [item for item in self.get_all_energy_data() if item.meter_id == meter_id]
