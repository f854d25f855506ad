#!/usr/bin/env python3
"""
Local ESL/SDAT file processor.

Merges a batch of meter export files locally, in the order given, and writes
the data lake rows (or the epoch-keyed sensor view) to a file.

Usage:
    uv run scripts/process_meter_files_locally.py <xml_file> [<xml_file> ...] [--output OUT] [--sensor-data]

Example:
    uv run scripts/process_meter_files_locally.py EdmRegisterWertExport.xml SDAT_ID742.xml --output batch.csv
    uv run scripts/process_meter_files_locally.py exports/*.xml --sensor-data --output sensors.json
"""

import argparse
import json
import sys
import time
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from meterdata import Reconciler, assemble_sensor_data
from meterdata.export import sensor_data_to_json, time_series_to_sensor_frame


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}m {secs}s"


def process_meter_files(file_paths: list[str], output: str | None = None, verbose: bool = True) -> dict:
    """Merge the files, compute relative values and optionally write the data lake CSV."""
    stats = {
        "files_total": len(file_paths),
        "files_failed": 0,
        "meters": 0,
        "readings_total": 0,
        "rows_written": 0,
        "failed_files": [],
    }

    print(f"\nMerging {len(file_paths)} file(s)")
    start = time.time()
    reconciler = Reconciler()
    series_map = reconciler.process(file_paths)
    print(f"  Merged in {format_duration(time.time() - start)}")

    stats["failed_files"] = [file_paths[i] for i in reconciler.failed_sources]
    stats["files_failed"] = len(stats["failed_files"])
    stats["meters"] = len(series_map)

    for meter_id, series in series_map.items():
        stats["readings_total"] += len(series)
        if verbose:
            print(f"  {meter_id}: {len(series)} readings")

    if output:
        output_df = time_series_to_sensor_frame(series_map)
        output_df.to_csv(output, index=False)
        stats["rows_written"] = len(output_df)
        print(f"  Wrote {len(output_df)} rows to {output}")

    return stats


def write_sensor_data(file_paths: list[str], output: str | None = None) -> int:
    """Assemble the sensor view and write it as JSON. Returns the number of sensors."""
    sensor_json = sensor_data_to_json(assemble_sensor_data(file_paths))
    content = json.dumps(sensor_json, indent=2)

    if output:
        Path(output).write_text(content, encoding="utf-8")
        print(f"  Wrote {len(sensor_json)} sensor(s) to {output}")
    else:
        print(content)
    return len(sensor_json)


def main() -> None:
    parser = argparse.ArgumentParser(description="Merge ESL and SDAT meter files locally")
    parser.add_argument("files", nargs="+", help="Paths to ESL/SDAT XML files, in batch order")
    parser.add_argument("-o", "--output", help="Output file (CSV rows, or JSON with --sensor-data)")
    parser.add_argument("--sensor-data", action="store_true", help="Write the epoch-keyed sensor view instead")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output (no per-meter summary)")
    args = parser.parse_args()

    missing = [f for f in args.files if not Path(f).exists()]
    if missing:
        print(f"Error: File not found: {', '.join(missing)}")
        sys.exit(1)

    print("=" * 60)
    print("Local Meter File Processor")
    print(f"Files: {len(args.files)}")
    print(f"Output: {args.output or '-'}")
    print(f"Sensor data: {args.sensor_data}")
    print("=" * 60)

    if args.sensor_data:
        write_sensor_data(args.files, args.output)
        return

    stats = process_meter_files(args.files, args.output, verbose=not args.quiet)

    # Print summary
    print("\n" + "=" * 60)
    print("Processing Summary")
    print("=" * 60)
    print(f"Total Files:          {stats['files_total']}")
    print(f"Failed Files:         {stats['files_failed']}")
    print(f"Meters:               {stats['meters']}")
    print(f"Total Readings:       {stats['readings_total']:,}")
    print(f"Rows Written:         {stats['rows_written']:,}")

    for failed in stats["failed_files"]:
        print(f"  - {failed}")

    print("=" * 60)


if __name__ == "__main__":
    main()
