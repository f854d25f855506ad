import json
import random
import shutil
import tempfile
import traceback
import uuid
from pathlib import Path
from typing import Any
from urllib.parse import unquote

import boto3
import pandas as pd
from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit

from meterdata import OUTPUT_BUCKET, OUTPUT_PREFIX, PARSE_ERR_DIR, PROCESSED_DIR, Reconciler
from meterdata.common import INCOMING_DIR, INPUT_BUCKET
from meterdata.export import time_series_to_sensor_frame

# Powertools instances
logger = Logger(service="meter-data")
tracer = Tracer(service="meter-data")
metrics = Metrics(namespace="MeterData/Ingester")

s3_resource = boto3.resource("s3")


@tracer.capture_method
def download_files_to_tmp(file_list: list[dict[str, str]], tmp_files_folder_path: str) -> list[dict[str, str]]:
    """
    Download the batch into a local folder, keeping batch order.

    Each file gets an index prefix so that identical names from different
    prefixes do not collide.

    Returns:
        Downloaded files as dicts with bucket, key and local_path
    """
    downloaded = []

    for index, f in enumerate(file_list):
        bucket = f.get("bucket", INPUT_BUCKET)

        # Always decode key before using with boto3
        key = unquote(f["file_name"].replace("+", "%20"))

        file_name = Path(key).name
        local_path = str(Path(tmp_files_folder_path) / f"{index:04d}_{file_name}")

        logger.info("Downloading file", extra={"bucket": bucket, "key": key, "local_path": local_path})

        try:
            s3_resource.Bucket(bucket).download_file(key, local_path)
            downloaded.append({"bucket": bucket, "key": key, "local_path": local_path})

        except Exception as e:
            logger.error("File download failed", exc_info=True, extra={"key": key, "error": str(e)})
            continue
    return downloaded


def move_s3_file(bucket_name: str, source_key: str, dest_prefix: str) -> str | None:
    """Move an object to dest_prefix, keeping its file name. A bare file name is looked up under the incoming prefix."""
    file_name = source_key.split("/")[-1]

    if "/" not in source_key:
        source_key = f"{INCOMING_DIR.rstrip('/')}/{file_name}"
    dest_key = f"{dest_prefix.rstrip('/')}/{file_name}"

    try:
        bucket = s3_resource.Bucket(bucket_name)

        copy_source = {"Bucket": bucket_name, "Key": source_key}
        bucket.Object(dest_key).copy(copy_source)

        bucket.Object(source_key).delete()

        return dest_key

    except Exception as e:
        logger.error("File move failed", exc_info=True, extra={"source": source_key, "dest": dest_key, "error": str(e)})
        return None


@tracer.capture_method
def write_sensor_frame_to_s3(output_df: pd.DataFrame, batch_timestamp: str) -> str | None:
    """Write the batch's data lake rows to the output bucket as one CSV."""
    if output_df.empty:
        return None

    output_key = f"{OUTPUT_PREFIX.rstrip('/')}/batch_{batch_timestamp}_{random.randint(1, 1000000)}.csv"
    s3_resource.Object(OUTPUT_BUCKET, output_key).put(Body=output_df.to_csv(index=False))
    logger.debug("Wrote sensor data to S3", extra={"output_key": output_key, "rows": len(output_df)})
    return output_key


@tracer.capture_method
def parse_and_write_data(files: list[dict[str, str]] | None = None) -> int | None:
    tmp_dir = tempfile.gettempdir()
    tmp_files_folder_path = Path(tmp_dir) / str(uuid.uuid4())
    tmp_files_folder_path.mkdir(parents=True, exist_ok=True)

    timestamp_now = pd.Timestamp.now(tz="UTC").isoformat()
    batch_timestamp = pd.Timestamp.now().strftime("%Y_%b_%dT%H_%M_%S_%f")

    try:
        logger.info("Script started", extra={"timestamp": timestamp_now, "files_count": len(files or [])})

        downloaded = download_files_to_tmp(files or [], str(tmp_files_folder_path))

        reconciler = Reconciler()
        series_map = reconciler.process([f["local_path"] for f in downloaded])
        failed = set(reconciler.failed_sources)

        output_df = time_series_to_sensor_frame(series_map)
        write_sensor_frame_to_s3(output_df, batch_timestamp)

        valid_processed_files_count = 0
        parse_err_files_count = 0
        for index, f in enumerate(downloaded):
            if index in failed:
                logger.warning("Bad file", extra={"key": f["key"], "timestamp": timestamp_now})
                move_s3_file(f["bucket"], f["key"], PARSE_ERR_DIR)
                parse_err_files_count += 1
            else:
                move_s3_file(f["bucket"], f["key"], PROCESSED_DIR)
                valid_processed_files_count += 1

        readings_count = sum(len(series) for series in series_map.values())

        # Record metrics using Powertools
        metrics.add_metric(name="ValidProcessedFiles", unit=MetricUnit.Count, value=valid_processed_files_count)
        metrics.add_metric(name="ParseErrorFiles", unit=MetricUnit.Count, value=parse_err_files_count)
        metrics.add_metric(
            name="DownloadFailedFiles", unit=MetricUnit.Count, value=len(files or []) - len(downloaded)
        )
        metrics.add_metric(name="ProcessedMeters", unit=MetricUnit.Count, value=len(series_map))
        metrics.add_metric(name="ProcessedReadings", unit=MetricUnit.Count, value=readings_count)

        processing_end_time = pd.Timestamp.now(tz="UTC").isoformat()
        logger.info(
            "Script finished",
            extra={"timestamp": processing_end_time, "meters": len(series_map), "readings": readings_count},
        )
        shutil.rmtree(tmp_files_folder_path, ignore_errors=True)

        return 1

    except Exception as e:
        err = traceback.format_exc()
        logger.error("Script failed", exc_info=True, extra={"error": str(e), "traceback": err})
        metrics.add_metric(name="ErrorExecutionCount", unit=MetricUnit.Count, value=1)
        shutil.rmtree(tmp_files_folder_path, ignore_errors=True)
        return None


@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
@logger.inject_lambda_context
def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    files: list[dict[str, str]] = []
    skipped_count = 0

    for record in event["Records"]:
        try:
            message_body = json.loads(record["body"])

            for s3_event in message_body["Records"]:
                bucket_name = s3_event["s3"]["bucket"]["name"]
                file_key = s3_event["s3"]["object"]["key"]

                logger.info(
                    "Processing file",
                    extra={"bucket": bucket_name, "key": unquote(file_key.replace("+", "%20"))},
                )
                files.append({"bucket": bucket_name, "file_name": file_key})

        except Exception as e:
            logger.error("Error processing SQS record", exc_info=True, extra={"error": str(e)})
            skipped_count += 1
            continue

    if files:
        parse_and_write_data(files=files)

    return {
        "statusCode": 200,
        "body": "Successfully processed files.",
        "processed": len(files),
        "skipped": skipped_count,
    }
