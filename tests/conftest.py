"""Shared pytest fixtures for meter data ingester tests."""

import json
import os
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import boto3
import pytest
from moto import mock_aws
from mypy_boto3_s3 import S3ServiceResource

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / ".." / "src"))

# boto3 resources are created at import time of the Lambda module
os.environ.setdefault("AWS_DEFAULT_REGION", "ap-southeast-2")


# ==================== Paths ====================


@pytest.fixture
def fixtures_dir() -> str:
    """Return path to test fixtures directory."""
    return str(Path(__file__).parent / "unit" / "fixtures")


@pytest.fixture
def esl_sample_file(fixtures_dir: str) -> str:
    """Return path to ESL billing export sample file."""
    return str(Path(fixtures_dir) / "esl_sample.xml")


@pytest.fixture
def sdat_consumption_file(fixtures_dir: str) -> str:
    """Return path to SDAT consumption sample file (DocumentID ..._ID742)."""
    return str(Path(fixtures_dir) / "sdat_consumption.xml")


@pytest.fixture
def sdat_production_file(fixtures_dir: str) -> str:
    """Return path to SDAT production sample file (no meter id in DocumentID)."""
    return str(Path(fixtures_dir) / "sdat_production.xml")


@pytest.fixture
def malformed_file(fixtures_dir: str) -> str:
    """Return path to a file that is not well-formed XML."""
    return str(Path(fixtures_dir) / "malformed.xml")


@pytest.fixture
def unknown_format_file(fixtures_dir: str) -> str:
    """Return path to well-formed XML in neither dialect."""
    return str(Path(fixtures_dir) / "unknown_format.xml")


@pytest.fixture
def temp_directory() -> Generator[str]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


# ==================== AWS Mocks ====================


@pytest.fixture
def aws_credentials() -> None:
    """Mock AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "ap-southeast-2"


@pytest.fixture
def mock_s3_resource(aws_credentials: None) -> Generator[S3ServiceResource]:
    """Create mock S3 resource with the input and output buckets."""
    with mock_aws():
        s3_resource = boto3.resource("s3", region_name="ap-southeast-2")

        s3_resource.create_bucket(
            Bucket="meter-data-ingester", CreateBucketConfiguration={"LocationConstraint": "ap-southeast-2"}
        )
        s3_resource.create_bucket(
            Bucket="meter-data-lake", CreateBucketConfiguration={"LocationConstraint": "ap-southeast-2"}
        )

        yield s3_resource


# ==================== Sample Data ====================


@pytest.fixture
def sample_sqs_event() -> dict[str, Any]:
    """Sample SQS event with S3 notification."""
    return {
        "Records": [
            {
                "body": json.dumps(
                    {
                        "Records": [
                            {
                                "s3": {
                                    "bucket": {"name": "meter-data-ingester"},
                                    "object": {"key": "incoming/esl_sample.xml"},
                                }
                            }
                        ]
                    }
                )
            }
        ]
    }


# ==================== Test Data Generators ====================


def build_esl_xml(periods: list[tuple[str, str, list[dict[str, str]]]]) -> bytes:
    """
    Build an ESL document.

    Args:
        periods: (factoryNo, TimePeriod end, ValueRow attributes) per TimePeriod;
            consecutive periods of the same meter share one Meter element
    """
    meters: dict[str, list[str]] = {}
    for meter_id, end, rows in periods:
        row_xml = "".join(
            "<ValueRow " + " ".join(f'{name}="{value}"' for name, value in row.items()) + "/>" for row in rows
        )
        meters.setdefault(meter_id, []).append(f'<TimePeriod end="{end}">{row_xml}</TimePeriod>')

    body = "".join(f'<Meter factoryNo="{meter_id}">{"".join(items)}</Meter>' for meter_id, items in meters.items())
    return f'<?xml version="1.0" encoding="UTF-8"?><ESLBillingData>{body}</ESLBillingData>'.encode()


def build_sdat_xml(
    blocks: list[dict[str, Any]],
    document_id: str | None = None,
    root: str = "rsm:ValidatedMeteredData_12",
) -> bytes:
    """
    Build an SDAT document in the rsm namespace.

    Block keys: point ("production", "consumption" or None), national_id,
    start, end, resolution, unit and observations as (sequence, volume) pairs.
    A block value of None leaves the element out.
    """
    header = ""
    if document_id is not None:
        header = (
            "<rsm:ValidatedMeteredData_HeaderInformation><rsm:InstanceDocument>"
            f"<rsm:DocumentID>{document_id}</rsm:DocumentID>"
            "</rsm:InstanceDocument></rsm:ValidatedMeteredData_HeaderInformation>"
        )

    body = ""
    for block in blocks:
        parts = []
        if block.get("start") is not None:
            end = f"<rsm:EndDateTime>{block['end']}</rsm:EndDateTime>" if block.get("end") else ""
            parts.append(f"<rsm:Interval><rsm:StartDateTime>{block['start']}</rsm:StartDateTime>{end}</rsm:Interval>")
        if block.get("resolution") is not None:
            parts.append(
                f"<rsm:Resolution><rsm:Resolution>{block['resolution']}</rsm:Resolution>"
                "<rsm:Unit>MIN</rsm:Unit></rsm:Resolution>"
            )
        point = block.get("point")
        if point is not None:
            element = "rsm:ProductionMeteringPoint" if point == "production" else "rsm:ConsumptionMeteringPoint"
            national_id = block.get("national_id", "CH0000000000000000000000000000")
            parts.append(f"<{element}><rsm:VSENationalID>{national_id}</rsm:VSENationalID></{element}>")
        parts.append(f"<rsm:Product><rsm:MeasureUnit>{block.get('unit', 'KWH')}</rsm:MeasureUnit></rsm:Product>")
        for sequence, volume in block.get("observations", []):
            parts.append(
                "<rsm:Observation><rsm:Position>"
                f"<rsm:Sequence>{sequence}</rsm:Sequence></rsm:Position>"
                f"<rsm:Volume>{volume}</rsm:Volume></rsm:Observation>"
            )
        body += f"<rsm:MeteringData>{''.join(parts)}</rsm:MeteringData>"

    return (
        f'<?xml version="1.0" encoding="UTF-8"?><{root} xmlns:rsm="http://www.strom.ch">{header}{body}</{root}>'
    ).encode()
