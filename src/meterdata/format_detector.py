import xml.etree.ElementTree as ET
from enum import Enum

from aws_lambda_powertools import Logger

from meterdata.common import ESL_ROOT_TAG, SDAT_ROOT_MARKER
from meterdata.errors import UnknownFormatError
from meterdata.xml_utils import local_name

logger = Logger(service="meter-data", child=True)


class XmlFormat(Enum):
    """Supported smart-meter export dialects."""

    ESL = "ESL"
    SDAT = "SDAT"


def detect_format(root: ET.Element) -> XmlFormat:
    """
    Classify a parsed document by its root element.

    The SDAT check is a substring match because producers use versioned,
    prefixed root names such as rsm:ValidatedMeteredData_12.

    Raises:
        UnknownFormatError: If the root matches neither dialect
    """
    root_tag = local_name(root.tag)

    if root_tag == ESL_ROOT_TAG:
        logger.debug("Detected ESL format", extra={"root_tag": root_tag})
        return XmlFormat.ESL
    if SDAT_ROOT_MARKER in root_tag:
        logger.debug("Detected SDAT format", extra={"root_tag": root_tag})
        return XmlFormat.SDAT

    logger.error("Unknown XML format", extra={"root_tag": root_tag})
    raise UnknownFormatError(root_tag)
