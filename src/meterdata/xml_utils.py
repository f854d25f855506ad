"""
XML helpers shared by the ESL and SDAT parsers.

SDAT producers qualify their elements with varying namespace prefixes
(rsm:, ns0:, none at all), so every lookup here matches on the local
element name and ignores the namespace.
"""

import io
import os
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from datetime import datetime
from typing import BinaryIO

from meterdata.errors import InvalidDocumentError

XmlSource = bytes | str | os.PathLike | BinaryIO


def load_document(source: XmlSource) -> ET.Element:
    """
    Parse an XML document and return its root element.

    Args:
        source: Raw bytes, a path to a file, or a binary file-like object

    Returns:
        Root element of the document

    Raises:
        InvalidDocumentError: If the input is not well-formed XML or cannot be read
    """
    try:
        if isinstance(source, bytes):
            return ET.parse(io.BytesIO(source)).getroot()
        return ET.parse(source).getroot()
    except ET.ParseError as e:
        raise InvalidDocumentError(f"Error parsing XML document: {e}") from e
    except OSError as e:
        raise InvalidDocumentError(f"Error reading XML document: {e}") from e


def local_name(tag: str) -> str:
    """Strip a '{namespace}' or 'prefix:' qualifier from an element tag."""
    if tag.startswith("{"):
        tag = tag.rsplit("}", 1)[1]
    return tag.rsplit(":", 1)[-1]


def iter_descendants(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Yield all descendants of element named name, in document order."""
    for child in element.iter():
        if child is element or not isinstance(child.tag, str):
            continue
        if local_name(child.tag) == name:
            yield child


def find_first(element: ET.Element | None, name: str) -> ET.Element | None:
    if element is None:
        return None
    return next(iter_descendants(element, name), None)


def text_of(element: ET.Element | None, name: str) -> str:
    """Text content of the first descendant named name, or '' if there is none."""
    found = find_first(element, name)
    if found is None:
        return ""
    return "".join(found.itertext())


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 date-time into a naive datetime.

    Offsets (including 'Z') are accepted and dropped; the wall-clock fields
    are kept as written.

    Raises:
        ValueError: If value is not an ISO-8601 date-time
    """
    value = value.strip()
    if "T" not in value:
        raise ValueError(f"Not an ISO-8601 date-time: {value!r}")
    return datetime.fromisoformat(value).replace(tzinfo=None)
