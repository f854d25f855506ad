"""Exceptions raised by the meter data parsers."""


class MeterDataError(Exception):
    """Base class for document-level meter data failures."""


class InvalidDocumentError(MeterDataError):
    """The input could not be read as a well-formed XML document."""


class UnknownFormatError(MeterDataError):
    """The document root matches neither the ESL nor the SDAT dialect."""

    def __init__(self, root_tag: str) -> None:
        self.root_tag = root_tag
        super().__init__(
            f"Unknown XML format: {root_tag}. "
            "Expected 'ESLBillingData' (ESL format) or 'ValidatedMeteredData' (SDAT format)."
        )
