"""
Error kinds raised by the ingestion and query pipeline.

Everything the pipeline raises on bad input or storage trouble derives from
FlightLogError, so the service layer can turn it into a message without
leaking internal types to the API.
"""

from typing import Any, Optional


class FlightLogError(Exception):
    """Base class for pipeline errors."""

    kind = "flight_log_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def diagnostics(self) -> dict[str, Any]:
        """Extra detail for logs; never sent to the client."""
        return {}


class FormatUnrecognized(FlightLogError):
    """The file does not match any supported log format."""

    kind = "format_unrecognized"


class MalformedRecord(FlightLogError):
    """A row or record could not be parsed."""

    kind = "malformed_record"

    def __init__(self, message: str, index: Optional[int] = None, offset: Optional[int] = None):
        super().__init__(message)
        self.index = index
        self.offset = offset

    def diagnostics(self) -> dict[str, Any]:
        return {"index": self.index, "offset": self.offset}


class TruncatedInput(FlightLogError):
    """A binary record declares more bytes than the buffer holds."""

    kind = "truncated_input"

    def __init__(self, message: str, offset: int):
        super().__init__(message)
        self.offset = offset

    def diagnostics(self) -> dict[str, Any]:
        return {"offset": self.offset}


class UnitConversionError(FlightLogError):
    """A physical value is outside its valid domain."""

    kind = "unit_conversion"

    def __init__(self, message: str, field: str, value: Any = None, index: Optional[int] = None):
        super().__init__(message)
        self.field = field
        self.value = value
        self.index = index

    def diagnostics(self) -> dict[str, Any]:
        return {"field": self.field, "value": self.value, "index": self.index}


class InsufficientData(FlightLogError):
    """Fewer than two usable samples."""

    kind = "insufficient_data"

    def __init__(self, message: str, sample_count: int):
        super().__init__(message)
        self.sample_count = sample_count

    def diagnostics(self) -> dict[str, Any]:
        return {"sample_count": self.sample_count}


class NotFound(FlightLogError):
    """Unknown or deleted flight id."""

    kind = "not_found"

    def __init__(self, flight_id: int):
        super().__init__(f"Flight not found: {flight_id}")
        self.flight_id = flight_id


class StorageFailure(FlightLogError):
    """The store could not commit or read."""

    kind = "storage_failure"


class DuplicateImport(FlightLogError):
    """Identical bytes were already imported as a stored flight."""

    kind = "duplicate_import"

    def __init__(self, existing_flight_id: Optional[int]):
        super().__init__(f"This log was already imported as flight {existing_flight_id}")
        self.existing_flight_id = existing_flight_id

    def diagnostics(self) -> dict[str, Any]:
        return {"existing_flight_id": self.existing_flight_id}
