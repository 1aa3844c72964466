"""Error types raised by the aggregation, export and reporting modules."""

from typing import Any, Optional


class EmptyInputError(ValueError):
    """Raised when an export or report is requested for zero records."""

    def __init__(self, message: str = "No data to export"):
        super().__init__(message)


class RecordValidationError(ValueError):
    """Raised when a record carries a malformed field or breaks a consistency rule."""

    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        field: Optional[str] = None,
        value: Any = None,
    ):
        self.record_id = record_id
        self.field = field
        self.value = value

        prefix = f"[{record_id}] " if record_id else ""
        super().__init__(f"{prefix}{message}")
