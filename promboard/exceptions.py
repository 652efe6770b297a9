from typing import Optional


class PromboardError(Exception):
    """Super class of all promboard exception types."""


class QueryParseError(PromboardError):
    """Raised when a PromQL query cannot be parsed.

    Args:
        message: What the parser expected or found.
        position: Offset into the query where parsing stopped, if known.
    """

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        if position is not None:
            message = f"{message} (at offset {position})"
        super().__init__(message)


class PrometheusQueryError(PromboardError):
    """Raised when the metrics backend rejects a range query."""

    def __init__(self, status, message):
        self.status = status
        self.message = (
            "Error fetching data from prometheus. "
            f"status: {status}, message: {message}"
        )
        super().__init__(self.message)


class PanelValidationError(PromboardError, ValueError):
    """Raised when an imported panel or dashboard file is malformed.

    The message names the missing or invalid field.
    """


class PersistenceError(PromboardError):
    """Raised by storage backends when a snapshot cannot be read or written."""
