"""Error taxonomy raised by the lifecycle and analytics core.

Each error carries the HTTP status the transport layer maps it to, so the
FastAPI app needs a single exception handler for the whole family.
"""

from typing import Any

from pydantic import ValidationError


class JournalError(Exception):
    """Base class for all expected, operational errors."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, "details": self.details}


class NotFoundError(JournalError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", resource_id: Any = None):
        message = (
            f"{resource} with id '{resource_id}' not found"
            if resource_id is not None
            else f"{resource} not found"
        )
        super().__init__(message, {"resource": resource, "id": resource_id})


class InvalidInputError(JournalError):
    status_code = 400
    code = "INVALID_INPUT"

    def __init__(self, message: str = "Invalid input", details: dict[str, Any] | None = None):
        super().__init__(message, details)

    @classmethod
    def from_validation_error(cls, exc: ValidationError, message: str = "Invalid input"):
        errors = [
            {
                "field": ".".join(str(p) for p in err["loc"]),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return cls(message, {"errors": errors})


class TradeAlreadyClosedError(JournalError):
    status_code = 409
    code = "TRADE_ALREADY_CLOSED"

    def __init__(self, trade_id: Any):
        super().__init__(f"Trade {trade_id} is already closed", {"trade_id": trade_id})


class InvalidTradeStateError(JournalError):
    status_code = 409
    code = "INVALID_TRADE_STATE"

    def __init__(self, current: str, expected: str):
        super().__init__(
            f"Invalid trade state: current '{current}', expected '{expected}'",
            {"current": current, "expected": expected},
        )
        self.current = current
        self.expected = expected


class CacheUnavailableError(Exception):
    """Raised by cache backends when the cache store cannot be reached."""
