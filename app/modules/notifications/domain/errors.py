"""Errors for the notifications module.

Validation and not-found errors stop the calling operation and surface to the
API boundary unchanged. Broker problems are represented as
``OperationResult`` values instead and never reach notification callers;
``QueueError`` is only raised by explicit queue management calls that name an
unknown queue. Unexpected storage failures are wrapped in ``NotificationError``
with a stable code by ``wrap_storage_errors``.
"""

from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from infrastructure.logging import get_module_logger

logger = get_module_logger()


class NotificationError(Exception):
    """Base error for the notifications module.

    Attributes:
        message: human-friendly message
        code: stable machine code for observability
        status_code: HTTP-style status for the API boundary
        details: optional structured context (field errors, ids)
    """

    def __init__(
        self,
        message: str,
        code: str = "NOTIFICATION_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(NotificationError):
    """Malformed or out-of-bounds input. Never retried."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, status_code, details)

    @classmethod
    def from_pydantic(
        cls, exc: PydanticValidationError, prefix: str = "Invalid input"
    ) -> "ValidationError":
        """Convert a pydantic ValidationError raised at a write boundary."""
        errors: List[Dict[str, Any]] = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        summary = "; ".join(
            f"{e['field']}: {e['message']}" if e["field"] else e["message"]
            for e in errors
        )
        return cls(f"{prefix}: {summary}", details={"errors": errors})


class DuplicateError(ValidationError):
    """Identical notification created for the same user within the window."""

    def __init__(
        self,
        message: str = "Duplicate notification detected within the last 5 minutes",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            code="DUPLICATE_NOTIFICATION",
            status_code=409,
            details=details,
        )


class NotFoundError(NotificationError):
    """Referenced notification or user does not exist."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class QueueError(NotificationError):
    """Queue management request could not be honoured."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message, code="QUEUE_ERROR", status_code=503, details=details
        )


def wrap_storage_errors(message: str, code: str) -> Callable:
    """Wrap unexpected exceptions from a storage-backed operation.

    NotificationError subclasses pass through unchanged; anything else is
    logged and re-raised as NotificationError(message, code) chained to the
    original exception.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except NotificationError:
                raise
            except Exception as exc:
                logger.error(
                    "storage_operation_failed",
                    operation=func.__name__,
                    code=code,
                    error=str(exc),
                    exc_info=True,
                )
                raise NotificationError(
                    message,
                    code=code,
                    details={"operation": func.__name__, "cause": str(exc)},
                ) from exc

        return wrapper

    return decorator
