"""Operation status enumeration.

Status codes for operation results, used to classify outcomes of operations
across the application for appropriate error handling and retries.
"""

from enum import Enum


class OperationStatus(Enum):
    """Status codes for operation results.

    Attributes:
        SUCCESS: Operation completed successfully
        TRANSIENT_ERROR: Retryable error (timeout, rate limit, transport hiccup)
        PERMANENT_ERROR: Non-retryable error (validation, bad payload)
        NOT_FOUND: Resource not found
        UNAVAILABLE: Backing service (queue broker) cannot be reached
    """

    SUCCESS = "success"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
