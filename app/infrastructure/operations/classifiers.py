"""Error classifiers for backing-service exceptions.

Converts exceptions raised by the queue broker and by delivery transports
into standardized OperationResult objects. Centralizes error classification
so that queue and channel code branch on explicit result values instead of
intercepting exceptions at every call site.

Key Functions:
- classify_broker_error(): Queue broker exceptions → OperationResult
- classify_transport_error(): Delivery transport exceptions → OperationResult

Usage:
    from infrastructure.operations.classifiers import classify_broker_error

    try:
        job_id = backend.push(job)
    except Exception as exc:
        return classify_broker_error(exc)
"""

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus


def classify_broker_error(exc: Exception) -> OperationResult:
    """Classify queue broker exceptions into OperationResult.

    Exception Mapping:
    - ConnectionError / TimeoutError / OSError: broker unreachable → UNAVAILABLE
    - KeyError / LookupError: unknown job or queue → NOT_FOUND
    - ValueError / TypeError: malformed job → PERMANENT_ERROR
    - Other: unknown error → TRANSIENT_ERROR

    Args:
        exc: Exception raised while talking to the broker

    Returns:
        OperationResult with appropriate status, message and error_code

    Example:
        try:
            counts = redis_backend.counts(queue_name)
        except Exception as exc:
            result = classify_broker_error(exc)
            if result.is_unavailable:
                ...
    """
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return OperationResult.unavailable(
            f"Queue broker unavailable: {type(exc).__name__}: {str(exc)}",
        )

    if isinstance(exc, LookupError):
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            f"Queue resource not found: {str(exc)}",
            error_code="NOT_FOUND",
        )

    if isinstance(exc, (ValueError, TypeError)):
        return OperationResult.permanent_error(
            f"Invalid queue request: {str(exc)}",
            error_code="INVALID_JOB",
        )

    return OperationResult.transient_error(
        f"Queue broker error: {type(exc).__name__}: {str(exc)}",
        error_code="BROKER_ERROR",
    )


def classify_transport_error(exc: Exception) -> OperationResult:
    """Classify delivery transport exceptions into OperationResult.

    Transports (push gateway, mail relay, SMS provider) are external. Anything
    they raise is retried with backoff except malformed payloads.

    Args:
        exc: Exception raised by a transport callable

    Returns:
        OperationResult with TRANSIENT_ERROR or PERMANENT_ERROR status
    """
    if isinstance(exc, (ValueError, TypeError)):
        return OperationResult.permanent_error(
            f"Transport rejected payload: {str(exc)}",
            error_code="INVALID_PAYLOAD",
        )

    if isinstance(exc, TimeoutError):
        return OperationResult.transient_error(
            "Transport timed out",
            error_code="TIMEOUT",
        )

    return OperationResult.transient_error(
        f"Transport error: {type(exc).__name__}: {str(exc)}",
        error_code="TRANSPORT_ERROR",
    )
