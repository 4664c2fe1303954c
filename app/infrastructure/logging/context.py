"""Context binding for structured logging.

Binds correlation IDs and operation metadata so that every log entry emitted
while a broadcast is fanned out, or while a channel worker processes a job,
carries the same identifiers.

Usage:
    from infrastructure.logging import bind_request_context

    with bind_request_context(correlation_id="bcast-123", segment="all"):
        logger.info("broadcast_started")

Dependencies:
    - structlog.contextvars
"""

import uuid
from contextlib import contextmanager
from typing import Optional, Any, Generator
import structlog


@contextmanager
def bind_request_context(
    correlation_id: Optional[str] = None,
    user_id: Optional[str] = None,
    **extra_context: Any,
) -> Generator[str, None, None]:
    """Bind request-scoped context to all logs within the context manager.

    Args:
        correlation_id: Unique identifier. Auto-generated if not provided.
        user_id: ID of the acting or targeted user (if available).
        **extra_context: Additional key-value pairs to include in logs.

    Yields:
        The correlation ID bound for the block.

    Example:
        with bind_request_context(job_id=job.id, channel="push"):
            handler.deliver(job)
    """
    context: dict[str, Any] = {}
    context["correlation_id"] = correlation_id or str(uuid.uuid4())

    if user_id is not None:
        context["user_id"] = user_id

    context.update(extra_context)

    structlog.contextvars.bind_contextvars(**context)
    try:
        yield context["correlation_id"]
    finally:
        structlog.contextvars.unbind_contextvars(*context.keys())


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from the logging context.

    Returns:
        The correlation ID if set, None otherwise.
    """
    ctx = structlog.contextvars.get_contextvars()
    return ctx.get("correlation_id")


def clear_request_context() -> None:
    """Clear all bound context from the logging context.

    Worker threads call this between jobs to prevent context leakage.
    """
    structlog.contextvars.clear_contextvars()
