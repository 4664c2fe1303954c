"""Structured logging infrastructure.

This package provides centralized logging configuration and utilities
for the notification platform using structlog.

Public API:
    - configure_logging(): Initialize logging for the application
    - get_module_logger(): Get a logger for the calling module
    - bind_request_context(): Context manager for correlation-scoped logging
    - get_correlation_id(): Get current correlation ID from context
    - clear_request_context(): Clear all bound context

Example:
    from infrastructure.logging import (
        configure_logging,
        get_module_logger,
        bind_request_context,
    )

    # At application startup
    configure_logging()

    # In a module
    logger = get_module_logger()
    logger.info("module_initialized")
"""

from infrastructure.logging.setup import (
    configure_logging,
    get_module_logger,
)

from infrastructure.logging.context import (
    bind_request_context,
    get_correlation_id,
    clear_request_context,
)

__all__ = [
    # Setup
    "configure_logging",
    "get_module_logger",
    # Context
    "bind_request_context",
    "get_correlation_id",
    "clear_request_context",
]
