"""Shared pytest configuration.

Logging is configured once for the session; under pytest it is silenced so
structlog loggers stay callable without emitting output.
"""

import pytest

from infrastructure.configuration import (
    NotificationsFeatureSettings,
    QueueSettings,
    Settings,
)
from infrastructure.logging import clear_request_context, configure_logging

configure_logging()


@pytest.fixture(autouse=True)
def _reset_logging_context():
    yield
    clear_request_context()


@pytest.fixture
def settings_factory():
    """Factory for Settings instances with section overrides.

    Example:
        settings = settings_factory(queue={"QUEUE_MAX_ATTEMPTS": 1})
    """

    def _factory(notifications=None, queue=None, **kwargs) -> Settings:
        return Settings(
            notifications=NotificationsFeatureSettings(**(notifications or {})),
            queue=QueueSettings(**(queue or {})),
            **kwargs,
        )

    return _factory


@pytest.fixture
def settings(settings_factory):
    return settings_factory()
