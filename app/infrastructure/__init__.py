"""Infrastructure modules for the notification service.

Centralized infrastructure components:
- configuration: Settings management (Settings, NotificationsFeatureSettings, QueueSettings)
- logging: Structured logging setup and request context
- operations: Operation results and error classification
- services: Cached settings provider (get_settings)
"""

from infrastructure.logging import get_module_logger
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus
from infrastructure.services import get_settings

__all__ = [
    "get_module_logger",
    "OperationResult",
    "OperationStatus",
    "get_settings",
]
