"""Operation result types and status enums.

This module contains standardized result types for operations across
the application, including status enums, result dataclasses, and error
classifiers for broker and transport exceptions.
"""

from infrastructure.operations.classifiers import (
    classify_broker_error,
    classify_transport_error,
)
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    "OperationResult",
    "OperationStatus",
    "classify_broker_error",
    "classify_transport_error",
]
