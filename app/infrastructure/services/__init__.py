"""
Dependency injection services.

Provides provider functions for application-scoped infrastructure objects.
"""

from infrastructure.services.providers import get_settings

__all__ = [
    "get_settings",
]
