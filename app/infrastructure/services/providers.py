"""
Factory functions for dependency injection.

Provides the application-scoped settings provider. Services are constructed
explicitly from these settings rather than cached as process globals.
"""

from functools import lru_cache

from infrastructure.configuration import Settings


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    This is the single source of truth for settings across the entire application.
    The @lru_cache decorator ensures only ONE instance is created per process,
    even if called from multiple packages.

    Infrastructure packages should use this directly to ensure singleton consistency:
        from infrastructure.services.providers import get_settings
        settings = get_settings()

    Tests should construct ``Settings`` directly or call
    ``get_settings.cache_clear()`` after patching the environment.

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()
