"""Timezone helpers.

All timestamps handled by the module are timezone-aware UTC. User-facing
local times are derived with pytz from the user's preference timezone.
"""

from datetime import datetime, timezone

import pytz


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_timezone(name: str) -> str:
    """Raise ValueError unless ``name`` is a known IANA timezone."""
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc
    return name


def to_local(value: datetime, tz_name: str) -> datetime:
    """Convert an aware datetime into the named timezone."""
    return as_utc(value).astimezone(pytz.timezone(tz_name))
