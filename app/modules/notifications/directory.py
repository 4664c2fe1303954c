"""User directory used to resolve broadcast segments.

The directory is an external collaborator. ``InMemoryUserDirectory`` backs
development and tests with a static list of users.
"""

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol


class UserDirectory(Protocol):
    """Read-only lookup of user ids by audience criteria.

    All methods return ids in a stable order.
    """

    def all_user_ids(self) -> List[str]:
        ...

    def user_ids_by_roles(self, roles: Iterable[str]) -> List[str]:
        ...

    def user_ids_by_locations(self, locations: Iterable[str]) -> List[str]:
        ...


@dataclass
class DirectoryUser:
    """Directory entry.

    Attributes:
        id: User id
        role: Role name (e.g. "customer", "vendor", "admin")
        location: Free-form location key (e.g. city or region)
        active: Inactive users are never resolved
    """

    id: str
    role: Optional[str] = None
    location: Optional[str] = None
    active: bool = True


class InMemoryUserDirectory:
    """In-memory UserDirectory preserving insertion order."""

    def __init__(self, users: Optional[Iterable[DirectoryUser]] = None) -> None:
        self._users: Dict[str, DirectoryUser] = {}
        self._lock = threading.Lock()
        for user in users or []:
            self._users[user.id] = user

    def add_user(self, user: DirectoryUser) -> None:
        with self._lock:
            self._users[user.id] = user

    def all_user_ids(self) -> List[str]:
        with self._lock:
            return [u.id for u in self._users.values() if u.active]

    def user_ids_by_roles(self, roles: Iterable[str]) -> List[str]:
        wanted = set(roles)
        with self._lock:
            return [u.id for u in self._users.values() if u.active and u.role in wanted]

    def user_ids_by_locations(self, locations: Iterable[str]) -> List[str]:
        wanted = set(locations)
        with self._lock:
            return [
                u.id for u in self._users.values() if u.active and u.location in wanted
            ]
