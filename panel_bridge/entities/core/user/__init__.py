"""User entity module.

- User: Domain entity, plus the non-persisted guest placeholder
- UserTable: Database persistence model
- UserRepository: Data access layer
"""

from .entity import DEFAULT_LAT, DEFAULT_LNG, User, guest_user
from .repository import UserRepository
from .table import UserTable

__all__ = ["DEFAULT_LAT", "DEFAULT_LNG", "User", "UserTable", "UserRepository", "guest_user"]
