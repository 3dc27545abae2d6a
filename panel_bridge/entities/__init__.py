"""Entities organised by business concept.

Each entity has its own package containing:
- entity.py: Domain model
- table.py: Database persistence model
- repository.py: Data access layer

Nonces are storage-only and have a table but no domain entity.
"""

from .core.account import Account, AccountRepository, AccountTable
from .core.nonce import NonceTable
from .core.user import User, UserRepository, UserTable, guest_user

__all__ = [
    "Account",
    "AccountTable",
    "AccountRepository",
    "User",
    "UserTable",
    "UserRepository",
    "guest_user",
    "NonceTable",
]
