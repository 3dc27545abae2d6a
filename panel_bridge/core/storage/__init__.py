"""Storage backends for nonces and identities."""

from .identity_store import (
    IdentityStore,
    InMemoryIdentityStore,
    NewUser,
    SqlIdentityStore,
)
from .nonce_store import (
    GENERATED_NONCE,
    INCOMING_NONCE,
    InMemoryNonceStore,
    NonceStore,
    SqlNonceStore,
)

__all__ = [
    "IdentityStore",
    "InMemoryIdentityStore",
    "NewUser",
    "SqlIdentityStore",
    "GENERATED_NONCE",
    "INCOMING_NONCE",
    "InMemoryNonceStore",
    "NonceStore",
    "SqlNonceStore",
]
