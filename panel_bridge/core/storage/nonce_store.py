"""Nonce storage interface and implementations.

A nonce is acceptable in a namespace only if the same value has not been seen
there within the validity window. Two namespaces are used: ``outgoing`` for
nonces this service puts on its own Lookup API requests, ``incoming`` for the
``jti`` of partner tokens.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from loguru import logger
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from panel_bridge.core.errors import StorageError
from panel_bridge.core.services.database.db_session import DbSessionService
from panel_bridge.entities.core.nonce.table import NonceTable

INCOMING_NONCE = "incoming"
GENERATED_NONCE = "outgoing"

DEFAULT_WINDOW_SECONDS = 12 * 3600


class NonceStore(ABC):
    """Abstract interface for nonce storage backends."""

    def __init__(
        self,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._window = window_seconds
        self._clock = clock

    @property
    def window_seconds(self) -> int:
        return self._window

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now

    @abstractmethod
    def check_and_consume(self, namespace: str, value: str, now: float | None = None) -> bool:
        """Record ``value`` in ``namespace`` if it is not already there.

        Entries of the namespace older than the window are expired first.
        Concurrent callers racing on the same value never both get True.

        Args:
            namespace: Nonce namespace (``incoming`` or ``outgoing``)
            value: The nonce
            now: Current UNIX time; defaults to the store clock

        Returns:
            True if the nonce was fresh and is now recorded, False otherwise
        """
        raise NotImplementedError

    @abstractmethod
    def purge_expired(self, now: float | None = None) -> int:
        """Delete expired entries in every namespace.

        Returns:
            Number of entries removed
        """
        raise NotImplementedError


class InMemoryNonceStore(NonceStore):
    """Process-local nonce store; check-then-insert under one lock."""

    def __init__(
        self,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(window_seconds, clock)
        self._seen: dict[str, dict[str, float]] = {}
        self._lock = threading.Lock()

    def _expire(self, namespace: str, cutoff: float) -> int:
        entries = self._seen.get(namespace, {})
        expired = [value for value, seen_at in entries.items() if seen_at < cutoff]
        for value in expired:
            del entries[value]
        return len(expired)

    def check_and_consume(self, namespace: str, value: str, now: float | None = None) -> bool:
        if not value:
            return False
        now = self._now(now)
        with self._lock:
            self._expire(namespace, now - self._window)
            entries = self._seen.setdefault(namespace, {})
            if value in entries:
                return False
            entries[value] = now
            return True

    def purge_expired(self, now: float | None = None) -> int:
        cutoff = self._now(now) - self._window
        with self._lock:
            return sum(self._expire(namespace, cutoff) for namespace in list(self._seen))


class SqlNonceStore(NonceStore):
    """Nonce store backed by the ``nonces`` table.

    Atomicity comes from the ``(namespace, value)`` unique constraint: the insert
    either succeeds or fails with an integrity error, never both for two callers.
    """

    def __init__(
        self,
        database_service: DbSessionService,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(window_seconds, clock)
        self._db = database_service

    def _delete_expired(self, cutoff: float, namespace: str | None = None) -> int:
        statement = delete(NonceTable).where(NonceTable.seen_at < cutoff)
        if namespace is not None:
            statement = statement.where(NonceTable.namespace == namespace)
        with self._db.session_scope() as session:
            result = session.connection().execute(statement)
            return result.rowcount or 0

    def check_and_consume(self, namespace: str, value: str, now: float | None = None) -> bool:
        if not value:
            return False
        now = self._now(now)
        try:
            self._delete_expired(now - self._window, namespace)
            with self._db.session_scope() as session:
                session.add(NonceTable(namespace=namespace, value=value, seen_at=now))
        except IntegrityError:
            logger.debug(f"Nonce already seen in namespace '{namespace}'")
            return False
        except SQLAlchemyError as exc:
            raise StorageError(f"nonce check failed: {exc}") from exc
        return True

    def purge_expired(self, now: float | None = None) -> int:
        try:
            removed = self._delete_expired(self._now(now) - self._window)
        except SQLAlchemyError as exc:
            raise StorageError(f"nonce purge failed: {exc}") from exc
        logger.info(f"Purged {removed} expired nonce(s)")
        return removed
