"""Identity storage interface and implementations.

The reconciler only needs a handful of operations on accounts and users:
find by external id, find match candidates, insert, and record a mapping.
Every operation is its own short transaction.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from panel_bridge.core.errors import DuplicateExternalIdError, MappingConflictError, StorageError
from panel_bridge.core.services.database.db_session import DbSessionService
from panel_bridge.entities.core.account import Account, AccountRepository
from panel_bridge.entities.core.user import User, UserRepository


@dataclass(frozen=True)
class NewUser:
    """Field values for a user about to be inserted."""

    account_id: int
    external_id: str | None
    username: str | None
    email: str | None
    first_name: str | None
    last_name: str | None
    lat: float
    lng: float


class IdentityStore(ABC):
    """Abstract interface for account and user persistence."""

    @abstractmethod
    def get_account_by_external_id(self, external_id: str) -> Account | None:
        raise NotImplementedError

    @abstractmethod
    def find_account_candidates(
        self, admin_email: str | None, account_name: str | None, external_id: str
    ) -> list[Account]:
        """Accounts matching by admin email OR name, unmapped or already mapped
        to ``external_id``, ordered by id."""
        raise NotImplementedError

    @abstractmethod
    def insert_account(
        self, external_id: str | None, admin_email: str | None, account_name: str | None
    ) -> Account:
        """Insert an account.

        Raises:
            DuplicateExternalIdError: if ``external_id`` is already taken
        """
        raise NotImplementedError

    @abstractmethod
    def set_account_external_id(self, account_id: int, external_id: str) -> Account:
        """Record the mapping; a no-op if it is already recorded.

        Raises:
            DuplicateExternalIdError: if another account already has ``external_id``
            MappingConflictError: if the account was mapped to another identifier
        """
        raise NotImplementedError

    @abstractmethod
    def list_accounts(self) -> list[Account]:
        raise NotImplementedError

    @abstractmethod
    def get_user_by_external_id(self, account_id: int, external_id: str) -> User | None:
        raise NotImplementedError

    @abstractmethod
    def find_user_candidates(
        self,
        account_id: int,
        username: str | None,
        email: str | None,
        first_name: str | None,
        last_name: str | None,
        external_id: str,
    ) -> list[User]:
        """Users of the account matching by username OR email OR full name,
        unmapped or already mapped to ``external_id``, ordered by id."""
        raise NotImplementedError

    @abstractmethod
    def insert_user(self, new_user: NewUser) -> User:
        """Insert a user.

        Raises:
            DuplicateExternalIdError: if the account already has ``external_id``
        """
        raise NotImplementedError

    @abstractmethod
    def set_user_external_id(self, user_id: int, external_id: str) -> User:
        """Record the mapping; a no-op if it is already recorded.

        Raises:
            DuplicateExternalIdError: if another user of the account has ``external_id``
            MappingConflictError: if the user was mapped to another identifier
        """
        raise NotImplementedError

    @abstractmethod
    def list_users(self, account_id: int) -> list[User]:
        raise NotImplementedError


class SqlIdentityStore(IdentityStore):
    """Identity store backed by the ``accounts`` and ``users`` tables."""

    def __init__(self, database_service: DbSessionService) -> None:
        self._db = database_service

    def get_account_by_external_id(self, external_id: str) -> Account | None:
        try:
            with self._db.session_scope() as session:
                return AccountRepository(session).get_by_external_id(external_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"account lookup failed: {exc}") from exc

    def find_account_candidates(
        self, admin_email: str | None, account_name: str | None, external_id: str
    ) -> list[Account]:
        try:
            with self._db.session_scope() as session:
                return AccountRepository(session).find_candidates(
                    admin_email, account_name, external_id
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"account match failed: {exc}") from exc

    def insert_account(
        self, external_id: str | None, admin_email: str | None, account_name: str | None
    ) -> Account:
        try:
            with self._db.session_scope() as session:
                return AccountRepository(session).create(external_id, admin_email, account_name)
        except IntegrityError as exc:
            raise DuplicateExternalIdError(external_id or "") from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"account insert failed: {exc}") from exc

    def set_account_external_id(self, account_id: int, external_id: str) -> Account:
        try:
            with self._db.session_scope() as session:
                repo = AccountRepository(session)
                account = repo.set_external_id(account_id, external_id)
                current = account if account is not None else repo.get(account_id)
        except IntegrityError as exc:
            raise DuplicateExternalIdError(external_id) from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"account mapping failed: {exc}") from exc
        if current is None:
            raise StorageError(f"account {account_id} disappeared while mapping")
        if account is None:
            raise MappingConflictError(account_id, current.external_id or "")
        return account

    def list_accounts(self) -> list[Account]:
        try:
            with self._db.session_scope() as session:
                return AccountRepository(session).list_all()
        except SQLAlchemyError as exc:
            raise StorageError(f"account listing failed: {exc}") from exc

    def get_user_by_external_id(self, account_id: int, external_id: str) -> User | None:
        try:
            with self._db.session_scope() as session:
                return UserRepository(session).get_by_external_id(account_id, external_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"user lookup failed: {exc}") from exc

    def find_user_candidates(
        self,
        account_id: int,
        username: str | None,
        email: str | None,
        first_name: str | None,
        last_name: str | None,
        external_id: str,
    ) -> list[User]:
        try:
            with self._db.session_scope() as session:
                return UserRepository(session).find_candidates(
                    account_id, username, email, first_name, last_name, external_id
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"user match failed: {exc}") from exc

    def insert_user(self, new_user: NewUser) -> User:
        try:
            with self._db.session_scope() as session:
                return UserRepository(session).create(
                    account_id=new_user.account_id,
                    external_id=new_user.external_id,
                    username=new_user.username,
                    email=new_user.email,
                    first_name=new_user.first_name,
                    last_name=new_user.last_name,
                    lat=new_user.lat,
                    lng=new_user.lng,
                )
        except IntegrityError as exc:
            raise DuplicateExternalIdError(new_user.external_id or "") from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"user insert failed: {exc}") from exc

    def set_user_external_id(self, user_id: int, external_id: str) -> User:
        try:
            with self._db.session_scope() as session:
                repo = UserRepository(session)
                user = repo.set_external_id(user_id, external_id)
                current = user if user is not None else repo.get(user_id)
        except IntegrityError as exc:
            raise DuplicateExternalIdError(external_id) from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"user mapping failed: {exc}") from exc
        if current is None:
            raise StorageError(f"user {user_id} disappeared while mapping")
        if user is None:
            raise MappingConflictError(user_id, current.external_id or "")
        return user

    def list_users(self, account_id: int) -> list[User]:
        try:
            with self._db.session_scope() as session:
                return UserRepository(session).list_for_account(account_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"user listing failed: {exc}") from exc


class InMemoryIdentityStore(IdentityStore):
    """Process-local identity store with the same uniqueness rules as the tables."""

    def __init__(self) -> None:
        self._accounts: dict[int, Account] = {}
        self._users: dict[int, User] = {}
        self._next_account_id = 1
        self._next_user_id = 1
        self._lock = threading.Lock()

    def get_account_by_external_id(self, external_id: str) -> Account | None:
        with self._lock:
            return self._account_by_external_id(external_id)

    def _account_by_external_id(self, external_id: str) -> Account | None:
        for account in self._accounts.values():
            if account.external_id == external_id:
                return account
        return None

    def find_account_candidates(
        self, admin_email: str | None, account_name: str | None, external_id: str
    ) -> list[Account]:
        with self._lock:
            return [
                account
                for _, account in sorted(self._accounts.items())
                if account.external_id in (None, external_id)
                and (
                    (admin_email and account.admin_email == admin_email)
                    or (account_name and account.account_name == account_name)
                )
            ]

    def insert_account(
        self, external_id: str | None, admin_email: str | None, account_name: str | None
    ) -> Account:
        with self._lock:
            if external_id is not None and self._account_by_external_id(external_id):
                raise DuplicateExternalIdError(external_id)
            account = Account(
                id=self._next_account_id,
                external_id=external_id,
                admin_email=admin_email,
                account_name=account_name,
            )
            self._accounts[account.id] = account
            self._next_account_id += 1
            return account

    def set_account_external_id(self, account_id: int, external_id: str) -> Account:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise StorageError(f"account {account_id} disappeared while mapping")
            if account.external_id == external_id:
                return account
            if account.external_id is not None:
                raise MappingConflictError(account_id, account.external_id)
            if self._account_by_external_id(external_id):
                raise DuplicateExternalIdError(external_id)
            updated = account.model_copy(
                update={"external_id": external_id, "updated_at": datetime.now(UTC)}
            )
            self._accounts[account_id] = updated
            return updated

    def list_accounts(self) -> list[Account]:
        with self._lock:
            return [account for _, account in sorted(self._accounts.items())]

    def get_user_by_external_id(self, account_id: int, external_id: str) -> User | None:
        with self._lock:
            return self._user_by_external_id(account_id, external_id)

    def _user_by_external_id(self, account_id: int, external_id: str) -> User | None:
        for user in self._users.values():
            if user.account_id == account_id and user.external_id == external_id:
                return user
        return None

    def find_user_candidates(
        self,
        account_id: int,
        username: str | None,
        email: str | None,
        first_name: str | None,
        last_name: str | None,
        external_id: str,
    ) -> list[User]:
        def matches(user: User) -> bool:
            return bool(
                (username and user.username == username)
                or (email and user.email == email)
                or (
                    first_name
                    and last_name
                    and user.first_name == first_name
                    and user.last_name == last_name
                )
            )

        with self._lock:
            return [
                user
                for _, user in sorted(self._users.items())
                if user.account_id == account_id
                and user.external_id in (None, external_id)
                and matches(user)
            ]

    def insert_user(self, new_user: NewUser) -> User:
        with self._lock:
            if new_user.external_id is not None and self._user_by_external_id(
                new_user.account_id, new_user.external_id
            ):
                raise DuplicateExternalIdError(new_user.external_id)
            user = User(
                id=self._next_user_id,
                account_id=new_user.account_id,
                external_id=new_user.external_id,
                username=new_user.username,
                email=new_user.email,
                first_name=new_user.first_name,
                last_name=new_user.last_name,
                lat=new_user.lat,
                lng=new_user.lng,
            )
            self._users[user.id] = user
            self._next_user_id += 1
            return user

    def set_user_external_id(self, user_id: int, external_id: str) -> User:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise StorageError(f"user {user_id} disappeared while mapping")
            if user.external_id == external_id:
                return user
            if user.external_id is not None:
                raise MappingConflictError(user_id, user.external_id)
            if self._user_by_external_id(user.account_id, external_id):
                raise DuplicateExternalIdError(external_id)
            updated = user.model_copy(
                update={"external_id": external_id, "updated_at": datetime.now(UTC)}
            )
            self._users[user_id] = updated
            return updated

    def list_users(self, account_id: int) -> list[User]:
        with self._lock:
            return [
                user for _, user in sorted(self._users.items()) if user.account_id == account_id
            ]
