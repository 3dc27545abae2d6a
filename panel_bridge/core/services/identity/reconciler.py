"""Match partner identities to local accounts and users, creating them on demand.

Mapping is idempotent: a record that already carries the partner identifier is
returned untouched, and uniqueness violations raised by storage are read as
"another request got there first" and resolved by re-reading.
A candidate that another request mapped to a different identifier in the
meantime drops out of the next match attempt.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from typing import TypeVar

from loguru import logger

from panel_bridge.core.errors import (
    DuplicateExternalIdError,
    MappingConflictError,
    PanelBridgeError,
    PartnerLookupError,
    ReconciliationErrorKind,
)
from panel_bridge.core.models.descriptors import AccountDescriptor, UserDescriptor
from panel_bridge.core.services.lookup.client import LookupClient
from panel_bridge.core.storage.identity_store import IdentityStore, NewUser
from panel_bridge.entities.core.account import Account
from panel_bridge.entities.core.user import User, guest_user
from panel_bridge.runtime.config.config_data import ConfigData

CoordinateSource = Callable[[], tuple[float, float]]

_T = TypeVar("_T", Account, User)


def random_coordinates() -> tuple[float, float]:
    """Placeholder location for a new user, somewhere in North America.

    Latitude in [20.0, 65.0] and longitude in [-125.0, -80.0], 0.1 degree steps.
    """
    return random.randint(200, 650) / 10, random.randint(-1250, -800) / 10


def _value(value: str | None) -> str | None:
    """Blank descriptor values never take part in matching."""
    if value is None:
        return None
    return value.strip() or None


def _pick(candidates: Sequence[_T], external_id: str, kind: str) -> _T:
    already_mapped = [c for c in candidates if c.external_id == external_id]
    if already_mapped:
        return already_mapped[0]
    if len(candidates) > 1:
        logger.warning(
            f"{ReconciliationErrorKind.AMBIGUOUS_MATCH}: {len(candidates)} local {kind}s "
            f"match identifier {external_id}; using id {candidates[0].id}"
        )
    return candidates[0]


class IdentityReconciler:
    """Resolves partner account and user identifiers to local records."""

    def __init__(
        self,
        store: IdentityStore,
        lookup_client: LookupClient,
        config: ConfigData,
        coordinates: CoordinateSource = random_coordinates,
    ) -> None:
        self._store = store
        self._lookup = lookup_client
        self._create_accounts = config.reconciliation.create_account_if_not_exists
        self._create_users = config.reconciliation.create_user_if_not_exists
        self._coordinates = coordinates

    # ----- accounts -----

    async def resolve_account(
        self, external_id: str | None, allow_remote_lookup: bool = True
    ) -> Account | None:
        """Find the local account for a partner account identifier.

        Args:
            external_id: Partner account identifier
            allow_remote_lookup: Ask the Lookup API and map the answer on a local miss

        Returns:
            The local account, or None if it is unknown and cannot be created

        Raises:
            StorageError: if the identity store fails
        """
        if not external_id:
            return None

        account = self._store.get_account_by_external_id(external_id)
        if account is not None or not allow_remote_lookup:
            return account

        try:
            descriptor = await self._lookup.account_lookup(external_id)
        except PartnerLookupError as e:
            logger.warning(f"Account lookup for {external_id} failed ({e.kind}): {e.detail}")
            return None
        if descriptor is None:
            logger.info(f"Partner has no account {external_id}")
            return None

        return await self.map_account(descriptor)

    async def map_account(self, descriptor: AccountDescriptor) -> Account | None:
        """Attach a partner account to the matching local account, or create one."""
        external_id = descriptor.identifier
        request_log = logger.bind(request_log=True)

        candidates = self._store.find_account_candidates(
            _value(descriptor.admin_email), _value(descriptor.name), external_id
        )
        if candidates:
            match = _pick(candidates, external_id, "account")
            if match.external_id == external_id:
                return match
            try:
                account = self._store.set_account_external_id(match.id, external_id)
            except DuplicateExternalIdError:
                logger.info(f"Account {external_id} was mapped concurrently; re-reading")
                return self._store.get_account_by_external_id(external_id)
            except MappingConflictError as e:
                logger.info(
                    f"Account {match.id} was mapped to {e.external_id} concurrently; "
                    f"matching {external_id} again"
                )
                return await self.map_account(descriptor)
            request_log.info(f"Mapped account {account.account_name} to identifier {external_id}")
            return account

        if not self._create_accounts:
            logger.info(
                f"{ReconciliationErrorKind.CREATION_DISABLED}: no local account for {external_id}"
            )
            return None

        try:
            self._store.insert_account(
                external_id, _value(descriptor.admin_email), _value(descriptor.name)
            )
        except DuplicateExternalIdError:
            logger.info(f"Account {external_id} was created concurrently; re-reading")
        else:
            request_log.info(
                f"Created a new account {descriptor.name} for identifier {external_id}"
            )
        return await self.resolve_account(external_id, allow_remote_lookup=False)

    # ----- users -----

    async def resolve_user(
        self, external_id: str | None, account: Account, allow_remote_lookup: bool = True
    ) -> User | None:
        """Find the local user of ``account`` for a partner user identifier.

        Raises:
            StorageError: if the identity store fails
        """
        if not external_id:
            return None

        user = self._store.get_user_by_external_id(account.id, external_id)
        if user is not None or not allow_remote_lookup:
            return user
        if not account.external_id:
            logger.warning(f"Account {account.id} is not mapped; cannot look up user {external_id}")
            return None

        try:
            descriptor = await self._lookup.user_lookup(account.external_id, external_id)
        except PartnerLookupError as e:
            logger.warning(f"User lookup for {external_id} failed ({e.kind}): {e.detail}")
            return None
        if descriptor is None:
            logger.info(f"Partner has no user {external_id} in account {account.external_id}")
            return None

        return await self.map_user(descriptor, account)

    async def map_user(self, descriptor: UserDescriptor, account: Account) -> User | None:
        """Attach a partner user to the matching local user of ``account``, or create one."""
        external_id = descriptor.identifier
        request_log = logger.bind(request_log=True)

        candidates = self._store.find_user_candidates(
            account.id,
            _value(descriptor.username),
            _value(descriptor.email),
            _value(descriptor.first_name),
            _value(descriptor.last_name),
            external_id,
        )
        if candidates:
            match = _pick(candidates, external_id, "user")
            if match.external_id == external_id:
                return match
            try:
                user = self._store.set_user_external_id(match.id, external_id)
            except DuplicateExternalIdError:
                logger.info(f"User {external_id} was mapped concurrently; re-reading")
                return self._store.get_user_by_external_id(account.id, external_id)
            except MappingConflictError as e:
                logger.info(
                    f"User {match.id} was mapped to {e.external_id} concurrently; "
                    f"matching {external_id} again"
                )
                return await self.map_user(descriptor, account)
            request_log.info(f"Mapped user {user.username} to identifier {external_id}")
            return user

        if not self._create_users:
            logger.info(
                f"{ReconciliationErrorKind.CREATION_DISABLED}: no local user for {external_id}"
            )
            return None

        lat, lng = self._coordinates()
        try:
            self._store.insert_user(
                NewUser(
                    account_id=account.id,
                    external_id=external_id,
                    username=_value(descriptor.username),
                    email=_value(descriptor.email),
                    first_name=_value(descriptor.first_name),
                    last_name=_value(descriptor.last_name),
                    lat=lat,
                    lng=lng,
                )
            )
        except DuplicateExternalIdError:
            logger.info(f"User {external_id} was created concurrently; re-reading")
        else:
            request_log.info(f"Created a new user {descriptor.email} for identifier {external_id}")
        return await self.resolve_user(external_id, account, allow_remote_lookup=False)

    async def reconcile_all(self, account: Account) -> None:
        """Map every partner user of ``account``; one bad user never stops the rest."""
        if not account.external_id:
            logger.warning(f"Account {account.id} is not mapped; skipping bulk reconciliation")
            return

        try:
            descriptors = await self._lookup.bulk_user_lookup(account.external_id)
        except PartnerLookupError as e:
            logger.warning(
                f"Bulk user lookup for {account.external_id} failed ({e.kind}): {e.detail}"
            )
            return

        mapped = 0
        for descriptor in descriptors:
            try:
                if await self.map_user(descriptor, account) is not None:
                    mapped += 1
            except PanelBridgeError as e:
                logger.error(f"Failed to reconcile user {descriptor.identifier}: {e}")
        logger.info(
            f"Reconciled {mapped}/{len(descriptors)} users for account {account.external_id}"
        )

    @staticmethod
    def guest_user() -> User:
        return guest_user()
