"""Tests for account and user reconciliation."""

import asyncio
import threading
from unittest.mock import Mock, patch

import pytest

from panel_bridge.core.errors import LookupErrorKind, StorageError
from panel_bridge.core.models.descriptors import AccountDescriptor, UserDescriptor
from panel_bridge.core.services.database import DbSessionService, create_all
from panel_bridge.core.services.identity import IdentityReconciler, random_coordinates
from panel_bridge.core.storage import (
    IdentityStore,
    InMemoryIdentityStore,
    NewUser,
    SqlIdentityStore,
)
from panel_bridge.runtime.config.config_data import (
    ConfigData,
    DatabaseConfig,
    ReconciliationConfig,
)
from tests.fixtures.lookup import FIXED_COORDINATES
from tests.utils import FakeLookupClient

MUTATORS = (
    "insert_account",
    "set_account_external_id",
    "insert_user",
    "set_user_external_id",
)


def _with_toggles(config: ConfigData, accounts: bool = True, users: bool = True) -> ConfigData:
    return config.model_copy(
        update={
            "reconciliation": ReconciliationConfig(
                create_account_if_not_exists=accounts, create_user_if_not_exists=users
            )
        }
    )


def _assert_no_writes(spy: Mock) -> None:
    for name in MUTATORS:
        getattr(spy, name).assert_not_called()


class TestResolveAccount:
    async def test_creates_account_when_unmatched(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store
    ):
        fake_lookup.add_account("ext-1", "a@x.com", "Acme")

        account = await reconciler.resolve_account("ext-1")

        assert account is not None
        assert account.external_id == "ext-1"
        assert account.admin_email == "a@x.com"
        assert account.account_name == "Acme"
        assert len(identity_store.list_accounts()) == 1

    async def test_second_resolution_performs_no_write(
        self, config, fake_lookup: FakeLookupClient, identity_store: SqlIdentityStore
    ):
        fake_lookup.add_account("ext-1", "a@x.com", "Acme")
        spy = Mock(wraps=identity_store)
        reconciler = IdentityReconciler(spy, fake_lookup, config)

        first = await reconciler.resolve_account("ext-1")
        spy.reset_mock()
        second = await reconciler.resolve_account("ext-1")

        assert second.id == first.id
        _assert_no_writes(spy)
        assert len(identity_store.list_accounts()) == 1

    async def test_mapping_same_descriptor_twice_is_idempotent(
        self, config, fake_lookup: FakeLookupClient, identity_store: SqlIdentityStore
    ):
        descriptor = AccountDescriptor(identifier="ext-1", admin_email="a@x.com", name="Acme")
        spy = Mock(wraps=identity_store)
        reconciler = IdentityReconciler(spy, fake_lookup, config)

        first = await reconciler.map_account(descriptor)
        spy.reset_mock()
        second = await reconciler.map_account(descriptor)

        assert second.id == first.id
        _assert_no_writes(spy)

    async def test_matches_existing_account_by_name(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store
    ):
        existing = identity_store.insert_account(None, "owner@x.com", "Acme")
        fake_lookup.add_account("ext-2", "other@x.com", "Acme")

        account = await reconciler.resolve_account("ext-2")

        assert account.id == existing.id
        assert account.external_id == "ext-2"
        assert len(identity_store.list_accounts()) == 1

    async def test_matches_existing_account_by_admin_email(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store
    ):
        existing = identity_store.insert_account(None, "a@x.com", "Old Name")
        fake_lookup.add_account("ext-3", "a@x.com", "New Name")

        account = await reconciler.resolve_account("ext-3")
        assert account.id == existing.id

    async def test_ambiguous_match_prefers_lowest_id(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store
    ):
        lowest = identity_store.insert_account(None, "x@x.com", "Acme")
        identity_store.insert_account(None, "a@x.com", "Other")
        fake_lookup.add_account("ext-1", "a@x.com", "Acme")

        account = await reconciler.resolve_account("ext-1")
        assert account.id == lowest.id

    async def test_never_steals_an_account_mapped_elsewhere(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store
    ):
        taken = identity_store.insert_account("ext-old", "a@x.com", "Acme")
        fake_lookup.add_account("ext-new", "a@x.com", "Acme")

        account = await reconciler.resolve_account("ext-new")

        assert account.id != taken.id
        assert identity_store.get_account_by_external_id("ext-old").id == taken.id

    async def test_creation_disabled(self, config, fake_lookup: FakeLookupClient, identity_store):
        fake_lookup.add_account("ext-1", "a@x.com", "Acme")
        reconciler = IdentityReconciler(identity_store, fake_lookup, _with_toggles(config, accounts=False))

        assert await reconciler.resolve_account("ext-1") is None
        assert identity_store.list_accounts() == []

    async def test_local_only_resolution_skips_lookup(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient
    ):
        fake_lookup.add_account("ext-1", "a@x.com", "Acme")

        assert await reconciler.resolve_account("ext-1", allow_remote_lookup=False) is None
        assert fake_lookup.calls == []

    @pytest.mark.parametrize("external_id", [None, ""])
    async def test_empty_identifier(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, external_id
    ):
        assert await reconciler.resolve_account(external_id) is None
        assert fake_lookup.calls == []

    async def test_unknown_to_partner(self, reconciler: IdentityReconciler, identity_store):
        assert await reconciler.resolve_account("ext-missing") is None
        assert identity_store.list_accounts() == []

    @pytest.mark.parametrize(
        "kind", [LookupErrorKind.REMOTE_UNAVAILABLE, LookupErrorKind.REMOTE_TIMEOUT]
    )
    async def test_lookup_failure_degrades_to_none(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, kind
    ):
        fake_lookup.failing = kind
        assert await reconciler.resolve_account("ext-1") is None

    async def test_blank_descriptor_values_never_match(
        self, reconciler: IdentityReconciler, identity_store
    ):
        identity_store.insert_account(None, None, None)
        descriptor = AccountDescriptor(identifier="ext-1", admin_email="  ", name="")

        account = await reconciler.map_account(descriptor)

        assert account.id == 2
        assert account.admin_email is None

    async def test_duplicate_on_insert_rereads_winner(
        self, config, fake_lookup: FakeLookupClient, identity_store: SqlIdentityStore
    ):
        winner = identity_store.insert_account("ext-1", "first@x.com", "First")
        reconciler = IdentityReconciler(identity_store, fake_lookup, config)
        descriptor = AccountDescriptor(identifier="ext-1", admin_email="a@x.com", name="Acme")

        # simulate losing the race: the match query ran before the winner committed
        with patch.object(identity_store, "find_account_candidates", return_value=[]):
            account = await reconciler.map_account(descriptor)

        assert account.id == winner.id
        assert len(identity_store.list_accounts()) == 1

    async def test_duplicate_on_mapping_rereads_winner(
        self, config, fake_lookup: FakeLookupClient, identity_store: SqlIdentityStore
    ):
        unmapped = identity_store.insert_account(None, "a@x.com", "Acme")
        winner = identity_store.insert_account("ext-1", "b@x.com", "Beta")
        reconciler = IdentityReconciler(identity_store, fake_lookup, config)
        descriptor = AccountDescriptor(identifier="ext-1", admin_email="a@x.com", name="Acme")

        with patch.object(identity_store, "find_account_candidates", return_value=[unmapped]):
            account = await reconciler.map_account(descriptor)

        assert account.id == winner.id
        assert identity_store.list_accounts()[0].external_id is None

    async def test_storage_failure_propagates(self, config, fake_lookup: FakeLookupClient):
        store = Mock(spec=IdentityStore)
        store.get_account_by_external_id.side_effect = StorageError("down")
        reconciler = IdentityReconciler(store, fake_lookup, config)

        with pytest.raises(StorageError):
            await reconciler.resolve_account("ext-1")


class TestConcurrentResolution:
    @staticmethod
    def _race(store: IdentityStore, config: ConfigData, workers: int = 8) -> list[int | None]:
        lookup = FakeLookupClient()
        lookup.add_account("ext-race", "race@x.com", "Race")
        # every worker reaches the remote lookup before any of them writes
        barrier = threading.Barrier(workers)
        lookup.before_account_lookup = barrier.wait
        reconciler = IdentityReconciler(store, lookup, config)

        results: list[int | None] = []
        lock = threading.Lock()

        def worker() -> None:
            account = asyncio.run(reconciler.resolve_account("ext-race"))
            with lock:
                results.append(account.id if account else None)

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results

    def test_in_memory_store_creates_one_account(self, config: ConfigData):
        store = InMemoryIdentityStore()
        results = self._race(store, config)

        assert len(store.list_accounts()) == 1
        assert len(results) == 8
        assert set(results) == {store.list_accounts()[0].id}

    def test_sql_store_creates_one_account(self, config: ConfigData, tmp_path):
        service = DbSessionService(DatabaseConfig(url=f"sqlite:///{tmp_path / 'race.db'}"))
        create_all(service)
        store = SqlIdentityStore(service)
        try:
            results = self._race(store, config)
            accounts = store.list_accounts()
        finally:
            service.dispose()

        assert len(accounts) == 1
        assert set(results) == {accounts[0].id}


class TestInterleavedMapping:
    """Another request maps the chosen candidate between the match and the write."""

    @pytest.fixture(params=["memory", "sql"])
    def store(self, request, memory_identity_store, identity_store) -> IdentityStore:
        return memory_identity_store if request.param == "memory" else identity_store

    async def test_account_mapped_elsewhere_is_not_overwritten(
        self, config, fake_lookup: FakeLookupClient, store: IdentityStore
    ):
        shared = store.insert_account(None, "a@x.com", "Acme")
        fake_lookup.add_account("ext-B", "a@x.com", "Acme")
        find_candidates = store.find_account_candidates

        def find_then_lose_race(*args):
            candidates = find_candidates(*args)
            store.set_account_external_id(shared.id, "ext-A")
            return candidates

        reconciler = IdentityReconciler(store, fake_lookup, config)
        with patch.object(store, "find_account_candidates", side_effect=find_then_lose_race):
            account = await reconciler.resolve_account("ext-B")

        assert account.id != shared.id
        assert account.external_id == "ext-B"
        assert store.get_account_by_external_id("ext-A").id == shared.id

    async def test_account_conflict_without_creation(
        self, config, fake_lookup: FakeLookupClient, store: IdentityStore
    ):
        shared = store.insert_account(None, "a@x.com", "Acme")
        fake_lookup.add_account("ext-B", "a@x.com", "Acme")
        find_candidates = store.find_account_candidates

        def find_then_lose_race(*args):
            candidates = find_candidates(*args)
            store.set_account_external_id(shared.id, "ext-A")
            return candidates

        reconciler = IdentityReconciler(store, fake_lookup, _with_toggles(config, accounts=False))
        with patch.object(store, "find_account_candidates", side_effect=find_then_lose_race):
            assert await reconciler.resolve_account("ext-B") is None

        assert [a.external_id for a in store.list_accounts()] == ["ext-A"]

    async def test_user_mapped_elsewhere_is_not_overwritten(
        self, config, fake_lookup: FakeLookupClient, store: IdentityStore
    ):
        account = store.insert_account("acct-1", "a@x.com", "Acme")
        shared = store.insert_user(NewUser(account.id, None, "ada", None, None, None, 1.0, 2.0))
        fake_lookup.add_user("acct-1", "user-B", username="ada")
        find_candidates = store.find_user_candidates

        def find_then_lose_race(*args):
            candidates = find_candidates(*args)
            store.set_user_external_id(shared.id, "user-A")
            return candidates

        reconciler = IdentityReconciler(
            store, fake_lookup, config, coordinates=lambda: FIXED_COORDINATES
        )
        with patch.object(store, "find_user_candidates", side_effect=find_then_lose_race):
            user = await reconciler.resolve_user("user-B", account)

        assert user.id != shared.id
        assert (user.lat, user.lng) == FIXED_COORDINATES
        assert store.get_user_by_external_id(account.id, "user-A").id == shared.id


class TestResolveUser:
    @pytest.fixture
    def account(self, identity_store):
        return identity_store.insert_account("acct-1", "a@x.com", "Acme")

    async def test_creates_user_with_placeholder_coordinates(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, account
    ):
        fake_lookup.add_user(
            "acct-1", "user-1", username="ada", email="ada@x.com", first_name="Ada", last_name="L"
        )

        user = await reconciler.resolve_user("user-1", account)

        assert user.account_id == account.id
        assert user.external_id == "user-1"
        assert (user.lat, user.lng) == FIXED_COORDINATES
        assert fake_lookup.calls == [("user", "acct-1", "user-1")]

    async def test_matches_by_full_name(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store, account
    ):
        existing = identity_store.insert_user(
            NewUser(account.id, None, "ada1", None, "Ada", "Lovelace", 1.0, 2.0)
        )
        fake_lookup.add_user("acct-1", "user-1", first_name="Ada", last_name="Lovelace")

        user = await reconciler.resolve_user("user-1", account)

        assert user.id == existing.id
        assert user.external_id == "user-1"
        assert (user.lat, user.lng) == (1.0, 2.0)

    async def test_match_scoped_to_account(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store, account
    ):
        other = identity_store.insert_account("acct-2", None, "Other")
        foreign = identity_store.insert_user(NewUser(other.id, None, "ada", None, None, None, 0, 0))
        fake_lookup.add_user("acct-1", "user-1", username="ada")

        user = await reconciler.resolve_user("user-1", account)
        assert user.id != foreign.id
        assert user.account_id == account.id

    async def test_creation_disabled_creates_nothing(
        self, config, fake_lookup: FakeLookupClient, identity_store, account
    ):
        fake_lookup.add_user("acct-1", "user-1", username="nobody")
        reconciler = IdentityReconciler(identity_store, fake_lookup, _with_toggles(config, users=False))

        assert await reconciler.resolve_user("user-1", account) is None
        assert identity_store.list_users(account.id) == []

    async def test_second_resolution_performs_no_write(
        self, config, fake_lookup: FakeLookupClient, identity_store, account
    ):
        fake_lookup.add_user("acct-1", "user-1", username="ada")
        spy = Mock(wraps=identity_store)
        reconciler = IdentityReconciler(spy, fake_lookup, config)

        first = await reconciler.resolve_user("user-1", account)
        spy.reset_mock()
        second = await reconciler.resolve_user("user-1", account)

        assert second.id == first.id
        _assert_no_writes(spy)

    async def test_unmapped_account_cannot_look_up_users(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store
    ):
        unmapped = identity_store.insert_account(None, "u@x.com", "Unmapped")
        assert await reconciler.resolve_user("user-1", unmapped) is None
        assert fake_lookup.calls == []

    async def test_lookup_failure_degrades_to_none(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, account
    ):
        fake_lookup.failing = LookupErrorKind.REMOTE_TIMEOUT
        assert await reconciler.resolve_user("user-1", account) is None

    async def test_duplicate_on_insert_rereads_winner(
        self, config, fake_lookup: FakeLookupClient, identity_store: SqlIdentityStore, account
    ):
        winner = identity_store.insert_user(
            NewUser(account.id, "user-1", "first", None, None, None, 0, 0)
        )
        reconciler = IdentityReconciler(identity_store, fake_lookup, config)
        descriptor = UserDescriptor(identifier="user-1", username="ada")

        with patch.object(identity_store, "find_user_candidates", return_value=[]):
            user = await reconciler.map_user(descriptor, account)

        assert user.id == winner.id
        assert len(identity_store.list_users(account.id)) == 1


class TestReconcileAll:
    async def test_maps_every_partner_user(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store
    ):
        account = identity_store.insert_account("acct-1", None, "Acme")
        identity_store.insert_user(NewUser(account.id, None, "ada", None, None, None, 0, 0))
        fake_lookup.add_user("acct-1", "user-1", username="ada")
        fake_lookup.add_user("acct-1", "user-2", username="grace")

        await reconciler.reconcile_all(account)

        users = identity_store.list_users(account.id)
        assert sorted(u.external_id for u in users) == ["user-1", "user-2"]
        assert all(call[0] == "bulk" for call in fake_lookup.calls)

    async def test_one_failure_does_not_abort_the_rest(
        self, config, fake_lookup: FakeLookupClient, identity_store: SqlIdentityStore
    ):
        account = identity_store.insert_account("acct-1", None, "Acme")
        for n in range(1, 4):
            fake_lookup.add_user("acct-1", f"user-{n}", username=f"u{n}")

        real_insert = identity_store.insert_user

        def flaky_insert(new_user: NewUser):
            if new_user.external_id == "user-2":
                raise StorageError("disk full")
            return real_insert(new_user)

        reconciler = IdentityReconciler(identity_store, fake_lookup, config)
        with patch.object(identity_store, "insert_user", side_effect=flaky_insert):
            await reconciler.reconcile_all(account)

        users = identity_store.list_users(account.id)
        assert sorted(u.external_id for u in users) == ["user-1", "user-3"]

    async def test_lookup_failure_is_swallowed(
        self, reconciler: IdentityReconciler, fake_lookup: FakeLookupClient, identity_store
    ):
        account = identity_store.insert_account("acct-1", None, "Acme")
        fake_lookup.failing = LookupErrorKind.REMOTE_UNAVAILABLE

        await reconciler.reconcile_all(account)
        assert identity_store.list_users(account.id) == []


class TestPlaceholders:
    def test_guest_user(self, reconciler: IdentityReconciler):
        guest = reconciler.guest_user()
        assert guest.id == 0
        assert guest.is_guest
        assert guest.first_name == "guest"
        assert (guest.lat, guest.lng) == (43.4, -80.5)

    def test_random_coordinates_in_range(self):
        for _ in range(200):
            lat, lng = random_coordinates()
            assert 20.0 <= lat <= 65.0
            assert -125.0 <= lng <= -80.0
            assert round(lat * 10) == pytest.approx(lat * 10)
            assert round(lng * 10) == pytest.approx(lng * 10)
