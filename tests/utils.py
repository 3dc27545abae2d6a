import uuid
from collections.abc import Callable
from typing import Any

from authlib.jose import jwt

from panel_bridge.core.errors import LookupErrorKind, PartnerLookupError
from panel_bridge.core.models.descriptors import AccountDescriptor, UserDescriptor
from panel_bridge.core.services.lookup.client import LookupClient
from panel_bridge.runtime.config.config_data import PARTNER_ISSUER

SHARED_SECRET = "partner-shared-secret"
INTEGRATION_ID = "integration-123"
START_TIME = 1_700_000_000.0


class ManualClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_partner_token(
    now: float,
    secret: str = SHARED_SECRET,
    header: dict[str, Any] | None = None,
    omit: tuple[str, ...] = (),
    **claims: Any,
) -> str:
    """Sign a token the way the partner does; ``claims`` override the defaults."""
    payload: dict[str, Any] = {
        "iss": PARTNER_ISSUER,
        "iat": int(now),
        "exp": int(now) + 300,
        "jti": uuid.uuid4().hex,
        "account": "acct-ext-1",
        "sub": "user-ext-1",
        "aud": "user-ext-2",
    }
    payload.update(claims)
    for name in omit:
        payload.pop(name, None)
    token = jwt.encode(header or {"alg": "HS256", "typ": "JWT"}, payload, secret)
    return token.decode("utf-8")


class FakeLookupClient(LookupClient):
    """In-process stand-in for the partner Lookup API."""

    def __init__(self) -> None:
        self.accounts: dict[str, AccountDescriptor] = {}
        self.users: dict[tuple[str, str], UserDescriptor] = {}
        self.failing: LookupErrorKind | None = None
        self.before_account_lookup: Callable[[], None] | None = None
        self.calls: list[tuple[str, ...]] = []

    def add_account(self, identifier: str, admin_email: str | None, name: str | None):
        self.accounts[identifier] = AccountDescriptor(
            identifier=identifier, admin_email=admin_email, name=name
        )

    def add_user(self, account: str, identifier: str, **fields: Any) -> None:
        self.users[(account, identifier)] = UserDescriptor(identifier=identifier, **fields)

    def _maybe_fail(self) -> None:
        if self.failing is not None:
            raise PartnerLookupError(self.failing, "simulated")

    async def account_lookup(self, external_account_id: str) -> AccountDescriptor | None:
        self.calls.append(("account", external_account_id))
        if self.before_account_lookup is not None:
            self.before_account_lookup()
        self._maybe_fail()
        return self.accounts.get(external_account_id)

    async def user_lookup(
        self, external_account_id: str, external_user_id: str
    ) -> UserDescriptor | None:
        self.calls.append(("user", external_account_id, external_user_id))
        self._maybe_fail()
        return self.users.get((external_account_id, external_user_id))

    async def bulk_user_lookup(self, external_account_id: str) -> list[UserDescriptor]:
        self.calls.append(("bulk", external_account_id))
        self._maybe_fail()
        return [
            descriptor
            for (account, _), descriptor in self.users.items()
            if account == external_account_id
        ]
