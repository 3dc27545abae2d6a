"""Partner Lookup API client.

The Lookup API answers three questions about a partner account: who the
account is, who one of its users is, and who all of its users are. Every call
is authenticated with a freshly signed bearer token.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import ValidationError

from panel_bridge.core.errors import LookupErrorKind, NonceExhaustedError, PartnerLookupError
from panel_bridge.core.models.descriptors import AccountDescriptor, UserDescriptor
from panel_bridge.core.services.jwt.jwt_gen import RequestTokenGenerator
from panel_bridge.runtime.config.config_data import ConfigData


class LookupClient(ABC):
    """Abstract interface for resolving partner identifiers."""

    @abstractmethod
    async def account_lookup(self, external_account_id: str) -> AccountDescriptor | None:
        """Describe a partner account, or None if the partner does not know it.

        Raises:
            PartnerLookupError: if the partner could not be asked
        """
        raise NotImplementedError

    @abstractmethod
    async def user_lookup(
        self, external_account_id: str, external_user_id: str
    ) -> UserDescriptor | None:
        """Describe one user of a partner account, or None if unknown.

        Raises:
            PartnerLookupError: if the partner could not be asked
        """
        raise NotImplementedError

    @abstractmethod
    async def bulk_user_lookup(self, external_account_id: str) -> list[UserDescriptor]:
        """Describe every user of a partner account.

        Raises:
            PartnerLookupError: if the partner could not be asked
        """
        raise NotImplementedError


class HttpLookupClient(LookupClient):
    """Lookup client talking to the partner over HTTPS with httpx."""

    def __init__(
        self,
        config: ConfigData,
        token_generator: RequestTokenGenerator,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = config.partner.normalized_lookup_endpoint
        self._timeout = config.partner.request_timeout_seconds
        self._token_generator = token_generator
        self._transport = transport

    def _url(self, *parts: str) -> str:
        path = "/".join(quote(part, safe="") for part in parts)
        return f"{self._endpoint}{path}.json"

    async def account_lookup(self, external_account_id: str) -> AccountDescriptor | None:
        data = await self._request(self._url("account", external_account_id))
        if data is None:
            return None
        return _parse(AccountDescriptor, data)

    async def user_lookup(
        self, external_account_id: str, external_user_id: str
    ) -> UserDescriptor | None:
        data = await self._request(
            self._url("account", external_account_id, "users", external_user_id)
        )
        if data is None:
            return None
        return _parse(UserDescriptor, data)

    async def bulk_user_lookup(self, external_account_id: str) -> list[UserDescriptor]:
        data = await self._request(self._url("account", external_account_id, "users"))
        if data is None:
            return []
        if isinstance(data, dict):
            data = data.get("users", [])
        if not isinstance(data, list):
            raise PartnerLookupError(
                LookupErrorKind.REMOTE_UNAVAILABLE, "bulk user lookup did not return a list"
            )

        users: list[UserDescriptor] = []
        for item in data:
            try:
                users.append(UserDescriptor.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping unusable user record from bulk lookup: {e}")
        return users

    async def _request(self, url: str) -> Any | None:
        """GET ``url`` with a signed bearer token and return the decoded JSON body.

        Returns None for 404 and for an empty body.
        """
        try:
            token = self._token_generator.sign_request_token()
        except NonceExhaustedError as e:
            logger.error(f"Could not sign Lookup API request: {e}")
            raise PartnerLookupError(LookupErrorKind.REMOTE_UNAVAILABLE, str(e)) from e
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        request_log = logger.bind(request_log=True)
        request_log.info(f"Issuing Lookup API request to URL: {url}")

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Lookup API request timed out: {url}")
            raise PartnerLookupError(LookupErrorKind.REMOTE_TIMEOUT, str(e)) from e
        except httpx.HTTPError as e:
            logger.warning(f"Lookup API request failed: {url}: {e}")
            raise PartnerLookupError(LookupErrorKind.REMOTE_UNAVAILABLE, str(e)) from e

        if response.status_code == 404:
            request_log.info(f"Lookup API has no record at {url}")
            return None
        if not response.is_success:
            request_log.info(
                f"Request failed with code: {response.status_code}. Response body: {response.text}"
            )
            raise PartnerLookupError(
                LookupErrorKind.REMOTE_UNAVAILABLE,
                f"HTTP {response.status_code} from {url}",
            )
        if not response.content.strip():
            return None

        try:
            data = response.json()
        except ValueError as e:
            raise PartnerLookupError(
                LookupErrorKind.REMOTE_UNAVAILABLE, f"undecodable body from {url}"
            ) from e
        request_log.info(f"Request decoded JSON response: {data}")
        return data or None


def _parse(model: type[AccountDescriptor] | type[UserDescriptor], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise PartnerLookupError(
            LookupErrorKind.REMOTE_UNAVAILABLE, f"unexpected {model.__name__} payload: {e}"
        ) from e
