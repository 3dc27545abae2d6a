import time
from collections.abc import Callable

from authlib.common.security import generate_token
from authlib.jose import JoseError, jwt
from loguru import logger

from panel_bridge.core.errors import ConfigurationError, NonceExhaustedError
from panel_bridge.core.storage.nonce_store import GENERATED_NONCE, NonceStore
from panel_bridge.runtime.config.config_data import ConfigData

NONCE_LENGTH = 32


class RequestTokenGenerator:
    """Signs the bearer tokens this service sends to the partner Lookup API."""

    def __init__(
        self,
        config: ConfigData,
        nonce_store: NonceStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not config.partner.integration_id or not config.partner.shared_secret:
            raise ConfigurationError(
                "partner.integration_id and partner.shared_secret must be configured"
            )
        self._integration_id = config.partner.integration_id
        self._secret = config.partner.shared_secret
        self._ttl = config.partner.outgoing_token_ttl_seconds
        self._max_attempts = config.security.max_nonce_attempts
        self._nonce_store = nonce_store
        self._clock = clock

    def generate_nonce(self, now: float | None = None) -> str:
        """Draw a random nonce not yet used for an outgoing request.

        Raises:
            NonceExhaustedError: if every attempt collided with a recorded nonce
        """
        now = self._clock() if now is None else now
        for attempt in range(1, self._max_attempts + 1):
            candidate = generate_token(NONCE_LENGTH)
            if self._nonce_store.check_and_consume(GENERATED_NONCE, candidate, now=now):
                return candidate
            logger.warning(f"Outgoing nonce collision on attempt {attempt}")
        raise NonceExhaustedError(
            f"no unused nonce after {self._max_attempts} attempts"
        )

    def sign_request_token(self) -> str:
        """Build and sign the token for one Lookup API request.

        Returns:
            Compact HS256 JWT with iss, iat, jti and exp claims

        Raises:
            NonceExhaustedError: if no fresh nonce could be drawn
        """
        now = int(self._clock())
        payload = {
            "iss": self._integration_id,
            "iat": now,
            "jti": self.generate_nonce(now),
            "exp": now + self._ttl,
        }
        header = {"alg": "HS256", "typ": "JWT"}

        try:
            token = jwt.encode(header, payload, self._secret)
        except JoseError as e:
            logger.error(f"Failed to sign lookup request token: {e}")
            raise
        return token.decode("utf-8") if isinstance(token, bytes) else token
