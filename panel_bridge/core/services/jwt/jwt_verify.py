"""Partner token validation service."""

import time
from collections.abc import Callable
from typing import Any

from authlib.jose import JsonWebToken
from authlib.jose.errors import BadSignatureError, JoseError
from loguru import logger

from panel_bridge.core.errors import ConfigurationError, TokenError, TokenErrorKind
from panel_bridge.core.models.claims import PanelClaims, TokenValidation
from panel_bridge.core.services.jwt.jwt_utils import is_numeric_date, preview_jwt
from panel_bridge.core.storage.nonce_store import INCOMING_NONCE, NonceStore
from panel_bridge.runtime.config.config_data import PARTNER_ISSUER, ConfigData

SIGNING_ALGORITHM = "HS256"

_jwt = JsonWebToken([SIGNING_ALGORITHM])


class TokenValidator:
    """Decodes and validates tokens sent by the partner.

    Checks run in a fixed order and stop at the first failure:
    presence, structure and signature, issuer, expiry, issued-at, nonce.
    """

    def __init__(
        self,
        config: ConfigData,
        nonce_store: NonceStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not config.partner.shared_secret:
            raise ConfigurationError("partner.shared_secret is not configured")
        self._secret = config.partner.shared_secret
        self._enforce_nonce = config.security.enforce_nonce
        self._max_chars = config.security.max_token_chars
        self._nonce_store = nonce_store
        self._clock = clock

    def validate(self, raw_token: str | None) -> TokenValidation:
        """Validate ``raw_token``.

        Returns:
            A TokenValidation holding the claims, or the kind of the first failed check
        """
        try:
            claims = self._validate(raw_token)
        except TokenError as exc:
            logger.bind(request_log=True).info(
                f"Token rejected ({exc.kind}): {exc.detail}"
            )
            return TokenValidation.failure(exc.kind, exc.detail)
        logger.bind(request_log=True).info(
            f"Token accepted for account={claims.account} sub={claims.subject} aud={claims.audience}"
        )
        return TokenValidation.success(claims)

    def _validate(self, raw_token: str | None) -> PanelClaims:
        if not raw_token:
            raise TokenError(TokenErrorKind.MISSING, "Missing JWT")

        payload = self._decode(raw_token)
        now = self._clock()

        issuer = payload.get("iss")
        if issuer != PARTNER_ISSUER:
            raise TokenError(TokenErrorKind.BAD_ISSUER, f"Invalid 'iss' claim: {issuer!r}")

        expires_at = payload.get("exp")
        if not is_numeric_date(expires_at) or expires_at <= now:
            raise TokenError(TokenErrorKind.EXPIRED, "Expired JWT")

        issued_at = payload.get("iat")
        if not is_numeric_date(issued_at) or issued_at >= expires_at:
            raise TokenError(TokenErrorKind.BAD_ISSUED_AT, "Missing or invalid 'iat' claim")

        # a token with unusable claims must not burn its nonce
        try:
            claims = PanelClaims.from_payload(payload)
        except (KeyError, ValueError) as exc:
            raise TokenError(TokenErrorKind.MALFORMED, f"Unusable claims: {exc}") from exc

        nonce = payload.get("jti")
        if self._enforce_nonce:
            if not isinstance(nonce, str) or not nonce:
                raise TokenError(TokenErrorKind.REPLAYED_NONCE, "Missing or invalid 'jti' claim")
            if not self._nonce_store.check_and_consume(INCOMING_NONCE, nonce, now=now):
                raise TokenError(TokenErrorKind.REPLAYED_NONCE, "Duplicated 'jti' claim")
        return claims

    def _decode(self, raw_token: str) -> dict[str, Any]:
        preview = preview_jwt(raw_token, self._max_chars)
        if preview.alg != SIGNING_ALGORITHM:
            raise TokenError(
                TokenErrorKind.MALFORMED, f"Disallowed JWT algorithm: {preview.alg!r}"
            )

        try:
            claims = _jwt.decode(raw_token, self._secret)
        except BadSignatureError as exc:
            raise TokenError(TokenErrorKind.BAD_SIGNATURE, "Signature verification failed") from exc
        except (JoseError, ValueError) as exc:
            raise TokenError(TokenErrorKind.MALFORMED, f"JWT Invalid: {exc}") from exc
        return dict(claims)
