"""Decoded partner token claims and the tagged validation result."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from panel_bridge.core.errors import TokenErrorKind

REGISTERED_CLAIMS = frozenset({"iss", "iat", "exp", "jti", "account", "sub", "aud"})


class PanelClaims(BaseModel):
    """Claims of a validated partner token. Immutable once decoded."""

    model_config = ConfigDict(frozen=True)

    issuer: str = Field(description="'iss': always the partner's fixed issuer")
    issued_at: float = Field(description="'iat' as UNIX seconds")
    expires_at: float = Field(description="'exp' as UNIX seconds")
    nonce: str = Field(description="'jti': single-use value")
    account: str | None = Field(default=None, description="'account': partner account id")
    subject: str | None = Field(
        default=None, description="'sub': user whose information is displayed"
    )
    audience: str | None = Field(default=None, description="'aud': user making the request")
    extra: dict[str, Any] = Field(default_factory=dict, description="Any other claims")

    @field_validator("account", "subject", "audience", mode="after")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("account", "subject", "audience", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> Any:
        # aud may arrive as a list; only the first entry is meaningful
        if isinstance(value, list | tuple):
            value = value[0] if value else None
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PanelClaims:
        nonce = payload.get("jti")
        return cls(
            issuer=payload["iss"],
            issued_at=payload["iat"],
            expires_at=payload["exp"],
            nonce=nonce if isinstance(nonce, str) else "",
            account=payload.get("account"),
            subject=payload.get("sub"),
            audience=payload.get("aud"),
            extra={k: v for k, v in payload.items() if k not in REGISTERED_CLAIMS},
        )


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of validating one token: claims on success, an error kind otherwise.

    ``detail`` explains the failure for internal logs only.
    """

    claims: PanelClaims | None = None
    error: TokenErrorKind | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and self.claims is not None

    @classmethod
    def success(cls, claims: PanelClaims) -> TokenValidation:
        return cls(claims=claims)

    @classmethod
    def failure(cls, kind: TokenErrorKind, detail: str = "") -> TokenValidation:
        return cls(error=kind, detail=detail)
