import base64
import json
from dataclasses import dataclass
from typing import Any, Final

from panel_bridge.core.errors import TokenError, TokenErrorKind

# ---------------- tunables ----------------
MAX_JWT_CHARS: Final = 4096
MAX_HEADER_BYTES: Final = 8 * 1024
MAX_PAYLOAD_BYTES: Final = 64 * 1024
_ALLOWED: Final = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_."
)  # no '='


def _malformed(detail: str) -> TokenError:
    return TokenError(TokenErrorKind.MALFORMED, detail)


# --------------- one-pass prefilter ---------------
def prefilter_compact_jwt(token: str, max_chars: int = MAX_JWT_CHARS) -> tuple[str, str, str]:
    """Split a compact JWS into its three segments, rejecting anything odd early."""
    if len(token) > max_chars:
        raise _malformed("Invalid JWT size")
    first = second = -1
    for i, ch in enumerate(token):
        if ch not in _ALLOWED:
            raise _malformed("Invalid JWT characters")
        if ch == ".":
            if first < 0:
                first = i
            elif second < 0:
                second = i
            else:  # third dot
                raise _malformed("Invalid JWT format")
    # exactly two dots and non-empty segments
    if first <= 0 or second - first <= 1 or second >= len(token) - 1:
        raise _malformed("Invalid JWT format")
    return token[:first], token[first + 1 : second], token[second + 1 :]


def _b64url_decode_unpadded(seg: str, what: str, max_bytes: int) -> bytes:
    pad = (-len(seg)) % 4
    try:
        raw = base64.urlsafe_b64decode((seg + "=" * pad).encode("ascii"))
    except ValueError as e:
        raise _malformed(f"Invalid base64url in {what}") from e
    if len(raw) > max_bytes:
        raise _malformed(f"{what} too large")
    return raw


def _decode_json_object(raw: bytes, what: str) -> dict[str, Any]:
    try:
        obj = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise _malformed(f"Non-UTF8 {what}") from e
    except json.JSONDecodeError as e:
        raise _malformed(f"Invalid JSON in {what}") from e
    if not isinstance(obj, dict):
        raise _malformed(f"{what} must be a JSON object")
    return obj


@dataclass(frozen=True)
class JwtPreview:
    header: dict[str, Any]
    claims: dict[str, Any]
    alg: str | None


def preview_jwt(token: str, max_chars: int = MAX_JWT_CHARS) -> JwtPreview:
    """Split and decode header+payload without verifying anything.

    For diagnostics and logging only; never trust the result.
    """
    h_seg, p_seg, _ = prefilter_compact_jwt(token, max_chars)
    header = _decode_json_object(
        _b64url_decode_unpadded(h_seg, "JWT header", MAX_HEADER_BYTES), "JWT header"
    )
    claims = _decode_json_object(
        _b64url_decode_unpadded(p_seg, "JWT payload", MAX_PAYLOAD_BYTES), "JWT payload"
    )
    return JwtPreview(header=header, claims=claims, alg=header.get("alg"))


def is_numeric_date(value: Any) -> bool:
    """True for int/float timestamps; bools and numeric strings are rejected."""
    return isinstance(value, int | float) and not isinstance(value, bool)
