"""Error taxonomy shared by the validation, lookup and reconciliation layers."""

from enum import StrEnum


class PanelBridgeError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(PanelBridgeError):
    """A required setting (shared secret, integration id, ...) is missing."""


class TokenErrorKind(StrEnum):
    MISSING = "missing"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    BAD_ISSUER = "bad_issuer"
    EXPIRED = "expired"
    BAD_ISSUED_AT = "bad_issued_at"
    REPLAYED_NONCE = "replayed_nonce"


class TokenError(PanelBridgeError):
    """A single validation step rejected the token.

    Raised inside the validator only; callers receive a ``TokenValidation``.
    ``detail`` is for internal logs and must never reach the partner.
    """

    def __init__(self, kind: TokenErrorKind, detail: str = "") -> None:
        super().__init__(f"{kind}: {detail}" if detail else str(kind))
        self.kind = kind
        self.detail = detail


class LookupErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    REMOTE_UNAVAILABLE = "remote_unavailable"
    REMOTE_TIMEOUT = "remote_timeout"


class PartnerLookupError(PanelBridgeError):
    """The partner Lookup API could not answer."""

    def __init__(self, kind: LookupErrorKind, detail: str = "") -> None:
        super().__init__(f"{kind}: {detail}" if detail else str(kind))
        self.kind = kind
        self.detail = detail


class ReconciliationErrorKind(StrEnum):
    AMBIGUOUS_MATCH = "ambiguous_match"
    CREATION_DISABLED = "creation_disabled"


class StorageError(PanelBridgeError):
    """Account, user or nonce records could not be read or written."""


class DuplicateExternalIdError(StorageError):
    """Another record already carries this external identifier."""

    def __init__(self, external_id: str) -> None:
        super().__init__(f"external id already mapped: {external_id}")
        self.external_id = external_id


class NonceExhaustedError(PanelBridgeError):
    """No unused outgoing nonce could be drawn."""


class MappingConflictError(StorageError):
    """The record was mapped to a different external identifier first."""

    def __init__(self, record_id: int, external_id: str) -> None:
        super().__init__(f"record {record_id} is already mapped to {external_id}")
        self.record_id = record_id
        self.external_id = external_id
