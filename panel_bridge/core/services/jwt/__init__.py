from .jwt_gen import RequestTokenGenerator
from .jwt_utils import JwtPreview, is_numeric_date, prefilter_compact_jwt, preview_jwt
from .jwt_verify import SIGNING_ALGORITHM, TokenValidator

__all__ = [
    "RequestTokenGenerator",
    "TokenValidator",
    "SIGNING_ALGORITHM",
    "JwtPreview",
    "is_numeric_date",
    "prefilter_compact_jwt",
    "preview_jwt",
]
