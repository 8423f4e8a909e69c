"""Public verifier exports."""

from oidc_verify.cache import KeyCache
from oidc_verify.client import JWKSClient
from oidc_verify.exceptions import (
    BadSignatureError,
    DisallowedAlgorithmError,
    ExpiredTokenError,
    InvalidClaimsError,
    JWKSFetchError,
    MalformedTokenError,
    NotYetValidError,
    RateLimitedError,
    TokenVerificationError,
    UnknownKeyIDError,
    UntrustedKeyError,
    VerifierError,
)
from oidc_verify.rate_limit import SlidingWindowRateLimiter
from oidc_verify.resolver import KeyResolver
from oidc_verify.types import CacheEntry, Claims, KeySet, SigningKey
from oidc_verify.verifier import TokenVerifier

__all__ = [
    "BadSignatureError",
    "CacheEntry",
    "Claims",
    "DisallowedAlgorithmError",
    "ExpiredTokenError",
    "InvalidClaimsError",
    "JWKSClient",
    "JWKSFetchError",
    "KeyCache",
    "KeyResolver",
    "KeySet",
    "MalformedTokenError",
    "NotYetValidError",
    "RateLimitedError",
    "SigningKey",
    "SlidingWindowRateLimiter",
    "TokenVerificationError",
    "TokenVerifier",
    "UnknownKeyIDError",
    "UntrustedKeyError",
    "VerifierError",
]
