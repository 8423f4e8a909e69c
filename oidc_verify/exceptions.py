"""Verifier exception hierarchy."""

from __future__ import annotations


class VerifierError(Exception):
    """Base class for all oidc-verify exceptions."""


class TokenVerificationError(VerifierError):
    """Raised when a token cannot be trusted."""

    code = "invalid_token"

    def __init__(self, detail: str, code: str | None = None) -> None:
        """Initialize with user-facing detail and machine-readable code."""
        super().__init__(detail)
        self.detail = detail
        self.code = code or type(self).code


class MalformedTokenError(TokenVerificationError):
    """Token header or payload could not be parsed."""

    code = "malformed_token"


class DisallowedAlgorithmError(TokenVerificationError):
    """Token declares an algorithm outside the configured allow-list."""

    code = "disallowed_algorithm"


class UntrustedKeyError(TokenVerificationError):
    """No trusted signing key could be resolved for the token."""

    code = "untrusted_key"


class JWKSFetchError(UntrustedKeyError):
    """Raised when the JWKS endpoint is unreachable or returns bad data."""

    code = "jwks_fetch_failed"

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        """Initialize with optional HTTP status code context."""
        super().__init__(detail)
        self.status_code = status_code


class RateLimitedError(UntrustedKeyError):
    """JWKS refresh was denied by the rate limiter and no cached key exists."""

    code = "rate_limited"


class UnknownKeyIDError(UntrustedKeyError):
    """The provider's current key set does not contain the token's kid."""

    code = "unknown_key_id"


class BadSignatureError(TokenVerificationError):
    """Signature does not match the resolved key."""

    code = "bad_signature"


class ExpiredTokenError(TokenVerificationError):
    """Token exp claim is in the past."""

    code = "token_expired"


class NotYetValidError(TokenVerificationError):
    """Token nbf claim is in the future."""

    code = "token_not_yet_valid"


class InvalidClaimsError(TokenVerificationError):
    """Issuer or audience does not match the configured expectation."""

    code = "invalid_claims"
