"""Token verification pipeline: header, algorithm, key, signature, claims."""

from __future__ import annotations

import json
import math
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from jose import jws, jwt
from jose.exceptions import JOSEError

from oidc_verify.cache import KeyCache
from oidc_verify.client import JWKSClient
from oidc_verify.exceptions import (
    BadSignatureError,
    DisallowedAlgorithmError,
    ExpiredTokenError,
    InvalidClaimsError,
    MalformedTokenError,
    NotYetValidError,
    TokenVerificationError,
)
from oidc_verify.rate_limit import SlidingWindowRateLimiter
from oidc_verify.resolver import KeyResolver
from oidc_verify.types import Claims, SigningKey

if TYPE_CHECKING:
    from oidc_verify.config import Settings

DEFAULT_ALLOWED_ALGORITHMS: tuple[str, ...] = ("RS256",)
ASYMMETRIC_ALGORITHMS = frozenset({"RS256", "RS384", "RS512", "ES256", "ES384", "ES512"})
_MAX_TIMESTAMP = datetime.max.replace(tzinfo=UTC).timestamp()

logger = structlog.get_logger(__name__)


def check_allowed_algorithms(algorithms: Iterable[str]) -> tuple[str, ...]:
    """Validate an algorithm allow-list and return it as a tuple."""
    allowed = tuple(dict.fromkeys(algorithms))
    if not allowed:
        raise ValueError("allowed_algorithms must not be empty.")
    unsupported = [alg for alg in allowed if alg not in ASYMMETRIC_ALGORITHMS]
    if unsupported:
        raise ValueError(
            "allowed_algorithms may only contain asymmetric algorithms "
            f"({', '.join(sorted(ASYMMETRIC_ALGORITHMS))}); got {', '.join(unsupported)}."
        )
    return allowed


def _numeric_claim(payload: dict[str, Any], name: str) -> float | None:
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise MalformedTokenError(f"Token {name} claim must be a number.")
    if abs(value) > _MAX_TIMESTAMP or not math.isfinite(value):
        raise MalformedTokenError(f"Token {name} claim is out of range.")
    return float(value)


class TokenVerifier:
    """Verify provider-signed tokens against the provider's published keys."""

    def __init__(
        self,
        resolver: KeyResolver,
        jwks_uri: str,
        allowed_algorithms: Iterable[str] = DEFAULT_ALLOWED_ALGORITHMS,
        issuer: str | None = None,
        audience: str | None = None,
        leeway_seconds: float = 0,
        now: Callable[[], float] | None = None,
        jwks_client: JWKSClient | None = None,
    ) -> None:
        """Create verifier for one provider with a fixed algorithm allow-list."""
        if leeway_seconds < 0:
            raise ValueError("leeway_seconds must not be negative.")
        self._resolver = resolver
        self._jwks_uri = jwks_uri
        self._allowed_algorithms = check_allowed_algorithms(allowed_algorithms)
        self._issuer = issuer
        self._audience = audience
        self._leeway_seconds = leeway_seconds
        self._now = now or time.time
        self._jwks_client = jwks_client

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> TokenVerifier:
        """Wire client, cache, rate limiter and resolver from settings."""
        jwks_settings = settings.jwks
        if not jwks_settings.uri:
            raise ValueError("jwks.uri must be configured.")
        client = JWKSClient(
            timeout=jwks_settings.fetch_timeout_seconds,
            http_client=http_client,
        )
        resolver = KeyResolver(
            fetcher=client,
            cache=KeyCache(
                max_age_seconds=jwks_settings.cache_max_age_seconds,
                max_entries=jwks_settings.cache_max_entries,
            ),
            rate_limiter=SlidingWindowRateLimiter(
                requests_per_minute=jwks_settings.requests_per_minute,
            ),
        )
        return cls(
            resolver=resolver,
            jwks_uri=jwks_settings.uri,
            allowed_algorithms=jwks_settings.allowed_algorithms,
            issuer=jwks_settings.issuer,
            audience=jwks_settings.audience,
            leeway_seconds=jwks_settings.leeway_seconds,
            jwks_client=client,
        )

    @property
    def resolver(self) -> KeyResolver:
        """Resolver used to look up signing keys."""
        return self._resolver

    @property
    def allowed_algorithms(self) -> tuple[str, ...]:
        """Algorithms accepted in token headers."""
        return self._allowed_algorithms

    async def verify(self, token: str) -> Claims:
        """Verify token signature and validity window and return its claims."""
        try:
            claims = await self._verify(token)
        except TokenVerificationError as exc:
            logger.info(
                "token_verification_failed",
                jwks_uri=self._jwks_uri,
                code=exc.code,
                detail=exc.detail,
            )
            raise
        logger.debug("token_verified", jwks_uri=self._jwks_uri, subject=claims.subject)
        return claims

    async def aclose(self) -> None:
        """Close the JWKS client created by from_settings."""
        if self._jwks_client is not None:
            await self._jwks_client.aclose()

    async def __aenter__(self) -> TokenVerifier:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    async def _verify(self, token: str) -> Claims:
        kid, algorithm = self._parse_header(token)
        if algorithm not in self._allowed_algorithms:
            raise DisallowedAlgorithmError(f"Token algorithm {algorithm!r} is not allowed.")

        key = await self._resolver.resolve(self._jwks_uri, kid)
        payload = self._verify_signature(token, key, algorithm)
        self._validate_time_claims(payload)
        self._validate_identity_claims(payload)
        return Claims.from_payload(payload)

    @staticmethod
    def _parse_header(token: str) -> tuple[str, str]:
        """Read kid and alg from the unverified header."""
        if not isinstance(token, str) or not token.strip():
            raise MalformedTokenError("Token is empty.")
        try:
            header = jwt.get_unverified_header(token.strip())
        except JOSEError as exc:
            raise MalformedTokenError("Token header could not be decoded.") from exc
        if not isinstance(header, dict):
            raise MalformedTokenError("Token header is not a JSON object.")

        algorithm = header.get("alg")
        if not isinstance(algorithm, str) or not algorithm:
            raise MalformedTokenError("Token header is missing alg.")
        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise MalformedTokenError("Token header is missing kid.")
        return kid, algorithm

    @staticmethod
    def _verify_signature(token: str, key: SigningKey, algorithm: str) -> dict[str, Any]:
        """Check the signature with the resolved key and decode the payload."""
        if key.algorithm is not None and key.algorithm != algorithm:
            raise DisallowedAlgorithmError(
                f"Token algorithm {algorithm!r} does not match key {key.kid!r} "
                f"algorithm {key.algorithm!r}."
            )
        try:
            raw_payload = jws.verify(token.strip(), key.public_key_pem, algorithms=[algorithm])
        except JOSEError as exc:
            raise BadSignatureError("Signature verification failed.") from exc

        try:
            payload = json.loads(raw_payload)
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedTokenError("Token payload is not valid JSON.") from exc
        if not isinstance(payload, dict):
            raise MalformedTokenError("Token payload is not a JSON object.")
        return payload

    def _validate_time_claims(self, payload: dict[str, Any]) -> None:
        """Enforce exp and nbf against the current time with leeway."""
        now = self._now()
        exp = _numeric_claim(payload, "exp")
        if exp is None:
            raise MalformedTokenError("Token is missing exp claim.")
        if now >= exp + self._leeway_seconds:
            raise ExpiredTokenError("Token has expired.")

        nbf = _numeric_claim(payload, "nbf")
        if nbf is not None and now < nbf - self._leeway_seconds:
            raise NotYetValidError("Token is not valid yet.")

    def _validate_identity_claims(self, payload: dict[str, Any]) -> None:
        """Enforce configured issuer and audience expectations."""
        if self._issuer is not None and payload.get("iss") != self._issuer:
            raise InvalidClaimsError("Token issuer does not match.")
        if self._audience is not None:
            aud = payload.get("aud")
            audiences = aud if isinstance(aud, list) else [aud]
            if self._audience not in audiences:
                raise InvalidClaimsError("Token audience does not match.")
