"""Async HTTP client for provider JWKS endpoints."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from oidc_verify.exceptions import JWKSFetchError
from oidc_verify.jwk import SUPPORTED_KEY_TYPES, signing_key_from_jwk
from oidc_verify.types import KeySet, SigningKey

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=5.0, write=5.0, pool=5.0)

logger = structlog.get_logger(__name__)


class JWKSClient:
    """Fetch and parse JWKS documents, one GET per call."""

    def __init__(
        self,
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Create client with sane defaults and optional injected transport."""
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout or DEFAULT_TIMEOUT)
        self._clock = clock or time.time

    async def fetch_key_set(self, jwks_uri: str) -> KeySet:
        """Fetch the provider's JWKS and return its usable signing keys."""
        logger.info("jwks_fetch_started", jwks_uri=jwks_uri)
        try:
            response = await self._request(jwks_uri)
            key_set = self._parse_key_set(jwks_uri, self._json_object(response), response)
        except JWKSFetchError as exc:
            logger.warning(
                "jwks_fetch_failed",
                jwks_uri=jwks_uri,
                detail=exc.detail,
                status_code=exc.status_code,
            )
            raise
        logger.info("jwks_fetched", jwks_uri=jwks_uri, key_count=len(key_set.keys))
        return key_set

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> JWKSClient:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    async def _request(self, jwks_uri: str) -> httpx.Response:
        """Execute the GET and normalize transport failures."""
        try:
            response = await self._client.get(jwks_uri, headers={"Accept": "application/json"})
        except httpx.TimeoutException as exc:
            raise JWKSFetchError("JWKS endpoint timed out.") from exc
        except httpx.RequestError as exc:
            raise JWKSFetchError("JWKS endpoint unavailable.") from exc

        if not response.is_success:
            raise JWKSFetchError(
                f"JWKS request failed with status {response.status_code}.",
                response.status_code,
            )
        return response

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        """Return response JSON as object."""
        try:
            payload = response.json()
        except ValueError as exc:
            raise JWKSFetchError(
                "JWKS endpoint returned invalid JSON.", response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise JWKSFetchError(
                "JWKS endpoint returned invalid JSON object.", response.status_code
            )
        return payload

    def _parse_key_set(
        self, jwks_uri: str, payload: dict[str, Any], response: httpx.Response
    ) -> KeySet:
        """Validate JWKS shape and convert signing entries to keys."""
        entries = payload.get("keys")
        if not isinstance(entries, list):
            raise JWKSFetchError("Invalid JWKS response payload.", response.status_code)

        keys: list[SigningKey] = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise JWKSFetchError("Invalid JWKS key entry.", response.status_code)
            if not self._is_signing_entry(entry):
                logger.debug(
                    "jwks_key_skipped",
                    jwks_uri=jwks_uri,
                    kid=entry.get("kid"),
                    kty=entry.get("kty"),
                    use=entry.get("use"),
                )
                continue
            try:
                keys.append(signing_key_from_jwk(entry))
            except ValueError as exc:
                raise JWKSFetchError(
                    f"Invalid JWKS key material: {exc}", response.status_code
                ) from exc

        if not keys:
            raise JWKSFetchError(
                "JWKS endpoint did not contain any signing keys.", response.status_code
            )
        return KeySet(jwks_uri=jwks_uri, keys=tuple(keys), fetched_at=self._clock())

    @staticmethod
    def _is_signing_entry(entry: dict[str, Any]) -> bool:
        """Return True for entries usable as signature verification keys."""
        use = entry.get("use")
        if use is not None and use != "sig":
            return False
        kid = entry.get("kid")
        if not isinstance(kid, str) or not kid:
            return False
        return entry.get("kty") in SUPPORTED_KEY_TYPES
