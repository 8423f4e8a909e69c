"""Verifier data contract types."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Literal, TypedDict

KeyType = Literal["RSA", "EC"]


class JWKS(TypedDict):
    """JWKS document as published by an identity provider."""

    keys: list[dict[str, Any]]


@dataclass(frozen=True)
class SigningKey:
    """Public verification key selected by a token's kid."""

    kid: str
    key_type: KeyType
    public_key_pem: str
    algorithm: str | None = None


@dataclass(frozen=True)
class KeySet:
    """Signing keys fetched together from one JWKS endpoint."""

    jwks_uri: str
    keys: tuple[SigningKey, ...]
    fetched_at: float

    def find(self, kid: str) -> SigningKey | None:
        """Return the first key with the given kid, if any."""
        for key in self.keys:
            if key.kid == kid:
                return key
        return None

    @property
    def kids(self) -> tuple[str, ...]:
        """Return the kids of all keys in publication order."""
        return tuple(key.kid for key in self.keys)


@dataclass(frozen=True)
class CacheEntry:
    """Cached key set plus the bookkeeping used for staleness and races."""

    key_set: KeySet
    fetched_at: float
    generation: int


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    try:
        return datetime.fromtimestamp(value, UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _freeze(value: Any) -> Any:
    """Return a read-only copy of a decoded JSON value."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list | tuple):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


def _string_tuple(value: Any, *, split: bool = False) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(value.split()) if split else (value,)
    if isinstance(value, list):
        return tuple(str(item) for item in value)
    return ()


@dataclass(frozen=True)
class Claims:
    """Read-only projection of a verified token payload."""

    subject: str | None
    issuer: str | None
    expires_at: datetime | None
    issued_at: datetime | None
    auth_time: datetime | None
    scopes: tuple[str, ...]
    audience: tuple[str, ...]
    identity_provider: str | None
    raw: Mapping[str, Any]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Claims:
        """Build claims from a decoded payload object."""
        sub = payload.get("sub")
        iss = payload.get("iss")
        idp = payload.get("idp")
        return cls(
            subject=str(sub) if sub is not None else None,
            issuer=str(iss) if iss is not None else None,
            expires_at=_timestamp(payload.get("exp")),
            issued_at=_timestamp(payload.get("iat")),
            auth_time=_timestamp(payload.get("auth_time")),
            scopes=_string_tuple(payload.get("scope", payload.get("scp")), split=True),
            audience=_string_tuple(payload.get("aud")),
            identity_provider=str(idp) if idp is not None else None,
            raw=_freeze(payload),
        )

    def get(self, name: str, default: Any = None) -> Any:
        """Return a raw claim value, e.g. a provider-specific identifier."""
        return self.raw.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        """Return a plain, mutable copy of the verified payload."""
        return _thaw(self.raw)
