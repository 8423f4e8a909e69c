"""Shared fixtures for verifier unit tests."""

from __future__ import annotations

import base64
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jose import jwt as jose_jwt


def _base64url_uint(value: int, length: int | None = None) -> str:
    """Encode an integer to base64url without padding."""
    value_bytes = value.to_bytes(length or (value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(value_bytes).rstrip(b"=").decode("ascii")


def _private_pem(private_key: Any) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def _public_pem(private_key: Any) -> str:
    return (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("utf-8")
    )


@dataclass(frozen=True)
class Keypair:
    """Ephemeral signing keypair with its public JWK."""

    kid: str
    algorithm: str
    private_key_pem: str
    public_key_pem: str
    jwk: dict[str, str]


def _rsa_keypair(kid: str, alg: str | None = "RS256") -> Keypair:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    numbers = private_key.public_key().public_numbers()
    jwk = {
        "kty": "RSA",
        "use": "sig",
        "kid": kid,
        "n": _base64url_uint(numbers.n),
        "e": _base64url_uint(numbers.e),
    }
    if alg:
        jwk["alg"] = alg
    return Keypair(kid, alg or "RS256", _private_pem(private_key), _public_pem(private_key), jwk)


def _ec_keypair(kid: str) -> Keypair:
    private_key = ec.generate_private_key(ec.SECP256R1())
    numbers = private_key.public_key().public_numbers()
    jwk = {
        "kty": "EC",
        "use": "sig",
        "crv": "P-256",
        "kid": kid,
        "x": _base64url_uint(numbers.x, 32),
        "y": _base64url_uint(numbers.y, 32),
    }
    return Keypair(kid, "ES256", _private_pem(private_key), _public_pem(private_key), jwk)


@pytest.fixture(scope="session")
def rsa_keypair() -> Keypair:
    """Primary RS256 signing key published by the fake provider."""
    return _rsa_keypair("kid-1")


@pytest.fixture(scope="session")
def rotated_keypair() -> Keypair:
    """Second RS256 key used to simulate provider key rotation."""
    return _rsa_keypair("kid-2")


@pytest.fixture(scope="session")
def ec_keypair() -> Keypair:
    """ES256 signing key."""
    return _ec_keypair("ec-1")


@pytest.fixture
def jwks_document() -> Callable[..., dict[str, list[dict[str, str]]]]:
    """Build a JWKS document from keypairs."""

    def _build(*keypairs: Keypair) -> dict[str, list[dict[str, str]]]:
        return {"keys": [dict(keypair.jwk) for keypair in keypairs]}

    return _build


@pytest.fixture
def issue_token() -> Callable[..., str]:
    """Sign a token with the given keypair and claim overrides."""

    def _issue(
        keypair: Keypair,
        claims: dict[str, Any] | None = None,
        *,
        algorithm: str | None = None,
        kid: str | None = None,
        expires_in_seconds: int = 600,
    ) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "sub": "user-123",
            "iss": "https://idp.example.com",
            "aud": "client-1",
            "iat": now,
            "auth_time": now - 30,
            "exp": now + expires_in_seconds,
        }
        payload.update(claims or {})
        return jose_jwt.encode(
            payload,
            keypair.private_key_pem,
            algorithm=algorithm or keypair.algorithm,
            headers={"kid": kid if kid is not None else keypair.kid},
        )

    return _issue


class FakeClock:
    """Controllable clock for cache and rate-limit tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def now(self) -> float:
        """Return current synthetic time."""
        return self.current

    def advance(self, seconds: float) -> None:
        """Move synthetic time forward."""
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Fresh synthetic clock."""
    return FakeClock()
