"""Conversion of published JWK entries into verification keys."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jose import jwk as jose_jwk
from jose.exceptions import JWKError

from oidc_verify.types import SigningKey

SUPPORTED_KEY_TYPES = frozenset({"RSA", "EC"})

# jose needs an algorithm to pick the key class; the hash is chosen per token.
_RSA_CONSTRUCT_ALGORITHM = "RS256"
_EC_CURVE_ALGORITHMS = {
    "P-256": "ES256",
    "P-384": "ES384",
    "P-521": "ES512",
}


def _construct_algorithm(jwk: Mapping[str, Any]) -> str:
    kty = jwk.get("kty")
    if kty == "RSA":
        return _RSA_CONSTRUCT_ALGORITHM
    if kty == "EC":
        algorithm = _EC_CURVE_ALGORITHMS.get(str(jwk.get("crv", "")))
        if algorithm is None:
            raise ValueError(f"Unsupported EC curve {jwk.get('crv')!r}.")
        return algorithm
    raise ValueError(f"Unsupported JWK key type {kty!r}.")


def signing_key_from_jwk(jwk: Mapping[str, Any]) -> SigningKey:
    """Build a SigningKey from an RSA or EC public JWK.

    Raises ValueError when the entry lacks a kid, uses an unsupported key
    type, or carries key material that does not describe a valid public key.
    """
    kid = jwk.get("kid")
    if not isinstance(kid, str) or not kid:
        raise ValueError("JWK is missing kid.")
    construct_algorithm = _construct_algorithm(jwk)
    if "d" in jwk:
        raise ValueError(f"JWK {kid} contains private key material.")

    try:
        key = jose_jwk.construct(dict(jwk), construct_algorithm)
        public_key_pem = key.to_pem().decode("utf-8")
    except (JWKError, KeyError, TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"JWK {kid} has invalid key material.") from exc

    alg = jwk.get("alg")
    return SigningKey(
        kid=kid,
        key_type=jwk["kty"],
        public_key_pem=public_key_pem,
        algorithm=alg if isinstance(alg, str) and alg else None,
    )
