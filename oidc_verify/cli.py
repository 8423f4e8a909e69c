"""CLI entrypoint for verifying an identity token against a provider JWKS."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from oidc_verify.config import JWKSSettings, Settings, configure_structlog, get_settings
from oidc_verify.exceptions import TokenVerificationError
from oidc_verify.types import Claims
from oidc_verify.verifier import TokenVerifier


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _claims_output(claims: Claims) -> dict[str, Any]:
    """Build the JSON summary printed for a verified token."""
    return {
        "valid": True,
        "subject": claims.subject,
        "issuer": claims.issuer,
        "identity_provider": claims.identity_provider,
        "auth_time": _isoformat(claims.auth_time),
        "expires_at": _isoformat(claims.expires_at),
        "scopes": list(claims.scopes),
        "claims": claims.to_dict(),
    }


def _read_token(args: argparse.Namespace) -> str:
    """Load the token from --token, stdin or --token-file."""
    if args.token_file:
        raw = Path(args.token_file).read_text(encoding="utf-8")
    elif args.token == "-":
        raw = sys.stdin.read()
    else:
        raw = args.token
    token = raw.strip()
    if not token:
        raise ValueError("Token input is empty.")
    return token


def _effective_settings(args: argparse.Namespace) -> Settings:
    """Apply command-line overrides on top of environment settings."""
    settings = get_settings()
    overrides: dict[str, Any] = {}
    if args.jwks_uri:
        overrides["uri"] = args.jwks_uri
    if args.algorithm:
        overrides["allowed_algorithms"] = args.algorithm
    if not overrides:
        return settings
    jwks = JWKSSettings.model_validate({**settings.jwks.model_dump(), **overrides})
    return settings.model_copy(update={"jwks": jwks})


async def _run_verify(settings: Settings, token: str) -> int:
    """Verify one token and print the result as JSON."""
    async with TokenVerifier.from_settings(settings) as verifier:
        try:
            claims = await verifier.verify(token)
        except TokenVerificationError as exc:
            print(json.dumps({"valid": False, "code": exc.code, "detail": exc.detail}))
            return 1
    print(json.dumps(_claims_output(claims), indent=2, sort_keys=True))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported commands."""
    parser = argparse.ArgumentParser(prog="oidc-verify")
    subcommands = parser.add_subparsers(dest="command", required=True)

    verify_parser = subcommands.add_parser("verify", help="Verify a token and print its claims.")
    source = verify_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--token", help="Token string (use '-' to read from stdin).")
    source.add_argument("--token-file", help="Path to a file containing the token.")
    verify_parser.add_argument(
        "--jwks-uri",
        default=None,
        help="Override JWKS__URI for this run.",
    )
    verify_parser.add_argument(
        "--algorithm",
        action="append",
        default=None,
        help="Allowed algorithm (repeatable); overrides JWKS__ALLOWED_ALGORITHMS.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command != "verify":
        parser.error("Unsupported command")
        return 2

    try:
        settings = _effective_settings(args)
        token = _read_token(args)
        if not settings.jwks.uri:
            raise ValueError("No JWKS URI configured; set JWKS__URI or pass --jwks-uri.")
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    configure_structlog(settings)
    return asyncio.run(_run_verify(settings, token))


if __name__ == "__main__":
    raise SystemExit(main())
