"""
Bearer token verification.

Tokens are minted by the identity provider, not by this service. We only
verify them and read two claims: ``sub`` (the opaque user id) and the
premium flag, whose claim name is configurable.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jwt

from matchpoint.config import get_settings

_verification_key: str | None = None


@dataclass(frozen=True)
class Caller:
    """The authenticated user a request acts for."""

    user_id: str
    is_premium: bool = False


def _load_key() -> str:
    """Resolve the verification key (cached after first call).

    A key file, when configured, wins over the inline key. Asymmetric
    algorithms expect a PEM public key there.
    """
    global _verification_key  # noqa: PLW0603
    if _verification_key is None:
        settings = get_settings()
        if settings.identity_jwt_key_path:
            _verification_key = Path(settings.identity_jwt_key_path).read_text()
        else:
            _verification_key = settings.identity_jwt_key
    return _verification_key


def reset_key() -> None:
    """Reset the cached key (useful for testing)."""
    global _verification_key  # noqa: PLW0603
    _verification_key = None


def decode_identity_token(token: str) -> dict[str, Any]:
    """
    Verify signature, expiry and (when configured) issuer.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired or lacks ``sub``.
    """
    settings = get_settings()
    options: dict[str, Any] = {"require": ["sub"]}
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _load_key(),
            algorithms=[settings.identity_jwt_algorithm],
            issuer=settings.identity_jwt_issuer,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if not str(payload["sub"]).strip():
        msg = "Token subject is empty"
        raise jwt.InvalidTokenError(msg)
    return payload


def verify_identity_token(token: str) -> Caller:
    """Decode ``token`` into the Caller it authenticates."""
    payload = decode_identity_token(token)
    premium_claim = get_settings().identity_premium_claim
    return Caller(user_id=str(payload["sub"]), is_premium=payload.get(premium_claim) is True)
