"""JWT claim inspection for acquired access tokens.

Tokens are decoded without signature verification: the issuer already
validated them, opskit only checks that a token belongs to the expected
tenant and account before using it.
"""

from __future__ import annotations

import logging
from typing import Any

import jwt

logger = logging.getLogger(__name__)

UPN_CLAIMS = ("upn", "unique_name", "preferred_username", "email")


def decode_jwt_claims(token: str) -> dict[str, Any]:
    """Decode JWT and return claims dictionary.

    Args:
        token: JWT token string (format: header.payload.signature)

    Returns:
        Decoded claims dictionary from the JWT payload

    Raises:
        ValueError: If the token cannot be decoded
    """
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise ValueError(f"Invalid JWT: {e}") from e


def token_upn(claims: dict[str, Any]) -> str | None:
    """Return the first account-name claim present."""
    for name in UPN_CLAIMS:
        value = claims.get(name)
        if value:
            return str(value)
    return None


def validate_token_claims(
    token: str,
    expected_tenant: str | None = None,
    expected_upn: str | None = None,
) -> bool:
    """Check a token's ``tid`` and account claims against expectations.

    Comparisons are case-insensitive. An expectation of ``None`` is not
    checked. Tokens that cannot be decoded never validate.
    """
    try:
        claims = decode_jwt_claims(token)
    except ValueError as e:
        logger.debug(f"Token claim validation failed: {e}")
        return False

    if expected_tenant:
        tid = str(claims.get("tid") or "")
        if tid.lower() != expected_tenant.lower():
            logger.debug(f"Token tenant {tid or '<none>'} does not match expected tenant")
            return False

    if expected_upn:
        upn = token_upn(claims)
        if not upn or upn.lower() != expected_upn.lower():
            logger.debug(f"Token account {upn or '<none>'} does not match expected account")
            return False

    return True


__all__ = ["decode_jwt_claims", "token_upn", "validate_token_claims"]
