"""
Caller identity.

The identity provider issues an HS256 JWT for each signed-in user. Every
orchestrator operation receives the decoded identity explicitly as a
CallerContext; nothing reads a "current user" from module state.

Environment Variables:
    AUTH_JWT_SECRET: Shared secret used by the identity provider to sign tokens
    AUTH_JWT_AUDIENCE: Expected audience claim (default: authenticated)
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import jwt
from dotenv import load_dotenv

from utils.errors import AuthenticationRequired

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_AUDIENCE = "authenticated"
ANONYMOUS_DISPLAY_NAME = "Anonymous"


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller, passed into every orchestrator call."""
    user_id: str
    display_name: str
    email: Optional[str] = None


def _display_name_from_claims(claims: Mapping[str, Any]) -> str:
    metadata = claims.get("user_metadata") or {}
    for candidate in (metadata.get("full_name"), metadata.get("name"), claims.get("email")):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return ANONYMOUS_DISPLAY_NAME


def caller_from_claims(claims: Mapping[str, Any]) -> CallerContext:
    """Build a CallerContext from already-verified token claims."""
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise AuthenticationRequired("Identity token has no subject")
    email = claims.get("email") if isinstance(claims.get("email"), str) else None
    return CallerContext(
        user_id=subject.strip(),
        display_name=_display_name_from_claims(claims),
        email=email,
    )


def decode_identity_token(
    token: str,
    secret: Optional[str] = None,
    audience: Optional[str] = None,
) -> CallerContext:
    """
    Verify an identity provider JWT and return the caller it describes.

    Raises:
        AuthenticationRequired: token missing, expired, badly signed or
            lacking a subject
    """
    if not token:
        raise AuthenticationRequired("Missing identity token")

    secret = secret or os.getenv("AUTH_JWT_SECRET")
    if not secret:
        logger.error("AUTH_JWT_SECRET not configured; rejecting identity token")
        raise AuthenticationRequired("Identity verification is not configured")

    audience = audience or os.getenv("AUTH_JWT_AUDIENCE", DEFAULT_AUDIENCE)

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=audience,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationRequired("Identity token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.debug("Rejected identity token: %s", exc)
        raise AuthenticationRequired("Invalid identity token") from exc

    return caller_from_claims(claims)


def parse_bearer(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise AuthenticationRequired("Authorization header required")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        raise AuthenticationRequired("Authorization header must use the Bearer scheme")
    return value.strip()


__all__ = [
    "CallerContext",
    "caller_from_claims",
    "decode_identity_token",
    "parse_bearer",
]
