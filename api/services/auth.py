"""FastAPI dependency that turns the bearer token into a CallerContext."""

from typing import Optional

from fastapi import Header

from utils.identity import CallerContext, decode_identity_token, parse_bearer


async def get_caller(authorization: Optional[str] = Header(None)) -> CallerContext:
    """Raises AuthenticationRequired (401) when the header is missing or invalid."""
    return decode_identity_token(parse_bearer(authorization))
