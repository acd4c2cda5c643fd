"""Bearer JWT auth dependency."""

from dataclasses import dataclass, field
from typing import Annotated, Any

import jwt
from fastapi import Depends, Header

from gateway.app.config import Settings, get_settings
from gateway.app.errors import AuthenticationError


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    subject: str
    claims: dict[str, Any] = field(default_factory=dict)


async def get_current_principal(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> Principal:
    """Validate the bearer token and return the caller.

    Args:
        settings: Settings holding the signing secret and algorithm
        authorization: Authorization header (e.g., "Bearer <token>")

    Returns:
        Principal for the token subject

    Raises:
        AuthenticationError: If the header is missing, malformed, or the
            token is invalid or expired
    """
    if not authorization:
        raise AuthenticationError("Missing authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token.strip():
        raise AuthenticationError("Invalid authorization header format")

    try:
        claims = jwt.decode(
            token.strip(),
            settings.jwt_secret.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.PyJWTError as e:
        raise AuthenticationError("Invalid or expired token") from e

    return Principal(subject=str(claims["sub"]), claims=claims)
