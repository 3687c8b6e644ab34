"""Security utilities for JWT handling."""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from app.config import settings
from app.schemas.auth import Actor

# Optional claims scoping what a professional or patient may see
SCOPING_CLAIMS = ("email", "professional_id", "patient_id")


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (``sub``, ``role`` and optional scoping claims)
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token
    """
    issued_at = datetime.now(UTC)
    expire = issued_at + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

    claims = {**data, "exp": expire, "iat": issued_at, "type": "access"}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT access token.

    Args:
        token: JWT token to decode

    Returns:
        Decoded payload, or None if the token is invalid, expired or not an access token
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require_sub": True},
        )
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None
    return payload


def actor_claims(actor: Actor) -> dict[str, str]:
    """Claims identifying an actor, the inverse of ``actor_from_claims``."""
    claims = {"sub": str(actor.user_id), "role": actor.role.value}
    for name in SCOPING_CLAIMS:
        value = getattr(actor, name)
        if value is not None:
            claims[name] = str(value)
    return claims


def actor_from_claims(payload: dict[str, Any]) -> Actor:
    """
    Build the acting user from decoded claims.

    Raises:
        pydantic.ValidationError: If ``sub`` or ``role`` is missing or malformed
    """
    return Actor.model_validate(
        {
            "user_id": payload.get("sub"),
            "role": payload.get("role"),
            **{name: payload.get(name) for name in SCOPING_CLAIMS},
        }
    )
