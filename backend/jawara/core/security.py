from __future__ import annotations

from typing import Any

from jose import jwt

from jawara.core.config import get_settings


def decode_token(token: str) -> dict[str, Any]:
    """Verify a bearer token minted by the identity provider and return its claims.

    Raises ``jose.JWTError`` on a bad signature, expiry or audience mismatch.
    """
    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
        options={"verify_aud": settings.jwt_audience is not None},
    )
