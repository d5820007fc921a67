"""
Stockroom Security Utilities

JWT handling for access tokens issued by the hosted auth service.
"""

from datetime import datetime, timedelta

from jose import JWTError, jwt

from core.config import get_settings


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    runtime_settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=24))
    to_encode.update({"exp": expire})
    if runtime_settings.jwt_audience and "aud" not in to_encode:
        to_encode["aud"] = runtime_settings.jwt_audience
    return jwt.encode(to_encode, runtime_settings.jwt_secret, algorithm=runtime_settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate an access token. Returns None when invalid or expired."""
    runtime_settings = get_settings()
    options = {"verify_aud": bool(runtime_settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            runtime_settings.jwt_secret,
            algorithms=[runtime_settings.jwt_algorithm],
            audience=runtime_settings.jwt_audience or None,
            options=options,
        )
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload
