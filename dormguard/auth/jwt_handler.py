from datetime import datetime, timedelta, timezone

import jwt

from dormguard.core import config
from dormguard.models.user import Claims, Role, User


def create_access_token(user: User, expires_delta: timedelta | None = None) -> str:
    expires_delta = expires_delta if expires_delta is not None else timedelta(minutes=config.JWT_EXPIRES_MINUTES)
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "role": Role(user.role).value,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> Claims:
    payload = jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": ["exp", "sub"]},
    )
    try:
        return Claims(
            user_id=int(payload["sub"]),
            username=str(payload["username"]),
            role=Role(payload["role"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("Malformed token claims") from exc
