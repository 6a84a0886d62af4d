from datetime import datetime, timedelta, timezone

import jwt

from clinic_backend.core import config
from clinic_backend.scheduling.schemas import Role


def _role_claim(role: Role | str) -> str:
    if isinstance(role, Role):
        return role.value
    return Role(role.strip().lower()).value


def create_access_token(user_id: int | str, role: Role | str, expires_minutes: int | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {
        "sub": str(user_id),
        "role": _role_claim(role),
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    # Role is validated by the caller so a bad role gets its own error.
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": ["sub"]},
    )
