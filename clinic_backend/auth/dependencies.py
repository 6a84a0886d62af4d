import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clinic_backend.auth import jwt_handler
from clinic_backend.scheduling.schemas import Actor, Role

security = HTTPBearer()


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    try:
        role = Role(str(payload.get("role", "")).strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid token role") from exc

    return Actor(user_id=int(subject), role=role)