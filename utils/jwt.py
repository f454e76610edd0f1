import os
from datetime import datetime, timedelta
from jose import jwt
from typing import Optional
import logging

# FastAPI imports for dependency-based auth
from fastapi import Header, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

SECRET_KEY = os.getenv("JWT_SECRET", "your_jwt_secret_here")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60

http_bearer = HTTPBearer(auto_error=False)
logger = logging.getLogger("auth")


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def verify_access_token(token: str) -> Optional[dict]:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except Exception as err:  # broad to log actual cause
        logger.warning("JWT verification failed: %s", str(err))
        return None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    Authorization: Optional[str] = Header(None, include_in_schema=False),
) -> dict:
    """
    FastAPI dependency returning the token claims of the current user (`id`, `sub`, `role`).
    Prefer standard HTTP Bearer auth (works with Swagger Authorize button).
    Also falls back to raw Authorization header if provided.
    Returns 401 when header is missing/invalid.
    """
    token: Optional[str] = None

    if credentials and credentials.scheme and credentials.credentials:
        if credentials.scheme.lower() == "bearer":
            creds = credentials.credentials.strip()
            token = creds.split(" ", 1)[1].strip() if creds.lower().startswith("bearer ") else creds
    elif Authorization:
        raw = Authorization.strip()
        token = raw.split(" ", 1)[1].strip() if raw.lower().startswith("bearer ") else raw

    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")

    payload = verify_access_token(token)
    if not payload or "id" not in payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    return payload


def get_current_user_id(user: dict = Depends(get_current_user)) -> str:
    return str(user["id"])


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
