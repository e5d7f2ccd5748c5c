import hmac
import bcrypt
from datetime import datetime, timedelta
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from quiz_pipeline.core.config import settings

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = 24

security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
    )


def _matches(token: str, secret: str) -> bool:
    return bool(secret) and hmac.compare_digest(token, secret)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        hashed_password.encode("utf-8"),
    )


def create_access_token(username: str) -> str:
    expire = datetime.utcnow() + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
    payload = {"sub": username, "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)


def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    token = credentials.credentials

    # Check if it's an internal API key (server-to-server)
    if _matches(token, settings.INTERNAL_API_KEY):
        return "internal_service"

    if not settings.JWT_SECRET_KEY:
        raise _unauthorized("Admin login is not configured")

    # Otherwise treat as JWT (admin panel login)
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise _unauthorized("Invalid token")
        return username
    except JWTError:
        raise _unauthorized("Invalid or expired token")


def verify_trigger_secret(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Stage triggers accept the scheduler's CRON_SECRET or the internal API key"""
    token = credentials.credentials

    if _matches(token, settings.CRON_SECRET):
        return "cron"
    if _matches(token, settings.INTERNAL_API_KEY):
        return "internal_service"

    raise _unauthorized("Invalid trigger secret")
