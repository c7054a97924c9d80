"""
Manager authentication.

Passwords are stored as bcrypt hashes; sessions are stateless HS256 JWTs
carrying the username in `sub`. Every mutating and operator-facing route
depends on `require_manager`.
"""

import logging
from datetime import datetime, timedelta

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings
from schemas import TokenResponse, UserRecord
from services.clock import utcnow
from storage import DirectoryStorage, get_storage

logger = logging.getLogger(__name__)

MANAGER_ROLE = "manager"

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed stored hash
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def create_access_token(user: UserRecord, now: datetime | None = None) -> TokenResponse:
    now = now or utcnow()
    expires_at = now + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS)
    payload = {
        "sub": user.username,
        "role": user.role,
        "iat": now,
        "exp": expires_at,
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return TokenResponse(access_token=token, expires_at=expires_at)


def decode_token(token: str) -> dict | None:
    """Return the token claims, or None when the token is invalid or expired."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired access token")
    except jwt.InvalidTokenError as e:
        logger.info("Rejected invalid access token: %s", e)
    return None


async def authenticate(storage: DirectoryStorage, username: str, password: str) -> UserRecord | None:
    user = await storage.get_user_by_username(username)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("Failed manager login for %r", username)
        return None
    logger.info("Manager logged in: %s", username)
    return user


async def ensure_manager_user(storage: DirectoryStorage, username: str | None, password: str | None) -> UserRecord | None:
    """Create the bootstrap manager account if configured and missing."""
    if not username or not password:
        return None
    existing = await storage.get_user_by_username(username)
    if existing is not None:
        return existing
    return await storage.create_user(username, hash_password(password), MANAGER_ROLE, utcnow())


# ── FastAPI dependency ─────────────────────────────────────

_UNAUTHORIZED = {"WWW-Authenticate": "Bearer"}


async def require_manager(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> UserRecord:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers=_UNAUTHORIZED)

    claims = decode_token(credentials.credentials)
    if claims is None or claims.get("role") != MANAGER_ROLE:
        raise HTTPException(status_code=401, detail="Invalid or expired token", headers=_UNAUTHORIZED)

    user = await get_storage(request).get_user_by_username(claims.get("sub", ""))
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user", headers=_UNAUTHORIZED)
    return user
