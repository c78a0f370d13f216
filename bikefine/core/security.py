import hashlib
import hmac
import logging
import secrets
import time
import uuid
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.database import aget_db
from bikefine.models.user import User
from bikefine.utils.dates import utcnow
from .config import settings

logger = logging.getLogger(__name__)

ADMIN_SESSION_COOKIE = "admin_session"
AUTH_COOKIE = "auth_token"
_HASH_ALGORITHM = "pbkdf2_sha256"


def hash_password(password: str, iterations: Optional[int] = None) -> str:
    """
    Hash a password with a random salt.

    Args:
        - password (str): The plain-text password.
        - iterations (Optional[int]): PBKDF2 rounds, defaults to the configured value.

    Returns:
        - str: ``pbkdf2_sha256$<iterations>$<salt>$<hex digest>``
    """
    iterations = iterations or settings.PASSWORD_HASH_ITERATIONS
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations).hex()
    return f"{_HASH_ALGORITHM}${iterations}${salt}${digest}"


def verify_password(password: str, hashed: str) -> bool:
    """Check a password against a stored hash in constant time."""
    try:
        algorithm, iterations, salt, digest = hashed.split("$")
    except (AttributeError, ValueError):
        return False
    if algorithm != _HASH_ALGORITHM:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", (password or "").encode(), salt.encode(), int(iterations)).hex()
    return hmac.compare_digest(candidate, digest)


async def ahash_password(password: str) -> str:
    """Async variant of ``hash_password``; PBKDF2 runs in the threadpool."""
    return await run_in_threadpool(hash_password, password)


async def averify_password(password: str, hashed: str) -> bool:
    return await run_in_threadpool(verify_password, password, hashed)


def generate_admin_token() -> str:
    return f"admin_token_{int(time.time() * 1000)}_{uuid.uuid4()}"


def create_jwt_token(data: dict, expires_delta: timedelta = timedelta(hours=1)):
    to_encode = data.copy()
    now = utcnow()
    to_encode.update({
        "exp": now + expires_delta,
        "iat": now
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_jwt_token(token: str):
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except jwt.PyJWTError as e:
        logger.info("JWT decode error: %s", e)
        raise


def _set_cookie(response: JSONResponse, key: str, value: str, expires: timedelta):
    production = settings.ENVIRONMENT == "production"
    response.set_cookie(
        key=key,
        value=value,
        httponly=True,
        secure=production,
        samesite="none" if production else "lax",
        domain=None if production else settings.COOKIE_DOMAIN,
        path="/",
        max_age=int(expires.total_seconds())
    )


def set_auth_cookie(response: JSONResponse, token: str, expires: timedelta):
    """Helper function to set auth cookie with consistent attributes"""
    _set_cookie(response, AUTH_COOKIE, token, expires)


def set_admin_session_cookie(response: JSONResponse, token: str):
    _set_cookie(response, ADMIN_SESSION_COOKIE, token, timedelta(hours=settings.ADMIN_SESSION_HOURS))


async def get_current_user(request: Request, db: AsyncSession = Depends(aget_db)) -> User:
    """Helper function to get current user from token"""
    token = request.cookies.get(AUTH_COOKIE)

    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_jwt_token(token)
        user_id = payload.get("sub")
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    return user


def get_admin_token(request: Request) -> Optional[str]:
    """Session token from the query string, a bearer header or the admin cookie"""
    token = request.query_params.get("token")
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(ADMIN_SESSION_COOKIE)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")
