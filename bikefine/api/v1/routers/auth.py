import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.responses import serialize, success_response
from bikefine.core.config import settings
from bikefine.core.database import aget_db
from bikefine.core.exceptions import ServiceError
from bikefine.core.security import AUTH_COOKIE, create_jwt_token, get_current_user, set_auth_cookie
from bikefine.models.user import User
from bikefine.schemas.user import LoginRequest, UserOut
from bikefine.services import user_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    payload: LoginRequest,
    db: AsyncSession = Depends(aget_db)
):
    """Rider login; sets the auth_token cookie"""
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    try:
        user = await user_service.authenticate_user(db, payload.email, payload.password)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        logger.exception("Login failed for %s", payload.email)
        raise HTTPException(status_code=500, detail="Login failed")

    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    expires = timedelta(hours=settings.ACCESS_TOKEN_HOURS)
    token = create_jwt_token({"sub": user.id, "role": user.role.value}, expires)

    response = success_response(serialize(user, UserOut), message="Login successful")
    set_auth_cookie(response, token, expires)
    return response


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    return success_response(serialize(user, UserOut))


@router.post("/logout")
async def logout():
    response = success_response(message="Logged out successfully")
    response.delete_cookie(AUTH_COOKIE, path="/")
    return response
