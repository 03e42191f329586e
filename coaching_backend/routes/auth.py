import logging
import re
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config import Settings
from ..models import AuthLogin, AuthToken, UserRecord
from ..security import (
    AUTH_COOKIE,
    create_access_token,
    get_clock,
    get_current_user,
    get_db,
    get_settings,
    verify_password,
)
from ..utils import Clock, to_iso

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth")


@auth_router.post("/login", response_model=AuthToken)
async def login(
    payload: AuthLogin,
    response: Response,
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    identifier = payload.username.strip()
    if not identifier or not payload.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Kullanıcı adı ve şifre gereklidir")
    pattern = f"^{re.escape(identifier)}$"
    try:
        user = await db.users.find_one(
            {
                "$or": [
                    {"username": {"$regex": pattern, "$options": "i"}},
                    {"email": {"$regex": pattern, "$options": "i"}},
                ]
            },
            {"_id": 0},
        )
    except Exception as e:
        logger.exception("Login lookup failed: %s", e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Veritabanına şu anda ulaşılamıyor")

    stored_hash = (user or {}).get("password_hash") or ""
    if not stored_hash or not verify_password(payload.password, stored_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Geçersiz kullanıcı adı veya şifre")
    if not user.get("is_active", True):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Hesabınız aktif değil")

    now = to_iso(clock())
    await db.users.update_one({"id": user["id"]}, {"$set": {"last_login": now}})
    user["last_login"] = now
    token = create_access_token(
        {"sub": user["id"], "role": user["role"], "username": user["username"]}, settings, clock
    )
    response.set_cookie(
        AUTH_COOKIE,
        token,
        max_age=settings.jwt_expires_minutes * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )
    return AuthToken(access_token=token, user=UserRecord(**user))


@auth_router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(AUTH_COOKIE, path="/")
    return {"message": "Çıkış yapıldı"}


@auth_router.get("/me", response_model=UserRecord)
async def get_me(current_user: Dict[str, Any] = Depends(get_current_user)):
    return current_user
