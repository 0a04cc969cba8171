# NG-HEADER: Nombre de archivo: auth.py
# NG-HEADER: Ubicación: services/routers/auth.py
# NG-HEADER: Descripción: Endpoints de login, logout y sesión actual.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints de autenticación."""

import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import User
from db.session import get_session
from services.auth import (
    GUEST_ROLE,
    SessionData,
    check_login_rate_limit,
    create_session,
    current_session,
    record_failed_login,
    require_csrf,
    reset_login_attempts,
    set_session_cookies,
    verify_pw,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("mapaventas.auth")


class LoginIn(BaseModel):
    identifier: str
    password: str


def _user_out(user: User) -> dict:
    return {
        "id": user.id,
        "identifier": user.identifier,
        "email": user.email,
        "name": user.name,
        "role": user.role,
    }


@router.post("/login")
async def login(payload: LoginIn, request: Request, db: AsyncSession = Depends(get_session)):
    tag = secrets.token_hex(4)
    ip = request.client.host if request.client else "unknown"
    logger.debug("[login:start] tag=%s ip=%s identifier=%s", tag, ip, payload.identifier)
    check_login_rate_limit(ip)

    ident = (payload.identifier or "").strip().lower()
    res = await db.execute(
        select(User).where(
            or_(func.lower(User.identifier) == ident, func.lower(User.email) == ident)
        )
    )
    user = res.scalar_one_or_none()
    if not user or not user.active or not verify_pw(payload.password, user.password_hash):
        logger.debug("[login:rejected] tag=%s identifier=%s", tag, ident)
        record_failed_login(ip)
        raise HTTPException(status_code=401, detail="Credenciales inválidas")

    reset_login_attempts(ip)
    prev = await current_session(request, db)
    sess, csrf = await create_session(db, user.role, request, user, prev_session=prev.session)
    resp = JSONResponse(_user_out(user))
    await set_session_cookies(resp, sess.id, csrf, request)
    logger.info("[login:ok] tag=%s user_id=%s role=%s", tag, user.id, user.role)
    return resp


@router.post("/logout", dependencies=[Depends(require_csrf)])
async def logout(request: Request, db: AsyncSession = Depends(get_session)):
    prev = await current_session(request, db)
    new_sess, csrf = await create_session(db, GUEST_ROLE, request, prev_session=prev.session)
    resp = JSONResponse({"status": "ok"})
    await set_session_cookies(resp, new_sess.id, csrf, request)
    return resp


@router.get("/me")
async def me(sess: SessionData = Depends(current_session)):
    if sess.role == GUEST_ROLE:
        return {"is_authenticated": False, "role": GUEST_ROLE}
    data = {"is_authenticated": True, "role": sess.role}
    if sess.user:
        data["user"] = _user_out(sess.user)
    return data
