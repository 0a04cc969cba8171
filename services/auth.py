# NG-HEADER: Nombre de archivo: auth.py
# NG-HEADER: Ubicación: services/auth.py
# NG-HEADER: Descripción: Utilidades de autenticación y hashing del backend.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Utilidades de autenticación y manejo de sesiones."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.responses import Response
from passlib.hash import argon2
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.models import Session as DBSess, User
from db.session import get_session

SESSION_COOKIE = "mv_session"
CSRF_COOKIE = "csrf_token"
GUEST_ROLE = "guest"
# Roles administrativos del mapa de ventas
ADMIN_ROLES = ("superadminmv", "adminmv")

logger = logging.getLogger("mapaventas.auth")


def verify_internal_service_token(request: Request) -> bool:
    """Verifica si la petición incluye un token válido de servicio interno.

    Los servicios internos (cron externo, workers) pueden autenticarse usando
    el header X-Internal-Service-Token con el valor de INTERNAL_SERVICE_TOKEN.
    """
    token_from_header = request.headers.get("X-Internal-Service-Token")
    if not token_from_header:
        return False

    expected_token = settings.internal_service_token
    if not expected_token:
        # Sin token configurado se rechaza siempre
        return False

    # Comparación de tiempo constante para prevenir timing attacks
    return secrets.compare_digest(token_from_header, expected_token)


def hash_pw(pwd: str) -> str:
    """Hashea una contraseña usando Argon2id."""

    return argon2.using(type="ID").hash(pwd)


def verify_pw(pwd: str, hashed: str) -> bool:
    """Verifica una contraseña contra el hash almacenado."""

    return argon2.verify(pwd, hashed)


@dataclass
class SessionData:
    """Información de la sesión resuelta desde la cookie."""

    session: Optional[DBSess]
    user: Optional[User]
    role: str

    @property
    def user_id(self) -> Optional[int]:
        return self.user.id if self.user else None


async def set_session_cookies(resp: Response, sid: str, csrf: str, request: Request | None = None) -> None:
    """Configura cookies de sesión y CSRF.

    Antes de establecer nuevas cookies se eliminan las existentes para evitar
    que un identificador previo quede activo y pueda reutilizarse."""

    resp.delete_cookie(SESSION_COOKIE)
    resp.delete_cookie(CSRF_COOKIE)

    max_age = settings.session_expire_minutes * 60
    secure = settings.cookie_secure
    if settings.env == "production":
        secure = True
    # En localhost nunca marcamos Secure si el esquema es HTTP
    if request is not None:
        if request.url.hostname in {"localhost", "127.0.0.1"} and request.url.scheme == "http":
            secure = False
    cookie_args = {
        "httponly": True,
        "samesite": "lax",
        "secure": secure,
    }
    if settings.cookie_domain:
        cookie_args["domain"] = settings.cookie_domain
    resp.set_cookie(SESSION_COOKIE, sid, max_age=max_age, **cookie_args)

    cookie_args["httponly"] = False
    resp.set_cookie(CSRF_COOKIE, csrf, max_age=max_age, **cookie_args)
    logger.debug(
        "[cookies:set] session=%s secure=%s domain=%s", sid[:12], cookie_args.get("secure"), cookie_args.get("domain")
    )


async def create_session(
    db: AsyncSession,
    role: str,
    request: Request,
    user: User | None = None,
    prev_session: DBSess | None = None,
) -> tuple[DBSess, str]:
    """Genera una nueva sesión persistida y devuelve el objeto y token CSRF.

    Si se proporciona ``prev_session`` la elimina previamente para garantizar que
    el identificador de sesión se regenere en login y logout."""

    if prev_session:
        await db.delete(prev_session)
        await db.commit()

    sid = secrets.token_hex(32)
    csrf = secrets.token_urlsafe(24)
    expires = datetime.utcnow() + timedelta(minutes=settings.session_expire_minutes)
    sess = DBSess(
        id=sid,
        user_id=user.id if user else None,
        role=role,
        csrf_token=csrf,
        expires_at=expires,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    db.add(sess)
    await db.commit()
    return sess, csrf


async def current_session(
    request: Request, db: AsyncSession = Depends(get_session)
) -> SessionData:
    """Resuelve la sesión actual a partir de la cookie. Sin cookie válida: invitado."""

    sid = request.cookies.get(SESSION_COOKIE)
    if not sid:
        return SessionData(None, None, GUEST_ROLE)

    res = await db.execute(select(DBSess).where(DBSess.id == sid))
    sess: DBSess | None = res.scalar_one_or_none()
    if not sess or sess.expires_at < datetime.utcnow():
        return SessionData(None, None, GUEST_ROLE)

    user: User | None = None
    if sess.user_id:
        user = await db.get(User, sess.user_id)
        if user is not None and not user.active:
            return SessionData(None, None, GUEST_ROLE)
    return SessionData(sess, user, sess.role)


async def require_authenticated(
    request: Request, sess: SessionData = Depends(current_session)
) -> SessionData:
    """Exige una sesión no invitada (o token interno). Responde 401 si falta."""

    if verify_internal_service_token(request):
        return SessionData(None, None, ADMIN_ROLES[0])
    if sess.role == GUEST_ROLE:
        raise HTTPException(status_code=401, detail="No autenticado")
    return sess


def require_roles(*roles: str) -> Callable[..., SessionData]:
    """Dependencia que asegura que la sesión tenga uno de los roles permitidos.

    El token de servicio interno tiene prioridad y equivale a ``superadminmv``.
    Además del rol de la sesión se consideran los roles globales y por proyecto
    del usuario, igual que para ver datos financieros.
    """

    async def dep(
        sess: SessionData = Depends(require_authenticated),
        db: AsyncSession = Depends(get_session),
    ) -> SessionData:
        from services.authorization import has_any_role  # import local para evitar ciclos

        if not await has_any_role(db, sess, roles):
            raise HTTPException(status_code=403, detail="Forbidden")
        return sess

    return dep


async def require_csrf(request: Request) -> None:
    """Valida el token CSRF en mutaciones."""

    if request.method in {"GET", "HEAD", "OPTIONS"}:
        return
    if verify_internal_service_token(request):
        return
    cookie = request.cookies.get(CSRF_COOKIE)
    header = request.headers.get("X-CSRF-Token")
    if not cookie or not header or cookie != header:
        raise HTTPException(status_code=403, detail="CSRF invalid")


_LOGIN_WINDOW = 15 * 60
_MAX_ATTEMPTS = 10
_login_attempts: dict[str, list[float]] = {}


def check_login_rate_limit(ip: str) -> None:
    """Aplica rate limit por IP para el login."""

    attempts = _login_attempts.get(ip, [])
    now = time.time()
    attempts = [t for t in attempts if now - t < _LOGIN_WINDOW]
    if len(attempts) >= _MAX_ATTEMPTS:
        raise HTTPException(status_code=429, detail="Too Many Requests")
    _login_attempts[ip] = attempts


def record_failed_login(ip: str) -> None:
    _login_attempts.setdefault(ip, []).append(time.time())


def reset_login_attempts(ip: str) -> None:
    _login_attempts.pop(ip, None)


__all__ = [
    "ADMIN_ROLES",
    "SessionData",
    "hash_pw",
    "verify_pw",
    "create_session",
    "set_session_cookies",
    "current_session",
    "require_authenticated",
    "require_roles",
    "require_csrf",
    "check_login_rate_limit",
    "record_failed_login",
    "reset_login_attempts",
]
