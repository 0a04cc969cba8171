# NG-HEADER: Nombre de archivo: authorization.py
# NG-HEADER: Ubicación: services/authorization.py
# NG-HEADER: Descripción: Resolución de roles globales y por proyecto de un usuario
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Consulta de roles efectivos para decisiones de autorización."""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Role, User, UserProject, UserRole
from services.auth import SessionData

logger = logging.getLogger("mapaventas.auth")


async def get_user_roles(db: AsyncSession, user_id: int) -> Set[str]:
    """Roles del usuario: ``users.role``, ``user_roles`` y roles por proyecto."""
    roles: Set[str] = set()
    user = await db.get(User, user_id)
    if user is None:
        return roles
    if user.role:
        roles.add(user.role.lower())

    res = await db.execute(
        select(Role.name).join(UserRole, UserRole.role_id == Role.id).where(UserRole.user_id == user_id)
    )
    roles.update(r.lower() for r in res.scalars().all())

    res = await db.execute(
        select(Role.name)
        .join(UserProject, UserProject.role_id == Role.id)
        .where(UserProject.user_id == user_id)
    )
    roles.update(r.lower() for r in res.scalars().all())
    return roles


async def has_any_role(
    db: AsyncSession, sess: Optional[SessionData], allowed: Iterable[str]
) -> bool:
    """True si la sesión o el usuario tienen alguno de ``allowed``.

    Cualquier error en la consulta se trata como "sin permiso".
    """
    allowed_set = {a.lower() for a in allowed}
    if sess is None:
        return False
    if sess.role and sess.role.lower() in allowed_set:
        return True
    user_id = sess.user_id
    if user_id is None:
        return False
    try:
        roles = await get_user_roles(db, user_id)
    except Exception as e:
        logger.warning("[authz] no se pudieron resolver roles de user_id=%s: %s", user_id, e)
        return False
    return bool(roles & allowed_set)
