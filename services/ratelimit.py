# NG-HEADER: Nombre de archivo: ratelimit.py
# NG-HEADER: Ubicación: services/ratelimit.py
# NG-HEADER: Descripción: Rate limiting en memoria por usuario o IP para endpoints HTTP
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Rate limiting simple en memoria (ventana deslizante).

_RL_BUCKET almacena timestamps por llave (ámbito + usuario o IP). Solo es
válido con un único proceso; con varios workers cada uno lleva su cuenta.
"""
from __future__ import annotations

import time
from typing import Callable

from fastapi import Depends, HTTPException, Request

from core.config import settings
from services.auth import SessionData, current_session

_RL_BUCKET: dict[str, list[float]] = {}


def _rl_check(key: str, max_requests: int, window: int) -> tuple[bool, int | None]:
    now = time.time()
    bucket = _RL_BUCKET.setdefault(key, [])
    cutoff = now - window
    while bucket and bucket[0] <= cutoff:
        bucket.pop(0)
    # Si ya alcanzó el máximo, bloquear antes de agregar
    if len(bucket) >= max_requests:
        return False, max(1, int(bucket[0] + window - now))
    bucket.append(now)
    return True, None


def reset_rate_limits() -> None:
    _RL_BUCKET.clear()


def rate_limit(scope: str, max_requests: int, window: int = 60) -> Callable:
    """Dependencia FastAPI que limita ``max_requests`` cada ``window`` segundos.

    La llave es el usuario autenticado o, si no hay, la IP del cliente.
    Excedido el límite responde 429 con ``retry_in`` en segundos.
    """

    async def dep(request: Request, sess: SessionData = Depends(current_session)) -> None:
        if settings.rate_limit_disabled:
            return
        if sess.user_id is not None:
            who = f"user:{sess.user_id}"
        else:
            who = f"ip:{request.client.host if request.client else 'unknown'}"
        ok, retry = _rl_check(f"{scope}:{who}", max_requests, window)
        if not ok:
            raise HTTPException(status_code=429, detail={"code": "rate_limited", "retry_in": retry})

    return dep
