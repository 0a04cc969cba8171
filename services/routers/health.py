# NG-HEADER: Nombre de archivo: health.py
# NG-HEADER: Ubicación: services/routers/health.py
# NG-HEADER: Descripción: Endpoints de healthcheck del backend y la base de datos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints de health.

- Liveness básico (`/health`)
- Conectividad DB (`/health/db`)
- Resumen con uptime y estado del scheduler (`/health/summary`)
"""
from __future__ import annotations

import socket
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.session import get_session
from services.jobs import snapshots_scheduler

router = APIRouter(prefix="/health", tags=["health"])
START_TIME = time.monotonic()


def _status(ok: bool, detail: str | None = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"ok": ok}
    if detail:
        out["detail"] = detail
    return out


@router.get("")
async def health_root() -> Dict[str, str]:
    """Liveness simple del backend (si responde, está vivo)."""
    return {"status": "ok"}


@router.get("/db")
async def health_db(db: AsyncSession = Depends(get_session)) -> Dict[str, Any]:
    """Valida conexión a la base de datos (SELECT 1)."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        return _status(False, detail=str(e))
    return _status(True)


@router.get("/summary")
async def health_summary(db: AsyncSession = Depends(get_session)) -> Dict[str, Any]:
    db_status = await health_db(db)
    sched = snapshots_scheduler.get_scheduler_status()
    return {
        "env": settings.env,
        "host": socket.gethostname(),
        "uptime_seconds": int(time.monotonic() - START_TIME),
        "db": db_status,
        "scheduler": {
            "enabled": sched["scheduler_enabled"],
            "running": sched["scheduler_running"],
            "last_run": sched["last_run"],
        },
    }
