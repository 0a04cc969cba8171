#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: snapshots_scheduler.py
# NG-HEADER: Ubicación: services/routers/snapshots_scheduler.py
# NG-HEADER: Descripción: Router para gestión del scheduler de snapshots de stock
# NG-HEADER: Lineamientos: Ver AGENTS.md

"""
Router para control y monitoreo del scheduler de snapshots.

Endpoints:
- GET /snapshots/scheduler/status - Estado del scheduler y última corrida
- POST /snapshots/scheduler/enable - Inicia el scheduler en esta instancia
- POST /snapshots/scheduler/disable - Detiene el scheduler en esta instancia
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from services.auth import ADMIN_ROLES, require_csrf, require_roles
from services.jobs import snapshots_scheduler as jobs

router = APIRouter(prefix="/snapshots/scheduler", tags=["Snapshots Scheduler"])


# ==================== SCHEMAS ====================

class SchedulerJob(BaseModel):
    id: str
    name: str
    next_run_time: Optional[str] = None


class SchedulerStatusResponse(BaseModel):
    """Respuesta con estado del scheduler."""
    scheduler_enabled: bool
    scheduler_running: bool
    timezone: str
    daily_at: str
    monthly_at: str
    is_working: bool
    last_run: Optional[dict] = None
    jobs: list[SchedulerJob]


class SchedulerActionResponse(BaseModel):
    """Respuesta de acciones sobre el scheduler."""
    success: bool
    message: str
    scheduler_running: bool


# ==================== ENDPOINTS ====================

@router.get(
    "/status",
    response_model=SchedulerStatusResponse,
    dependencies=[Depends(require_roles(*ADMIN_ROLES))],
)
async def get_status():
    return jobs.get_scheduler_status()


@router.post(
    "/enable",
    response_model=SchedulerActionResponse,
    dependencies=[Depends(require_csrf), Depends(require_roles(*ADMIN_ROLES))],
)
async def enable_scheduler():
    """
    Inicia el scheduler aunque SNAPSHOT_SCHEDULER_ENABLED sea false.

    Afecta solo la instancia actual; para dejarlo fijo configurar la variable en .env
    """
    try:
        running = jobs.start_scheduler(force=True)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error al habilitar scheduler: {e}")
    return SchedulerActionResponse(
        success=True, message="Scheduler habilitado correctamente", scheduler_running=running
    )


@router.post(
    "/disable",
    response_model=SchedulerActionResponse,
    dependencies=[Depends(require_csrf), Depends(require_roles(*ADMIN_ROLES))],
)
async def disable_scheduler():
    try:
        jobs.stop_scheduler()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error al deshabilitar scheduler: {e}")
    return SchedulerActionResponse(
        success=True, message="Scheduler deshabilitado correctamente", scheduler_running=False
    )
