#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: snapshots_scheduler.py
# NG-HEADER: Ubicación: services/jobs/snapshots_scheduler.py
# NG-HEADER: Descripción: Scheduler de snapshots de stock diarios y mensuales
# NG-HEADER: Lineamientos: Ver AGENTS.md

"""
Scheduler para la generación automática de snapshots de stock.

Jobs (zona horaria de referencia, por defecto America/Argentina/Buenos_Aires):
- daily-stock-snapshot: todos los días a SNAPSHOT_DAILY_AT (00:00) -> DIARIO
- monthly-stock-snapshot: días 28 a 31 a SNAPSHOT_MONTHLY_AT (23:55); solo
  genera si mañana es día 1 -> MENSUAL

Los errores se registran y el job termina sin reintentos. Una corrida que
supera SNAPSHOT_SLOW_RUN_SECONDS deja una advertencia de rendimiento.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core.config import settings
from services.snapshots import service as snapshot_service

logger = logging.getLogger("mapaventas.snapshots.cron")

# ==================== CONFIGURACIÓN ====================

SCHEDULER_ENABLED = settings.snapshot_scheduler_enabled
SCHEDULER_TIMEZONE = settings.snapshot_timezone
DAILY_AT = settings.snapshot_daily_at
MONTHLY_AT = settings.snapshot_monthly_at
SLOW_RUN_SECONDS = settings.snapshot_slow_run_seconds

DAILY_JOB_ID = "daily-stock-snapshot"
MONTHLY_JOB_ID = "monthly-stock-snapshot"

# Estado de ejecución actual (para detectar "Working")
_is_running_job = False
_last_run: Optional[Dict[str, Any]] = None


# ==================== JOBS ====================

def is_last_day_of_month(d: date) -> bool:
    """True si ``d`` es el último día de su mes."""
    return (d + timedelta(days=1)).day == 1


def _parse_hhmm(value: str) -> tuple[int, int]:
    hour_str, minute_str = value.split(":")
    hour, minute = int(hour_str), int(minute_str)
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Hora inválida: {value}")
    return hour, minute


async def _run_snapshot_job(tipo: str, job_name: str) -> Optional[Dict[str, Any]]:
    """Ejecuta el pipeline completo. Nunca propaga errores."""
    global _is_running_job, _last_run
    _is_running_job = True
    t0 = time.perf_counter()
    logger.info("[SNAPSHOTS CRON] Iniciando %s", job_name)
    try:
        result = await snapshot_service.generate_snapshot(tipo)
    except Exception as e:
        logger.error("[SNAPSHOTS CRON] Error en %s: %s", job_name, e, exc_info=True)
        _last_run = {
            "job": job_name,
            "ok": False,
            "finished_at": datetime.utcnow().isoformat(),
            "error": str(e),
        }
        return None
    finally:
        _is_running_job = False

    duration = time.perf_counter() - t0
    logger.info(
        "[SNAPSHOTS CRON] %s completado en %.2fs: %s proyectos procesados",
        job_name,
        duration,
        result.get("proyectosProcesados"),
    )
    if duration > SLOW_RUN_SECONDS:
        logger.warning(
            "[SNAPSHOTS CRON] %s tardó %.2fs (umbral %ss)", job_name, duration, SLOW_RUN_SECONDS
        )
    _last_run = {
        "job": job_name,
        "ok": True,
        "finished_at": datetime.utcnow().isoformat(),
        "duration_seconds": round(duration, 2),
        "proyectosProcesados": result.get("proyectosProcesados"),
    }
    return result


async def run_daily_snapshot() -> Optional[Dict[str, Any]]:
    return await _run_snapshot_job("DIARIO", "snapshot diario")


async def run_monthly_snapshot(today: Optional[date] = None) -> Optional[Dict[str, Any]]:
    """Genera el snapshot mensual solo el último día del mes."""
    today = today or snapshot_service.today_in_reference_tz()
    if not is_last_day_of_month(today):
        logger.debug("[SNAPSHOTS CRON] %s no es fin de mes; se omite el mensual", today.isoformat())
        return None
    return await _run_snapshot_job("MENSUAL", "snapshot mensual")


# ==================== INICIALIZACIÓN DEL SCHEDULER ====================

# Instancia global del scheduler (singleton)
scheduler: Optional[AsyncIOScheduler] = None


def create_scheduler() -> AsyncIOScheduler:
    """Crea el scheduler con ambos jobs, sin iniciarlo."""
    global scheduler

    if scheduler is not None:
        return scheduler

    scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE)
    d_hour, d_minute = _parse_hhmm(DAILY_AT)
    m_hour, m_minute = _parse_hhmm(MONTHLY_AT)

    scheduler.add_job(
        run_daily_snapshot,
        trigger=CronTrigger(hour=d_hour, minute=d_minute, timezone=SCHEDULER_TIMEZONE),
        id=DAILY_JOB_ID,
        name="Snapshot diario de stock",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.add_job(
        run_monthly_snapshot,
        trigger=CronTrigger(
            day="28-31", hour=m_hour, minute=m_minute, timezone=SCHEDULER_TIMEZONE
        ),
        id=MONTHLY_JOB_ID,
        name="Snapshot mensual de stock",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    logger.info(
        "[SNAPSHOTS CRON] Jobs configurados: diario %s, mensual %s (días 28-31) %s",
        DAILY_AT,
        MONTHLY_AT,
        SCHEDULER_TIMEZONE,
    )
    return scheduler


def start_scheduler(force: bool = False) -> bool:
    """Inicia el scheduler si está habilitado (o si ``force``). Devuelve si quedó corriendo."""
    if not (SCHEDULER_ENABLED or force):
        logger.info("[SNAPSHOTS CRON] Scheduler deshabilitado por configuración (SNAPSHOT_SCHEDULER_ENABLED=false)")
        return False

    sch = create_scheduler()
    if sch.running:
        logger.warning("[SNAPSHOTS CRON] Scheduler ya estaba en ejecución")
        return True
    sch.start()
    job = sch.get_job(DAILY_JOB_ID)
    logger.info(
        "[SNAPSHOTS CRON] Scheduler iniciado; próxima ejecución diaria: %s",
        job.next_run_time if job else None,
    )
    return True


def stop_scheduler() -> None:
    """Detiene el scheduler y descarta la instancia."""
    global scheduler

    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("[SNAPSHOTS CRON] Scheduler detenido correctamente")
    else:
        logger.info("[SNAPSHOTS CRON] Scheduler no estaba en ejecución")
    scheduler = None


def get_scheduler_status() -> Dict[str, Any]:
    running = scheduler is not None and scheduler.running
    jobs = []
    if running:
        for job in scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                }
            )
    return {
        "scheduler_enabled": SCHEDULER_ENABLED,
        "scheduler_running": running,
        "timezone": SCHEDULER_TIMEZONE,
        "daily_at": DAILY_AT,
        "monthly_at": MONTHLY_AT,
        "is_working": _is_running_job,
        "last_run": _last_run,
        "jobs": jobs,
    }
