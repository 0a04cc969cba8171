#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: service.py
# NG-HEADER: Ubicación: services/snapshots/service.py
# NG-HEADER: Descripción: Generación y consulta de snapshots de stock por proyecto
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Generación y consulta de snapshots de stock.

Flujo de generación:
1. Se listan los proyectos activos una sola vez.
2. Se procesan en tandas de ``SNAPSHOT_BATCH_SIZE``; dentro de cada tanda los
   proyectos corren en paralelo, cada uno con su propia sesión.
3. Por proyecto: se leen las unidades, se calculan los agregados, se compara
   contra el último snapshot del proyecto y se persisten resumen + detalle en
   una única transacción.

Un error en un proyecto se registra y no afecta al resto de la corrida.
"""
from __future__ import annotations

import asyncio
import logging
import math
import time
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from core.config import settings
from db.models import Project, StockSnapshot, StockSnapshotDetail, Unit
from db.session import SessionLocal

from .aggregator import (
    StockStats,
    build_detail_rows,
    build_previous_state_map,
    calculate_stats,
)

logger = logging.getLogger("mapaventas.snapshots")

SNAPSHOT_TYPES = ("DIARIO", "MENSUAL")
DEFAULT_SNAPSHOT_TYPE = "DIARIO"
MAX_PAGE_SIZE = 100
NO_PROJECT_LABEL = "Sin proyecto"


# ==================== FECHAS ====================

def reference_tz() -> ZoneInfo:
    return ZoneInfo(settings.snapshot_timezone)


def today_in_reference_tz() -> date:
    """Día calendario actual en la zona horaria de referencia."""
    return datetime.now(reference_tz()).date()


def parse_day(value: str) -> date:
    """Normaliza ``YYYY-MM-DD`` o un datetime ISO a un día calendario.

    Los datetimes con zona se convierten primero a la zona de referencia.
    Lanza ``ValueError`` si el valor no es una fecha válida.
    """
    raw = (value or "").strip()
    if not raw:
        raise ValueError("fecha vacía")
    if len(raw) == 10:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is not None:
        dt = dt.astimezone(reference_tz())
    return dt.date()


def normalize_snapshot_type(value: Optional[str]) -> str:
    """Valida el tipo de snapshot. ``None`` o vacío equivale a ``DIARIO``."""
    if not value:
        return DEFAULT_SNAPSHOT_TYPE
    tipo = value.strip().upper()
    if tipo not in SNAPSHOT_TYPES:
        raise ValueError(f"tipo de snapshot inválido: {value}")
    return tipo


# ==================== ESCRITURA ====================

async def create_snapshot_with_details(
    db: AsyncSession,
    *,
    project_id: Optional[int],
    snapshot_date: date,
    snapshot_type: str,
    stats: StockStats,
    detail_rows: Sequence[Dict[str, Any]],
) -> StockSnapshot:
    """Persiste el resumen y sus filas de detalle en una sola transacción.

    Solo agrega filas: si ya existe un snapshot del mismo proyecto, fecha y tipo
    se registra una advertencia y se crea otro igual.
    """
    existing = await db.scalar(
        select(func.count())
        .select_from(StockSnapshot)
        .where(
            StockSnapshot.project_id == project_id,
            StockSnapshot.snapshot_date == snapshot_date,
            StockSnapshot.snapshot_type == snapshot_type,
        )
    )
    if existing:
        logger.warning(
            "[SNAPSHOTS] Ya existen %s snapshot(s) %s del proyecto %s para %s; se agrega otro",
            existing,
            snapshot_type,
            project_id,
            snapshot_date.isoformat(),
        )

    snapshot = StockSnapshot(
        snapshot_date=snapshot_date,
        snapshot_type=snapshot_type,
        project_id=project_id,
        total_units=stats.total_units,
        available=stats.available,
        reserved=stats.reserved,
        sold=stats.sold,
        unavailable=stats.unavailable,
        stock_value_usd=stats.stock_value_usd,
        stock_area_m2=stats.stock_area_m2,
    )
    db.add(snapshot)
    try:
        await db.flush()
        db.add_all(
            [StockSnapshotDetail(snapshot_id=snapshot.id, **row) for row in detail_rows]
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return snapshot


async def _previous_details(db: AsyncSession, project_id: int) -> List[StockSnapshotDetail]:
    """Detalle del snapshot más reciente del proyecto (vacío si no hay)."""
    last_id = await db.scalar(
        select(StockSnapshot.id)
        .where(StockSnapshot.project_id == project_id)
        .order_by(
            StockSnapshot.snapshot_date.desc(),
            StockSnapshot.created_at.desc(),
            StockSnapshot.id.desc(),
        )
        .limit(1)
    )
    if last_id is None:
        return []
    rows = await db.scalars(
        select(StockSnapshotDetail).where(StockSnapshotDetail.snapshot_id == last_id)
    )
    return list(rows)


async def process_project_snapshot(
    db: AsyncSession,
    project_id: int,
    project_name: str,
    snapshot_date: date,
    snapshot_type: str,
) -> Optional[Dict[str, Any]]:
    """Genera el snapshot de un proyecto. Devuelve ``None`` si no tiene unidades."""
    units = list(await db.scalars(select(Unit).where(Unit.project_id == project_id)))
    if not units:
        return None

    stats = calculate_stats(units)
    previous = build_previous_state_map(await _previous_details(db, project_id))
    rows = build_detail_rows(units, previous, project_name=project_name)
    snapshot = await create_snapshot_with_details(
        db,
        project_id=project_id,
        snapshot_date=snapshot_date,
        snapshot_type=snapshot_type,
        stats=stats,
        detail_rows=rows,
    )
    return {
        "proyecto": project_name,
        "snapshotId": snapshot.id,
        "totalUnidades": stats.total_units,
        "disponibles": stats.available,
        "reservadas": stats.reserved,
        "vendidas": stats.sold,
    }


async def _run_project(
    session_factory: async_sessionmaker,
    project_id: int,
    project_name: str,
    snapshot_date: date,
    snapshot_type: str,
) -> Optional[Dict[str, Any]]:
    async with session_factory() as db:
        return await process_project_snapshot(
            db, project_id, project_name, snapshot_date, snapshot_type
        )


async def generate_snapshot(
    snapshot_type: str = DEFAULT_SNAPSHOT_TYPE,
    *,
    session_factory: Optional[async_sessionmaker] = None,
    batch_size: Optional[int] = None,
    snapshot_date: Optional[date] = None,
) -> Dict[str, Any]:
    """Genera snapshots de todos los proyectos activos.

    Devuelve el resumen de la corrida. Los proyectos con error quedan en
    ``proyectosConError`` y los que no tienen unidades en ``proyectosOmitidos``.
    Si falla el listado de proyectos la excepción se propaga.
    """
    tipo = normalize_snapshot_type(snapshot_type)
    factory = session_factory or SessionLocal
    size = batch_size or settings.snapshot_batch_size
    fecha = snapshot_date or today_in_reference_tz()
    t0 = time.perf_counter()

    async with factory() as db:
        res = await db.execute(
            select(Project.id, Project.name)
            .where(Project.active.is_(True))
            .order_by(Project.id)
        )
        projects = [(pid, name) for pid, name in res.all()]

    logger.info(
        "[SNAPSHOTS] Generando snapshot %s del %s para %d proyectos (tandas de %d)",
        tipo,
        fecha.isoformat(),
        len(projects),
        size,
    )

    detalles: List[Dict[str, Any]] = []
    failed: List[str] = []
    skipped: List[str] = []
    for start in range(0, len(projects), size):
        batch = projects[start:start + size]
        results = await asyncio.gather(
            *[_run_project(factory, pid, name, fecha, tipo) for pid, name in batch],
            return_exceptions=True,
        )
        for (pid, name), result in zip(batch, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(
                    "[SNAPSHOTS] Error procesando proyecto %s (id=%s): %s",
                    name,
                    pid,
                    result,
                    exc_info=result,
                )
                failed.append(name)
            elif result is None:
                skipped.append(name)
            else:
                detalles.append(result)

    elapsed = time.perf_counter() - t0
    logger.info(
        "[SNAPSHOTS] Snapshot %s completado en %.2fs: %d procesados, %d con error, %d omitidos",
        tipo,
        elapsed,
        len(detalles),
        len(failed),
        len(skipped),
    )
    return {
        "fecha": fecha.isoformat(),
        "tipoSnapshot": tipo,
        "proyectosProcesados": len(detalles),
        "detalles": detalles,
        "proyectosConError": failed,
        "proyectosOmitidos": skipped,
    }


# ==================== CONSULTAS ====================

def _decimal_str(value: Optional[Decimal]) -> Optional[str]:
    # Montos y superficies como texto: el JSON no pasa por float
    return None if value is None else str(value)


def serialize_snapshot(snap: StockSnapshot) -> Dict[str, Any]:
    """Representación pública de un snapshot (requiere ``project`` cargado)."""
    project = snap.project
    return {
        "Id": snap.id,
        "FechaSnapshot": snap.snapshot_date.isoformat(),
        "TipoSnapshot": snap.snapshot_type,
        "ProyectoId": snap.project_id,
        "TotalUnidades": snap.total_units,
        "Disponibles": snap.available,
        "Reservadas": snap.reserved,
        "Vendidas": snap.sold,
        "NoDisponibles": snap.unavailable,
        "ValorStockUSD": _decimal_str(snap.stock_value_usd),
        "M2TotalesStock": _decimal_str(snap.stock_area_m2),
        "CreatedAt": snap.created_at.isoformat() if snap.created_at else None,
        "Proyecto": {"Id": project.id, "Nombre": project.name} if project else None,
    }


async def _snapshots_for_date(db: AsyncSession, fecha: date) -> List[StockSnapshot]:
    rows = await db.scalars(
        select(StockSnapshot)
        .options(selectinload(StockSnapshot.project))
        .where(StockSnapshot.snapshot_date == fecha)
        .order_by(StockSnapshot.created_at.desc(), StockSnapshot.id.desc())
    )
    return list(rows)


async def get_snapshot_by_date(db: AsyncSession, fecha: date) -> List[Dict[str, Any]]:
    """Snapshots de una fecha, el más reciente primero."""
    return [serialize_snapshot(s) for s in await _snapshots_for_date(db, fecha)]


async def get_snapshots_in_range(
    db: AsyncSession,
    desde: date,
    hasta: date,
    page: int = 1,
    limit: int = MAX_PAGE_SIZE,
) -> Dict[str, Any]:
    """Snapshots entre dos fechas (inclusive), paginados y ordenados por fecha."""
    page = max(1, page)
    limit = max(1, min(MAX_PAGE_SIZE, limit))
    where = (StockSnapshot.snapshot_date >= desde, StockSnapshot.snapshot_date <= hasta)

    total = await db.scalar(select(func.count()).select_from(StockSnapshot).where(*where))
    rows = await db.scalars(
        select(StockSnapshot)
        .options(selectinload(StockSnapshot.project))
        .where(*where)
        .order_by(StockSnapshot.snapshot_date.asc(), StockSnapshot.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    total = int(total or 0)
    return {
        "data": [serialize_snapshot(s) for s in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    }


def _summary(snap: StockSnapshot) -> Dict[str, Any]:
    return {
        "disponibles": snap.available,
        "reservadas": snap.reserved,
        "vendidas": snap.sold,
        "valorStock": _decimal_str(snap.stock_value_usd),
    }


def _latest_by_project(snaps: Sequence[StockSnapshot]) -> Dict[Optional[int], StockSnapshot]:
    """Primer snapshot por proyecto; la lista llega ordenada del más nuevo al más viejo."""
    out: Dict[Optional[int], StockSnapshot] = {}
    for s in snaps:
        out.setdefault(s.project_id, s)
    return out


async def get_comparativo(
    db: AsyncSession, mes_actual: date, mes_anterior: date
) -> List[Dict[str, Any]]:
    """Compara los snapshots de dos fechas.

    Una fila por cada snapshot de ``mes_actual`` (si hubo corridas repetidas,
    una por corrida, la más nueva primero). Cada fila se cruza con el snapshot
    más reciente del mismo proyecto en ``mes_anterior``; los proyectos que solo
    existen en ``mes_anterior`` no aparecen.
    """
    actuales = await _snapshots_for_date(db, mes_actual)
    anteriores = _latest_by_project(await _snapshots_for_date(db, mes_anterior))

    out: List[Dict[str, Any]] = []
    for actual in actuales:
        anterior = anteriores.get(actual.project_id)
        out.append(
            {
                "proyecto": actual.project.name if actual.project else NO_PROJECT_LABEL,
                "actual": _summary(actual),
                "anterior": _summary(anterior) if anterior else None,
                "diferencia": {
                    "disponibles": actual.available - anterior.available,
                    "reservadas": actual.reserved - anterior.reserved,
                    "vendidas": actual.sold - anterior.sold,
                }
                if anterior
                else None,
            }
        )
    return out


async def get_stock_evolution(db: AsyncSession, desde: date, hasta: date) -> List[Dict[str, Any]]:
    """Totales por fecha sumando todos los proyectos, en orden ascendente."""
    res = await db.execute(
        select(
            StockSnapshot.snapshot_date,
            func.sum(StockSnapshot.available),
            func.sum(StockSnapshot.reserved),
            func.sum(StockSnapshot.sold),
        )
        .where(StockSnapshot.snapshot_date >= desde, StockSnapshot.snapshot_date <= hasta)
        .group_by(StockSnapshot.snapshot_date)
        .order_by(StockSnapshot.snapshot_date.asc())
    )
    return [
        {
            "fecha": fecha.isoformat(),
            "disponibles": int(disp or 0),
            "reservadas": int(res_ or 0),
            "vendidas": int(vend or 0),
        }
        for fecha, disp, res_, vend in res.all()
    ]
