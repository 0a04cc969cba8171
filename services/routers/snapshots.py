#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: snapshots.py
# NG-HEADER: Ubicación: services/routers/snapshots.py
# NG-HEADER: Descripción: Endpoints de generación y consulta de snapshots de stock
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints de snapshots de stock.

- POST /snapshots/generate: genera snapshots (superadminmv/adminmv, 1 por minuto)
- GET /snapshots?fecha=: snapshots de una fecha
- GET /snapshots/range: snapshots entre fechas, paginados
- GET /snapshots/comparativo: comparación por proyecto entre dos fechas
- GET /snapshots/evolucion: totales por fecha

Las consultas ocultan valor y superficie del stock a quien no tenga rol financiero.
"""
from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_session
from services.auth import (
    ADMIN_ROLES,
    SessionData,
    require_authenticated,
    require_csrf,
    require_roles,
)
from services.authorization import has_any_role
from services.ratelimit import rate_limit
from services.snapshots import service as snapshot_service
from services.snapshots.redaction import (
    FINANCIAL_DATA_ROLES,
    redact_comparativo,
    redact_snapshots,
)

router = APIRouter(prefix="/snapshots", tags=["snapshots"])
logger = logging.getLogger("mapaventas.snapshots")

# Cada consulta lleva su propio presupuesto de 30 por minuto
_by_date_limit = rate_limit("snapshots:by_date", 30, 60)
_range_limit = rate_limit("snapshots:range", 30, 60)
_comparativo_limit = rate_limit("snapshots:comparativo", 30, 60)
_evolucion_limit = rate_limit("snapshots:evolucion", 30, 60)


def _parse_required_date(value: str | None, name: str) -> date:
    if not value:
        raise HTTPException(status_code=400, detail=f"{name} es requerido (YYYY-MM-DD)")
    try:
        return snapshot_service.parse_day(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} formato inválido (YYYY-MM-DD)")


def _parse_range(desde: str | None, hasta: str | None) -> tuple[date, date]:
    d1 = _parse_required_date(desde, "desde")
    d2 = _parse_required_date(hasta, "hasta")
    if d1 > d2:
        raise HTTPException(status_code=400, detail="desde no puede ser posterior a hasta")
    return d1, d2


@router.post(
    "/generate",
    dependencies=[
        Depends(require_csrf),
        Depends(require_roles(*ADMIN_ROLES)),
        Depends(rate_limit("snapshots:generate", 1, 60)),
    ],
)
async def generate(tipo: str | None = Query(None, description="DIARIO o MENSUAL")):
    """Genera snapshots de todos los proyectos activos y devuelve el resumen."""
    try:
        tipo_ok = snapshot_service.normalize_snapshot_type(tipo)
    except ValueError:
        raise HTTPException(status_code=400, detail="tipo inválido (DIARIO o MENSUAL)")
    try:
        return await snapshot_service.generate_snapshot(tipo_ok)
    except Exception as e:
        logger.exception("[SNAPSHOTS] Error en generación manual %s", tipo_ok)
        raise HTTPException(status_code=500, detail=f"Error al generar snapshots: {e}")


@router.get("", dependencies=[Depends(_by_date_limit)])
async def by_date(
    fecha: str | None = Query(None, description="Fecha (YYYY-MM-DD)"),
    sess: SessionData = Depends(require_authenticated),
    db: AsyncSession = Depends(get_session),
):
    day = _parse_required_date(fecha, "fecha")
    allowed = await has_any_role(db, sess, FINANCIAL_DATA_ROLES)
    items = await snapshot_service.get_snapshot_by_date(db, day)
    return redact_snapshots(items, allowed)


@router.get("/range", dependencies=[Depends(_range_limit)])
async def in_range(
    desde: str | None = Query(None, description="Fecha desde (YYYY-MM-DD)"),
    hasta: str | None = Query(None, description="Fecha hasta (YYYY-MM-DD)"),
    page: int = Query(1),
    limit: int = Query(snapshot_service.MAX_PAGE_SIZE),
    sess: SessionData = Depends(require_authenticated),
    db: AsyncSession = Depends(get_session),
):
    """Snapshots entre dos fechas. ``page`` y ``limit`` se ajustan a rango válido."""
    d1, d2 = _parse_range(desde, hasta)
    page = max(1, page)
    limit = max(1, min(snapshot_service.MAX_PAGE_SIZE, limit))
    allowed = await has_any_role(db, sess, FINANCIAL_DATA_ROLES)
    result = await snapshot_service.get_snapshots_in_range(db, d1, d2, page, limit)
    result["data"] = redact_snapshots(result["data"], allowed)
    return result


@router.get("/comparativo", dependencies=[Depends(_comparativo_limit)])
async def comparativo(
    mes_actual: str | None = Query(None, alias="mesActual"),
    mes_anterior: str | None = Query(None, alias="mesAnterior"),
    sess: SessionData = Depends(require_authenticated),
    db: AsyncSession = Depends(get_session),
):
    actual = _parse_required_date(mes_actual, "mesActual")
    anterior = _parse_required_date(mes_anterior, "mesAnterior")
    allowed = await has_any_role(db, sess, FINANCIAL_DATA_ROLES)
    rows = await snapshot_service.get_comparativo(db, actual, anterior)
    return redact_comparativo(rows, allowed)


@router.get("/evolucion", dependencies=[Depends(_evolucion_limit)])
async def evolucion(
    desde: str | None = Query(None),
    hasta: str | None = Query(None),
    _: SessionData = Depends(require_authenticated),
    db: AsyncSession = Depends(get_session),
):
    d1, d2 = _parse_range(desde, hasta)
    return await snapshot_service.get_stock_evolution(db, d1, d2)
