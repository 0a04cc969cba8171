#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: aggregator.py
# NG-HEADER: Ubicación: services/snapshots/aggregator.py
# NG-HEADER: Descripción: Clasificación de estados y agregados de stock por proyecto
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Agregador de stock por proyecto.

Funciones puras (sin acceso a DB) usadas por el generador de snapshots:
- Clasificar el estado libre de cada unidad en una categoría cerrada.
- Contar unidades por categoría y sumar valor/superficie del stock vendible.
- Armar las filas de detalle comparando contra el snapshot anterior.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

# Estado persistido cuando la unidad no tiene estado cargado
UNKNOWN_STATUS = "Desconocido"


class UnitCategory(str, Enum):
    AVAILABLE = "disponible"
    RESERVED = "reservada"
    SOLD = "vendida"
    UNAVAILABLE = "no_disponible"


# Categorías que suman al valor y superficie del stock
STOCK_CATEGORIES = (UnitCategory.AVAILABLE, UnitCategory.RESERVED)


@dataclass
class StockStats:
    total_units: int = 0
    available: int = 0
    reserved: int = 0
    sold: int = 0
    unavailable: int = 0
    stock_value_usd: Decimal = Decimal("0")
    stock_area_m2: Decimal = Decimal("0")


@dataclass
class PreviousState:
    status: str
    days: int


def categorize_status(raw: Optional[str]) -> UnitCategory:
    """Clasifica un estado libre por coincidencia de subcadenas.

    El orden importa: "No disponible" contiene "disponible" y debe caer en
    ``UNAVAILABLE``. Estados vacíos o desconocidos también van a ``UNAVAILABLE``.
    """
    estado = (raw or "").lower()
    if "disponible" in estado and "no disponible" not in estado:
        return UnitCategory.AVAILABLE
    if "reserva" in estado:
        return UnitCategory.RESERVED
    if "vendid" in estado:
        return UnitCategory.SOLD
    return UnitCategory.UNAVAILABLE


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    # str() evita arrastrar errores binarios de float
    return Decimal(str(value))


def calculate_stats(units: Iterable[Any]) -> StockStats:
    """Cuenta unidades por categoría y suma valor/superficie del stock.

    Cada unidad debe exponer ``status``, ``price_usd`` y ``total_m2`` (modelo
    ``Unit`` o cualquier objeto equivalente).
    """
    stats = StockStats()
    for u in units:
        stats.total_units += 1
        cat = categorize_status(u.status)
        if cat is UnitCategory.AVAILABLE:
            stats.available += 1
        elif cat is UnitCategory.RESERVED:
            stats.reserved += 1
        elif cat is UnitCategory.SOLD:
            stats.sold += 1
        else:
            stats.unavailable += 1
        if cat in STOCK_CATEGORIES:
            price = _to_decimal(u.price_usd)
            if price is not None:
                stats.stock_value_usd += price
            area = _to_decimal(getattr(u, "total_m2", None))
            if area is not None:
                stats.stock_area_m2 += area
    return stats


def build_previous_state_map(details: Iterable[Any]) -> Dict[int, PreviousState]:
    """Indexa por ``unit_id`` el estado y los días de un snapshot previo."""
    out: Dict[int, PreviousState] = {}
    for det in details:
        out[det.unit_id] = PreviousState(status=det.status, days=det.days_in_status or 0)
    return out


def build_detail_rows(
    units: Iterable[Any],
    previous: Dict[int, PreviousState],
    project_name: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Arma las filas de detalle (sin ``snapshot_id``) para cada unidad.

    ``days_in_status`` cuenta ejecuciones consecutivas en el mismo estado, no
    días calendario.
    """
    rows: List[Dict[str, Any]] = []
    for u in units:
        status = u.status or UNKNOWN_STATUS
        prev = previous.get(u.id)
        if prev is not None and prev.status == status:
            days = prev.days + 1
        else:
            days = 1
        rows.append(
            {
                "unit_id": u.id,
                "sector_id": u.sector_id or None,
                "project_name": project_name,
                "unit_type": u.unit_type or None,
                "status": status,
                "price_usd": _to_decimal(u.price_usd),
                "usd_per_m2": _to_decimal(u.usd_per_m2),
                "previous_status": prev.status if prev is not None else None,
                "days_in_status": days,
            }
        )
    return rows


__all__ = [
    "UNKNOWN_STATUS",
    "UnitCategory",
    "StockStats",
    "PreviousState",
    "categorize_status",
    "calculate_stats",
    "build_previous_state_map",
    "build_detail_rows",
]
