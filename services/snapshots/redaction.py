# NG-HEADER: Nombre de archivo: redaction.py
# NG-HEADER: Ubicación: services/snapshots/redaction.py
# NG-HEADER: Descripción: Ocultamiento de datos financieros de snapshots según rol
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Filtrado de campos financieros para usuarios sin permiso."""
from __future__ import annotations

from typing import Any, Dict, List

# Roles que pueden ver valor y superficie del stock
FINANCIAL_DATA_ROLES = frozenset({"superadminmv", "adminmv"})

SENSITIVE_SNAPSHOT_FIELDS = ("ValorStockUSD", "M2TotalesStock")


def redact_snapshot(item: Dict[str, Any], allowed: bool) -> Dict[str, Any]:
    if allowed:
        return item
    return {k: v for k, v in item.items() if k not in SENSITIVE_SNAPSHOT_FIELDS}


def redact_snapshots(items: List[Dict[str, Any]], allowed: bool) -> List[Dict[str, Any]]:
    return [redact_snapshot(i, allowed) for i in items]


def redact_comparativo(rows: List[Dict[str, Any]], allowed: bool) -> List[Dict[str, Any]]:
    """En el comparativo el valor se conserva como clave pero en ``None``."""
    if allowed:
        return rows
    out = []
    for row in rows:
        row = dict(row)
        for key in ("actual", "anterior"):
            if row.get(key) is not None:
                row[key] = {**row[key], "valorStock": None}
        out.append(row)
    return out
