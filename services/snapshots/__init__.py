# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: services/snapshots/__init__.py
# NG-HEADER: Descripción: Motor de snapshots de stock (agregado, escritura y consultas)
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Snapshots de stock por proyecto."""
from .aggregator import UnitCategory, calculate_stats, categorize_status  # noqa: F401
from .redaction import FINANCIAL_DATA_ROLES  # noqa: F401
