# NG-HEADER: Nombre de archivo: mv.py
# NG-HEADER: Ubicación: cli/mv.py
# NG-HEADER: Descripción: CLI de operación para snapshots de stock (Typer).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""CLI principal de Mapa de Ventas usando Typer.

Pensada para operadores: muestra datos sin ocultar campos financieros.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import typer

from db.base import Base
from db.session import SessionLocal, engine
from services.snapshots import service as snapshot_service

app = typer.Typer(help="Herramientas de línea de comandos para Mapa de Ventas")
snapshots_app = typer.Typer(help="Generación y consulta de snapshots de stock")
app.add_typer(snapshots_app, name="snapshots")


def _run(coro_fn: Callable[[], Awaitable[Any]]) -> Any:
    """Ejecuta una corrutina y libera el pool antes de cerrar el loop."""

    async def _wrapped() -> Any:
        try:
            return await coro_fn()
        finally:
            await engine.dispose()

    return asyncio.run(_wrapped())


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _parse_or_exit(value: str, name: str):
    try:
        return snapshot_service.parse_day(value)
    except ValueError:
        typer.echo(f"{name} formato inválido (YYYY-MM-DD)", err=True)
        raise typer.Exit(code=2)


@app.command("db-init")
def db_init() -> None:
    """Crea las tablas faltantes (solo desarrollo; en producción usar Alembic)."""
    import db.models  # noqa: F401

    async def _go() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    _run(_go)
    typer.echo("Esquema creado")


@snapshots_app.command("generate")
def snapshots_generate(
    tipo: str = typer.Option("DIARIO", help="DIARIO o MENSUAL"),
) -> None:
    """Genera snapshots de todos los proyectos activos."""
    try:
        tipo_ok = snapshot_service.normalize_snapshot_type(tipo)
    except ValueError:
        typer.echo("tipo inválido (DIARIO o MENSUAL)", err=True)
        raise typer.Exit(code=2)
    result = _run(lambda: snapshot_service.generate_snapshot(tipo_ok))
    _echo_json(result)
    if result["proyectosConError"]:
        raise typer.Exit(code=1)


@snapshots_app.command("show")
def snapshots_show(
    fecha: Optional[str] = typer.Option(None, help="Fecha YYYY-MM-DD (default: hoy)"),
) -> None:
    """Lista los snapshots de una fecha."""
    day = _parse_or_exit(fecha, "fecha") if fecha else snapshot_service.today_in_reference_tz()

    async def _go():
        async with SessionLocal() as db:
            return await snapshot_service.get_snapshot_by_date(db, day)

    _echo_json(_run(_go))


@snapshots_app.command("compare")
def snapshots_compare(
    actual: str = typer.Option(..., help="Fecha actual YYYY-MM-DD"),
    anterior: str = typer.Option(..., help="Fecha anterior YYYY-MM-DD"),
) -> None:
    """Compara por proyecto los snapshots de dos fechas."""
    d_actual = _parse_or_exit(actual, "actual")
    d_anterior = _parse_or_exit(anterior, "anterior")

    async def _go():
        async with SessionLocal() as db:
            return await snapshot_service.get_comparativo(db, d_actual, d_anterior)

    _echo_json(_run(_go))


if __name__ == "__main__":
    app()
