#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: conftest.py
# NG-HEADER: Ubicación: tests/conftest.py
# NG-HEADER: Descripción: Fixtures y configuración compartida de Pytest.
# NG-HEADER: Lineamientos: Ver AGENTS.md
import os
import sys
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

# Asegurar path del proyecto antes de importar módulos internos
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

# -------- Entorno base de tests --------
# SQLite en archivo temporal: permite varias conexiones concurrentes (una por proyecto)
_TMP_DIR = tempfile.mkdtemp(prefix="mv-tests-")
TEST_DB_PATH = Path(_TMP_DIR) / "test.db"
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH.as_posix()}"
os.environ["ENV"] = "dev"
os.environ["SNAPSHOT_SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_DISABLED"] = "false"  # activo, pero se limpia el bucket por test

import db.session as _session  # noqa: E402
import db.base as _base  # noqa: E402
import db.models  # noqa: F401,E402
from db.models import Project, Unit  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

Base = _base.Base


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """DB limpia por test. Retorna sesión para usar en fixtures/tests."""
    engine = _session.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with _session.SessionLocal() as session:
        yield session

    # Cleanup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# -------- Overrides de auth/CSRF y utilidades comunes --------
from services.api import app  # noqa: E402
from services.auth import SessionData, current_session, require_csrf  # noqa: E402
from services.ratelimit import reset_rate_limits  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402


def _as_role(role: str):
    return lambda: SessionData(None, None, role)


@pytest.fixture(autouse=True)
def _force_admin_and_disable_csrf(request):
    """Sesión ``superadminmv`` y CSRF desactivado por defecto.
    Se desactiva si el test tiene marker 'no_auth_override'."""

    if "no_auth_override" in request.keywords:
        app.dependency_overrides.pop(current_session, None)
        app.dependency_overrides.pop(require_csrf, None)
    else:
        app.dependency_overrides[current_session] = _as_role("superadminmv")
        app.dependency_overrides[require_csrf] = lambda: None
    yield
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _clear_rate_limit_bucket():
    """Limpia el bucket de rate-limit antes de cada test."""
    reset_rate_limits()
    yield


@pytest.fixture()
def as_role():
    """Cambia el rol de la sesión simulada: ``as_role("vendedor")``."""

    def _set(role: str, user=None) -> None:
        app.dependency_overrides[current_session] = lambda: SessionData(None, user, role)

    return _set


# -------- Clientes HTTP asíncronos para tests --------
@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP async sobre la app ASGI (sin levantar el scheduler)."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# -------- Datos de ejemplo --------
@pytest_asyncio.fixture
async def seed_projects(db_session: AsyncSession):
    """Dos proyectos activos con unidades en distintos estados y uno inactivo."""

    torre = Project(name="Torre Norte", active=True)
    barrio = Project(name="Barrio Sur", active=True)
    viejo = Project(name="Edificio Viejo", active=False)
    db_session.add_all([torre, barrio, viejo])
    await db_session.flush()
    db_session.add_all(
        [
            Unit(project_id=torre.id, sector_id="A-101", unit_type="Depto", status="Disponible",
                 price_usd=Decimal("100000"), usd_per_m2=Decimal("2000"), total_m2=Decimal("50")),
            Unit(project_id=torre.id, sector_id="A-102", unit_type="Depto", status="Reservado",
                 price_usd=Decimal("120000"), usd_per_m2=Decimal("2000"), total_m2=Decimal("60")),
            Unit(project_id=torre.id, sector_id="A-103", unit_type="Depto", status="Vendida",
                 price_usd=Decimal("90000"), usd_per_m2=Decimal("1800"), total_m2=Decimal("50")),
            Unit(project_id=torre.id, sector_id="A-104", unit_type="Cochera", status="No disponible",
                 price_usd=Decimal("15000"), total_m2=Decimal("12")),
            Unit(project_id=barrio.id, sector_id="L-1", unit_type="Lote", status="disponible",
                 price_usd=Decimal("30000"), total_m2=Decimal("300")),
            Unit(project_id=viejo.id, sector_id="X-1", unit_type="Depto", status="Disponible",
                 price_usd=Decimal("50000")),
        ]
    )
    await db_session.commit()
    return {"torre": torre, "barrio": barrio, "viejo": viejo}
