#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: test_snapshots_api.py
# NG-HEADER: Ubicación: tests/test_snapshots_api.py
# NG-HEADER: Descripción: Pruebas HTTP de los endpoints de snapshots
# NG-HEADER: Lineamientos: Ver AGENTS.md
from datetime import date, datetime
from decimal import Decimal

import pytest

from db.models import Role, StockSnapshot, User, UserProject, UserRole
from services.auth import hash_pw
from services.snapshots import service as snapshot_service

pytestmark = pytest.mark.asyncio

DAY = "2026-03-31"


async def _add_snapshots(db, projects):
    torre, barrio = projects["torre"], projects["barrio"]
    for project, day, disp, value in (
        (torre, date(2026, 2, 28), 10, "1000"),
        (torre, date(2026, 3, 31), 8, "800"),
        (barrio, date(2026, 3, 31), 4, "400"),
    ):
        db.add(
            StockSnapshot(
                project_id=project.id,
                snapshot_date=day,
                snapshot_type="MENSUAL",
                total_units=disp,
                available=disp,
                reserved=0,
                sold=0,
                unavailable=0,
                stock_value_usd=Decimal(value),
                stock_area_m2=Decimal("55.5"),
                created_at=datetime(2026, 3, 31, 0, 0, disp),
            )
        )
    await db.commit()


async def test_by_date_financial_roles_see_values(client, db_session, seed_projects, as_role):
    await _add_snapshots(db_session, seed_projects)
    for role in ("superadminmv", "adminmv"):
        as_role(role)
        r = await client.get("/snapshots", params={"fecha": DAY})
        assert r.status_code == 200, r.text
        items = r.json()
        assert len(items) == 2
        assert all("ValorStockUSD" in i and "M2TotalesStock" in i for i in items)
        assert {float(i["ValorStockUSD"]) for i in items} == {800.0, 400.0}


async def test_by_date_other_roles_get_redacted(client, db_session, seed_projects, as_role):
    await _add_snapshots(db_session, seed_projects)
    as_role("vendedor")
    r = await client.get("/snapshots", params={"fecha": DAY})
    assert r.status_code == 200
    for item in r.json():
        assert "ValorStockUSD" not in item
        assert "M2TotalesStock" not in item
        assert "Disponibles" in item and "TotalUnidades" in item


async def test_per_project_role_grants_financial_data(client, db_session, seed_projects, as_role):
    await _add_snapshots(db_session, seed_projects)
    role = Role(name="adminmv")
    user = User(identifier="vend1", password_hash=hash_pw("x"), role="vendedor")
    db_session.add_all([role, user])
    await db_session.flush()
    db_session.add(UserProject(user_id=user.id, project_id=seed_projects["torre"].id, role_id=role.id))
    await db_session.commit()

    as_role("vendedor", user=user)
    r = await client.get("/snapshots", params={"fecha": DAY})
    assert r.status_code == 200
    assert all("ValorStockUSD" in i for i in r.json())


async def test_role_lookup_error_fails_closed(client, db_session, seed_projects, as_role, monkeypatch):
    await _add_snapshots(db_session, seed_projects)
    user = User(identifier="vend2", password_hash=hash_pw("x"), role="vendedor")
    db_session.add(user)
    await db_session.commit()

    async def broken(db, user_id):
        raise RuntimeError("db caída")

    monkeypatch.setattr("services.authorization.get_user_roles", broken)
    as_role("vendedor", user=user)
    r = await client.get("/snapshots", params={"fecha": DAY})
    assert r.status_code == 200
    assert all("ValorStockUSD" not in i for i in r.json())


@pytest.mark.parametrize(
    "path,params",
    [
        ("/snapshots", {}),
        ("/snapshots", {"fecha": "31-03-2026"}),
        ("/snapshots/range", {"desde": "2026-03-01"}),
        ("/snapshots/range", {"desde": "2026-03-31", "hasta": "2026-03-01"}),
        ("/snapshots/comparativo", {"mesActual": "2026-03-31"}),
        ("/snapshots/comparativo", {"mesActual": "x", "mesAnterior": "2026-02-28"}),
        ("/snapshots/evolucion", {"desde": "2026-03-01", "hasta": "nope"}),
    ],
)
async def test_invalid_dates_return_400_before_data_access(client, db_session, monkeypatch, path, params):
    async def must_not_run(*args, **kwargs):
        raise AssertionError("no debería consultar datos")

    for name in ("get_snapshot_by_date", "get_snapshots_in_range", "get_comparativo", "get_stock_evolution"):
        monkeypatch.setattr(snapshot_service, name, must_not_run)
    r = await client.get(path, params=params)
    assert r.status_code == 400
    assert isinstance(r.json()["detail"], str)


async def test_range_clamps_pagination_and_redacts(client, db_session, seed_projects, as_role):
    await _add_snapshots(db_session, seed_projects)
    as_role("vendedor")
    r = await client.get(
        "/snapshots/range",
        params={"desde": "2026-01-01", "hasta": "2026-12-31", "page": 0, "limit": 1000},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["pagination"] == {"page": 1, "limit": 100, "total": 3, "totalPages": 1}
    assert [d["FechaSnapshot"] for d in body["data"]] == ["2026-02-28", "2026-03-31", "2026-03-31"]
    assert all("ValorStockUSD" not in d for d in body["data"])

    r = await client.get(
        "/snapshots/range",
        params={"desde": "2026-01-01", "hasta": "2026-12-31", "page": 2, "limit": 0},
    )
    assert r.json()["pagination"] == {"page": 2, "limit": 1, "total": 3, "totalPages": 3}


async def test_comparativo_redaction_sets_value_to_null(client, db_session, seed_projects, as_role):
    await _add_snapshots(db_session, seed_projects)
    params = {"mesActual": "2026-03-31", "mesAnterior": "2026-02-28"}

    r = await client.get("/snapshots/comparativo", params=params)
    rows = {row["proyecto"]: row for row in r.json()}
    assert float(rows["Torre Norte"]["actual"]["valorStock"]) == 800.0
    assert rows["Torre Norte"]["diferencia"]["disponibles"] == -2

    as_role("vendedor")
    r = await client.get("/snapshots/comparativo", params=params)
    rows = {row["proyecto"]: row for row in r.json()}
    assert rows["Torre Norte"]["actual"]["valorStock"] is None
    assert rows["Torre Norte"]["anterior"]["valorStock"] is None
    assert rows["Torre Norte"]["actual"]["disponibles"] == 8
    assert rows["Barrio Sur"]["anterior"] is None


async def test_evolucion(client, db_session, seed_projects):
    await _add_snapshots(db_session, seed_projects)
    r = await client.get("/snapshots/evolucion", params={"desde": "2026-03-01", "hasta": "2026-03-31"})
    assert r.status_code == 200
    assert r.json() == [{"fecha": "2026-03-31", "disponibles": 12, "reservadas": 0, "vendidas": 0}]


async def test_queries_require_authentication(client, db_session, as_role):
    as_role("guest")
    r = await client.get("/snapshots", params={"fecha": DAY})
    assert r.status_code == 401


async def test_query_rate_limit(client, db_session):
    for _ in range(30):
        r = await client.get("/snapshots", params={"fecha": DAY})
        assert r.status_code == 200
    r = await client.get("/snapshots", params={"fecha": DAY})
    assert r.status_code == 429
    assert r.json()["detail"]["code"] == "rate_limited"


async def test_query_rate_limit_is_per_endpoint(client, db_session):
    for _ in range(30):
        r = await client.get("/snapshots", params={"fecha": DAY})
        assert r.status_code == 200
    assert (await client.get("/snapshots", params={"fecha": DAY})).status_code == 429

    rango = {"desde": "2026-03-01", "hasta": DAY}
    r = await client.get("/snapshots/range", params=rango)
    assert r.status_code == 200
    r = await client.get("/snapshots/comparativo", params={"mesActual": DAY, "mesAnterior": "2026-02-28"})
    assert r.status_code == 200
    r = await client.get("/snapshots/evolucion", params=rango)
    assert r.status_code == 200


async def test_generate_runs_pipeline(client, db_session, seed_projects):
    r = await client.post("/snapshots/generate", params={"tipo": "MENSUAL"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["tipoSnapshot"] == "MENSUAL"
    assert body["proyectosProcesados"] == 2
    assert {d["proyecto"] for d in body["detalles"]} == {"Torre Norte", "Barrio Sur"}

    # Segundo disparo dentro del minuto
    r = await client.post("/snapshots/generate")
    assert r.status_code == 429


async def test_generate_defaults_to_diario(client, db_session, monkeypatch):
    seen = {}

    async def fake_generate(tipo):
        seen["tipo"] = tipo
        return {"fecha": DAY, "tipoSnapshot": tipo, "proyectosProcesados": 0, "detalles": [],
                "proyectosConError": [], "proyectosOmitidos": []}

    monkeypatch.setattr(snapshot_service, "generate_snapshot", fake_generate)
    r = await client.post("/snapshots/generate")
    assert r.status_code == 200
    assert seen["tipo"] == "DIARIO"


async def test_generate_rejects_invalid_tipo(client, db_session):
    r = await client.post("/snapshots/generate", params={"tipo": "SEMANAL"})
    assert r.status_code == 400


async def test_generate_requires_admin_role(client, db_session, as_role):
    as_role("vendedor")
    r = await client.post("/snapshots/generate")
    assert r.status_code == 403


async def test_generate_accepts_admin_role_from_user_roles(client, db_session, as_role, monkeypatch):
    role = Role(name="AdminMV")
    user = User(identifier="gerente1", password_hash=hash_pw("x"), role="vendedor")
    db_session.add_all([role, user])
    await db_session.flush()
    db_session.add(UserRole(user_id=user.id, role_id=role.id))
    await db_session.commit()

    async def fake_generate(tipo):
        return {"fecha": DAY, "tipoSnapshot": tipo, "proyectosProcesados": 0, "detalles": [],
                "proyectosConError": [], "proyectosOmitidos": []}

    monkeypatch.setattr(snapshot_service, "generate_snapshot", fake_generate)
    as_role("vendedor", user=user)
    r = await client.post("/snapshots/generate")
    assert r.status_code == 200
    r = await client.get("/snapshots/scheduler/status")
    assert r.status_code == 200


async def test_generate_failure_returns_500(client, db_session, monkeypatch):
    async def broken(tipo):
        raise RuntimeError("sin conexión")

    monkeypatch.setattr(snapshot_service, "generate_snapshot", broken)
    r = await client.post("/snapshots/generate")
    assert r.status_code == 500
    assert "Error al generar snapshots" in r.json()["detail"]
