#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: test_auth_roles.py
# NG-HEADER: Ubicación: tests/test_auth_roles.py
# NG-HEADER: Descripción: Pruebas de login por cookies y resolución de roles
# NG-HEADER: Lineamientos: Ver AGENTS.md
import pytest

from db.models import Role, User, UserProject, UserRole
from services.auth import SessionData, hash_pw
from services.authorization import get_user_roles, has_any_role
from services.snapshots.redaction import (
    FINANCIAL_DATA_ROLES,
    redact_comparativo,
    redact_snapshots,
)


async def _user(db, identifier="ana", role="vendedor", password="secreta", active=True):
    user = User(identifier=identifier, email=f"{identifier}@example.com", password_hash=hash_pw(password),
                role=role, active=active)
    db.add(user)
    await db.commit()
    return user


@pytest.mark.asyncio
async def test_get_user_roles_merges_global_and_project_roles(db_session, seed_projects):
    user = await _user(db_session)
    admin, gerente = Role(name="AdminMV"), Role(name="gerente")
    db_session.add_all([admin, gerente])
    await db_session.flush()
    db_session.add_all(
        [
            UserRole(user_id=user.id, role_id=gerente.id),
            UserProject(user_id=user.id, project_id=seed_projects["barrio"].id, role_id=admin.id),
        ]
    )
    await db_session.commit()

    roles = await get_user_roles(db_session, user.id)
    assert roles == {"vendedor", "gerente", "adminmv"}
    assert await has_any_role(db_session, SessionData(None, user, "vendedor"), FINANCIAL_DATA_ROLES)


@pytest.mark.asyncio
async def test_has_any_role_without_user(db_session):
    assert await has_any_role(db_session, SessionData(None, None, "adminmv"), FINANCIAL_DATA_ROLES)
    assert not await has_any_role(db_session, SessionData(None, None, "vendedor"), FINANCIAL_DATA_ROLES)
    assert not await has_any_role(db_session, None, FINANCIAL_DATA_ROLES)


def test_redaction_helpers():
    items = [{"Id": 1, "Disponibles": 2, "ValorStockUSD": 10, "M2TotalesStock": 5}]
    assert redact_snapshots(items, True) == items
    assert redact_snapshots(items, False) == [{"Id": 1, "Disponibles": 2}]

    rows = [{"proyecto": "A", "actual": {"disponibles": 1, "valorStock": 9}, "anterior": None, "diferencia": None}]
    out = redact_comparativo(rows, False)
    assert out[0]["actual"] == {"disponibles": 1, "valorStock": None}
    assert out[0]["anterior"] is None
    # No muta la entrada
    assert rows[0]["actual"]["valorStock"] == 9


@pytest.mark.asyncio
@pytest.mark.no_auth_override
async def test_login_cookie_session_and_csrf(client, db_session, seed_projects):
    await _user(db_session, identifier="admin", role="adminmv", password="clave")

    r = await client.get("/snapshots", params={"fecha": "2026-03-31"})
    assert r.status_code == 401

    r = await client.post("/auth/login", json={"identifier": "admin", "password": "mala"})
    assert r.status_code == 401

    r = await client.post("/auth/login", json={"identifier": "ADMIN", "password": "clave"})
    assert r.status_code == 200
    assert r.json()["role"] == "adminmv"
    csrf = client.cookies.get("csrf_token")
    assert csrf and client.cookies.get("mv_session")

    r = await client.get("/auth/me")
    assert r.json()["is_authenticated"] is True
    assert r.json()["user"]["identifier"] == "admin"

    r = await client.get("/snapshots", params={"fecha": "2026-03-31"})
    assert r.status_code == 200

    # Mutación sin header CSRF
    r = await client.post("/snapshots/generate")
    assert r.status_code == 403
    r = await client.post("/snapshots/generate", headers={"X-CSRF-Token": csrf})
    assert r.status_code == 200
    assert r.json()["proyectosProcesados"] == 2

    r = await client.post("/auth/logout", headers={"X-CSRF-Token": csrf})
    assert r.status_code == 200
    r = await client.get("/auth/me")
    assert r.json() == {"is_authenticated": False, "role": "guest"}


@pytest.mark.asyncio
@pytest.mark.no_auth_override
async def test_inactive_user_cannot_login(client, db_session):
    await _user(db_session, identifier="baja", active=False)
    r = await client.post("/auth/login", json={"identifier": "baja", "password": "secreta"})
    assert r.status_code == 401


@pytest.mark.asyncio
@pytest.mark.no_auth_override
async def test_internal_service_token(client, db_session, monkeypatch):
    from core.config import settings

    monkeypatch.setattr(settings, "internal_service_token", "tok-123")
    r = await client.get("/snapshots/scheduler/status", headers={"X-Internal-Service-Token": "tok-123"})
    assert r.status_code == 200
    r = await client.get("/snapshots/scheduler/status", headers={"X-Internal-Service-Token": "otro"})
    assert r.status_code == 401
