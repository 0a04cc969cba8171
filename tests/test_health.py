#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: test_health.py
# NG-HEADER: Ubicación: tests/test_health.py
# NG-HEADER: Descripción: Pruebas de endpoints de health y middleware de requests
# NG-HEADER: Lineamientos: Ver AGENTS.md
import pytest

pytestmark = pytest.mark.asyncio


async def test_health_root(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers.get("X-Correlation-Id")


async def test_health_db_and_summary(client, db_session):
    r = await client.get("/health/db")
    assert r.json() == {"ok": True}

    r = await client.get("/health/summary")
    body = r.json()
    assert body["db"]["ok"] is True
    assert body["scheduler"]["running"] is False


async def test_correlation_id_is_echoed(client):
    r = await client.get("/health", headers={"X-Correlation-Id": "abc-123"})
    assert r.headers["X-Correlation-Id"] == "abc-123"


async def test_invalid_query_type_returns_422(client, db_session):
    r = await client.get(
        "/snapshots/range", params={"desde": "2026-03-01", "hasta": "2026-03-31", "page": "uno"}
    )
    assert r.status_code == 422
    assert r.json()["detail"][0]["loc"][-1] == "page"
