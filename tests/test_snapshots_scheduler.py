#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: test_snapshots_scheduler.py
# NG-HEADER: Ubicación: tests/test_snapshots_scheduler.py
# NG-HEADER: Descripción: Pruebas del scheduler de snapshots diarios y mensuales
# NG-HEADER: Lineamientos: Ver AGENTS.md
import logging
from datetime import date

import pytest

from services.jobs import snapshots_scheduler as jobs
from services.snapshots import service as snapshot_service


def _summary(tipo):
    return {"fecha": "2026-03-31", "tipoSnapshot": tipo, "proyectosProcesados": 3, "detalles": [],
            "proyectosConError": [], "proyectosOmitidos": []}


@pytest.mark.parametrize(
    "day,expected",
    [
        (date(2026, 1, 31), True),
        (date(2026, 2, 28), True),
        (date(2028, 2, 28), False),  # bisiesto
        (date(2028, 2, 29), True),
        (date(2026, 4, 30), True),
        (date(2026, 3, 30), False),
        (date(2026, 12, 31), True),
    ],
)
def test_is_last_day_of_month(day, expected):
    assert jobs.is_last_day_of_month(day) is expected


@pytest.mark.asyncio
async def test_monthly_job_skips_when_not_last_day(monkeypatch):
    calls = []

    async def fake_generate(tipo):
        calls.append(tipo)
        return _summary(tipo)

    monkeypatch.setattr(snapshot_service, "generate_snapshot", fake_generate)
    assert await jobs.run_monthly_snapshot(today=date(2026, 3, 30)) is None
    assert calls == []

    result = await jobs.run_monthly_snapshot(today=date(2026, 3, 31))
    assert result["tipoSnapshot"] == "MENSUAL"
    assert calls == ["MENSUAL"]


@pytest.mark.asyncio
async def test_daily_job_runs_diario(monkeypatch):
    async def fake_generate(tipo):
        return _summary(tipo)

    monkeypatch.setattr(snapshot_service, "generate_snapshot", fake_generate)
    result = await jobs.run_daily_snapshot()
    assert result["tipoSnapshot"] == "DIARIO"
    status = jobs.get_scheduler_status()
    assert status["last_run"]["ok"] is True
    assert status["is_working"] is False


@pytest.mark.asyncio
async def test_job_errors_are_logged_not_raised(monkeypatch, caplog):
    async def broken(tipo):
        raise RuntimeError("db caída")

    monkeypatch.setattr(snapshot_service, "generate_snapshot", broken)
    with caplog.at_level(logging.ERROR, logger="mapaventas.snapshots.cron"):
        assert await jobs.run_daily_snapshot() is None
    assert any("db caída" in r.getMessage() for r in caplog.records)
    assert jobs.get_scheduler_status()["last_run"]["ok"] is False
    assert jobs.get_scheduler_status()["is_working"] is False


@pytest.mark.asyncio
async def test_slow_run_logs_performance_warning(monkeypatch, caplog):
    async def fake_generate(tipo):
        return _summary(tipo)

    monkeypatch.setattr(snapshot_service, "generate_snapshot", fake_generate)
    monkeypatch.setattr(jobs, "SLOW_RUN_SECONDS", -1)
    with caplog.at_level(logging.WARNING, logger="mapaventas.snapshots.cron"):
        await jobs.run_daily_snapshot()
    assert any("umbral" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_fast_run_has_no_performance_warning(monkeypatch, caplog):
    async def fake_generate(tipo):
        return _summary(tipo)

    monkeypatch.setattr(snapshot_service, "generate_snapshot", fake_generate)
    with caplog.at_level(logging.WARNING, logger="mapaventas.snapshots.cron"):
        await jobs.run_daily_snapshot()
    assert not any("umbral" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_scheduler_registers_both_jobs():
    try:
        assert jobs.start_scheduler() is False  # deshabilitado en tests
        assert jobs.start_scheduler(force=True) is True
        sch = jobs.scheduler
        daily = sch.get_job(jobs.DAILY_JOB_ID)
        monthly = sch.get_job(jobs.MONTHLY_JOB_ID)
        assert daily is not None and monthly is not None
        fields = {f.name: str(f) for f in monthly.trigger.fields}
        assert fields["day"] == "28-31"
        assert (fields["hour"], fields["minute"]) == ("23", "55")
        daily_fields = {f.name: str(f) for f in daily.trigger.fields}
        assert (daily_fields["hour"], daily_fields["minute"]) == ("0", "0")
        assert str(daily.trigger.timezone) == "America/Argentina/Buenos_Aires"
        assert jobs.get_scheduler_status()["scheduler_running"] is True
    finally:
        jobs.stop_scheduler()
    assert jobs.get_scheduler_status()["scheduler_running"] is False


@pytest.mark.asyncio
async def test_scheduler_endpoints(client, as_role):
    try:
        r = await client.get("/snapshots/scheduler/status")
        assert r.status_code == 200
        assert r.json()["scheduler_running"] is False

        r = await client.post("/snapshots/scheduler/enable")
        assert r.status_code == 200
        assert r.json()["scheduler_running"] is True

        r = await client.post("/snapshots/scheduler/disable")
        assert r.json()["scheduler_running"] is False

        as_role("vendedor")
        r = await client.get("/snapshots/scheduler/status")
        assert r.status_code == 403
    finally:
        jobs.stop_scheduler()
