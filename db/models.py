# NG-HEADER: Nombre de archivo: models.py
# NG-HEADER: Ubicación: db/models.py
# NG-HEADER: Descripción: Modelos ORM de proyectos, unidades, snapshots de stock e identidad.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Modelos principales de la base de datos."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


# --- Datos de inventario (solo lectura para el motor de snapshots) ---


class Project(Base):
    """Proyecto inmobiliario. Solo los activos participan de los snapshots."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    units: Mapped[list["Unit"]] = relationship(back_populates="project")


class Unit(Base):
    """Unidad vendible de un proyecto (departamento, cochera, local...)."""

    __tablename__ = "units"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    # Código propio del proyecto (ej. "A-101")
    sector_id: Mapped[Optional[str]] = mapped_column(String(64))
    unit_type: Mapped[Optional[str]] = mapped_column(String(64))
    # Texto libre cargado por comercial: "Disponible", "Reservado", "Vendida"...
    status: Mapped[Optional[str]] = mapped_column(String(64))
    price_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    usd_per_m2: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    total_m2: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    project: Mapped["Project"] = relationship(back_populates="units")


# --- Snapshots de stock ---


class StockSnapshot(Base):
    """Resumen agregado del stock de un proyecto en una fecha."""

    __tablename__ = "stock_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    snapshot_type: Mapped[str] = mapped_column(String(10), nullable=False)
    # Nulo reservado para agregados globales; el generador siempre lo completa
    project_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"), nullable=True
    )
    total_units: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    available: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reserved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unavailable: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stock_value_usd: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), default=Decimal("0"), nullable=False
    )
    stock_area_m2: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    project: Mapped[Optional["Project"]] = relationship()
    details: Mapped[list["StockSnapshotDetail"]] = relationship(
        back_populates="snapshot", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "snapshot_type IN ('DIARIO','MENSUAL')", name="ck_stock_snapshots_type"
        ),
        Index(
            "ix_stock_snapshots_project_date_type",
            "project_id",
            "snapshot_date",
            "snapshot_type",
        ),
        Index("ix_stock_snapshots_date", "snapshot_date"),
    )


class StockSnapshotDetail(Base):
    """Estado de una unidad dentro de un snapshot."""

    __tablename__ = "stock_snapshot_details"

    id: Mapped[int] = mapped_column(primary_key=True)
    snapshot_id: Mapped[int] = mapped_column(
        ForeignKey("stock_snapshots.id", ondelete="CASCADE"), index=True
    )
    # Sin FK: el historial sobrevive al borrado de la unidad
    unit_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    sector_id: Mapped[Optional[str]] = mapped_column(String(64))
    project_name: Mapped[Optional[str]] = mapped_column(String(200))
    unit_type: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(64), default="Desconocido", nullable=False)
    price_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    usd_per_m2: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    previous_status: Mapped[Optional[str]] = mapped_column(String(64))
    days_in_status: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    snapshot: Mapped["StockSnapshot"] = relationship(back_populates="details")


# --- Identidad y roles ---


class User(Base):
    """Usuario del sistema. ``role`` es el rol global principal."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    identifier: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, index=True, nullable=True
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(100))
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow, onupdate=datetime.utcnow
    )


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)


class UserRole(Base):
    """Roles globales adicionales de un usuario."""

    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"))

    role: Mapped["Role"] = relationship()

    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_roles"),)


class UserProject(Base):
    """Rol de un usuario dentro de un proyecto puntual."""

    __tablename__ = "user_projects"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"))
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"))

    role: Mapped["Role"] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "project_id", "role_id", name="uq_user_projects"),
    )


class Session(Base):
    """Sesiones persistidas para autenticación mediante cookies."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    csrf_token: Mapped[str] = mapped_column(String(100), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    ip: Mapped[Optional[str]] = mapped_column(String(100))
    user_agent: Mapped[Optional[str]] = mapped_column(String(200))

    user: Mapped[Optional["User"]] = relationship()
