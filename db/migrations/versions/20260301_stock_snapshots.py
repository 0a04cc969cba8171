# NG-HEADER: Nombre de archivo: 20260301_stock_snapshots.py
# NG-HEADER: Ubicación: db/migrations/versions/20260301_stock_snapshots.py
# NG-HEADER: Descripción: Esquema inicial: proyectos, unidades, snapshots de stock e identidad
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""esquema inicial de snapshots de stock

Las tablas ``projects`` y ``units`` pueden existir de antes (datos del mapa de
ventas); en ese caso no se recrean.
"""

from alembic import op
import sqlalchemy as sa

from db.migrations.util import has_table

# revision identifiers, used by Alembic.
revision = "20260301_stock_snapshots"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()

    if not has_table(bind, "projects"):
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
    if not has_table(bind, "units"):
        op.create_table(
            "units",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
            sa.Column("sector_id", sa.String(length=64), nullable=True),
            sa.Column("unit_type", sa.String(length=64), nullable=True),
            sa.Column("status", sa.String(length=64), nullable=True),
            sa.Column("price_usd", sa.Numeric(14, 2), nullable=True),
            sa.Column("usd_per_m2", sa.Numeric(12, 2), nullable=True),
            sa.Column("total_m2", sa.Numeric(10, 2), nullable=True),
        )
        op.create_index("ix_units_project_id", "units", ["project_id"])

    op.create_table(
        "stock_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("snapshot_type", sa.String(length=10), nullable=False),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column("total_units", sa.Integer(), nullable=False),
        sa.Column("available", sa.Integer(), nullable=False),
        sa.Column("reserved", sa.Integer(), nullable=False),
        sa.Column("sold", sa.Integer(), nullable=False),
        sa.Column("unavailable", sa.Integer(), nullable=False),
        sa.Column("stock_value_usd", sa.Numeric(16, 2), nullable=False),
        sa.Column("stock_area_m2", sa.Numeric(14, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("snapshot_type IN ('DIARIO','MENSUAL')", name="ck_stock_snapshots_type"),
    )
    op.create_index(
        "ix_stock_snapshots_project_date_type",
        "stock_snapshots",
        ["project_id", "snapshot_date", "snapshot_type"],
    )
    op.create_index("ix_stock_snapshots_date", "stock_snapshots", ["snapshot_date"])

    op.create_table(
        "stock_snapshot_details",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "snapshot_id",
            sa.Integer(),
            sa.ForeignKey("stock_snapshots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("sector_id", sa.String(length=64), nullable=True),
        sa.Column("project_name", sa.String(length=200), nullable=True),
        sa.Column("unit_type", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=False, server_default="Desconocido"),
        sa.Column("price_usd", sa.Numeric(14, 2), nullable=True),
        sa.Column("usd_per_m2", sa.Numeric(12, 2), nullable=True),
        sa.Column("previous_status", sa.String(length=64), nullable=True),
        sa.Column("days_in_status", sa.Integer(), nullable=False),
    )
    op.create_index("ix_stock_snapshot_details_snapshot_id", "stock_snapshot_details", ["snapshot_id"])
    op.create_index("ix_stock_snapshot_details_unit_id", "stock_snapshot_details", ["unit_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("identifier", sa.String(length=64), nullable=True, unique=True),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_identifier", "users", ["identifier"])
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=32), nullable=False, unique=True),
    )
    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("user_id", "role_id", name="uq_user_roles"),
    )
    op.create_table(
        "user_projects",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("user_id", "project_id", "role_id", name="uq_user_projects"),
    )
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("csrf_token", sa.String(length=100), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("ip", sa.String(length=100), nullable=True),
        sa.Column("user_agent", sa.String(length=200), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("sessions")
    op.drop_table("user_projects")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_index("ix_users_identifier", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_stock_snapshot_details_unit_id", table_name="stock_snapshot_details")
    op.drop_index("ix_stock_snapshot_details_snapshot_id", table_name="stock_snapshot_details")
    op.drop_table("stock_snapshot_details")
    op.drop_index("ix_stock_snapshots_date", table_name="stock_snapshots")
    op.drop_index("ix_stock_snapshots_project_date_type", table_name="stock_snapshots")
    op.drop_table("stock_snapshots")
    # projects/units se conservan: pueden pertenecer al mapa de ventas previo
