"""Initial ZIMMR schema

Revision ID: 001
Revises: None
Create Date: 2024-05-01 00:00:00.000000+00:00

Creates users, craftsmen, customers, customer_spaces, materials,
appointments, appointment_materials, invoices, invoice_items,
time_entries, breaks and finances.

Status columns are VARCHAR + CHECK rather than PostgreSQL ENUMs so a new
value only needs a constraint swap, not an ALTER TYPE.

Rollback: downgrade() drops every table (all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def upgrade() -> None:
    # ── Accounts ──────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), server_default=sa.text("'customer'"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("role IN ('customer', 'craftsman', 'admin')", name="ck_users_role"),
    )

    op.create_table(
        "craftsmen",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("specialty", sa.String(255), nullable=True),
        sa.Column(
            "availability_hours",
            sa.JSON(),
            nullable=True,
            comment='Weekday -> ["HH:MM-HH:MM", ...]',
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_craftsmen"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("user_id", name="uq_craftsmen_user_id"),
    )

    # ── Customers ─────────────────────────────────────────────────────────
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("craftsman_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("service_type", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_customers"),
        sa.ForeignKeyConstraint(["craftsman_id"], ["craftsmen.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_customers_craftsman_name", "customers", ["craftsman_id", "name"])

    op.create_table(
        "customer_spaces",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("area_sqm", sa.Numeric(10, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_customer_spaces"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
    )

    # ── Materials ─────────────────────────────────────────────────────────
    op.create_table(
        "materials",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("craftsman_id", sa.Integer(), nullable=True, comment="NULL = shared catalogue"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_per_unit", sa.Numeric(10, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("unit_type", sa.String(20), server_default=sa.text("'sqm'"), nullable=False),
        sa.Column("category", sa.String(100), server_default=sa.text("'Tiling'"), nullable=False),
        sa.Column("in_stock", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_materials"),
        sa.ForeignKeyConstraint(["craftsman_id"], ["craftsmen.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_materials_category_name", "materials", ["category", "name"])

    # ── Appointments ──────────────────────────────────────────────────────
    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("craftsman_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("scheduled_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("duration", sa.Integer(), server_default=sa.text("60"), nullable=False),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("service_type", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'scheduled'"), nullable=False),
        sa.Column(
            "approval_status", sa.String(20), server_default=sa.text("'pending'"), nullable=False
        ),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_appointments"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["craftsman_id"], ["craftsmen.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('scheduled', 'completed', 'cancelled')", name="ck_appointments_status"
        ),
        sa.CheckConstraint(
            "approval_status IN ('pending', 'approved', 'rejected')",
            name="ck_appointments_approval_status",
        ),
    )
    op.create_index(
        "idx_appointments_craftsman_scheduled",
        "appointments",
        ["craftsman_id", sa.text("scheduled_at DESC")],
    )
    op.create_index("idx_appointments_customer", "appointments", ["customer_id"])

    op.create_table(
        "appointment_materials",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("appointment_id", sa.Integer(), nullable=False),
        sa.Column("material_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), server_default=sa.text("1"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_appointment_materials"),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["material_id"], ["materials.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("appointment_id", "material_id", name="uq_appointment_material"),
    )

    # ── Invoices ──────────────────────────────────────────────────────────
    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("type", sa.String(20), server_default=sa.text("'invoice'"), nullable=False),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        sa.Column("craftsman_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("appointment_id", sa.Integer(), nullable=True),
        sa.Column("original_quote_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False, comment="Net sum of line items"),
        sa.Column("tax_amount", sa.Numeric(10, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("due_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("payment_link", sa.String(500), nullable=True),
        sa.Column("paid_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("overdue_notified_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_invoices"),
        sa.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        sa.ForeignKeyConstraint(["craftsman_id"], ["craftsmen.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["original_quote_id"], ["invoices.id"], ondelete="SET NULL"),
        sa.CheckConstraint("type IN ('quote', 'invoice')", name="ck_invoices_type"),
        sa.CheckConstraint(
            "status IN ('draft', 'pending', 'paid', 'cancelled')", name="ck_invoices_status"
        ),
    )
    op.create_index(
        "idx_invoices_craftsman_created", "invoices", ["craftsman_id", sa.text("created_at DESC")]
    )
    op.create_index("idx_invoices_status_due", "invoices", ["status", "due_date"])

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("material_id", sa.Integer(), nullable=True),
        sa.Column("service_type", sa.String(100), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_invoice_items"),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["material_id"], ["materials.id"], ondelete="SET NULL"),
    )

    # ── Time tracking ─────────────────────────────────────────────────────
    op.create_table(
        "time_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("craftsman_id", sa.Integer(), nullable=False),
        sa.Column("appointment_id", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True, comment="Net of breaks"),
        sa.Column("is_billable", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_time_entries"),
        sa.ForeignKeyConstraint(["craftsman_id"], ["craftsmen.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "idx_time_entries_craftsman_start",
        "time_entries",
        ["craftsman_id", sa.text("start_time DESC")],
    )

    op.create_table(
        "breaks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("time_entry_id", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_breaks"),
        sa.ForeignKeyConstraint(["time_entry_id"], ["time_entries.id"], ondelete="CASCADE"),
    )

    # ── Finances ──────────────────────────────────────────────────────────
    op.create_table(
        "finances",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("craftsman_id", sa.Integer(), nullable=False),
        sa.Column("goal_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("goal_period", sa.String(10), nullable=False),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_finances"),
        sa.ForeignKeyConstraint(["craftsman_id"], ["craftsmen.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("craftsman_id", "goal_period", name="uq_finances_craftsman_period"),
        sa.CheckConstraint("goal_period IN ('month', 'year', 'all')", name="ck_finances_period"),
    )


def downgrade() -> None:
    for table in (
        "finances",
        "breaks",
        "time_entries",
        "invoice_items",
        "invoices",
        "appointment_materials",
        "appointments",
        "materials",
        "customer_spaces",
        "customers",
        "craftsmen",
        "users",
    ):
        op.drop_table(table)
