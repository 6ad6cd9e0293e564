"""Initial database schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

from booking.migrations.utils import index_exists, table_exists

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Tables may already exist when the API created them via init_db()
    if not table_exists("customers"):
        op.create_table(
            "customers",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=True),
            sa.Column("phone_number", sa.String(length=32), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
    if not index_exists("customers", "ix_customers_phone_number"):
        op.create_index("ix_customers_phone_number", "customers", ["phone_number"])

    if not table_exists("services"):
        op.create_table(
            "services",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("scheduling_rules", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if not table_exists("appointments"):
        op.create_table(
            "appointments",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("customer_id", sa.String(length=64), nullable=False),
            sa.Column("service_id", sa.String(length=64), nullable=False),
            sa.Column("date", sa.String(length=10), nullable=False),
            sa.Column("time", sa.String(length=5), nullable=False),
            sa.Column("branch_id", sa.String(length=64), nullable=True),
            sa.Column("branch", sa.String(length=200), nullable=True),
            sa.Column("staff_id", sa.String(length=64), nullable=True),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="booked"),
            sa.Column("recurrence_type", sa.String(length=16), nullable=False, server_default="none"),
            sa.Column("recurrence_count", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("series_id", sa.String(length=36), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("rescheduled_from", sa.String(length=16), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
    if not index_exists("appointments", "ix_appointments_date_status"):
        op.create_index("ix_appointments_date_status", "appointments", ["date", "status"])
    if not index_exists("appointments", "ix_appointments_customer_status"):
        op.create_index("ix_appointments_customer_status", "appointments", ["customer_id", "status"])
    if not index_exists("appointments", "ix_appointments_series_id"):
        op.create_index("ix_appointments_series_id", "appointments", ["series_id"])

    if not table_exists("settings"):
        op.create_table(
            "settings",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("key", sa.String(length=120), nullable=False),
            sa.Column("value", sa.Text(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("key"),
        )


def downgrade() -> None:
    op.drop_table("settings")
    op.drop_index("ix_appointments_series_id", table_name="appointments")
    op.drop_index("ix_appointments_customer_status", table_name="appointments")
    op.drop_index("ix_appointments_date_status", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("services")
    op.drop_index("ix_customers_phone_number", table_name="customers")
    op.drop_table("customers")
