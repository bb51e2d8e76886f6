"""session pools, allocations, requests, pricing and purchases

Revision ID: 20261018_session_ledger
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_session_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "institutions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "session_pools",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "institution_id",
            sa.String(length=64),
            sa.ForeignKey("institutions.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("total_sessions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("used_sessions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("total_sessions >= 0", name="ck_session_pools_total_nonneg"),
        sa.CheckConstraint("used_sessions >= 0", name="ck_session_pools_used_nonneg"),
        sa.CheckConstraint("used_sessions <= total_sessions", name="ck_session_pools_used_le_total"),
    )

    op.create_table(
        "session_allocations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_pool_id", sa.Integer(), sa.ForeignKey("session_pools.id"), nullable=False),
        sa.Column("institution_id", sa.String(length=64), sa.ForeignKey("institutions.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "allocation_type",
            sa.Enum("department", "teacher", "student", name="allocation_type"),
            nullable=False,
        ),
        sa.Column("department_id", sa.String(length=64)),
        sa.Column("teacher_id", sa.String(length=64)),
        sa.Column("student_id", sa.String(length=64), unique=True),
        sa.Column("group_id", sa.String(length=64)),
        sa.Column("allocated_count", sa.Integer(), nullable=False),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", name="allocation_status"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("allocated_count > 0", name="ck_session_allocations_allocated_pos"),
        sa.CheckConstraint("used_count >= 0", name="ck_session_allocations_used_nonneg"),
        sa.CheckConstraint(
            "used_count <= allocated_count", name="ck_session_allocations_used_le_allocated"
        ),
    )
    op.create_index("ix_session_allocations_pool", "session_allocations", ["session_pool_id"])
    op.create_index(
        "ix_session_allocations_target",
        "session_allocations",
        ["allocation_type", "department_id", "teacher_id"],
    )

    op.create_table(
        "student_session_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column("institution_id", sa.String(length=64), sa.ForeignKey("institutions.id"), nullable=False),
        sa.Column("department_id", sa.String(length=64), nullable=False),
        sa.Column("session_count", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "status",
            sa.Enum("pending", "approved", "rejected", name="session_request_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("reviewed_by", sa.String(length=64)),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
        sa.Column(
            "allocation_id",
            sa.Integer(),
            sa.ForeignKey("session_allocations.id", ondelete="SET NULL"),
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("session_count > 0", name="ck_student_session_requests_count_pos"),
    )
    op.create_index(
        "ix_student_session_requests_student_id", "student_session_requests", ["student_id"]
    )
    op.create_index(
        "ix_student_session_requests_department_id", "student_session_requests", ["department_id"]
    )

    op.create_table(
        "pricing_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vapi_cost_per_minute", sa.Numeric(10, 4), nullable=False),
        sa.Column("markup_percentage", sa.Numeric(6, 2), nullable=False),
        sa.Column("annual_license_cost", sa.Numeric(10, 2), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "institution_pricing_overrides",
        sa.Column(
            "institution_id",
            sa.String(length=64),
            sa.ForeignKey("institutions.id"),
            primary_key=True,
        ),
        sa.Column("custom_vapi_cost", sa.Numeric(10, 4), nullable=False),
        sa.Column("custom_markup_percentage", sa.Numeric(6, 2), nullable=False),
        sa.Column("custom_license_cost", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "scheduled_price_changes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("change_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "change_type",
            sa.Enum("vapiCost", "markupPercentage", "licenseCost", name="price_change_type"),
            nullable=False,
        ),
        sa.Column("affected", sa.String(length=64), nullable=False, server_default="all"),
        sa.Column("current_value", sa.Numeric(10, 4), nullable=False),
        sa.Column("new_value", sa.Numeric(10, 4), nullable=False),
        sa.Column(
            "status",
            sa.Enum("scheduled", "applied", "cancelled", name="price_change_status"),
            nullable=False,
            server_default="scheduled",
        ),
        sa.Column("applied_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index(
        "ix_scheduled_price_changes_change_date", "scheduled_price_changes", ["change_date"]
    )

    op.create_table(
        "session_purchases",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("institution_id", sa.String(length=64), sa.ForeignKey("institutions.id"), nullable=False),
        sa.Column("session_count", sa.Integer(), nullable=False),
        sa.Column("price_per_session", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_id", sa.String(length=128), unique=True),
        sa.Column("pricing_version", sa.Integer()),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", "failed", "refunded", name="session_purchase_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("session_count > 0", name="ck_session_purchases_count_pos"),
    )
    op.create_index("ix_session_purchases_institution_id", "session_purchases", ["institution_id"])


def downgrade() -> None:
    op.drop_table("session_purchases")
    op.drop_table("scheduled_price_changes")
    op.drop_table("institution_pricing_overrides")
    op.drop_table("pricing_settings")
    op.drop_table("student_session_requests")
    op.drop_table("session_allocations")
    op.drop_table("session_pools")
    op.drop_table("institutions")
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in (
            "session_purchase_status",
            "price_change_status",
            "price_change_type",
            "session_request_status",
            "allocation_status",
            "allocation_type",
        ):
            sa.Enum(name=name).drop(bind, checkfirst=True)
