"""Initial dispatch schema: tenants, profiles, delivery requests, loyalty

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("company_name", sa.String(length=200), nullable=False),
        sa.Column("subdomain", sa.String(length=63), nullable=True),
        sa.Column("custom_domain", sa.String(length=253), nullable=True),
        sa.Column("slug", sa.String(length=100), nullable=True),
        sa.Column("logo_url", sa.String(length=500), nullable=True),
        sa.Column("primary_color", sa.String(length=7), nullable=False, server_default="#0369a1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("plan_type", sa.String(length=20), nullable=False, server_default="trial"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subdomain"),
        sa.UniqueConstraint("custom_domain"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("idx_tenant_active", "tenants", ["is_active"], unique=False)

    op.create_table(
        "business_settings",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("base_delivery_fee", sa.Numeric(10, 2), nullable=False, server_default="3.00"),
        sa.Column("price_per_mile", sa.Numeric(10, 2), nullable=False, server_default="1.50"),
        sa.Column("base_fee_radius_miles", sa.Numeric(10, 2), nullable=False, server_default="10.00"),
        sa.Column("rush_delivery_multiplier", sa.Numeric(10, 2), nullable=False, server_default="1.5"),
        sa.Column("enable_loyalty_program", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("points_for_free_delivery", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        *_timestamps(),
        sa.CheckConstraint("base_delivery_fee >= 0", name="ck_business_settings_base_fee"),
        sa.CheckConstraint("price_per_mile >= 0", name="ck_business_settings_price_per_mile"),
        sa.CheckConstraint("base_fee_radius_miles >= 0", name="ck_business_settings_radius"),
        sa.CheckConstraint("rush_delivery_multiplier >= 1", name="ck_business_settings_rush"),
        sa.CheckConstraint("points_for_free_delivery > 0", name="ck_business_settings_points"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id"),
    )

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="customer"),
        sa.Column("is_on_duty", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_user_profiles_tenant_id", "user_profiles", ["tenant_id"], unique=False)
    op.create_index("ix_user_profiles_tenant_role", "user_profiles", ["tenant_id", "role"], unique=False)

    op.create_table(
        "delivery_requests",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("customer_name", sa.String(length=200), nullable=False),
        sa.Column("phone", sa.String(length=40), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("pickup_address", sa.Text(), nullable=False),
        sa.Column("delivery_address", sa.Text(), nullable=False),
        sa.Column("preferred_date", sa.String(length=20), nullable=False),
        sa.Column("preferred_time", sa.String(length=20), nullable=False),
        sa.Column("payment_method", sa.String(length=40), nullable=False),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("is_rush", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("distance_miles", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("delivery_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("used_free_delivery", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="available"),
        sa.Column("claimed_by_driver", sa.String(length=36), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("driver_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(claimed_by_driver IS NULL AND claimed_at IS NULL) "
            "OR (claimed_by_driver IS NOT NULL AND claimed_at IS NOT NULL)",
            name="ck_delivery_requests_claim_pair",
        ),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["claimed_by_driver"], ["user_profiles.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_delivery_requests_tenant_status_created",
        "delivery_requests",
        ["tenant_id", "status", "created_at"],
        unique=False,
    )
    op.create_index("ix_delivery_requests_claimed_by_driver", "delivery_requests", ["claimed_by_driver"], unique=False)

    op.create_table(
        "delivery_status_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("delivery_id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("event", sa.String(length=20), nullable=False),
        sa.Column("from_status", sa.String(length=20), nullable=True),
        sa.Column("to_status", sa.String(length=20), nullable=False),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["delivery_id"], ["delivery_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_delivery_status_history_delivery", "delivery_status_history", ["delivery_id"], unique=False)

    op.create_table(
        "customer_loyalty_accounts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("loyalty_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_deliveries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("free_delivery_credits", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("free_delivery_credits >= 0", name="ck_loyalty_account_credits"),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "tenant_id", name="uq_loyalty_account_user_tenant"),
    )

    op.create_table(
        "loyalty_credit_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("delivery_id", sa.String(length=36), nullable=False),
        sa.Column("event", sa.String(length=20), nullable=False),
        sa.Column("account_id", sa.String(length=36), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credits_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["delivery_id"], ["delivery_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["customer_loyalty_accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("delivery_id", "event", name="uq_loyalty_credit_event"),
    )


def downgrade() -> None:
    op.drop_table("loyalty_credit_events")
    op.drop_table("customer_loyalty_accounts")
    op.drop_index("ix_delivery_status_history_delivery", table_name="delivery_status_history")
    op.drop_table("delivery_status_history")
    op.drop_index("ix_delivery_requests_claimed_by_driver", table_name="delivery_requests")
    op.drop_index("ix_delivery_requests_tenant_status_created", table_name="delivery_requests")
    op.drop_table("delivery_requests")
    op.drop_index("ix_user_profiles_tenant_role", table_name="user_profiles")
    op.drop_index("ix_user_profiles_tenant_id", table_name="user_profiles")
    op.drop_table("user_profiles")
    op.drop_table("business_settings")
    op.drop_index("idx_tenant_active", table_name="tenants")
    op.drop_table("tenants")
