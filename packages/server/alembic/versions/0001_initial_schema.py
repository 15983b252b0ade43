"""Initial schema: tenants, users, external projects, grants and subscriptions.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Dependency order; downgrade drops in reverse.
TABLES = [
    "companies",
    "users",
    "projects",
    "subscription_plans",
    "access_grants",
    "project_memberships",
    "subscriptions",
    "signup_requests",
]


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _index(table: str, *columns: str, unique: bool = False) -> None:
    for column in columns:
        op.create_index(f"ix_{table}_{column}", table, [column], unique=unique)


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.create_table(
        "companies",
        *_base_columns(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("vat", sa.String(), nullable=True, unique=True),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("subscription_status", sa.String(), nullable=False),
        sa.Column("stripe_customer_id", sa.String(), nullable=True),
        sa.Column("settings", sa.JSON(), nullable=False),
    )
    _index("companies", "id", "name")

    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("encrypted_password", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("permissions", sa.JSON(), nullable=True),
    )
    _index("users", "id", "company_id")
    _index("users", "email", unique=True)

    op.create_table(
        "projects",
        *_base_columns(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("integration_type", sa.String(), nullable=False),
        sa.Column("api_base_url", sa.String(), nullable=True),
        sa.Column("api_auth_type", sa.String(), nullable=True),
        sa.Column("api_key", sa.String(), nullable=True),
        sa.Column("api_secret", sa.String(), nullable=True),
        sa.Column("endpoints", sa.JSON(), nullable=False),
        sa.Column("admin_panel_url", sa.String(), nullable=True),
        sa.Column("iframe_width", sa.String(), nullable=True),
        sa.Column("iframe_height", sa.String(), nullable=True),
        sa.Column("iframe_sandbox", sa.String(), nullable=True),
        sa.Column("sso_enabled", sa.Boolean(), nullable=False),
        sa.Column("sso_method", sa.String(), nullable=True),
        sa.Column("sso_token_expiry", sa.Integer(), nullable=False),
        sa.Column("sso_redirect_url", sa.String(), nullable=True),
        sa.Column("sso_callback_url", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    _index("projects", "id")
    _index("projects", "slug", unique=True)

    op.create_table(
        "subscription_plans",
        *_base_columns(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False),
        sa.Column("interval", sa.String(), nullable=False),
        sa.Column("features", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("stripe_price_id", sa.String(), nullable=True),
    )
    _index("subscription_plans", "id")

    op.create_table(
        "access_grants",
        *_base_columns(),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("encrypted_credentials", sa.String(), nullable=True),
        sa.Column("external_company_id", sa.String(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.UniqueConstraint("company_id", "project_id", name="uq_access_grants_company_project"),
    )
    _index("access_grants", "id", "company_id", "project_id")

    op.create_table(
        "project_memberships",
        *_base_columns(),
        sa.Column("grant_id", sa.Uuid(), sa.ForeignKey("access_grants.id"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("external_user_id", sa.String(), nullable=True),
        sa.Column("external_username", sa.String(), nullable=True),
        sa.Column("external_role", sa.String(), nullable=True),
        sa.Column("external_token", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sso_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.UniqueConstraint("grant_id", "user_id", name="uq_project_memberships_grant_user"),
    )
    _index("project_memberships", "id", "grant_id", "user_id")

    op.create_table(
        "subscriptions",
        *_base_columns(),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("subscription_plans.id"), nullable=False),
        sa.Column("stripe_customer_id", sa.String(), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(), nullable=True),
        sa.Column("stripe_checkout_session_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
    )
    _index("subscriptions", "id", "plan_id")
    _index("subscriptions", "company_id", unique=True)

    op.create_table(
        "signup_requests",
        *_base_columns(),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("requested_projects", sa.JSON(), nullable=False),
        sa.Column("company_data", sa.JSON(), nullable=False),
        sa.Column("contact_person", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("reviewed_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.String(), nullable=True),
    )
    _index("signup_requests", "id", "company_id")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in reversed(TABLES):
        op.drop_table(table)
