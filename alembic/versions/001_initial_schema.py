"""Initial schema - enterprise_accounts, branches, api_usage_records, api_logs.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "enterprise_accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(64), unique=True, nullable=False),
        sa.Column("user_id", sa.String(64), unique=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("subscription_plan", sa.String(20), nullable=False),
        sa.Column("billing_email", sa.String(255), nullable=True),
        sa.Column("contract_start", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("contract_end", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("api_key_hash", sa.String(64), unique=True, nullable=False),
        sa.Column("api_key_prefix", sa.String(16), nullable=False),
        sa.Column("api_key_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("monthly_quota", sa.Integer(), nullable=True),
        sa.Column("subscription_status", sa.String(20), nullable=True),
        sa.Column("subscription_period_end", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "branches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(36),
            sa.ForeignKey("enterprise_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("code", sa.String(10), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("street", sa.Text(), nullable=True),
        sa.Column("city", sa.Text(), nullable=True),
        sa.Column("state", sa.Text(), nullable=True),
        sa.Column("zip_code", sa.String(20), nullable=True),
        sa.Column("country", sa.String(2), nullable=False, server_default="US"),
        sa.Column("settings", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_branches_organization_id", "branches", ["organization_id"])
    # Per-organization, not global
    op.create_unique_constraint(
        "uq_branches_organization_code", "branches", ["organization_id", "code"]
    )

    op.create_table(
        "api_usage_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "account_id",
            sa.String(36),
            sa.ForeignKey("enterprise_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_start", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("request_count", sa.Integer(), nullable=False, server_default="0"),
    )
    # ON CONFLICT target for the atomic quota upsert
    op.create_unique_constraint(
        "uq_api_usage_account_period", "api_usage_records", ["account_id", "period_start"]
    )

    op.create_table(
        "api_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(36),
            sa.ForeignKey("enterprise_accounts.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("key_prefix", sa.String(16), nullable=True),
        sa.Column("outcome", sa.String(40), nullable=False),
        sa.Column("method", sa.String(10), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_api_logs_organization_id", "api_logs", ["organization_id"])
    op.create_index("ix_api_logs_timestamp", "api_logs", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_api_logs_timestamp", table_name="api_logs")
    op.drop_index("ix_api_logs_organization_id", table_name="api_logs")
    op.drop_table("api_logs")
    op.drop_table("api_usage_records")
    op.drop_index("ix_branches_organization_id", table_name="branches")
    op.drop_table("branches")
    op.drop_table("enterprise_accounts")
