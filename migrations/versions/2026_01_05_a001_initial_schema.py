"""Initial schema: users, sites and API keys

Revision ID: a001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # === users ===
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="false", comment="Platform administrator"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"])

    # === sites ===
    op.create_table(
        "sites",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sites_slug", "sites", ["slug"])
    op.create_index("ix_sites_owner_id", "sites", ["owner_id"])

    # === site_members ===
    op.create_table(
        "site_members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("site_id", sa.Uuid(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="contributor"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("site_id", "user_id", name="uq_site_members_site_user"),
        sa.CheckConstraint(
            "role IN ('owner', 'admin', 'editor', 'author', 'contributor')",
            name="valid_site_role",
        ),
    )
    op.create_index("ix_site_members_site_id", "site_members", ["site_id"])
    op.create_index("ix_site_members_user_id", "site_members", ["user_id"])

    # === api_keys ===
    op.create_table(
        "api_keys",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, comment="Human-readable name for the key"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("key_prefix", sa.String(32), nullable=False, comment="Display prefix, e.g. sk_live_ab12cd34"),
        sa.Column("key_hash", sa.String(64), nullable=False, unique=True, comment="SHA-256 hash of the full API key"),
        sa.Column("key_type", sa.String(10), nullable=False, server_default="user"),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("site_id", sa.Uuid(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=True),
        sa.Column("scopes", postgresql.JSONB(), nullable=False, server_default='["read"]'),
        sa.Column("rate_limit_per_minute", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("rate_limit_per_day", sa.Integer(), nullable=False, server_default="10000"),
        sa.Column("usage_count", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("revoke_reason", sa.Text(), nullable=True),
        sa.Column("allowed_ips", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("allowed_origins", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("key_type IN ('user', 'site', 'admin')", name="valid_key_type"),
        sa.CheckConstraint(
            "(key_type = 'admin' AND user_id IS NULL AND site_id IS NULL) OR "
            "(key_type = 'user' AND user_id IS NOT NULL AND site_id IS NULL) OR "
            "(key_type = 'site' AND user_id IS NOT NULL AND site_id IS NOT NULL)",
            name="valid_ownership",
        ),
        sa.CheckConstraint(
            "rate_limit_per_minute > 0 AND rate_limit_per_day > 0",
            name="positive_rate_limits",
        ),
    )
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"])
    op.create_index("ix_api_keys_key_prefix", "api_keys", ["key_prefix"])
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])
    op.create_index("ix_api_keys_site_id", "api_keys", ["site_id"])
    op.create_index("ix_api_keys_user_active", "api_keys", ["user_id", "is_active"])

    # === api_key_site_access ===
    op.create_table(
        "api_key_site_access",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("api_key_id", sa.Uuid(), sa.ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False),
        sa.Column("site_id", sa.Uuid(), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("scopes", postgresql.JSONB(), nullable=False, server_default='["read"]'),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("api_key_id", "site_id", name="uq_api_key_site_access"),
    )
    op.create_index("ix_api_key_site_access_api_key_id", "api_key_site_access", ["api_key_id"])
    op.create_index("ix_api_key_site_access_site_id", "api_key_site_access", ["site_id"])

    # === api_key_usage ===
    op.create_table(
        "api_key_usage",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("api_key_id", sa.Uuid(), sa.ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("method", sa.String(10), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("origin", sa.Text(), nullable=True),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_api_key_usage_api_key_id", "api_key_usage", ["api_key_id"])
    op.create_index("ix_api_key_usage_created_at", "api_key_usage", ["created_at"])
    op.create_index("ix_api_key_usage_key_created", "api_key_usage", ["api_key_id", "created_at"])


def downgrade() -> None:
    op.drop_table("api_key_usage")
    op.drop_table("api_key_site_access")
    op.drop_table("api_keys")
    op.drop_table("site_members")
    op.drop_table("sites")
    op.drop_table("users")
