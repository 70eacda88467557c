"""Table definitions shared by the repositories and the migration."""

import sqlalchemy as sa

metadata = sa.MetaData()

tenants = sa.Table(
    "tenants",
    metadata,
    sa.Column("id", sa.String(64), primary_key=True),
    sa.Column("name", sa.Text(), nullable=True),
    sa.Column("tier", sa.String(16), nullable=False, server_default="free"),
    sa.Column("monthly_limit_cents", sa.BigInteger(), nullable=False),
    sa.Column("monthly_used_cents", sa.BigInteger(), nullable=False, server_default="0"),
    sa.Column("daily_limit_cents", sa.BigInteger(), nullable=False),
    sa.Column("daily_used_cents", sa.BigInteger(), nullable=False, server_default="0"),
    sa.Column("last_reset_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.CheckConstraint("monthly_used_cents >= 0", name="ck_tenants_monthly_used"),
    sa.CheckConstraint("daily_used_cents >= 0", name="ck_tenants_daily_used"),
    sa.CheckConstraint("tier IN ('free', 'pro', 'enterprise')", name="ck_tenants_tier"),
)

tenant_users = sa.Table(
    "tenant_users",
    metadata,
    sa.Column("user_id", sa.String(64), primary_key=True),
    sa.Column("tenant_id", sa.String(64), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
    sa.Index("ix_tenant_users_tenant_id", "tenant_id"),
)

usage_records = sa.Table(
    "usage_records",
    metadata,
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("request_id", sa.String(128), nullable=False),
    sa.Column("tenant_id", sa.String(64), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
    sa.Column("user_id", sa.String(64), nullable=False),
    sa.Column("project_id", sa.String(64), nullable=True),
    sa.Column("knowledge_id", sa.String(64), nullable=True),
    sa.Column("model", sa.String(64), nullable=False),
    sa.Column("action", sa.String(16), nullable=False),
    sa.Column("prompt_excerpt", sa.Text(), nullable=False, server_default=""),
    sa.Column("response_excerpt", sa.Text(), nullable=False, server_default=""),
    sa.Column("tokens_used", sa.Integer(), nullable=False),
    sa.Column("cost_cents", sa.Integer(), nullable=False),
    sa.Column("latency_ms", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("meta", sa.JSON(), nullable=True),
    sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("request_id", name="uq_usage_records_request_id"),
    sa.Index("ix_usage_records_tenant_occurred", "tenant_id", "occurred_at"),
)

knowledge_embeddings = sa.Table(
    "knowledge_embeddings",
    metadata,
    sa.Column("entry_id", sa.String(64), primary_key=True),
    sa.Column("vector", sa.JSON(), nullable=False),
    sa.Column("dims", sa.Integer(), nullable=False),
    sa.Column("source", sa.String(16), nullable=False, server_default="provider"),
    sa.Column("model", sa.String(64), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("source IN ('provider', 'fallback')", name="ck_knowledge_embeddings_source"),
    sa.Index("ix_knowledge_embeddings_source", "source"),
)
