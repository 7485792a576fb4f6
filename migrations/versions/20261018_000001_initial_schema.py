from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    asset_status_enum = sa.Enum("new", "ingesting", "processing", "ready", "failed", name="assetstatus")

    op.create_table(
        "assets",
        sa.Column("asset_id", sa.String(length=64), primary_key=True),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("media_type", sa.String(length=32), nullable=False),
        sa.Column("metadata_jsonb", sa.JSON(), nullable=True),
        sa.Column("technical_metadata", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("source_uri", sa.String(length=1024), nullable=False),
        sa.Column("status", asset_status_enum, nullable=False, server_default="new"),
        sa.Column("source_id", sa.String(length=128), nullable=True),
        sa.Column("flow_id", sa.String(length=128), nullable=True),
        sa.Column("error_info", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_assets_status", "assets", ["status"])


def downgrade() -> None:
    op.drop_index("ix_assets_status", table_name="assets")
    op.drop_table("assets")
    sa.Enum(name="assetstatus").drop(op.get_bind(), checkfirst=True)
