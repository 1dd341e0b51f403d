"""create role and permission metadata ledgers

Revision ID: 20261001_0003
Revises: 20261001_0002
Create Date: 2026-10-01 00:20:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261001_0003"
down_revision = "20261001_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "role_metas",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("role_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_core", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("last_modified_by", sa.String(length=36), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_role_metas_role_name", "role_metas", ["role_name"], unique=True)
    op.create_index("ix_role_metas_is_core", "role_metas", ["is_core"])

    op.create_table(
        "permission_metas",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("permission_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=False, server_default="general"),
        sa.Column("is_core", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("last_modified_by", sa.String(length=36), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_permission_metas_permission_name", "permission_metas", ["permission_name"], unique=True)
    op.create_index("ix_permission_metas_category_is_core", "permission_metas", ["category", "is_core"])


def downgrade() -> None:
    op.drop_index("ix_permission_metas_category_is_core", table_name="permission_metas")
    op.drop_index("ix_permission_metas_permission_name", table_name="permission_metas")
    op.drop_table("permission_metas")
    op.drop_index("ix_role_metas_is_core", table_name="role_metas")
    op.drop_index("ix_role_metas_role_name", table_name="role_metas")
    op.drop_table("role_metas")
