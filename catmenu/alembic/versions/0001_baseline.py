"""baseline schema: categories and menu cache"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(200), nullable=False, unique=True),
        sa.Column("parent_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("post_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_categories_parent_id", "categories", ["parent_id"])

    op.create_table(
        "menu_cache",
        sa.Column("key", sa.String(191), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_menu_cache_expires_at", "menu_cache", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_menu_cache_expires_at", table_name="menu_cache")
    op.drop_table("menu_cache")
    op.drop_index("ix_categories_parent_id", table_name="categories")
    op.drop_table("categories")
