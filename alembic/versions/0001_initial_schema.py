"""Initial Search API schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates:
1. search_server / search_index configuration tables
2. search_api_task pending task queue (unique over type, server, index, data)
3. search_api_db_index / search_api_db_item storage of the "database" backend
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "search_server",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("backend_id", sa.String(64), nullable=False),
        sa.Column("backend_config", sa.JSON(), nullable=False),
        sa.Column("status", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "search_index",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.Boolean(), nullable=False, server_default=sa.true()),
        # Weak reference: no foreign key to search_server.
        sa.Column("server_id", sa.String(64), nullable=True),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("read_only", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("needs_reindex", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reindexed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_search_index_server_id", "search_index", ["server_id"])

    op.create_table(
        "search_api_task",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("server_id", sa.String(64), nullable=False),
        sa.Column("index_id", sa.String(64), nullable=True),
        sa.Column("data", sa.Text(), nullable=True),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "type in ('add_index','update_index','remove_index','delete_items','delete_all_items')",
            name="ck_search_api_task_type",
        ),
    )
    op.create_index("ix_search_api_task_server_index", "search_api_task", ["server_id", "index_id"])
    op.create_index(
        "uq_search_api_task",
        "search_api_task",
        ["type", "server_id", sa.text("coalesce(index_id, '')"), sa.text("coalesce(data, '')")],
        unique=True,
    )

    op.create_table(
        "search_api_db_index",
        sa.Column("server_id", sa.String(64), primary_key=True),
        sa.Column("index_id", sa.String(64), primary_key=True),
        sa.Column("fields", sa.JSON(), nullable=False),
    )

    op.create_table(
        "search_api_db_item",
        sa.Column("server_id", sa.String(64), primary_key=True),
        sa.Column("index_id", sa.String(64), primary_key=True),
        sa.Column("item_id", sa.String(255), primary_key=True),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False, server_default=""),
        sa.Column("indexed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_search_api_db_item_index", "search_api_db_item", ["server_id", "index_id"])


def downgrade() -> None:
    op.drop_index("ix_search_api_db_item_index", table_name="search_api_db_item")
    op.drop_table("search_api_db_item")
    op.drop_table("search_api_db_index")
    op.drop_index("uq_search_api_task", table_name="search_api_task")
    op.drop_index("ix_search_api_task_server_index", table_name="search_api_task")
    op.drop_table("search_api_task")
    op.drop_index("ix_search_index_server_id", table_name="search_index")
    op.drop_table("search_index")
    op.drop_table("search_server")
