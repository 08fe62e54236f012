"""Initial feed archive cache schema."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "account_info",
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("completed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("articles", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("nickname", sa.String(), nullable=True),
        sa.Column("avatar", sa.String(), nullable=True),
        sa.Column("create_time", sa.Integer(), nullable=True),
        sa.Column("update_time", sa.Integer(), nullable=True),
        sa.Column("last_update_time", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("account_id"),
    )

    op.create_table(
        "articles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("article_id", sa.String(), nullable=False),
        sa.Column("link", sa.String(), nullable=False),
        sa.Column("create_time", sa.Integer(), nullable=False),
        sa.Column("data", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("link", name="uq_articles_link"),
    )
    op.create_index("ix_articles_account_id", "articles", ["account_id"], unique=False)
    op.create_index("ix_articles_create_time", "articles", ["create_time"], unique=False)
    op.create_index(
        "idx_articles_account_create_time",
        "articles",
        ["account_id", "create_time"],
        unique=False,
    )

    op.create_table(
        "html_snapshots",
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("file", sa.LargeBinary(), nullable=False),
        sa.Column("comment_id", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("url"),
    )
    op.create_index("ix_html_snapshots_account_id", "html_snapshots", ["account_id"])

    for table_name in ("assets", "resources"):
        op.create_table(
            table_name,
            sa.Column("url", sa.String(), nullable=False),
            sa.Column("account_id", sa.String(), nullable=False),
            sa.Column("file", sa.LargeBinary(), nullable=False),
            sa.PrimaryKeyConstraint("url"),
        )
        op.create_index(f"ix_{table_name}_account_id", table_name, ["account_id"])

    op.create_table(
        "resource_maps",
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("resources", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("url"),
    )
    op.create_index("ix_resource_maps_account_id", "resource_maps", ["account_id"])

    for table_name in ("comments", "article_metadata"):
        op.create_table(
            table_name,
            sa.Column("url", sa.String(), nullable=False),
            sa.Column("account_id", sa.String(), nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("data", sa.Text(), nullable=False),
            sa.PrimaryKeyConstraint("url"),
        )
        op.create_index(f"ix_{table_name}_account_id", table_name, ["account_id"])

    op.create_table(
        "comment_replies",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("data", sa.Text(), nullable=False),
        sa.Column("content_id", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_comment_replies_url", "comment_replies", ["url"])
    op.create_index("ix_comment_replies_account_id", "comment_replies", ["account_id"])
    op.create_index("ix_comment_replies_content_id", "comment_replies", ["content_id"])

    op.create_table(
        "export_jobs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("format", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=True),
        sa.Column("article_links", sa.Text(), nullable=False),
        sa.Column("total", sa.Integer(), server_default="0", nullable=False),
        sa.Column("progress", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("file_path", sa.String(), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_export_jobs_user_id", "export_jobs", ["user_id"])
    op.create_index("ix_export_jobs_status", "export_jobs", ["status"])


def downgrade() -> None:
    op.drop_table("export_jobs")
    op.drop_table("comment_replies")
    op.drop_table("article_metadata")
    op.drop_table("comments")
    op.drop_table("resource_maps")
    op.drop_table("resources")
    op.drop_table("assets")
    op.drop_table("html_snapshots")
    op.drop_table("articles")
    op.drop_table("account_info")
