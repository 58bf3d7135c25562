"""organizations, tracked accounts, videos, snapshots, blacklist, usage"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.engine.reflection import Inspector

# revision identifiers, used by Alembic.
revision = "0001_video_tracking"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(inspector: Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _has_table(inspector, "organizations"):
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("owner_email", sa.String(320), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    if not _has_table(inspector, "projects"):
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_projects_organization_id", "projects", ["organization_id"])

    if not _has_table(inspector, "tracked_accounts"):
        op.create_table(
            "tracked_accounts",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
            sa.Column("platform", sa.String(32), nullable=False),
            sa.Column("username", sa.String(255), nullable=False),
            sa.Column("creator_type", sa.String(16), nullable=False, server_default="automatic"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_verified", sa.Boolean(), nullable=True),
            sa.Column("is_blue_verified", sa.Boolean(), nullable=True),
            sa.Column("youtube_channel_id", sa.String(255), nullable=True),
            sa.Column("last_synced", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint(
                "project_id", "platform", "username", name="uq_tracked_accounts_project_platform_username"
            ),
        )
        op.create_index("ix_tracked_accounts_organization_id", "tracked_accounts", ["organization_id"])
        op.create_index("ix_tracked_accounts_project_id", "tracked_accounts", ["project_id"])

    if not _has_table(inspector, "videos"):
        op.create_table(
            "videos",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "tracked_account_id",
                sa.Integer(),
                sa.ForeignKey("tracked_accounts.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("platform", sa.String(32), nullable=False),
            sa.Column("platform_video_id", sa.String(255), nullable=False),
            sa.Column("url", sa.Text(), nullable=True),
            sa.Column("thumbnail", sa.Text(), nullable=False, server_default=""),
            sa.Column("caption", sa.Text(), nullable=True),
            sa.Column("upload_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("views", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("likes", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("comments", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("shares", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("saves", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(32), nullable=False, server_default="active"),
            sa.Column("added_by", sa.String(64), nullable=True),
            sa.Column("date_added", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("last_refreshed", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint(
                "organization_id", "project_id", "platform_video_id", name="uq_videos_org_project_platform_video"
            ),
        )
        op.create_index("ix_videos_organization_id", "videos", ["organization_id"])
        op.create_index("ix_videos_tracked_account_id", "videos", ["tracked_account_id"])

    if not _has_table(inspector, "video_snapshots"):
        op.create_table(
            "video_snapshots",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("video_id", sa.Integer(), sa.ForeignKey("videos.id", ondelete="CASCADE"), nullable=False),
            sa.Column("views", sa.BigInteger(), nullable=False),
            sa.Column("likes", sa.BigInteger(), nullable=False),
            sa.Column("comments", sa.BigInteger(), nullable=False),
            sa.Column("shares", sa.BigInteger(), nullable=False),
            sa.Column("saves", sa.BigInteger(), nullable=False),
            sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("captured_by", sa.String(64), nullable=False),
            sa.Column("is_initial_snapshot", sa.Boolean(), nullable=False),
        )
        op.create_index("ix_video_snapshots_video_id", "video_snapshots", ["video_id"])
        op.create_index("ix_video_snapshots_captured_at", "video_snapshots", ["captured_at"])

    if not _has_table(inspector, "deleted_videos"):
        op.create_table(
            "deleted_videos",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
            sa.Column("platform_video_id", sa.String(255), nullable=False),
            sa.Column("platform", sa.String(32), nullable=True),
            sa.Column("deleted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint(
                "organization_id", "project_id", "platform_video_id", name="uq_deleted_videos_org_project_platform_video"
            ),
        )

    if not _has_table(inspector, "usage_counters"):
        op.create_table(
            "usage_counters",
            sa.Column(
                "organization_id",
                sa.Integer(),
                sa.ForeignKey("organizations.id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column("tracked_videos", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("video_limit", sa.Integer(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )


def downgrade() -> None:
    op.drop_table("usage_counters")
    op.drop_table("deleted_videos")
    op.drop_index("ix_video_snapshots_captured_at", table_name="video_snapshots")
    op.drop_index("ix_video_snapshots_video_id", table_name="video_snapshots")
    op.drop_table("video_snapshots")
    op.drop_index("ix_videos_tracked_account_id", table_name="videos")
    op.drop_index("ix_videos_organization_id", table_name="videos")
    op.drop_table("videos")
    op.drop_index("ix_tracked_accounts_project_id", table_name="tracked_accounts")
    op.drop_index("ix_tracked_accounts_organization_id", table_name="tracked_accounts")
    op.drop_table("tracked_accounts")
    op.drop_index("ix_projects_organization_id", table_name="projects")
    op.drop_table("projects")
    op.drop_table("organizations")
