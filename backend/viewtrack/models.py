from __future__ import annotations

from datetime import datetime
from enum import Enum

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship as sa_relationship

from .db import Base


def relationship(*args, **kwargs):
    """Wrap SQLAlchemy relationship to forbid lazy loading by default."""
    kwargs.setdefault("lazy", "raise")
    return sa_relationship(*args, **kwargs)


class Platform(str, Enum):
    instagram = "instagram"
    tiktok = "tiktok"
    youtube = "youtube"
    twitter = "twitter"


class CreatorType(str, Enum):
    automatic = "automatic"
    static = "static"


class CaptureSource(str, Enum):
    """Label stored in VideoSnapshot.captured_by."""

    scheduled_refresh = "scheduled_refresh"
    manual_refresh = "manual_refresh"
    scheduled_refresh_initial = "scheduled_refresh_initial"
    manual_refresh_initial = "manual_refresh_initial"

    @classmethod
    def for_run(cls, manual: bool, initial: bool = False) -> "CaptureSource":
        if manual:
            return cls.manual_refresh_initial if initial else cls.manual_refresh
        return cls.scheduled_refresh_initial if initial else cls.scheduled_refresh

    @property
    def initial(self) -> "CaptureSource":
        return CaptureSource(self.value if self.value.endswith("_initial") else f"{self.value}_initial")


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    owner_email: Mapped[str | None] = mapped_column(sa.String(320), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


class TrackedAccount(Base):
    __tablename__ = "tracked_accounts"
    __table_args__ = (
        sa.UniqueConstraint("project_id", "platform", "username", name="uq_tracked_accounts_project_platform_username"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    project_id: Mapped[int] = mapped_column(sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    platform: Mapped[Platform] = mapped_column(sa.String(32), nullable=False)
    username: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    creator_type: Mapped[CreatorType] = mapped_column(
        sa.String(16), nullable=False, default=CreatorType.automatic, server_default=CreatorType.automatic.value
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean(), nullable=False, default=True, server_default=sa.true())
    is_verified: Mapped[bool | None] = mapped_column(sa.Boolean(), nullable=True)
    is_blue_verified: Mapped[bool | None] = mapped_column(sa.Boolean(), nullable=True)
    youtube_channel_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    last_synced: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


class Video(Base):
    __tablename__ = "videos"
    __table_args__ = (
        sa.UniqueConstraint(
            "organization_id", "project_id", "platform_video_id", name="uq_videos_org_project_platform_video"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    project_id: Mapped[int] = mapped_column(sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    tracked_account_id: Mapped[int] = mapped_column(
        sa.ForeignKey("tracked_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[Platform] = mapped_column(sa.String(32), nullable=False)
    platform_video_id: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    url: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    thumbnail: Mapped[str] = mapped_column(sa.Text(), nullable=False, default="", server_default="")
    caption: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    upload_date: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    views: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0, server_default="0")
    likes: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0, server_default="0")
    comments: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0, server_default="0")
    shares: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0, server_default="0")
    saves: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0, server_default="0")
    status: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="active", server_default="active")
    added_by: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    date_added: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )
    last_refreshed: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    snapshots: Mapped[list["VideoSnapshot"]] = relationship(back_populates="video", cascade="all, delete-orphan")


class VideoSnapshot(Base):
    """Append-only metric capture; rows are inserted and never updated."""

    __tablename__ = "video_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    video_id: Mapped[int] = mapped_column(sa.ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True)
    views: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0)
    likes: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0)
    comments: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0)
    shares: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0)
    saves: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0)
    captured_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False, index=True)
    captured_by: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    is_initial_snapshot: Mapped[bool] = mapped_column(sa.Boolean(), nullable=False, default=False)

    video: Mapped[Video] = relationship(back_populates="snapshots")


class DeletedVideo(Base):
    __tablename__ = "deleted_videos"
    __table_args__ = (
        sa.UniqueConstraint(
            "organization_id", "project_id", "platform_video_id", name="uq_deleted_videos_org_project_platform_video"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[int] = mapped_column(sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    platform_video_id: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    platform: Mapped[Platform | None] = mapped_column(sa.String(32), nullable=True)
    deleted_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


class UsageCounter(Base):
    __tablename__ = "usage_counters"

    organization_id: Mapped[int] = mapped_column(
        sa.ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    tracked_videos: Mapped[int] = mapped_column(sa.Integer(), nullable=False, default=0, server_default="0")
    video_limit: Mapped[int] = mapped_column(sa.Integer(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False
    )
