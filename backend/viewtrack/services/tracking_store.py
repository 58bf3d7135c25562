"""
Persisted account/video/snapshot/usage store.

Every method opens its own short session so accounts processed concurrently
never share one AsyncSession.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from viewtrack.errors import BatchCommitError
from viewtrack.models import (
    DeletedVideo,
    Organization,
    Project,
    TrackedAccount,
    UsageCounter,
    Video,
    VideoSnapshot,
)
from viewtrack.services.video_records import NewVideoWrite, VideoUpdateWrite

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    current: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(self.limit - self.current, 0)


class TrackingStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, default_video_limit: int = 100):
        self._session_factory = session_factory
        self.default_video_limit = default_video_limit

    # --- hierarchy -----------------------------------------------------

    async def get_organization(self, organization_id: int) -> Organization | None:
        async with self._session_factory() as session:
            return await session.get(Organization, organization_id)

    async def list_organizations(self) -> list[Organization]:
        async with self._session_factory() as session:
            result = await session.execute(select(Organization).order_by(Organization.id))
            return list(result.scalars().all())

    async def get_project(self, organization_id: int, project_id: int) -> Project | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project).where(Project.id == project_id, Project.organization_id == organization_id)
            )
            return result.scalar_one_or_none()

    async def list_projects(self, organization_id: int) -> list[Project]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project).where(Project.organization_id == organization_id).order_by(Project.id)
            )
            return list(result.scalars().all())

    async def list_active_accounts(self, organization_id: int, project_id: int) -> list[TrackedAccount]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TrackedAccount)
                .where(
                    TrackedAccount.organization_id == organization_id,
                    TrackedAccount.project_id == project_id,
                    TrackedAccount.is_active.is_(True),
                )
                .order_by(TrackedAccount.id)
            )
            return list(result.scalars().all())

    async def stamp_account(
        self,
        account_id: int,
        synced_at: datetime,
        *,
        is_verified: bool | None = None,
        is_blue_verified: bool | None = None,
    ) -> None:
        values: dict = {"last_synced": synced_at}
        if is_verified is not None:
            values["is_verified"] = is_verified
        if is_blue_verified is not None:
            values["is_blue_verified"] = is_blue_verified
        async with self._session_factory() as session:
            await session.execute(update(TrackedAccount).where(TrackedAccount.id == account_id).values(**values))
            await session.commit()

    # --- videos --------------------------------------------------------

    async def video_exists(self, organization_id: int, project_id: int, platform_video_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Video.id)
                .where(
                    Video.organization_id == organization_id,
                    Video.project_id == project_id,
                    Video.platform_video_id == platform_video_id,
                )
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def find_video(self, organization_id: int, project_id: int, platform_video_id: str) -> Video | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Video).where(
                    Video.organization_id == organization_id,
                    Video.project_id == project_id,
                    Video.platform_video_id == platform_video_id,
                )
            )
            return result.scalar_one_or_none()

    async def count_account_videos(self, account_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(Video.id)).where(Video.tracked_account_id == account_id)
            )
            return int(result.scalar_one())

    async def list_account_videos(self, account_id: int) -> list[Video]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Video).where(Video.tracked_account_id == account_id).order_by(Video.id)
            )
            return list(result.scalars().all())

    async def list_snapshots(self, video_id: int) -> list[VideoSnapshot]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(VideoSnapshot).where(VideoSnapshot.video_id == video_id).order_by(VideoSnapshot.id)
            )
            return list(result.scalars().all())

    async def is_blacklisted(self, organization_id: int, project_id: int, platform_video_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DeletedVideo.id)
                .where(
                    DeletedVideo.organization_id == organization_id,
                    DeletedVideo.project_id == project_id,
                    DeletedVideo.platform_video_id == platform_video_id,
                )
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def commit_writes(self, writes: Sequence[NewVideoWrite | VideoUpdateWrite], *, chunk_index: int = 0) -> None:
        """Commit one chunk in a single transaction; raises BatchCommitError on failure."""
        async with self._session_factory() as session:
            try:
                for write in writes:
                    if isinstance(write, NewVideoWrite):
                        session.add(_new_video_row(write))
                    else:
                        await _apply_update(session, write)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise BatchCommitError(chunk_index, len(writes), str(exc)) from exc

    # --- usage ---------------------------------------------------------

    async def get_usage(self, organization_id: int) -> UsageSnapshot:
        async with self._session_factory() as session:
            counter = await session.get(UsageCounter, organization_id)
            if counter is None:
                return UsageSnapshot(current=0, limit=self.default_video_limit)
            return UsageSnapshot(current=counter.tracked_videos, limit=counter.video_limit)

    async def increment_usage(self, organization_id: int, amount: int) -> None:
        if amount <= 0:
            return
        async with self._session_factory() as session:
            result = await session.execute(
                update(UsageCounter)
                .where(UsageCounter.organization_id == organization_id)
                .values(tracked_videos=UsageCounter.tracked_videos + amount)
            )
            if result.rowcount == 0:
                session.add(
                    UsageCounter(
                        organization_id=organization_id,
                        tracked_videos=amount,
                        video_limit=self.default_video_limit,
                    )
                )
            await session.commit()


def _new_video_row(write: NewVideoWrite) -> Video:
    fetched = write.video
    metrics = fetched.metrics
    return Video(
        organization_id=write.organization_id,
        project_id=write.project_id,
        tracked_account_id=write.tracked_account_id,
        platform=write.platform,
        platform_video_id=fetched.platform_video_id,
        url=fetched.url,
        thumbnail=write.thumbnail,
        caption=fetched.caption,
        upload_date=fetched.upload_date,
        views=metrics.views,
        likes=metrics.likes,
        comments=metrics.comments,
        shares=metrics.shares,
        saves=metrics.saves,
        status="active",
        added_by=write.capture.value,
        date_added=write.captured_at,
        last_refreshed=write.captured_at,
        snapshots=[
            VideoSnapshot(
                views=metrics.views,
                likes=metrics.likes,
                comments=metrics.comments,
                shares=metrics.shares,
                saves=metrics.saves,
                captured_at=write.captured_at,
                captured_by=write.capture.value,
                is_initial_snapshot=True,
            )
        ],
    )


async def _apply_update(session: AsyncSession, write: VideoUpdateWrite) -> None:
    metrics = write.metrics
    values: dict = {
        "views": metrics.views,
        "likes": metrics.likes,
        "comments": metrics.comments,
        "shares": metrics.shares,
        "saves": metrics.saves,
        "last_refreshed": write.captured_at,
    }
    if write.thumbnail is not None:
        values["thumbnail"] = write.thumbnail
    if write.caption:
        values["caption"] = write.caption
    await session.execute(update(Video).where(Video.id == write.video_id).values(**values))
    session.add(
        VideoSnapshot(
            video_id=write.video_id,
            views=metrics.views,
            likes=metrics.likes,
            comments=metrics.comments,
            shares=metrics.shares,
            saves=metrics.saves,
            captured_at=write.captured_at,
            captured_by=write.capture.value,
            is_initial_snapshot=False,
        )
    )
