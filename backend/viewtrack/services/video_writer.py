"""
Quota-aware persistence of discovered and refreshed videos.

Quota slots are reserved per organization under a lock, while thumbnails and
chunk commits run outside it. Blacklisted ids never become Videos, writes are
committed in chunks of at most CHUNK_OPERATIONS, and the usage counter is
bumped once by the number of inserts that actually committed. A failed bump
is logged and reported on the outcome.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError

from viewtrack.errors import BatchCommitError, ThumbnailError
from viewtrack.models import CaptureSource, TrackedAccount, Video
from viewtrack.services.thumbnails import ThumbnailPipeline
from viewtrack.services.tracking_store import TrackingStore
from viewtrack.services.video_records import FetchedVideo, NewVideoWrite, VideoUpdateWrite

logger = logging.getLogger(__name__)

CHUNK_OPERATIONS = 500

Write = NewVideoWrite | VideoUpdateWrite


@dataclass
class SaveOutcome:
    added: int = 0
    updated: int = 0
    skipped_quota: int = 0
    skipped_blacklisted: int = 0
    thumbnail_failures: int = 0
    failed_chunks: list[str] = field(default_factory=list)
    usage_error: str | None = None


def chunk_writes(writes: Sequence[Write], max_operations: int = CHUNK_OPERATIONS) -> list[list[Write]]:
    chunks: list[list[Write]] = []
    current: list[Write] = []
    used = 0
    for write in writes:
        if current and used + write.operations > max_operations:
            chunks.append(current)
            current, used = [], 0
        current.append(write)
        used += write.operations
    if current:
        chunks.append(current)
    return chunks


def thumbnail_filename(platform: str, platform_video_id: str) -> str:
    safe_id = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in platform_video_id)
    return f"{platform}_{safe_id}"


class VideoWriter:
    def __init__(
        self,
        store: TrackingStore,
        thumbnails: ThumbnailPipeline,
        *,
        chunk_operations: int = CHUNK_OPERATIONS,
    ):
        self._store = store
        self._thumbnails = thumbnails
        self._chunk_operations = chunk_operations
        self._org_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._reserved: defaultdict[int, int] = defaultdict(int)

    async def _thumbnail_for(self, account: TrackedAccount, video: FetchedVideo, outcome: SaveOutcome) -> str | None:
        if not video.thumbnail_source:
            return None
        try:
            return await self._thumbnails.normalize(
                video.thumbnail_source,
                account.organization_id,
                thumbnail_filename(account.platform, video.platform_video_id),
            )
        except ThumbnailError as exc:
            outcome.thumbnail_failures += 1
            logger.warning(f"[refresh] thumbnail for {account.platform}:{video.platform_video_id} skipped: {exc}")
            return None

    async def _commit(self, writes: Sequence[Write], outcome: SaveOutcome) -> list[Write]:
        committed: list[Write] = []
        for index, chunk in enumerate(chunk_writes(writes, self._chunk_operations)):
            try:
                await self._store.commit_writes(chunk, chunk_index=index)
            except BatchCommitError as exc:
                logger.error(f"[refresh] {exc}")
                outcome.failed_chunks.append(str(exc))
                continue
            committed.extend(chunk)
        return committed

    async def save_discovered(
        self, account: TrackedAccount, candidates: Sequence[FetchedVideo], capture: CaptureSource
    ) -> SaveOutcome:
        outcome = SaveOutcome()
        if not candidates:
            return outcome

        org_id, project_id = account.organization_id, account.project_id
        now = datetime.now(timezone.utc)
        planned: list[tuple[FetchedVideo, Video | None]] = []
        reserved = 0
        async with self._org_locks[org_id]:
            usage = await self._store.get_usage(org_id)
            free = usage.limit - usage.current - self._reserved[org_id]
            for video in candidates:
                if await self._store.is_blacklisted(org_id, project_id, video.platform_video_id):
                    outcome.skipped_blacklisted += 1
                    continue

                existing = await self._store.find_video(org_id, project_id, video.platform_video_id)
                if existing is not None:
                    planned.append((video, existing))
                    continue

                if reserved >= free:
                    outcome.skipped_quota += 1
                    continue
                planned.append((video, None))
                reserved += 1
            self._reserved[org_id] += reserved

        # thumbnails and commits run unlocked; the reservation holds the slots
        try:
            writes: list[Write] = []
            for video, existing in planned:
                if existing is not None:
                    writes.append(await self._update_write(account, existing, video, capture, now, outcome))
                    continue
                thumbnail = await self._thumbnail_for(account, video, outcome)
                writes.append(
                    NewVideoWrite(
                        organization_id=org_id,
                        project_id=project_id,
                        tracked_account_id=account.id,
                        platform=account.platform,
                        video=video,
                        thumbnail=thumbnail or "",
                        capture=capture.initial,
                        captured_at=now,
                    )
                )
            committed = await self._commit(writes, outcome)
            outcome.added = sum(1 for w in committed if isinstance(w, NewVideoWrite))
            outcome.updated = len(committed) - outcome.added
        finally:
            async with self._org_locks[org_id]:
                self._reserved[org_id] -= reserved
                await self._record_usage(org_id, outcome)

        if outcome.skipped_quota:
            logger.warning(
                f"[refresh] org {org_id}: quota reached ({usage.current}/{usage.limit}), "
                f"skipped {outcome.skipped_quota} videos from @{account.username}"
            )
        if outcome.skipped_blacklisted:
            logger.info(f"[refresh] @{account.username}: skipped {outcome.skipped_blacklisted} deleted videos")
        return outcome

    async def _record_usage(self, org_id: int, outcome: SaveOutcome) -> None:
        if not outcome.added:
            return
        try:
            await self._store.increment_usage(org_id, outcome.added)
        except SQLAlchemyError as exc:
            logger.exception(f"[refresh] org {org_id}: usage counter not bumped by {outcome.added}")
            outcome.usage_error = str(exc)

    async def _update_write(
        self,
        account: TrackedAccount,
        existing: Video,
        fetched: FetchedVideo,
        capture: CaptureSource,
        captured_at: datetime,
        outcome: SaveOutcome,
    ) -> VideoUpdateWrite:
        thumbnail = None
        if fetched.thumbnail_source and self._thumbnails.needs_normalization(existing.thumbnail):
            replacement = await self._thumbnail_for(account, fetched, outcome)
            if self._thumbnails.should_replace(existing.thumbnail, replacement):
                thumbnail = replacement
        return VideoUpdateWrite(
            video_id=existing.id,
            platform_video_id=existing.platform_video_id,
            metrics=fetched.metrics,
            capture=capture,
            captured_at=captured_at,
            thumbnail=thumbnail,
            caption=None if existing.caption else fetched.caption,
        )

    async def apply_refresh(
        self,
        account: TrackedAccount,
        matches: Sequence[tuple[Video, FetchedVideo]],
        capture: CaptureSource,
    ) -> SaveOutcome:
        """Overwrite metrics of matched videos; no quota involved."""
        outcome = SaveOutcome()
        if not matches:
            return outcome
        now = datetime.now(timezone.utc)
        writes: list[Write] = [
            await self._update_write(account, video, fetched, capture, now, outcome) for video, fetched in matches
        ]
        committed = await self._commit(writes, outcome)
        outcome.updated = len(committed)
        return outcome
