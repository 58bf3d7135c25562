from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from viewtrack.models import CaptureSource, TrackedAccount, Video
from viewtrack.services.platforms.base import PlatformAdapter
from viewtrack.services.video_records import FetchedVideo
from viewtrack.services.video_writer import VideoWriter

logger = logging.getLogger(__name__)


@dataclass
class RefreshOutcome:
    requested: int = 0
    matched: int = 0
    updated: int = 0
    unmatched: int = 0
    not_refreshed: int = 0
    failed_chunks: list[str] = field(default_factory=list)


class BulkRefreshEngine:
    """Re-fetch metrics for every persisted video of an account and match by native id."""

    def __init__(self, adapter: PlatformAdapter, writer: VideoWriter):
        self._adapter = adapter
        self._writer = writer

    async def refresh(
        self, account: TrackedAccount, videos: Sequence[Video], capture: CaptureSource
    ) -> RefreshOutcome:
        outcome = RefreshOutcome(requested=len(videos))
        if not videos:
            return outcome

        records = await self._adapter.fetch_bulk(self._adapter.account_ref(account), videos)
        by_native_id = {v.platform_video_id: v for v in videos}
        matches: list[tuple[Video, FetchedVideo]] = []
        matched_ids: set[str] = set()

        for record in records:
            fetched = self._adapter.normalize(record)
            if fetched is None:
                outcome.unmatched += 1
                continue
            native_id = fetched.platform_video_id
            if native_id in matched_ids:
                continue
            video = by_native_id.get(native_id)
            if video is None:
                outcome.unmatched += 1
                continue
            matched_ids.add(native_id)
            matches.append((video, fetched))

        outcome.matched = len(matches)
        saved = await self._writer.apply_refresh(account, matches, capture)
        outcome.updated = saved.updated
        outcome.failed_chunks = saved.failed_chunks
        outcome.not_refreshed = outcome.requested - outcome.updated

        logger.info(
            f"[refresh] {account.platform} @{account.username}: {outcome.updated}/{outcome.requested} refreshed, "
            f"unmatched={outcome.unmatched}, not_refreshed={outcome.not_refreshed}"
        )
        if outcome.unmatched and not outcome.matched:
            logger.warning(
                f"[refresh] {account.platform} @{account.username}: provider ids matched none of the tracked videos"
            )
        return outcome
