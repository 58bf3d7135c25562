from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from viewtrack.models import CaptureSource, Platform, TrackedAccount
from viewtrack.services.bulk_refresh import BulkRefreshEngine, RefreshOutcome
from viewtrack.services.dedupe import DeduplicationOracle
from viewtrack.services.discovery import PROBE_SIZES, SEED_COUNT, DiscoveryResult, IncrementalDiscovery
from viewtrack.services.platforms.base import PlatformAdapter
from viewtrack.services.platforms.registry import select_adapter
from viewtrack.services.tracking_store import TrackingStore
from viewtrack.services.video_writer import SaveOutcome, VideoWriter

logger = logging.getLogger(__name__)


@dataclass
class AccountRefreshResult:
    discovery: DiscoveryResult
    saved: SaveOutcome
    refresh: RefreshOutcome

    @property
    def added(self) -> int:
        return self.saved.added

    @property
    def updated(self) -> int:
        return self.saved.updated + self.refresh.updated

    @property
    def skipped_quota(self) -> int:
        return self.saved.skipped_quota


class AccountRefresher:
    """Discovery, then its commit, then bulk refresh, strictly in that order."""

    def __init__(
        self,
        store: TrackingStore,
        adapters: Mapping[Platform, PlatformAdapter],
        writer: VideoWriter,
        *,
        seed_count: int = SEED_COUNT,
        probe_sizes: tuple[int, ...] = PROBE_SIZES,
    ):
        self._store = store
        self._adapters = adapters
        self._writer = writer
        self._seed_count = seed_count
        self._probe_sizes = probe_sizes

    async def refresh(self, account: TrackedAccount, capture: CaptureSource) -> AccountRefreshResult:
        adapter = select_adapter(self._adapters, account.platform)

        persisted = await self._store.count_account_videos(account.id)
        discovery = IncrementalDiscovery(
            adapter,
            DeduplicationOracle(self._store),
            seed_count=self._seed_count,
            probe_sizes=self._probe_sizes,
        )
        found = await discovery.discover(account, persisted)
        saved = await self._writer.save_discovered(account, found.candidates, capture)

        # videos written by discovery already carry this run's snapshot
        written_now = {c.platform_video_id for c in found.candidates}
        videos = [v for v in await self._store.list_account_videos(account.id) if v.platform_video_id not in written_now]
        refreshed = await BulkRefreshEngine(adapter, self._writer).refresh(account, videos, capture)

        return AccountRefreshResult(discovery=found, saved=saved, refresh=refreshed)
