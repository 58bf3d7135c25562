"""
Incremental discovery of new videos for one account.

- static accounts: no fetch at all
- automatic, nothing persisted yet: one seed fetch of SEED_COUNT items
- automatic, something persisted: probe 5, 10, 15, 20 newest items and stop
  at the first already-tracked id, a short page, or a fetch error
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from viewtrack.errors import PlatformFetchError
from viewtrack.models import CreatorType, TrackedAccount
from viewtrack.services.dedupe import DeduplicationOracle
from viewtrack.services.platforms.base import PlatformAdapter
from viewtrack.services.video_records import FetchedVideo, RawRecord

logger = logging.getLogger(__name__)

SEED_COUNT = 10
PROBE_SIZES: tuple[int, ...] = (5, 10, 15, 20)


class StopReason(str, Enum):
    static_account = "static_account"
    seed = "seed"
    duplicate_found = "duplicate_found"
    end_of_content = "end_of_content"
    fetch_error = "fetch_error"
    sizes_exhausted = "sizes_exhausted"


@dataclass
class DiscoveryResult:
    stop_reason: StopReason
    candidates: list[FetchedVideo] = field(default_factory=list)
    fetch_calls: int = 0
    is_verified: bool | None = None
    is_blue_verified: bool | None = None
    error: str | None = None


class IncrementalDiscovery:
    """One instance per account per run."""

    def __init__(
        self,
        adapter: PlatformAdapter,
        oracle: DeduplicationOracle,
        *,
        seed_count: int = SEED_COUNT,
        probe_sizes: Sequence[int] = PROBE_SIZES,
    ):
        if list(probe_sizes) != sorted(set(probe_sizes)) or not probe_sizes:
            raise ValueError("probe sizes must be strictly ascending")
        self._adapter = adapter
        self._oracle = oracle
        self._seed_count = seed_count
        self._probe_sizes = tuple(probe_sizes)
        self._flags_read = False

    async def discover(self, account: TrackedAccount, persisted_count: int) -> DiscoveryResult:
        if account.creator_type == CreatorType.static:
            return DiscoveryResult(stop_reason=StopReason.static_account)
        if persisted_count == 0:
            return await self._seed(account)
        return await self._probe(account)

    def _read_flags(self, result: DiscoveryResult, records: list[RawRecord]) -> None:
        if self._flags_read or not records:
            return
        self._flags_read = True
        result.is_verified = self._adapter.extract_verified(records[0])
        result.is_blue_verified = self._adapter.extract_blue_verified(records[0])

    async def _seed(self, account: TrackedAccount) -> DiscoveryResult:
        username = self._adapter.account_ref(account)
        result = DiscoveryResult(stop_reason=StopReason.seed)
        records = await self._adapter.fetch(username, self._seed_count)
        result.fetch_calls = 1
        self._read_flags(result, records)

        seen: set[str] = set()
        for record in records:
            video = self._adapter.normalize(record)
            if video is None or video.platform_video_id in seen:
                continue
            seen.add(video.platform_video_id)
            result.candidates.append(video)
        logger.info(f"[discovery] {account.platform} @{account.username}: seed returned {len(result.candidates)} videos")
        return result

    async def _probe(self, account: TrackedAccount) -> DiscoveryResult:
        username = self._adapter.account_ref(account)
        result = DiscoveryResult(stop_reason=StopReason.sizes_exhausted)
        seen: set[str] = set()
        inspected = 0

        for size in self._probe_sizes:
            try:
                records = await self._adapter.fetch(username, size, skip=inspected)
            except PlatformFetchError as exc:
                logger.warning(f"[discovery] {account.platform} @{account.username}: probe {size} failed: {exc}")
                result.stop_reason = StopReason.fetch_error
                result.error = str(exc)
                break
            result.fetch_calls += 1
            self._read_flags(result, records)

            for record in records:
                video_id = self._adapter.extract_id(record)
                if not video_id or video_id in seen:
                    continue
                seen.add(video_id)
                if await self._oracle.exists(account.organization_id, account.project_id, video_id):
                    result.stop_reason = StopReason.duplicate_found
                    break
                video = self._adapter.normalize(record)
                if video is not None:
                    result.candidates.append(video)
            if result.stop_reason == StopReason.duplicate_found:
                break

            if len(records) < size - inspected:
                result.stop_reason = StopReason.end_of_content
                break
            inspected = size

        logger.info(
            f"[discovery] {account.platform} @{account.username}: {len(result.candidates)} new, "
            f"stop={result.stop_reason.value}, fetches={result.fetch_calls}"
        )
        return result
