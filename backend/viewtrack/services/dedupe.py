"""
DeduplicationOracle: "is this native video id already tracked in this project?"

Discovery uses the answer as its probe-and-stop signal. Every call hits the
store; nothing is cached between calls.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from viewtrack.services.tracking_store import TrackingStore


class DeduplicationOracle:
    def __init__(self, store: "TrackingStore"):
        self._store = store
        self.queries = 0

    async def exists(self, organization_id: int, project_id: int, platform_video_id: str) -> bool:
        self.queries += 1
        return await self._store.video_exists(organization_id, project_id, platform_video_id)
