from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Sequence

from viewtrack.errors import PlatformFetchError
from viewtrack.integrations.apify_client import ApifyClient
from viewtrack.models import Platform, TrackedAccount, Video
from viewtrack.services.video_records import FetchedVideo, RawRecord

logger = logging.getLogger(__name__)

RESIDENTIAL_PROXY = {"useApifyProxy": True, "apifyProxyGroups": ["RESIDENTIAL"]}

_ERROR_KEYS = ("error", "errorDescription", "errorMessage")
_NO_RESULT_KEYS = ("noResults", "no_results", "noResult")


def is_sentinel(record: Any) -> bool:
    if not isinstance(record, dict):
        return False
    if any(record.get(key) for key in _ERROR_KEYS):
        return True
    return any(record.get(key) is True for key in _NO_RESULT_KEYS)


class PlatformAdapter(ABC):
    """Uniform fetch/extract contract over one content platform.

    ``fetch`` returns newest-first raw records. A provider answer made of a
    single error or no-results record raises PlatformFetchError; an empty
    list is a legitimate end of content.
    """

    platform: Platform

    def account_ref(self, account: TrackedAccount) -> str:
        return account.username

    @abstractmethod
    async def fetch(self, username: str, max_items: int, skip: int = 0) -> list[RawRecord]:
        pass

    @abstractmethod
    async def fetch_bulk(self, username: str, videos: Sequence[Video]) -> list[RawRecord]:
        pass

    @abstractmethod
    def extract_id(self, record: RawRecord) -> str | None:
        pass

    def extract_verified(self, record: RawRecord) -> bool | None:
        return None

    def extract_blue_verified(self, record: RawRecord) -> bool | None:
        return None

    @abstractmethod
    def normalize(self, record: RawRecord) -> FetchedVideo | None:
        pass

    def _raise_on_sentinel(self, items: list[RawRecord], username: str) -> None:
        if len(items) == 1 and is_sentinel(items[0]):
            record = items[0]
            message = next((str(record[key]) for key in _ERROR_KEYS if record.get(key)), "no results")
            raise PlatformFetchError(
                self.platform.value,
                f"provider returned a sentinel record for {username}: {message}",
                detail={"record": {k: record[k] for k in list(record)[:10]}},
            )


class ApifyPlatformAdapter(PlatformAdapter):
    """Adapter driven through an Apify actor."""

    actor_id: str

    def __init__(self, apify: ApifyClient):
        self._apify = apify

    @abstractmethod
    def build_profile_input(self, username: str, max_items: int) -> dict[str, Any]:
        pass

    @abstractmethod
    def build_bulk_input(self, username: str, videos: Sequence[Video]) -> dict[str, Any] | None:
        pass

    async def _run(self, payload: dict[str, Any]) -> list[RawRecord]:
        items = await self._apify.run_actor_get_items(self.actor_id, payload, platform=self.platform.value)
        return [item for item in items if isinstance(item, dict)]

    async def fetch(self, username: str, max_items: int, skip: int = 0) -> list[RawRecord]:
        items = await self._run(self.build_profile_input(username, max_items))
        self._raise_on_sentinel(items, username)
        return items[skip:max_items]

    async def fetch_bulk(self, username: str, videos: Sequence[Video]) -> list[RawRecord]:
        if not videos:
            return []
        payload = self.build_bulk_input(username, videos)
        if payload is None:
            return []
        items = await self._run(payload)
        # per-item errors (deleted or private posts) are dropped, not fatal
        kept = [item for item in items if not is_sentinel(item)]
        if len(kept) != len(items):
            logger.info(
                f"[refresh] {self.platform.value} @{username}: dropped {len(items) - len(kept)} error records"
            )
        return kept
