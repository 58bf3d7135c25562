from __future__ import annotations

import logging
from typing import Sequence

from viewtrack.errors import PlatformFetchError
from viewtrack.integrations.youtube_api import MAX_IDS_PER_REQUEST, YouTubeApiClient, parse_youtube_channel_ref
from viewtrack.models import Platform, TrackedAccount, Video
from viewtrack.services.platforms.base import PlatformAdapter
from viewtrack.services.video_records import FetchedVideo, RawRecord, VideoMetrics, parse_dt

logger = logging.getLogger(__name__)


def chunked(values: Sequence[str], size: int) -> list[list[str]]:
    return [list(values[i : i + size]) for i in range(0, len(values), size)]


class YouTubeAdapter(PlatformAdapter):
    """Channel id -> uploads playlist -> video details in batches of 50."""

    platform = Platform.youtube

    def __init__(self, api: YouTubeApiClient):
        self._api = api
        self._channel_ids: dict[str, str] = {}
        self._uploads: dict[str, str] = {}

    def account_ref(self, account: TrackedAccount) -> str:
        return account.youtube_channel_id or account.username

    async def resolve_channel_id(self, username: str) -> str:
        if username not in self._channel_ids:
            try:
                ref = parse_youtube_channel_ref(username)
            except ValueError as exc:
                raise PlatformFetchError(self.platform.value, str(exc)) from exc
            self._channel_ids[username] = await self._api.resolve_channel_id(ref)
        return self._channel_ids[username]

    async def _uploads_playlist(self, channel_id: str) -> str:
        if channel_id not in self._uploads:
            self._uploads[channel_id] = await self._api.fetch_uploads_playlist_id(channel_id)
        return self._uploads[channel_id]

    async def fetch(self, username: str, max_items: int, skip: int = 0) -> list[RawRecord]:
        channel_id = await self.resolve_channel_id(username)
        playlist_id = await self._uploads_playlist(channel_id)

        video_ids: list[str] = []
        page_token: str | None = None
        while len(video_ids) < max_items:
            page = await self._api.fetch_playlist_videos(
                playlist_id, page_token, page_size=min(MAX_IDS_PER_REQUEST, max_items - len(video_ids))
            )
            video_ids.extend(page["video_ids"])
            page_token = page["next_page_token"]
            if not page_token or not page["video_ids"]:
                break

        records: list[RawRecord] = []
        for batch in chunked(video_ids[skip:max_items], MAX_IDS_PER_REQUEST):
            records.extend(await self._api.fetch_videos_details(batch))
        return records

    async def fetch_bulk(self, username: str, videos: Sequence[Video]) -> list[RawRecord]:
        ids = [v.platform_video_id for v in videos]
        records: list[RawRecord] = []
        for index, batch in enumerate(chunked(ids, MAX_IDS_PER_REQUEST)):
            try:
                records.extend(await self._api.fetch_videos_details(batch))
            except PlatformFetchError as exc:
                logger.warning(f"[refresh] youtube @{username}: chunk {index} ({len(batch)} ids) skipped: {exc}")

        channel_id = self._channel_ids.get(username)
        if channel_id:
            foreign = [r for r in records if r.get("channel_id") and r["channel_id"] != channel_id]
            if foreign:
                logger.warning(
                    f"[refresh] youtube @{username}: ignoring {len(foreign)} videos from other channels"
                )
                records = [r for r in records if r not in foreign]
        return records

    def extract_id(self, record: RawRecord) -> str | None:
        return record.get("video_id") or None

    def normalize(self, record: RawRecord) -> FetchedVideo | None:
        video_id = self.extract_id(record)
        if not video_id:
            return None
        return FetchedVideo(
            platform_video_id=video_id,
            url=f"https://www.youtube.com/shorts/{video_id}",
            thumbnail_source=record.get("thumbnail_url"),
            caption=record.get("title") or record.get("description"),
            upload_date=parse_dt(record.get("published_at")),
            metrics=VideoMetrics.from_values(
                views=record.get("views"),
                likes=record.get("likes"),
                comments=record.get("comments"),
                shares=0,
                saves=record.get("favorites"),
            ),
        )
