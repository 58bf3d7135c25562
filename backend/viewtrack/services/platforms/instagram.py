from __future__ import annotations

from typing import Any, Sequence

from viewtrack.models import Platform, Video
from viewtrack.services.platforms.base import ApifyPlatformAdapter
from viewtrack.services.video_records import (
    FetchedVideo,
    RawRecord,
    VideoMetrics,
    first_of,
    parse_dt,
    parse_unix,
)

ACTOR_INSTAGRAM_REELS = "hpix~ig-reels-scraper"
INSTAGRAM_PROXY = {
    "useApifyProxy": True,
    "apifyProxyGroups": ["RESIDENTIAL"],
    "apifyProxyCountry": "US",
}


def reel_url(code: str) -> str:
    return f"https://www.instagram.com/reel/{code}/"


class InstagramAdapter(ApifyPlatformAdapter):
    platform = Platform.instagram
    actor_id = ACTOR_INSTAGRAM_REELS

    def build_profile_input(self, username: str, max_items: int) -> dict[str, Any]:
        handle = username.strip().lstrip("@")
        return {
            "tags": [f"https://www.instagram.com/{handle}/reels/"],
            "target": "reels_only",
            "reels_count": max_items,
            "include_raw_data": True,
            "custom_functions": "{ shouldSkip: (data) => false, shouldContinue: (data) => true }",
            "proxy": INSTAGRAM_PROXY,
        }

    def build_bulk_input(self, username: str, videos: Sequence[Video]) -> dict[str, Any] | None:
        urls = [v.url or reel_url(v.platform_video_id) for v in videos]
        return {
            "post_urls": urls,
            "target": "reels_only",
            "reels_count": len(urls),
            "include_raw_data": True,
            "proxy": INSTAGRAM_PROXY,
        }

    def extract_id(self, record: RawRecord) -> str | None:
        value = first_of(record.get("code"), record.get("shortCode"), record.get("id"))
        return str(value) if value is not None else None

    def extract_verified(self, record: RawRecord) -> bool | None:
        owner = (record.get("raw_data") or {}).get("owner") or record.get("owner") or {}
        verified = first_of(owner.get("is_verified"), record.get("ownerIsVerified"))
        return bool(verified) if verified is not None else None

    def normalize(self, record: RawRecord) -> FetchedVideo | None:
        code = self.extract_id(record)
        if not code:
            return None
        caption = record.get("caption")
        if isinstance(caption, dict):
            caption = caption.get("text")
        return FetchedVideo(
            platform_video_id=code,
            url=first_of(record.get("url"), record.get("permalink")) or reel_url(code),
            thumbnail_source=first_of(
                record.get("thumbnail_url"),
                record.get("displayUrl"),
                record.get("display_url"),
                record.get("thumbnailUrl"),
            ),
            caption=caption,
            upload_date=parse_unix(record.get("taken_at")) or parse_dt(record.get("timestamp")),
            metrics=VideoMetrics.from_values(
                views=first_of(record.get("play_count"), record.get("view_count"), record.get("videoViewCount")),
                likes=first_of(record.get("like_count"), record.get("likesCount")),
                comments=first_of(record.get("comment_count"), record.get("commentsCount")),
                shares=first_of(record.get("reshare_count"), record.get("share_count")),
                saves=record.get("save_count"),
            ),
        )
