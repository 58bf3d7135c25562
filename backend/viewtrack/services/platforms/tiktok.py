from __future__ import annotations

from typing import Any, Sequence

from viewtrack.models import Platform, Video
from viewtrack.services.platforms.base import RESIDENTIAL_PROXY, ApifyPlatformAdapter
from viewtrack.services.video_records import (
    FetchedVideo,
    RawRecord,
    VideoMetrics,
    first_of,
    parse_dt,
    parse_unix,
)

ACTOR_TIKTOK = "clockworks/tiktok-scraper"


def build_profile_url(username: str) -> str:
    value = username.strip()
    if "tiktok.com" in value:
        if "@" in value:
            return value
        value = value.rstrip("/").split("/")[-1]
    return f"https://www.tiktok.com/@{value.lstrip('@')}"


class TikTokAdapter(ApifyPlatformAdapter):
    platform = Platform.tiktok
    actor_id = ACTOR_TIKTOK

    def build_profile_input(self, username: str, max_items: int) -> dict[str, Any]:
        return {
            "profiles": [build_profile_url(username)],
            "profileSorting": "latest",
            "resultsPerPage": max_items,
            "maxItems": max_items,
            "proxyConfiguration": RESIDENTIAL_PROXY,
        }

    def build_bulk_input(self, username: str, videos: Sequence[Video]) -> dict[str, Any] | None:
        handle = username.lstrip("@")
        urls = [v.url or f"https://www.tiktok.com/@{handle}/video/{v.platform_video_id}" for v in videos]
        return {
            "postURLs": urls,
            "resultsPerPage": len(urls),
            "proxyConfiguration": RESIDENTIAL_PROXY,
        }

    def extract_id(self, record: RawRecord) -> str | None:
        value = first_of(record.get("id"), record.get("post_id"))
        return str(value) if value is not None else None

    def extract_verified(self, record: RawRecord) -> bool | None:
        author = record.get("authorMeta") or record.get("channel") or {}
        verified = author.get("verified")
        return bool(verified) if verified is not None else None

    def normalize(self, record: RawRecord) -> FetchedVideo | None:
        video_id = self.extract_id(record)
        if not video_id:
            return None
        video_meta = record.get("videoMeta") or record.get("video") or {}
        author = record.get("authorMeta") or {}
        url = first_of(record.get("webVideoUrl"), record.get("tiktok_url"), video_meta.get("url"))
        if not url and author.get("name"):
            url = f"https://www.tiktok.com/@{author['name']}/video/{video_id}"
        return FetchedVideo(
            platform_video_id=video_id,
            url=url,
            thumbnail_source=first_of(
                video_meta.get("coverUrl"),
                video_meta.get("originalCoverUrl"),
                video_meta.get("cover"),
                video_meta.get("thumbnail"),
                record.get("coverUrl"),
            ),
            caption=first_of(record.get("text"), record.get("desc"), record.get("title")),
            upload_date=parse_dt(record.get("createTimeISO")) or parse_unix(
                first_of(record.get("createTime"), record.get("uploadedAt"))
            ),
            metrics=VideoMetrics.from_values(
                views=first_of(record.get("playCount"), record.get("views")),
                likes=first_of(record.get("diggCount"), record.get("likes")),
                comments=first_of(record.get("commentCount"), record.get("comments")),
                shares=first_of(record.get("shareCount"), record.get("shares")),
                saves=first_of(record.get("collectCount"), record.get("bookmarks")),
            ),
        )
