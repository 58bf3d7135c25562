from __future__ import annotations

from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Sequence

from viewtrack.models import Platform, Video
from viewtrack.services.platforms.base import ApifyPlatformAdapter
from viewtrack.services.video_records import FetchedVideo, RawRecord, VideoMetrics, first_of, parse_dt

ACTOR_TWEETS = "apidojo~tweet-scraper"


def _parse_created_at(value: Any) -> datetime | None:
    """Twitter uses RFC 2822 dates ("Wed Oct 10 20:19:24 +0000 2018"); ISO also accepted."""
    if not value or not isinstance(value, str):
        return None
    parsed = parse_dt(value)
    if parsed is not None:
        return parsed
    try:
        return datetime.strptime(value, "%a %b %d %H:%M:%S %z %Y")
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def _first_media(record: RawRecord) -> dict:
    entities = record.get("extendedEntities") or record.get("entities") or {}
    media = entities.get("media") or record.get("media") or []
    return media[0] if media and isinstance(media[0], dict) else {}


class TwitterAdapter(ApifyPlatformAdapter):
    platform = Platform.twitter
    actor_id = ACTOR_TWEETS

    def build_profile_input(self, username: str, max_items: int) -> dict[str, Any]:
        handle = username.strip().lstrip("@")
        return {
            "searchTerms": [f"from:{handle} -filter:replies -filter:nativeretweets"],
            "maxItems": max_items,
            "sort": "Latest",
        }

    def build_bulk_input(self, username: str, videos: Sequence[Video]) -> dict[str, Any] | None:
        ids = [v.platform_video_id for v in videos]
        return {"tweetIDs": ids, "maxItems": len(ids)}

    def extract_id(self, record: RawRecord) -> str | None:
        value = first_of(record.get("id"), record.get("id_str"))
        return str(value) if value is not None else None

    def _author(self, record: RawRecord) -> dict:
        return record.get("author") or record.get("user") or {}

    def extract_verified(self, record: RawRecord) -> bool | None:
        verified = first_of(self._author(record).get("isVerified"), record.get("isVerified"))
        return bool(verified) if verified is not None else None

    def extract_blue_verified(self, record: RawRecord) -> bool | None:
        verified = first_of(self._author(record).get("isBlueVerified"), record.get("isBlueVerified"))
        return bool(verified) if verified is not None else None

    def normalize(self, record: RawRecord) -> FetchedVideo | None:
        tweet_id = self.extract_id(record)
        if not tweet_id:
            return None
        media = _first_media(record)
        handle = self._author(record).get("userName")
        url = first_of(record.get("url"), record.get("twitterUrl"))
        if not url and handle:
            url = f"https://x.com/{handle}/status/{tweet_id}"
        return FetchedVideo(
            platform_video_id=tweet_id,
            url=url,
            thumbnail_source=first_of(media.get("media_url_https"), media.get("thumbnail_url")),
            caption=first_of(record.get("text"), record.get("fullText")),
            upload_date=_parse_created_at(record.get("createdAt")),
            metrics=VideoMetrics.from_values(
                views=record.get("viewCount"),
                likes=record.get("likeCount"),
                comments=record.get("replyCount"),
                shares=record.get("retweetCount"),
                saves=record.get("bookmarkCount"),
            ),
        )
