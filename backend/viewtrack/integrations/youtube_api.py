from __future__ import annotations

import re
from typing import Any

import httpx

from viewtrack.errors import ConfigurationError, PlatformFetchError

YT_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
YT_CHANNELS_URL = "https://www.googleapis.com/youtube/v3/channels"
YT_PLAYLIST_ITEMS_URL = "https://www.googleapis.com/youtube/v3/playlistItems"
YT_VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"

MAX_IDS_PER_REQUEST = 50
THUMBNAIL_PREFERENCE = ("maxres", "standard", "high", "medium", "default")

_CHANNEL_ID_RE = re.compile(r"^UC[\w-]{22}$")


def parse_youtube_channel_ref(ref: str) -> dict:
    value = ref.strip()
    if not value:
        raise ValueError("empty YouTube channel reference")
    if value.startswith("@"):
        return {"type": "handle", "value": value.lstrip("@")}
    if "youtube.com/channel/" in value:
        channel_id = value.split("/channel/")[-1].split("/")[0].split("?")[0]
        if channel_id:
            return {"type": "channel_id", "value": channel_id}
    if "youtube.com/@" in value:
        handle = value.split("youtube.com/@")[-1].split("/")[0].split("?")[0]
        if handle:
            return {"type": "handle", "value": handle}
    if _CHANNEL_ID_RE.match(value):
        return {"type": "channel_id", "value": value}
    return {"type": "handle", "value": value}


def _as_int(value: Any) -> int | None:
    return int(value) if value is not None else None


def best_thumbnail(thumbnails: dict | None) -> str | None:
    thumbnails = thumbnails or {}
    for size in THUMBNAIL_PREFERENCE:
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


class YouTubeApiClient:
    """Thin async wrapper over the YouTube Data API v3."""

    def __init__(self, http: httpx.AsyncClient, api_key: str | None, *, timeout_s: float = 15.0):
        self._http = http
        self._api_key = api_key
        self._timeout_s = timeout_s

    async def _get(self, url: str, params: dict[str, Any], what: str) -> dict[str, Any]:
        if not self._api_key:
            raise ConfigurationError("YOUTUBE_API_KEY missing")
        params = {**params, "key": self._api_key}
        try:
            try:
                resp = await self._http.get(url, params=params, timeout=self._timeout_s)
            except (httpx.TransportError, httpx.TimeoutException):
                # single retry
                resp = await self._http.get(url, params=params, timeout=self._timeout_s)
        except httpx.HTTPError as exc:
            raise PlatformFetchError("youtube", f"YouTube {what} request failed: {exc!r}") from exc

        if resp.status_code >= 400:
            raise PlatformFetchError(
                "youtube",
                f"YouTube {what} error: {resp.status_code}",
                detail={"status": resp.status_code, "body": resp.text[:400]},
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise PlatformFetchError("youtube", f"YouTube {what} returned invalid JSON") from exc
        if isinstance(data, dict) and data.get("error"):
            raise PlatformFetchError("youtube", f"YouTube {what} error payload", detail={"error": data["error"]})
        return data

    async def resolve_channel_id(self, ref: dict) -> str:
        if ref["type"] == "channel_id":
            return ref["value"]
        data = await self._get(
            YT_CHANNELS_URL, {"part": "id", "forHandle": f"@{ref['value']}"}, "channels"
        )
        items = data.get("items") or []
        if items and items[0].get("id"):
            return items[0]["id"]

        data = await self._get(
            YT_SEARCH_URL,
            {"part": "snippet", "type": "channel", "maxResults": 1, "q": ref["value"]},
            "search",
        )
        items = data.get("items") or []
        if not items:
            raise PlatformFetchError("youtube", f"channel not found for {ref['value']!r}")
        item = items[0]
        channel_id = item.get("snippet", {}).get("channelId") or item.get("id", {}).get("channelId")
        if not channel_id:
            raise PlatformFetchError("youtube", f"channel not found for {ref['value']!r}")
        return channel_id

    async def fetch_uploads_playlist_id(self, channel_id: str) -> str:
        data = await self._get(YT_CHANNELS_URL, {"part": "contentDetails", "id": channel_id}, "channels")
        items = data.get("items") or []
        if not items:
            raise PlatformFetchError("youtube", f"channel {channel_id} not found")
        content = items[0].get("contentDetails", {}) or {}
        uploads = content.get("relatedPlaylists", {}).get("uploads")
        if not uploads:
            raise PlatformFetchError("youtube", f"channel {channel_id} has no uploads playlist")
        return uploads

    async def fetch_playlist_videos(
        self, playlist_id: str, page_token: str | None = None, page_size: int = MAX_IDS_PER_REQUEST
    ) -> dict:
        params: dict[str, Any] = {
            "part": "contentDetails",
            "playlistId": playlist_id,
            "maxResults": page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        data = await self._get(YT_PLAYLIST_ITEMS_URL, params, "playlistItems")
        video_ids = [
            item["contentDetails"]["videoId"]
            for item in data.get("items", [])
            if (item.get("contentDetails") or {}).get("videoId")
        ]
        return {"video_ids": video_ids, "next_page_token": data.get("nextPageToken")}

    async def fetch_videos_details(self, video_ids: list[str]) -> list[dict[str, Any]]:
        """Fetch one batch of at most 50 videos; results keep the requested order."""
        if not video_ids:
            return []
        if len(video_ids) > MAX_IDS_PER_REQUEST:
            raise ValueError(f"at most {MAX_IDS_PER_REQUEST} ids per request")
        data = await self._get(
            YT_VIDEOS_URL,
            {"part": "snippet,statistics", "id": ",".join(video_ids)},
            "videos",
        )
        by_id: dict[str, dict[str, Any]] = {}
        for item in data.get("items", []):
            snippet = item.get("snippet", {}) or {}
            stats = item.get("statistics", {}) or {}
            by_id[item.get("id")] = {
                "video_id": item.get("id"),
                "channel_id": snippet.get("channelId"),
                "title": snippet.get("title") or "",
                "description": snippet.get("description"),
                "thumbnail_url": best_thumbnail(snippet.get("thumbnails")),
                "published_at": snippet.get("publishedAt"),
                "views": _as_int(stats.get("viewCount")),
                "likes": _as_int(stats.get("likeCount")),
                "comments": _as_int(stats.get("commentCount")),
                "favorites": _as_int(stats.get("favoriteCount")),
            }
        return [by_id[vid] for vid in video_ids if vid in by_id]
