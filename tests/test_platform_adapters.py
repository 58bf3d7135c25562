from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from conftest import run
from viewtrack.errors import ConfigurationError, PlatformFetchError
from viewtrack.integrations import apify_client
from viewtrack.integrations.apify_client import ApifyClient, _normalize_actor_id
from viewtrack.integrations.youtube_api import YouTubeApiClient, parse_youtube_channel_ref
from viewtrack.models import Video
from viewtrack.services.platforms.instagram import InstagramAdapter
from viewtrack.services.platforms.registry import build_adapters, select_adapter
from viewtrack.services.platforms.tiktok import TikTokAdapter
from viewtrack.services.platforms.twitter import TwitterAdapter
from viewtrack.services.platforms.youtube import YouTubeAdapter


def _apify(items, seen=None, status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=items)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ApifyClient(http, "apify-token", retry_delay_s=0)


def _tiktok_item(video_id, plays=100, verified=None):
    return {
        "id": video_id,
        "webVideoUrl": f"https://www.tiktok.com/@creator/video/{video_id}",
        "text": f"caption {video_id}",
        "createTimeISO": "2024-05-01T10:00:00.000Z",
        "playCount": plays,
        "diggCount": 10,
        "commentCount": 2,
        "shareCount": 1,
        "collectCount": 3,
        "videoMeta": {"coverUrl": f"https://p16.tiktokcdn.com/{video_id}.jpeg"},
        "authorMeta": {"name": "creator", "verified": verified},
    }


def test_tiktok_fetch_sends_profile_input_and_slices():
    seen = []
    adapter = TikTokAdapter(_apify([_tiktok_item(str(i)) for i in range(10)], seen))

    records = run(adapter.fetch("@creator", 10, skip=5))

    assert [r["id"] for r in records] == ["5", "6", "7", "8", "9"]
    assert "clockworks~tiktok-scraper" in str(seen[0].url)
    payload = json.loads(seen[0].content)
    assert payload["profiles"] == ["https://www.tiktok.com/@creator"]
    assert payload["resultsPerPage"] == 10


def test_single_error_record_raises_but_empty_list_does_not():
    adapter = TikTokAdapter(_apify([{"error": "Profile not found"}]))
    with pytest.raises(PlatformFetchError, match="Profile not found"):
        run(adapter.fetch("ghost", 5))

    assert run(TikTokAdapter(_apify([])).fetch("quiet", 5)) == []


def test_bulk_drops_per_item_errors():
    adapter = TikTokAdapter(_apify([_tiktok_item("1"), {"error": "Post not found", "url": "x"}]))
    video = Video(platform_video_id="1", url="https://www.tiktok.com/@creator/video/1")

    records = run(adapter.fetch_bulk("creator", [video]))

    assert [r["id"] for r in records] == ["1"]


def test_http_error_raises_platform_fetch_error():
    adapter = TikTokAdapter(_apify({"message": "boom"}, status=502))
    with pytest.raises(PlatformFetchError):
        run(adapter.fetch("creator", 5))


def test_unreachable_apify_waits_only_between_attempts(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr(apify_client, "asyncio", SimpleNamespace(sleep=fake_sleep))

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = ApifyClient(http, "apify-token", attempts=3, retry_delay_s=2.5)

    with pytest.raises(PlatformFetchError, match="Apify request to clockworks~tiktok-scraper failed"):
        run(client.run_actor_get_items("clockworks/tiktok-scraper", {}, platform="tiktok"))
    assert delays == [2.5, 2.5]


def test_missing_apify_token_is_configuration_error():
    client = ApifyClient(httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))), None)
    with pytest.raises(ConfigurationError):
        run(client.run_actor_get_items("a/b", {}))


def test_tiktok_normalize_maps_metrics():
    fetched = TikTokAdapter(_apify([])).normalize(_tiktok_item("42", plays=1234, verified=True))

    assert fetched.platform_video_id == "42"
    assert fetched.metrics.views == 1234
    assert fetched.metrics.saves == 3
    assert fetched.thumbnail_source == "https://p16.tiktokcdn.com/42.jpeg"
    assert fetched.upload_date.year == 2024
    assert TikTokAdapter(_apify([])).extract_verified(_tiktok_item("42", verified=True)) is True


def test_instagram_normalize_uses_shortcode():
    record = {
        "code": "C3xYz",
        "caption": {"text": "hello"},
        "taken_at": 1714557600,
        "play_count": 900,
        "like_count": 80,
        "comment_count": 7,
        "thumbnail_url": "https://scontent.cdninstagram.com/v/c.jpg",
        "raw_data": {"owner": {"is_verified": True}},
    }
    adapter = InstagramAdapter(_apify([]))
    fetched = adapter.normalize(record)

    assert fetched.platform_video_id == "C3xYz"
    assert fetched.url == "https://www.instagram.com/reel/C3xYz/"
    assert fetched.caption == "hello"
    assert (fetched.metrics.views, fetched.metrics.likes, fetched.metrics.comments) == (900, 80, 7)
    assert adapter.extract_verified(record) is True


def test_twitter_reads_both_verification_flags():
    record = {
        "id": "1790000000000000000",
        "text": "clip",
        "createdAt": "Wed Oct 10 20:19:24 +0000 2018",
        "viewCount": 5000,
        "likeCount": 50,
        "replyCount": 5,
        "retweetCount": 4,
        "bookmarkCount": 3,
        "author": {"userName": "creator", "isVerified": False, "isBlueVerified": True},
    }
    adapter = TwitterAdapter(_apify([]))
    fetched = adapter.normalize(record)

    assert fetched.url == "https://x.com/creator/status/1790000000000000000"
    assert fetched.upload_date.year == 2018
    assert fetched.metrics.shares == 4
    assert adapter.extract_verified(record) is False
    assert adapter.extract_blue_verified(record) is True


def test_select_adapter_rejects_unknown_platform():
    adapters = build_adapters(_apify([]), YouTubeApiClient(httpx.AsyncClient(), "key"))

    assert isinstance(select_adapter(adapters, "instagram"), InstagramAdapter)
    with pytest.raises(PlatformFetchError):
        select_adapter(adapters, "myspace")


def _youtube_item(video_id, channel="UC" + "a" * 22):
    return {
        "id": video_id,
        "snippet": {
            "channelId": channel,
            "title": f"short {video_id}",
            "publishedAt": "2024-06-01T12:00:00Z",
            "thumbnails": {"high": {"url": f"https://i.ytimg.com/vi/{video_id}/hq.jpg"}},
        },
        "statistics": {"viewCount": "321", "likeCount": "12", "commentCount": "3", "favoriteCount": "0"},
    }


def _youtube_api(fail_batches=(), html_batches=()):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        path = request.url.path
        params = request.url.params
        if path.endswith("/channels") and params.get("forHandle"):
            return httpx.Response(200, json={"items": [{"id": "UC" + "a" * 22}]})
        if path.endswith("/channels"):
            return httpx.Response(
                200, json={"items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UUuploads"}}}]}
            )
        if path.endswith("/playlistItems"):
            ids = [f"y{i}" for i in range(int(params["maxResults"]))]
            return httpx.Response(200, json={"items": [{"contentDetails": {"videoId": i}} for i in ids]})
        if path.endswith("/videos"):
            ids = params["id"].split(",")
            if ids[0] in fail_batches:
                return httpx.Response(403, json={"error": {"message": "quotaExceeded"}})
            if ids[0] in html_batches:
                return httpx.Response(200, text="<html><body>Service Unavailable</body></html>")
            return httpx.Response(200, json={"items": [_youtube_item(i) for i in ids]})
        return httpx.Response(404)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return YouTubeApiClient(http, "yt-key"), calls


def test_youtube_fetch_resolves_handle_then_uploads():
    api, calls = _youtube_api()
    adapter = YouTubeAdapter(api)

    records = run(adapter.fetch("@channel", 5))

    assert [r["video_id"] for r in records] == ["y0", "y1", "y2", "y3", "y4"]
    fetched = adapter.normalize(records[0])
    assert fetched.url == "https://www.youtube.com/shorts/y0"
    assert fetched.metrics.views == 321
    assert fetched.thumbnail_source == "https://i.ytimg.com/vi/y0/hq.jpg"
    assert "duration_seconds" not in records[0]
    assert [c.url.path.rsplit("/", 1)[-1] for c in calls] == ["channels", "channels", "playlistItems", "videos"]


def test_youtube_bulk_skips_failed_chunk():
    api, _ = _youtube_api(fail_batches={"v50"})
    adapter = YouTubeAdapter(api)
    videos = [Video(platform_video_id=f"v{i}") for i in range(120)]

    records = run(adapter.fetch_bulk("@channel", videos))

    assert len(records) == 70
    assert records[0]["video_id"] == "v0"
    assert records[-1]["video_id"] == "v119"


def test_youtube_html_response_is_a_fetch_error():
    api, _ = _youtube_api(html_batches={"y0"})
    adapter = YouTubeAdapter(api)

    with pytest.raises(PlatformFetchError, match="invalid JSON"):
        run(adapter.fetch("@channel", 5))


def test_youtube_bulk_skips_chunk_with_html_body():
    api, _ = _youtube_api(html_batches={"v50"})
    adapter = YouTubeAdapter(api)
    videos = [Video(platform_video_id=f"v{i}") for i in range(120)]

    records = run(adapter.fetch_bulk("@channel", videos))

    assert len(records) == 70
    assert "v50" not in {r["video_id"] for r in records}


def test_youtube_channel_ref_parsing():
    channel_id = "UC" + "b" * 22
    assert parse_youtube_channel_ref("@Creator") == {"type": "handle", "value": "Creator"}
    assert parse_youtube_channel_ref(f"https://www.youtube.com/channel/{channel_id}") == {
        "type": "channel_id",
        "value": channel_id,
    }
    assert parse_youtube_channel_ref("https://youtube.com/@creator/shorts") == {"type": "handle", "value": "creator"}


def test_actor_id_uses_tilde_form():
    assert _normalize_actor_id("clockworks/tiktok-scraper") == "clockworks~tiktok-scraper"
    assert _normalize_actor_id("apidojo~tweet-scraper") == "apidojo~tweet-scraper"
