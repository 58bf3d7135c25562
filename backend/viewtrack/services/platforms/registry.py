from __future__ import annotations

from typing import Mapping

from viewtrack.errors import PlatformFetchError
from viewtrack.integrations.apify_client import ApifyClient
from viewtrack.integrations.youtube_api import YouTubeApiClient
from viewtrack.models import Platform
from viewtrack.services.platforms.base import PlatformAdapter
from viewtrack.services.platforms.instagram import InstagramAdapter
from viewtrack.services.platforms.tiktok import TikTokAdapter
from viewtrack.services.platforms.twitter import TwitterAdapter
from viewtrack.services.platforms.youtube import YouTubeAdapter


def build_adapters(apify: ApifyClient, youtube: YouTubeApiClient) -> dict[Platform, PlatformAdapter]:
    return {
        Platform.instagram: InstagramAdapter(apify),
        Platform.tiktok: TikTokAdapter(apify),
        Platform.twitter: TwitterAdapter(apify),
        Platform.youtube: YouTubeAdapter(youtube),
    }


def select_adapter(adapters: Mapping[Platform, PlatformAdapter], platform: str) -> PlatformAdapter:
    try:
        return adapters[Platform(platform)]
    except (KeyError, ValueError) as exc:
        raise PlatformFetchError(str(platform), "unsupported platform") from exc
