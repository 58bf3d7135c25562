"""
Composition root: every long-lived client is built here once and injected.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine

from viewtrack.db import create_engine, create_session_factory
from viewtrack.integrations.apify_client import ApifyClient
from viewtrack.integrations.object_storage import S3StorageProvider, StorageProvider
from viewtrack.integrations.resend_email import ResendEmailSender
from viewtrack.integrations.youtube_api import YouTubeApiClient
from viewtrack.services.account_lease import AccountLease, RedisAccountLease
from viewtrack.services.account_refresh import AccountRefresher
from viewtrack.services.notify import RefreshNotifier
from viewtrack.services.orchestrator import RefreshOrchestrator
from viewtrack.services.platforms.registry import build_adapters
from viewtrack.services.thumbnails import ThumbnailPipeline
from viewtrack.services.tracking_store import TrackingStore
from viewtrack.services.video_writer import VideoWriter
from viewtrack.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    engine: AsyncEngine
    http: httpx.AsyncClient
    store: TrackingStore
    orchestrator: RefreshOrchestrator
    redis: aioredis.Redis | None = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        storage: StorageProvider | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> "ServiceContainer":
        if storage is None:
            storage = S3StorageProvider(
                bucket_name=settings.storage_bucket,
                access_key_id=settings.storage_access_key_id,
                secret_access_key=settings.storage_secret_access_key,
                public_url=settings.storage_public_url,
                endpoint_url=settings.storage_endpoint_url,
                region=settings.storage_region,
            )
        http = http or httpx.AsyncClient(timeout=settings.http_timeout_sec)
        engine = create_engine(settings.async_database_url)
        store = TrackingStore(create_session_factory(engine), default_video_limit=settings.default_video_limit)

        adapters = build_adapters(
            ApifyClient(http, settings.apify_token, timeout_s=settings.apify_timeout_sec),
            YouTubeApiClient(http, settings.youtube_api_key),
        )
        writer = VideoWriter(store, ThumbnailPipeline(http, storage))

        redis_client: aioredis.Redis | None = None
        lease = AccountLease()
        if settings.account_lease_enabled:
            redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
            lease = RedisAccountLease(redis_client, ttl_sec=settings.account_lease_ttl_sec)

        notifier = RefreshNotifier(
            http,
            ResendEmailSender(http, settings.resend_api_key, settings.notification_from_email),
            dashboard_url=settings.dashboard_url,
            telegram_bot_token=settings.telegram_bot_token,
            telegram_chat_id=settings.telegram_chat_id,
        )
        orchestrator = RefreshOrchestrator(
            store,
            AccountRefresher(store, adapters, writer),
            notifier=notifier,
            lease=lease,
            batch_size=settings.account_batch_size,
        )
        logger.info(
            "Service container built (lease=%s, batch_size=%d)",
            "redis" if redis_client else "off",
            settings.account_batch_size,
        )
        return cls(
            settings=settings,
            engine=engine,
            http=http,
            store=store,
            orchestrator=orchestrator,
            redis=redis_client,
        )

    async def aclose(self) -> None:
        await self.http.aclose()
        if self.redis is not None:
            await self.redis.aclose()
        await self.engine.dispose()
