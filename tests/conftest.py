from __future__ import annotations

import asyncio
from typing import Any, Sequence

import httpx
import pytest

from viewtrack.db import Base, create_engine, create_session_factory
from viewtrack.errors import PlatformFetchError
from viewtrack.integrations.object_storage import StorageProvider
from viewtrack.models import (
    CreatorType,
    DeletedVideo,
    Organization,
    Platform,
    Project,
    TrackedAccount,
    UsageCounter,
    Video,
)
from viewtrack.services.platforms.base import PlatformAdapter
from viewtrack.services.thumbnails import ThumbnailPipeline
from viewtrack.services.tracking_store import TrackingStore
from viewtrack.services.video_records import FetchedVideo, VideoMetrics
from viewtrack.services.video_writer import VideoWriter

PUBLIC_BASE = "https://media.viewtrack.test"
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 300


def run(coro):
    return asyncio.run(coro)


class MemoryStorage(StorageProvider):
    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}

    @property
    def public_base_url(self) -> str:
        return PUBLIC_BASE

    def public_url(self, object_key: str) -> str:
        return f"{PUBLIC_BASE}/{object_key}"

    def upload_bytes(self, object_key: str, data: bytes, content_type: str) -> str:
        self.objects[object_key] = (data, content_type)
        return self.public_url(object_key)


def image_transport(content: bytes = JPEG_BYTES, content_type: str = "image/jpeg", status: int = 200):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, content=content, headers={"content-type": content_type})

    transport = httpx.MockTransport(handler)
    transport.seen = seen
    return transport


def make_pipeline(storage: MemoryStorage | None = None, transport: httpx.MockTransport | None = None, **kwargs):
    storage = storage or MemoryStorage()
    http = httpx.AsyncClient(transport=transport or image_transport())
    return ThumbnailPipeline(http, storage, **kwargs), storage


def record(video_id: str, views: int = 100, thumbnail: str | None = None, **extra: Any) -> dict:
    return {"id": video_id, "views": views, "thumbnail": thumbnail, **extra}


class FakeAdapter(PlatformAdapter):
    """Newest-first in-memory provider; fetch/fetch_bulk calls are recorded."""

    platform = Platform.tiktok

    def __init__(
        self,
        records: Sequence[dict] = (),
        *,
        bulk: Sequence[dict] | None = None,
        fail_at: set[int] | None = None,
        bulk_error: Exception | None = None,
    ):
        self.records = list(records)
        self.bulk = bulk
        self.fail_at = fail_at or set()
        self.bulk_error = bulk_error
        self.fetch_calls: list[tuple[str, int, int]] = []
        self.bulk_calls: list[list[str]] = []

    async def fetch(self, username: str, max_items: int, skip: int = 0) -> list[dict]:
        self.fetch_calls.append((username, max_items, skip))
        if max_items in self.fail_at:
            raise PlatformFetchError(self.platform.value, f"probe {max_items} failed")
        return self.records[skip:max_items]

    async def fetch_bulk(self, username: str, videos) -> list[dict]:
        self.bulk_calls.append([v.platform_video_id for v in videos])
        if self.bulk_error is not None:
            raise self.bulk_error
        if self.bulk is not None:
            return list(self.bulk)
        wanted = {v.platform_video_id for v in videos}
        return [r for r in self.records if r["id"] in wanted]

    def extract_id(self, record: dict) -> str | None:
        return record.get("id")

    def extract_verified(self, record: dict) -> bool | None:
        return record.get("verified")

    def normalize(self, record: dict) -> FetchedVideo | None:
        if not record.get("id"):
            return None
        return FetchedVideo(
            platform_video_id=record["id"],
            url=f"https://www.tiktok.com/@creator/video/{record['id']}",
            thumbnail_source=record.get("thumbnail"),
            caption=record.get("caption"),
            metrics=VideoMetrics(views=record.get("views", 0), likes=record.get("likes", 0)),
        )


class StoreHarness:
    """A TrackingStore over a throwaway SQLite file plus seeding helpers."""

    def __init__(self, url: str):
        self.engine = create_engine(url)
        self.session_factory = create_session_factory(self.engine)
        self.store = TrackingStore(self.session_factory, default_video_limit=100)

    async def create_all(self) -> "StoreHarness":
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        return self

    async def add(self, *rows):
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows

    async def org_project(self, *, name: str = "Acme", owner_email: str | None = None, limit: int | None = None):
        org = Organization(name=name, owner_email=owner_email)
        await self.add(org)
        project = Project(organization_id=org.id, name="Main")
        await self.add(project)
        if limit is not None:
            await self.add(UsageCounter(organization_id=org.id, tracked_videos=0, video_limit=limit))
        return org, project

    async def account(
        self,
        org: Organization,
        project: Project,
        *,
        username: str = "creator",
        platform: Platform = Platform.tiktok,
        creator_type: CreatorType = CreatorType.automatic,
        is_active: bool = True,
    ) -> TrackedAccount:
        account = TrackedAccount(
            organization_id=org.id,
            project_id=project.id,
            platform=platform.value,
            username=username,
            creator_type=creator_type.value,
            is_active=is_active,
        )
        await self.add(account)
        return account

    async def videos(self, account: TrackedAccount, ids: Sequence[str], *, views: int = 10, thumbnail: str = ""):
        rows = [
            Video(
                organization_id=account.organization_id,
                project_id=account.project_id,
                tracked_account_id=account.id,
                platform=account.platform,
                platform_video_id=video_id,
                url=f"https://www.tiktok.com/@{account.username}/video/{video_id}",
                thumbnail=thumbnail,
                views=views,
            )
            for video_id in ids
        ]
        await self.add(*rows)
        return rows

    async def blacklist(self, org: Organization, project: Project, video_id: str):
        await self.add(DeletedVideo(organization_id=org.id, project_id=project.id, platform_video_id=video_id))

    async def close(self):
        await self.engine.dispose()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'viewtrack.db'}"


async def open_harness(db_url: str) -> StoreHarness:
    return await StoreHarness(db_url).create_all()


def make_writer(harness: StoreHarness, **pipeline_kwargs) -> tuple[VideoWriter, MemoryStorage]:
    pipeline, storage = make_pipeline(**pipeline_kwargs)
    return VideoWriter(harness.store, pipeline), storage
