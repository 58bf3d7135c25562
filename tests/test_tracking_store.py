from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import open_harness, run
from viewtrack.errors import BatchCommitError
from viewtrack.models import CaptureSource
from viewtrack.services.video_records import FetchedVideo, NewVideoWrite, VideoMetrics


def _insert(account, video_id, views=1):
    return NewVideoWrite(
        organization_id=account.organization_id,
        project_id=account.project_id,
        tracked_account_id=account.id,
        platform=account.platform,
        video=FetchedVideo(platform_video_id=video_id, metrics=VideoMetrics(views=views)),
        thumbnail="",
        capture=CaptureSource.scheduled_refresh_initial,
        captured_at=datetime.now(timezone.utc),
    )


def test_usage_defaults_then_counter_row_is_created(db_url):
    async def scenario():
        h = await open_harness(db_url)
        org, _ = await h.org_project()
        before = await h.store.get_usage(org.id)
        await h.store.increment_usage(org.id, 3)
        await h.store.increment_usage(org.id, 2)
        after = await h.store.get_usage(org.id)
        await h.close()
        return before, after

    before, after = run(scenario())

    assert (before.current, before.limit, before.remaining) == (0, 100, 100)
    assert (after.current, after.limit) == (5, 100)


def test_chunk_commit_is_all_or_nothing(db_url):
    async def scenario():
        h = await open_harness(db_url)
        org, project = await h.org_project()
        account = await h.account(org, project)
        await h.videos(account, ["dup"])
        with pytest.raises(BatchCommitError) as exc_info:
            await h.store.commit_writes([_insert(account, "ok"), _insert(account, "dup")], chunk_index=4)
        leaked = await h.store.video_exists(org.id, project.id, "ok")
        await h.close()
        return exc_info.value, leaked

    error, leaked = run(scenario())

    assert error.chunk_index == 4
    assert error.size == 2
    assert leaked is False


def test_stamp_keeps_unknown_verification(db_url):
    async def scenario():
        h = await open_harness(db_url)
        org, project = await h.org_project()
        account = await h.account(org, project)
        synced_at = datetime(2024, 1, 2, tzinfo=timezone.utc)
        await h.store.stamp_account(account.id, synced_at, is_verified=True)
        await h.store.stamp_account(account.id, synced_at, is_verified=None, is_blue_verified=False)
        (stamped,) = await h.store.list_active_accounts(org.id, project.id)
        await h.close()
        return stamped

    stamped = run(scenario())

    assert stamped.is_verified is True
    assert stamped.is_blue_verified is False
    assert stamped.last_synced is not None
