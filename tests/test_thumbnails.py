from __future__ import annotations

import pytest

from conftest import PUBLIC_BASE, image_transport, make_pipeline, run
from viewtrack.errors import ThumbnailDownloadError
from viewtrack.services.thumbnails import is_heic, referer_for

HEIC_BYTES = b"\x00\x00\x00\x18ftypheic" + b"\x00" * 200
FAKE_JPEG = b"\xff\xd8\xff\xdb" + b"\x11" * 200


def _fake_transcoder(calls):
    def transcode(data: bytes) -> bytes:
        calls.append(data)
        return FAKE_JPEG

    return transcode


def test_heic_signature_wins_over_declared_jpeg():
    calls = []
    transport = image_transport(content=HEIC_BYTES, content_type="image/jpeg")
    pipeline, storage = make_pipeline(transport=transport, transcoder=_fake_transcoder(calls))

    url = run(pipeline.normalize("https://scontent.cdninstagram.com/v/reel.jpg", 7, "instagram_ABC"))

    key = "organizations/7/thumbnails/instagram_ABC.jpg"
    assert calls == [HEIC_BYTES]
    assert storage.objects[key] == (FAKE_JPEG, "image/jpeg")
    assert url == f"{PUBLIC_BASE}/{key}"


def test_instagram_download_sends_referer():
    transport = image_transport()
    pipeline, _ = make_pipeline(transport=transport)

    run(pipeline.normalize("https://scontent.cdninstagram.com/v/x.jpg", 1, "instagram_X"))

    assert transport.seen[0].headers["referer"] == "https://www.instagram.com/"
    assert "Mozilla" in transport.seen[0].headers["user-agent"]


def test_transcode_failure_uploads_original_bytes():
    def broken(data: bytes) -> bytes:
        raise OSError("cannot identify image file")

    transport = image_transport(content=HEIC_BYTES, content_type="image/heic")
    pipeline, storage = make_pipeline(transport=transport, transcoder=broken)

    url = run(pipeline.normalize("https://p16.tiktokcdn.com/a.heic", 3, "tiktok_1"))

    assert storage.objects["organizations/3/thumbnails/tiktok_1"] == (HEIC_BYTES, "image/heic")
    assert url.endswith("/tiktok_1")


@pytest.mark.parametrize(
    "transport",
    [image_transport(content=b"tiny"), image_transport(status=404)],
    ids=["too-small", "not-found"],
)
def test_bad_downloads_raise(transport):
    pipeline, storage = make_pipeline(transport=transport)

    with pytest.raises(ThumbnailDownloadError):
        run(pipeline.normalize("https://p16.tiktokcdn.com/a.jpeg", 1, "tiktok_1"))
    assert storage.objects == {}


def test_is_heic_falls_back_to_content_type():
    assert is_heic("image/heif", b"\xff\xd8")
    assert not is_heic("image/jpeg", FAKE_JPEG)


def test_referer_only_for_hotlink_protected_hosts():
    assert referer_for("https://p16-sign.tiktokcdn-us.com/x") == "https://www.tiktok.com/"
    assert referer_for("https://i.ytimg.com/vi/x/hq.jpg") is None


def test_durable_thumbnails_are_never_replaced():
    pipeline, _ = make_pipeline()
    durable = f"{PUBLIC_BASE}/organizations/1/thumbnails/a.jpg"
    legacy = "https://firebasestorage.googleapis.com/v0/b/app/o/a.jpg"

    assert not pipeline.should_replace(durable, f"{PUBLIC_BASE}/other.jpg")
    assert not pipeline.should_replace(legacy, f"{PUBLIC_BASE}/other.jpg")
    assert not pipeline.needs_normalization(durable)


def test_placeholder_and_cdn_thumbnails_are_upgraded():
    pipeline, _ = make_pipeline()
    rehosted = f"{PUBLIC_BASE}/organizations/1/thumbnails/a.jpg"

    assert pipeline.should_replace("", rehosted)
    assert pipeline.should_replace("https://example.com/placeholder.png", rehosted)
    assert pipeline.should_replace("https://scontent.cdninstagram.com/v/a.jpg", rehosted)
    assert not pipeline.should_replace("https://scontent.cdninstagram.com/v/a.jpg", None)
    assert pipeline.needs_normalization("https://p16.tiktokcdn.com/a.jpeg")
