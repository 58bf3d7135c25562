"""
Thumbnail normalization: download -> HEIC detection -> JPEG transcode -> upload.

Platform CDN URLs expire, so a failed download raises instead of falling back
to the remote URL. Only durable storage URLs are ever persisted.
"""
from __future__ import annotations

import asyncio
import io
import logging
from typing import Callable
from urllib.parse import urlparse

import httpx
import pillow_heif
from PIL import Image

from viewtrack.errors import ThumbnailDownloadError
from viewtrack.integrations.object_storage import StorageProvider

logger = logging.getLogger(__name__)

MIN_IMAGE_BYTES = 100
JPEG_QUALITY = 90

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
CDN_HOST_MARKERS = (
    "cdninstagram.com",
    "fbcdn.net",
    "tiktokcdn.com",
    "tiktokcdn-us.com",
    "twimg.com",
    "ytimg.com",
)
LEGACY_DURABLE_MARKERS = ("storage.googleapis.com", "firebasestorage.googleapis.com")
HEIC_BRANDS = {b"heic", b"heix", b"hevc", b"hevx"}

pillow_heif.register_heif_opener()


def referer_for(url: str) -> str | None:
    host = urlparse(url).netloc.lower()
    if "cdninstagram.com" in host or "fbcdn.net" in host:
        return "https://www.instagram.com/"
    if "tiktokcdn" in host:
        return "https://www.tiktok.com/"
    return None


def is_heic(content_type: str | None, data: bytes) -> bool:
    """Magic bytes win over the declared type, which providers mislabel."""
    if len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in HEIC_BRANDS:
        return True
    content_type = (content_type or "").lower()
    return "heic" in content_type or "heif" in content_type


def transcode_heic_to_jpeg(data: bytes) -> bytes:
    with Image.open(io.BytesIO(data)) as image:
        out = io.BytesIO()
        image.convert("RGB").save(out, format="JPEG", quality=JPEG_QUALITY)
        return out.getvalue()


def is_cdn_url(url: str | None) -> bool:
    return bool(url) and any(marker in url for marker in CDN_HOST_MARKERS)


def is_placeholder(url: str | None) -> bool:
    return bool(url) and "placeholder" in url.lower()


class ThumbnailPipeline:
    def __init__(
        self,
        http: httpx.AsyncClient,
        storage: StorageProvider,
        *,
        transcoder: Callable[[bytes], bytes] = transcode_heic_to_jpeg,
        timeout_s: float = 20.0,
    ):
        self._http = http
        self._storage = storage
        self._transcoder = transcoder
        self._timeout_s = timeout_s

    def is_durable(self, url: str | None) -> bool:
        if not url:
            return False
        if url.startswith(self._storage.public_base_url):
            return True
        return any(marker in url for marker in LEGACY_DURABLE_MARKERS)

    def should_replace(self, existing: str | None, replacement: str | None) -> bool:
        """Whether a stored thumbnail may be overwritten by ``replacement``."""
        if not replacement:
            return False
        if not existing:
            return True
        if self.is_durable(existing):
            return False
        if is_placeholder(existing):
            return True
        return is_cdn_url(existing) and self.is_durable(replacement)

    def needs_normalization(self, existing: str | None) -> bool:
        return not existing or (not self.is_durable(existing) and (is_placeholder(existing) or is_cdn_url(existing)))

    async def download(self, url: str) -> tuple[bytes, str | None]:
        headers = {
            "User-Agent": BROWSER_USER_AGENT,
            "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
        }
        referer = referer_for(url)
        if referer:
            headers["Referer"] = referer
        try:
            resp = await self._http.get(url, headers=headers, timeout=self._timeout_s, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise ThumbnailDownloadError(f"download failed for {url[:120]}: {exc!r}") from exc
        if resp.status_code >= 400:
            raise ThumbnailDownloadError(f"download failed for {url[:120]}: HTTP {resp.status_code}")
        data = resp.content
        if len(data) < MIN_IMAGE_BYTES:
            raise ThumbnailDownloadError(f"image too small ({len(data)} bytes), likely corrupt: {url[:120]}")
        return data, resp.headers.get("content-type")

    async def normalize(self, image_url: str, organization_id: int, filename: str) -> str:
        """Re-host ``image_url`` under the organization's thumbnail prefix and return its public URL."""
        data, content_type = await self.download(image_url)
        content_type = (content_type or "image/jpeg").split(";")[0].strip()

        if is_heic(content_type, data):
            try:
                data = await asyncio.to_thread(self._transcoder, data)
                content_type = "image/jpeg"
            except Exception as exc:
                logger.warning(f"[thumbnails] HEIC transcode failed for {filename}, uploading original: {exc}")

        if content_type == "image/jpeg" and not filename.endswith((".jpg", ".jpeg")):
            filename = f"{filename}.jpg"
        key = f"organizations/{organization_id}/thumbnails/{filename}"
        public_url = await asyncio.to_thread(self._storage.upload_bytes, key, data, content_type)
        logger.debug(f"[thumbnails] stored {key} ({len(data)} bytes)")
        return public_url
