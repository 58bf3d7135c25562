"""
Post-run notifications.

- Tenant summary email (Resend) per organization that gained or refreshed videos
- Operator Telegram alert when accounts failed, throttled by title (15 min)

Everything here is best-effort: failures are logged, never raised.
"""
from __future__ import annotations

import html
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from viewtrack.integrations.resend_email import ResendEmailSender

logger = logging.getLogger(__name__)

THROTTLE_SEC = 15 * 60


@dataclass
class OrganizationRunStats:
    organization_id: int
    name: str
    owner_email: str | None
    accounts: int = 0
    added: int = 0
    updated: int = 0
    failed: int = 0

    @property
    def has_changes(self) -> bool:
        return self.added + self.updated > 0


class RefreshNotifier:
    def __init__(
        self,
        http: httpx.AsyncClient,
        email: ResendEmailSender,
        *,
        dashboard_url: str,
        telegram_bot_token: str | None = None,
        telegram_chat_id: str | None = None,
    ):
        self._http = http
        self._email = email
        self._dashboard_url = dashboard_url.rstrip("/")
        self._telegram_bot_token = telegram_bot_token
        self._telegram_chat_id = telegram_chat_id
        self._throttle: dict[str, float] = {}

    def _should_send(self, key: str) -> bool:
        now = time.monotonic()
        last = self._throttle.get(key)
        if last is not None and now - last < THROTTLE_SEC:
            return False
        self._throttle[key] = now
        return True

    async def send_refresh_summary(self, stats: OrganizationRunStats, *, manual: bool) -> bool:
        if not stats.owner_email or not stats.has_changes:
            return False
        kind = "Manual" if manual else "Scheduled"
        subject = f"{kind} refresh: {stats.added} new, {stats.updated} updated videos"
        body = (
            f"<h2>{html.escape(stats.name)}</h2>"
            f"<p>{kind} refresh finished across {stats.accounts} tracked accounts.</p>"
            f"<ul><li>New videos: <b>{stats.added}</b></li>"
            f"<li>Updated videos: <b>{stats.updated}</b></li></ul>"
            f'<p><a href="{self._dashboard_url}">Open dashboard</a></p>'
        )
        sent = await self._email.send(stats.owner_email, subject, body)
        if sent:
            logger.info(f"[notify] summary sent to org {stats.organization_id}")
        return sent

    async def _send_telegram(self, text: str) -> bool:
        if not self._telegram_bot_token or not self._telegram_chat_id:
            logger.debug("[notify] Telegram not configured, skipping")
            return False
        url = f"https://api.telegram.org/bot{self._telegram_bot_token}/sendMessage"
        try:
            r = await self._http.post(
                url,
                json={
                    "chat_id": self._telegram_chat_id,
                    "text": text[:4000],
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                },
                timeout=10,
            )
            if r.status_code == 200:
                return True
            logger.warning(f"[notify] Telegram API {r.status_code}: {r.text[:200]}")
        except httpx.HTTPError as e:
            logger.warning(f"[notify] Telegram send failed: {e}")
        return False

    async def notify_warn(self, title: str, payload: Any = None) -> bool:
        """Send warning-level alert (throttled by title)."""
        if not self._should_send(f"warn:{title}"):
            logger.debug(f"[notify] throttled warn: {title}")
            return False
        body = f"🟡 <b>{html.escape(title)}</b>"
        if payload:
            body += f"\n<pre>{html.escape(str(payload)[:500])}</pre>"
        return await self._send_telegram(body)
