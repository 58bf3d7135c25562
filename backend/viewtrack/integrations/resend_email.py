from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"


class ResendEmailSender:
    """Best-effort sender: failures are logged and reported as False."""

    def __init__(self, http: httpx.AsyncClient, api_key: str | None, from_email: str):
        self._http = http
        self._api_key = api_key
        self._from_email = from_email

    async def send(self, to: str, subject: str, html: str) -> bool:
        if not self._api_key:
            logger.debug("[notify] Resend not configured, skipping")
            return False
        try:
            r = await self._http.post(
                RESEND_EMAILS_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"from": self._from_email, "to": [to], "subject": subject, "html": html},
                timeout=10,
            )
            if r.status_code < 300:
                return True
            logger.warning(f"[notify] Resend API {r.status_code}: {r.text[:200]}")
        except httpx.HTTPError as e:
            logger.warning(f"[notify] Resend send to {to} failed: {e}")
        return False
