#!/usr/bin/env python3
"""
Trigger a video refresh run on a running instance and print the summary.

Without CRON_SECRET the request is sent as a manual run.

Env vars:
  BASE_URL       (default http://localhost:8000)
  CRON_SECRET    (optional, sends a scheduled run)
  ORG_ID         (optional scope)
  PROJECT_ID     (optional scope, requires ORG_ID)
  TIMEOUT_SEC    (default 900)
"""
from __future__ import annotations

import json
import os
import sys
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000").rstrip("/")
CRON_SECRET = os.environ.get("CRON_SECRET", "")
ORG_ID = os.environ.get("ORG_ID")
PROJECT_ID = os.environ.get("PROJECT_ID")
TIMEOUT_SEC = int(os.environ.get("TIMEOUT_SEC", "900"))


class TriggerError(Exception):
    pass


def _headers() -> dict[str, str]:
    h = {"Content-Type": "application/json"}
    if CRON_SECRET:
        h["Authorization"] = f"Bearer {CRON_SECRET}"
    return h


def _body() -> dict:
    body: dict = {} if CRON_SECRET else {"manual": True}
    if ORG_ID:
        body["organizationId"] = int(ORG_ID)
    if PROJECT_ID:
        body["projectId"] = int(PROJECT_ID)
    return body


def trigger() -> dict:
    url = f"{BASE_URL}/api/cron/refresh-videos"
    req = Request(url, data=json.dumps(_body()).encode(), headers=_headers(), method="POST")
    try:
        with urlopen(req, timeout=TIMEOUT_SEC) as resp:
            return json.loads(resp.read().decode() or "{}")
    except HTTPError as e:
        raise TriggerError(f"POST {url} → {e.code}: {e.read().decode()[:500]}")
    except URLError as e:
        raise TriggerError(f"POST {url} → URLError: {e}")


def main():
    mode = "scheduled" if CRON_SECRET else "manual"
    print(f"\n🔄 Video refresh ({mode}) at {BASE_URL}")
    try:
        summary = trigger()
    except TriggerError as e:
        print(f"  ❌ {e}")
        sys.exit(1)

    if not summary.get("success"):
        print(f"  ❌ run failed: {summary.get('errorType')}: {summary.get('error')}")
        sys.exit(1)

    stats = summary.get("stats", {})
    print(f"  ✅ finished in {summary.get('duration')}")
    for key in (
        "totalOrganizations",
        "totalAccountsProcessed",
        "totalVideosAdded",
        "totalVideosUpdated",
        "totalVideosSkippedQuota",
        "failedAccounts",
    ):
        print(f"     {key:<26} {stats.get(key, 0)}")
    for failure in summary.get("failures", []):
        print(f"  ⚠️  {failure['org']}/{failure['project']} {failure['account']}: {failure['error']}")
    sys.exit(2 if summary.get("failures") else 0)


if __name__ == "__main__":
    main()
