from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from viewtrack.errors import AuthenticationError, ConfigurationError
from viewtrack.schemas import ErrorEnvelope, RefreshRequest
from viewtrack.services.orchestrator import RunTrigger
from viewtrack.settings import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["refresh"])

security = HTTPBearer(auto_error=False)


def authorize(
    credentials: HTTPAuthorizationCredentials | None, body: RefreshRequest | None, settings: Settings
) -> RunTrigger:
    """Cron secret means a scheduled run; ``manual: true`` means a dashboard-initiated run."""
    scope = {
        "organization_id": body.organization_id if body else None,
        "project_id": body.project_id if body else None,
    }
    if credentials and settings.cron_secret:
        if hmac.compare_digest(credentials.credentials.encode(), settings.cron_secret.encode()):
            return RunTrigger(manual=False, **scope)
    if body is not None and body.manual:
        return RunTrigger(manual=True, **scope)
    raise AuthenticationError("Unauthorized")


@router.post("/cron/refresh-videos")
async def refresh_videos(
    request: Request,
    body: RefreshRequest | None = Body(default=None),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
):
    container = getattr(request.app.state, "container", None)
    settings = container.settings if container is not None else get_settings()
    trigger = authorize(credentials, body, settings)

    if container is None:
        raise ConfigurationError("service container is not initialized")
    if not settings.apify_token and not settings.youtube_api_key:
        raise ConfigurationError("no platform credentials configured (APIFY_TOKEN / YOUTUBE_API_KEY)")

    orchestrator = container.orchestrator
    scopes = await orchestrator.resolve_scope(trigger)
    try:
        summary = await orchestrator.run(trigger, scopes)
    except Exception as exc:
        logger.exception("[refresh] %s run aborted", trigger.label)
        envelope = ErrorEnvelope(error=str(exc) or exc.__class__.__name__, error_type="PROCESSING_ERROR")
        return JSONResponse(status_code=200, content=envelope.model_dump(by_alias=True))
    return summary.model_dump(by_alias=True)
