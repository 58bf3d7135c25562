from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import ConfigurationError, RequestRejectedError
from .routes_refresh import router as refresh_router
from .schemas import ErrorEnvelope
from .services.container import ServiceContainer
from .services.scheduler import SchedulerService
from .settings import get_settings

logger = logging.getLogger("app")


def create_app(container: ServiceContainer | None = None, *, start_scheduler: bool = True) -> FastAPI:
    settings = container.settings if container is not None else get_settings()
    app = FastAPI(title=settings.app_name)
    app.state.container = container
    app.state.scheduler = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestRejectedError)
    async def request_rejected_handler(request: Request, exc: RequestRejectedError):
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
        envelope = ErrorEnvelope(error=str(exc), error_type=exc.error_type)
        return JSONResponse(status_code=exc.status_code, content=envelope.model_dump(by_alias=True))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url)
        envelope = ErrorEnvelope(error="Internal Server Error", error_type="UNHANDLED_ERROR")
        return JSONResponse(status_code=500, content=envelope.model_dump(by_alias=True))

    @app.get("/ping")
    async def ping():
        return {"status": "ok"}

    app.include_router(refresh_router)

    @app.on_event("startup")
    async def startup_event():
        if app.state.container is None:
            try:
                app.state.container = ServiceContainer.build(settings)
            except ConfigurationError as exc:
                logger.error("Service container not built: %s", exc)
                return
        logger.info("%s starting (environment=%s)", settings.app_name, settings.environment)
        if start_scheduler:
            app.state.scheduler = SchedulerService(app.state.container)
            app.state.scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.scheduler is not None:
            app.state.scheduler.stop()
        if app.state.container is not None:
            await app.state.container.aclose()

    return app


app = create_app()
