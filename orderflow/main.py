from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderflow import db
from orderflow.config import AppInfo, get_settings
from orderflow.core.logging import get_logger, setup_logging
from orderflow.core.runtime_state import set_scheduler_active
import orderflow.models  # noqa: F401  registers the tables
from orderflow.routers import get_api_router
from orderflow.services import scheduler_lock
from orderflow.services.cron import dispatch_notifications_once
from orderflow.utils.errors import OrderflowError, error_response

logger = get_logger(__name__)
scheduler: AsyncIOScheduler | None = None
ALLOWED_CREATE_ENV = {"dev", "local", "test"}


def _configure_middlewares(fastapi_app: FastAPI) -> None:
    runtime_settings = get_settings()
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime_settings.CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Actor-Id", "X-Actor-Role"],
    )

    if runtime_settings.PROMETHEUS_ENABLED:
        from starlette_exporter import PrometheusMiddleware, handle_metrics

        fastapi_app.add_middleware(PrometheusMiddleware, app_name="orderflow")
        fastapi_app.add_route("/metrics", handle_metrics)

    if runtime_settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.init(dsn=runtime_settings.SENTRY_DSN, traces_sample_rate=0.2)


def _start_scheduler(settings: Any) -> bool:
    """Start the outbox dispatcher if this instance wins the DB lease."""

    global scheduler
    if not scheduler_lock.try_acquire():
        logger.warning(
            "Scheduler disabled because lock is already held by another instance.",
            extra={"env": settings.app_env},
        )
        return False
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        dispatch_notifications_once,
        "interval",
        seconds=settings.NOTIFICATION_DISPATCH_INTERVAL_SECONDS,
        id="dispatch-notifications",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        scheduler_lock.refresh,
        "interval",
        seconds=60,
        id="scheduler-lock-heartbeat",
        replace_existing=True,
    )
    scheduler.start()
    set_scheduler_active(True)
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info("Application startup", extra={"env": settings.app_env})
    db.init_engine()
    env_lower = settings.app_env.lower()
    if settings.ALLOW_DB_CREATE_ALL and env_lower in ALLOWED_CREATE_ENV:
        logger.warning(
            "Running Base.metadata.create_all() because APP_ENV=%s and ALLOW_DB_CREATE_ALL=True",
            settings.app_env,
        )
        db.create_all()
    else:
        logger.info("Skipping create_all(); use Alembic migrations. APP_ENV=%s", settings.app_env)

    set_scheduler_active(False)
    lock_acquired = _start_scheduler(settings) if settings.SCHEDULER_ENABLED else False
    try:
        yield
    finally:
        global scheduler
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            scheduler = None
        if lock_acquired:
            scheduler_lock.release()
        set_scheduler_active(False)
        db.close_engine()
        logger.info("Application shutdown", extra={"env": settings.app_env})


app_info = AppInfo()

app = FastAPI(title=app_info.name, version=app_info.version, lifespan=lifespan)

_configure_middlewares(app)
app.include_router(get_api_router())


@app.exception_handler(OrderflowError)
async def orderflow_exception_handler(request: Request, exc: OrderflowError) -> JSONResponse:
    logger.info(
        "Request rejected",
        extra={"code": exc.code, "path": request.url.path, "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    payload = error_response("INTERNAL_SERVER_ERROR", "An unexpected error occurred.")
    return JSONResponse(status_code=500, content=payload)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content: dict[str, Any] = detail
    else:
        content = error_response("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


__all__ = ["app"]
