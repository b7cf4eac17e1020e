from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from jobsync.api.deps import clear_caches, get_scheduler
from jobsync.api.router import api_router
from jobsync.core.config import get_settings
from jobsync.core.telemetry import configure_logging, setup_telemetry
from jobsync.services.repository import get_repository
from jobsync.services.scheduler import SchedulerTicker

settings = get_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    scheduler = get_scheduler()
    ticker: SchedulerTicker | None = None
    if scheduler.start():
        ticker = SchedulerTicker(scheduler, interval_seconds=settings.scheduler_tick_seconds)
        ticker.start()
    try:
        yield
    finally:
        if ticker is not None:
            await ticker.stop()
        scheduler.stop()
        telemetry.shutdown()
        await get_repository().close()
        get_repository.cache_clear()
        clear_caches()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
telemetry = setup_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
