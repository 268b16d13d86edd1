"""
no-fc-tracker API Server

FastAPI server exposing the tracker commands over HTTP and running the
daily refresh/discovery schedule.

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8001

Environment Variables:
    OSU_API_KEY - Required osu! API v1 key; the server will not start without it
    PIPELINE_API_TOKEN - Bearer token for the command endpoints
    DATABASE_URL - Database URL (default sqlite:///no_fc_tracker.db)
"""

from contextlib import asynccontextmanager
from datetime import datetime

import pytz
from fastapi import FastAPI
from pydantic import BaseModel
from typing import Optional

from api.v1 import commands
from core.correlation_middleware import CorrelationMiddleware
from core.db_middleware import DatabaseMiddleware
from core.logging import setup_logging, get_logger
from core.middleware import setup_middleware
from core.settings import settings
from db.base import close_db, init_db
from db.models.tracker_meta import LAST_UPDATED_KEY
from services.runtime import build_runtime
from services.schedule_service import create_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(
        log_level=settings.log_level,
        json_format=settings.log_format == "json",
        service_name=settings.service_name,
    )
    log = get_logger()
    log.info("server_starting", service=settings.service_name)

    # Fails startup when OSU_API_KEY is missing
    scheduler = create_scheduler(settings) if settings.scheduler_enabled else None
    runtime = build_runtime(settings, scheduler=scheduler)

    init_db(settings.database_url)
    log.info("database_initialized")

    app.state.runtime = runtime
    if scheduler is not None:
        scheduler.start()
        runtime.schedule.restore()
        log.info("scheduler_started", timezone=settings.timezone)

    yield

    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
    close_db()
    log.info("server_stopped")


app = FastAPI(
    title="no-fc-tracker",
    description="Tracks osu! beatmaps that no top player has full-comboed",
    version="1.0.0",
    lifespan=lifespan,
)

# Middlewares (first added = innermost)
app.add_middleware(DatabaseMiddleware)
app.add_middleware(CorrelationMiddleware)
setup_middleware(app)

app.include_router(commands.router, prefix="/v1")


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    last_updated: Optional[str] = None


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint (no auth required)."""
    now = datetime.now(pytz.timezone(settings.timezone))
    runtime = getattr(app.state, "runtime", None)
    last_updated = runtime.store.get_meta(LAST_UPDATED_KEY) if runtime else None
    return HealthResponse(status="healthy", timestamp=now.isoformat(), last_updated=last_updated)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
