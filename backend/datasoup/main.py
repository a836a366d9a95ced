"""FastAPI application — monitoring dashboard, health and metrics."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, HTTPException
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import HTMLResponse, PlainTextResponse, Response

from datasoup.config import Settings, settings as default_settings
from datasoup.dashboard import DashboardData, build_dashboard, render_dashboard
from datasoup.errors import SnapshotError
from datasoup.logging_config import setup_logging
from datasoup.observability import setup_opentelemetry
from datasoup.store import SnapshotStore

logger = logging.getLogger(__name__)


def get_settings() -> Settings:
    return default_settings


def _load(settings: Settings) -> DashboardData:
    store = SnapshotStore(
        Path(settings.DATA_DIR) / settings.SNAPSHOT_FILENAME,
        tz_name=settings.CATALOG_TIMEZONE,
    )
    return build_dashboard(store.load(), settings.CATALOG_TIMEZONE)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — setup / teardown."""
    setup_logging()
    setup_opentelemetry("dashboard", app)
    logger.info("DataSoup dashboard starting", extra={"env": default_settings.APP_ENV})
    yield
    logger.info("DataSoup dashboard shutting down")


app = FastAPI(
    title="DataSoup",
    version="0.1.0",
    description="Read-only monitoring dashboard over the data.gov.il catalog snapshot",
    lifespan=lifespan,
)


# ─── Dashboard ───
@app.get("/", response_class=HTMLResponse, include_in_schema=False)
async def dashboard(settings: Settings = Depends(get_settings)) -> HTMLResponse:
    try:
        data = _load(settings)
    except SnapshotError as exc:
        logger.error("Dashboard unavailable: %s", exc)
        return HTMLResponse(f"Error loading data: {exc}", status_code=500)
    return HTMLResponse(render_dashboard(data, settings.DATASET_URL_BASE))


@app.get("/api/datasets", tags=["content"])
async def list_datasets(limit: int | None = None, settings: Settings = Depends(get_settings)) -> dict:
    """Snapshot datasets, most recently modified first."""
    try:
        data = _load(settings)
    except SnapshotError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    rows = data.datasets if limit is None else data.datasets[: max(0, limit)]
    return {
        "last_update": data.last_update,
        "total": len(data.datasets),
        "items": [row.to_json() for row in rows],
    }


# ── Health ──
@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "service": "datasoup"}


# ── Prometheus Metrics ──
@app.get("/metrics", tags=["ops"])
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return PlainTextResponse(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def serve() -> None:
    import uvicorn

    uvicorn.run(
        "datasoup.main:app",
        host=default_settings.DASHBOARD_HOST,
        port=default_settings.DASHBOARD_PORT,
    )
