"""
Ticketing API — incident ticket numbering with duplicate-submission suppression.

Serves:
  - REST API at /api/* (incident creation and lookup)
  - Health check at /health

The document store is selected by the STORE_BACKEND env var:
  cosmosdb-nosql → Azure Cosmos DB NoSQL (default)
  mock           → in-memory store for offline demos

Run locally:
  uv run uvicorn ticketing.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
import time as _time
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from ticketing.config import BACKEND_REQUIRED_VARS, CORS_ORIGINS, STORE_BACKEND  # noqa: E402
from ticketing.cosmos_helpers import close_cosmos_client  # noqa: E402
from ticketing.routers import incidents  # noqa: E402
from ticketing.services import services_from_env  # noqa: E402

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logging.getLogger("ticketing").setLevel(logging.DEBUG)
logger = logging.getLogger("ticketing")

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate config and wire services at startup; close clients on shutdown."""
    if getattr(app.state, "services", None) is None:
        missing = [v for v in BACKEND_REQUIRED_VARS.get(STORE_BACKEND, ()) if not os.getenv(v)]
        if missing:
            logger.warning(
                "Missing env vars for %s store: %s", STORE_BACKEND, ", ".join(missing),
            )
        app.state.services = services_from_env()
    logger.info("Starting with STORE_BACKEND=%s", STORE_BACKEND)
    yield
    close_cosmos_client()


app = FastAPI(
    title="Incident Ticketing API",
    version="0.1.0",
    description="Incident ticket numbering with duplicate-submission suppression",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(incidents.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every incoming request with timing info."""
    logger.info("▶ %s %s", request.method, request.url.path)
    t0 = _time.time()
    response = await call_next(request)
    elapsed_ms = (_time.time() - t0) * 1000
    if response.status_code >= 400:
        logger.warning(
            "◀ %s %s → %d  (%.0fms)",
            request.method, request.url.path, response.status_code, elapsed_ms,
        )
    else:
        logger.info(
            "◀ %s %s → %d  (%.0fms)",
            request.method, request.url.path, response.status_code, elapsed_ms,
        )
    return response


@app.get("/health", summary="Health check")
async def health(request: Request):
    services = getattr(request.app.state, "services", None)
    return {
        "status": "ok",
        "service": "ticketing-api",
        "version": app.version,
        "store_backend": STORE_BACKEND,
        "local_dedup_entries": len(services.guard.cache) if services else 0,
    }
