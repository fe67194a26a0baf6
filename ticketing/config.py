"""
Configuration — environment variable loading and shared resources.

Centralises all env var reads so other modules import from here
instead of calling os.getenv() directly.  Cosmos connection settings
live in adapters.cosmos_config.
"""

from __future__ import annotations

import os

from azure.identity import DefaultAzureCredential

from ticketing.adapters.cosmos_config import COSMOS_REQUIRED_VARS


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Document store selector
# ---------------------------------------------------------------------------

STORE_BACKEND: str = os.getenv("STORE_BACKEND", "cosmosdb-nosql").lower()

# ---------------------------------------------------------------------------
# Ticket numbering
# ---------------------------------------------------------------------------

TICKET_NUMBER_WIDTH = int(os.getenv("TICKET_NUMBER_WIDTH", "6"))

# Optimistic counter transactions retried before giving up
COUNTER_MAX_ATTEMPTS = int(os.getenv("COUNTER_MAX_ATTEMPTS", "8"))

# ---------------------------------------------------------------------------
# Duplicate-submission suppression
# ---------------------------------------------------------------------------

LOCAL_DEDUP_TTL_SECONDS = float(os.getenv("LOCAL_DEDUP_TTL_SECONDS", "30"))
DURABLE_DEDUP_WINDOW_SECONDS = float(os.getenv("DURABLE_DEDUP_WINDOW_SECONDS", "600"))

# When the durable duplicate check cannot reach the store: True lets the
# write proceed, False rejects the request as retryable.
DEDUP_FAIL_OPEN: bool = _env_flag("DEDUP_FAIL_OPEN", "1")

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if o.strip()
]

# ---------------------------------------------------------------------------
# Shared credential (lazy-initialised to avoid probing at import time)
# ---------------------------------------------------------------------------

_credential = None


def get_credential():
    """Return a cached DefaultAzureCredential (lazy-initialised)."""
    global _credential
    if _credential is None:
        _credential = DefaultAzureCredential()
    return _credential


# ---------------------------------------------------------------------------
# Required env vars per backend (used by lifespan health check)
# ---------------------------------------------------------------------------

BACKEND_REQUIRED_VARS: dict[str, tuple[str, ...]] = {
    "cosmosdb-nosql": COSMOS_REQUIRED_VARS,
    "mock": (),
}
