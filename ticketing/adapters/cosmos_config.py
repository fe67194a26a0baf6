"""
Cosmos DB configuration — all Cosmos-specific env vars.

Kept apart from config.py so the main config module stays
backend-agnostic.  Modules that need Cosmos connection details
import from here instead of config.
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Cosmos DB NoSQL settings
# ---------------------------------------------------------------------------

COSMOS_NOSQL_ENDPOINT = os.getenv("COSMOS_NOSQL_ENDPOINT", "")
TICKETING_DATABASE = os.getenv("TICKETING_DATABASE", "ticketing")
TICKETING_CONTAINER = os.getenv("TICKETING_CONTAINER", "tickets")

# Counters and incidents share one container partitioned by series, so a
# counter bump and the incident it numbers can commit in one batch.
TICKETING_PARTITION_KEY = "/series"

# ---------------------------------------------------------------------------
# Required-var tuples (used by lifespan health checks)
# ---------------------------------------------------------------------------

COSMOS_REQUIRED_VARS: tuple[str, ...] = (
    "COSMOS_NOSQL_ENDPOINT",
)
