"""
Service wiring — one store, allocator, guard and writer per process.

Built once in the FastAPI lifespan and kept on ``app.state.services``; the
local dedup cache therefore lives exactly as long as the process.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ticketing.adapters.cosmos_config import (
    TICKETING_CONTAINER,
    TICKETING_DATABASE,
    TICKETING_PARTITION_KEY,
)
from ticketing.allocator import SequenceAllocator
from ticketing.clock import utcnow
from ticketing.config import STORE_BACKEND
from ticketing.guard import LocalSubmissionCache, SubmissionGuard
from ticketing.stores import DocumentStore, get_document_store
from ticketing.writer import IncidentWriter


@dataclass
class TicketingServices:
    store: DocumentStore
    allocator: SequenceAllocator
    guard: SubmissionGuard
    writer: IncidentWriter

    @classmethod
    def build(
        cls,
        store: DocumentStore,
        *,
        cache: LocalSubmissionCache | None = None,
        now: Callable[[], datetime] = utcnow,
        **guard_options,
    ) -> "TicketingServices":
        allocator = SequenceAllocator(store)
        guard = SubmissionGuard(store, cache=cache, now=now, **guard_options)
        return cls(store, allocator, guard, IncidentWriter(allocator, guard, now=now))


def services_from_env() -> TicketingServices:
    store = get_document_store(
        TICKETING_DATABASE, TICKETING_CONTAINER, TICKETING_PARTITION_KEY,
        backend_type=STORE_BACKEND,
        ensure_created=True,
    )
    return TicketingServices.build(store)
