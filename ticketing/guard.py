"""
SubmissionGuard — duplicate-submission suppression in two tiers.

1. Local tier: a process-private map fingerprint → SubmissionRecord with a
   short TTL.  Exact digest match, no store access.
2. Durable tier: on a local miss, incidents of the same series created in
   the trailing window are fetched by exchange and re-validated on coarse
   fields (node set / stakeholder set / fault type for single incidents,
   stakeholder set / item count for batches).  Catches duplicates across
   restarts, other instances and local expiry, at the cost of occasional
   false positives.

The local tier wins whenever it has an entry; otherwise the durable tier
decides.  Neither tier is a lock: the durable check is advisory, only the
counter update is strictly atomic.

A failing durable query counts as "no match" unless the guard is built
with fail_open=False, in which case DuplicateCheckUnavailable is raised.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Literal

from ticketing.clock import isoformat_ms, utcnow
from ticketing.config import (
    DEDUP_FAIL_OPEN,
    DURABLE_DEDUP_WINDOW_SECONDS,
    LOCAL_DEDUP_TTL_SECONDS,
)
from ticketing.errors import DuplicateCheckUnavailable
from ticketing.fingerprint import (
    SubmissionFingerprint,
    normalize_nodes,
    normalize_stakeholders,
)
from ticketing.series import TicketSeries
from ticketing.stores import DocumentStore

logger = logging.getLogger("ticketing.guard")

_WINDOW_QUERY = (
    "SELECT * FROM c WHERE c.type = @type AND c.exchangeName = @exchange "
    "AND c.createdAt >= @since ORDER BY c.createdAt DESC"
)


@dataclass
class SubmissionRecord:
    fingerprint: str
    created_at_millis: int
    ticket_numbers: tuple[str, ...]


@dataclass(frozen=True)
class KnownSubmission:
    """An earlier accepted submission and the ticket numbers it received."""
    ticket_numbers: list[str]
    tier: Literal["local", "durable"]


# ---------------------------------------------------------------------------
# Local tier
# ---------------------------------------------------------------------------


class LocalSubmissionCache:
    """Thread-safe fingerprint → SubmissionRecord map with a fixed TTL.

    Expired entries are dropped on read and swept opportunistically on write.
    """

    def __init__(
        self,
        ttl_seconds: float = LOCAL_DEDUP_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self._ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock
        self._records: dict[str, SubmissionRecord] = {}
        self._lock = threading.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _expired(self, record: SubmissionRecord, now_ms: int) -> bool:
        return now_ms - record.created_at_millis >= self._ttl_ms

    def get(self, fingerprint: str) -> SubmissionRecord | None:
        now_ms = self._now_ms()
        with self._lock:
            record = self._records.get(fingerprint)
            if record is None:
                return None
            if self._expired(record, now_ms):
                del self._records[fingerprint]
                return None
            return record

    def put(self, fingerprint: str, ticket_numbers: list[str]) -> SubmissionRecord:
        now_ms = self._now_ms()
        record = SubmissionRecord(fingerprint, now_ms, tuple(ticket_numbers))
        with self._lock:
            for key in [k for k, r in self._records.items() if self._expired(r, now_ms)]:
                del self._records[key]
            self._records[fingerprint] = record
        return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------


@dataclass
class _InFlight:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class SubmissionGuard:
    """Answers "was this submission already accepted?" and remembers new ones."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        cache: LocalSubmissionCache | None = None,
        durable_window_seconds: float = DURABLE_DEDUP_WINDOW_SECONDS,
        fail_open: bool = DEDUP_FAIL_OPEN,
        now: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self.cache = cache or LocalSubmissionCache()
        self._window = timedelta(seconds=durable_window_seconds)
        self._fail_open = fail_open
        self._now = now
        self._inflight: dict[str, _InFlight] = defaultdict(_InFlight)

    @asynccontextmanager
    async def hold(self, fp: SubmissionFingerprint):
        """Serialise in-process requests that carry the same fingerprint.

        A double-click arriving while the first request is still writing
        waits here, then finds the first request's result in the local tier.
        """
        entry = self._inflight[fp.digest]
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._inflight.pop(fp.digest, None)

    async def check(self, fp: SubmissionFingerprint) -> KnownSubmission | None:
        """Return the earlier result for ``fp``, or None if it looks new."""
        record = self.cache.get(fp.digest)
        if record is not None:
            logger.info("Duplicate submission %s (local tier)", fp.digest[:12])
            return KnownSubmission(list(record.ticket_numbers), "local")

        try:
            numbers = await self._durable_match(fp)
        except Exception as e:
            if not self._fail_open:
                raise DuplicateCheckUnavailable(
                    f"Duplicate check for {fp.series.value} submission failed: {e}"
                ) from e
            logger.warning(
                "Durable duplicate check failed, treating %s as new: %s",
                fp.digest[:12], e,
            )
            return None

        if numbers:
            logger.info(
                "Duplicate submission %s (durable tier): %s",
                fp.digest[:12], ", ".join(numbers),
            )
            # later retries in this process are answered locally
            self.cache.put(fp.digest, numbers)
            return KnownSubmission(numbers, "durable")
        return None

    def remember(self, fp: SubmissionFingerprint, ticket_numbers: list[str]) -> None:
        self.cache.put(fp.digest, ticket_numbers)

    # ------------------------------------------------------------------
    # Durable tier
    # ------------------------------------------------------------------

    async def _durable_match(self, fp: SubmissionFingerprint) -> list[str] | None:
        since = isoformat_ms(self._now() - self._window)
        candidates = await self._store.list(
            query=_WINDOW_QUERY,
            parameters=[
                {"name": "@type", "value": "incident"},
                {"name": "@exchange", "value": fp.exchange},
                {"name": "@since", "value": since},
            ],
            partition_key=fp.series.value,
        )
        if fp.series is TicketSeries.GPON:
            return _match_batch(fp, candidates)
        return _match_single(fp, candidates)


def _match_single(fp: SubmissionFingerprint, candidates: list[dict[str, Any]]) -> list[str] | None:
    for doc in candidates:
        if (
            normalize_nodes(doc.get("nodes")) == fp.nodes
            and normalize_stakeholders(doc.get("stakeholders")) == fp.stakeholders
            and str(doc.get("faultType") or "").strip() == fp.fault_type
        ):
            return [doc["ticketNumber"]]
    return None


def _match_batch(fp: SubmissionFingerprint, candidates: list[dict[str, Any]]) -> list[str] | None:
    # Candidates arrive newest first; dict keeps that order per batch.
    batches: dict[str, list[dict[str, Any]]] = {}
    for doc in candidates:
        if doc.get("batchId"):
            batches.setdefault(doc["batchId"], []).append(doc)

    for items in batches.values():
        size = items[0].get("batchSize")
        if size != fp.item_count:
            continue
        if normalize_stakeholders(items[0].get("stakeholders")) != fp.stakeholders:
            continue
        by_index = {doc.get("batchIndex"): doc for doc in items}
        # A partially failed batch must not swallow its retry.
        if set(by_index) != set(range(size)):
            continue
        return [by_index[i]["ticketNumber"] for i in range(size)]
    return None
