"""
SequenceAllocator — per-series ticket counters on the document store.

Each series has one counter document in the series' own partition.  The
increment is an optimistic store transaction, so concurrent processes never
commit the same value; a losing transaction is re-run by the store.  The
allocator issues nothing until that transaction has committed.

Numbers are unique and increase in commit order.  They are not gapless:
a committed bump whose companion write failed elsewhere leaves a hole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ticketing.config import COUNTER_MAX_ATTEMPTS, TICKET_NUMBER_WIDTH
from ticketing.errors import AllocationError
from ticketing.series import TicketSeries
from ticketing.stores import DocumentNotFoundError, DocumentStore, StoreError

logger = logging.getLogger("ticketing.allocator")

RecordBuilder = Callable[[str], dict[str, Any]]


@dataclass(frozen=True)
class Allocation:
    series: TicketSeries
    value: int
    ticket_number: str
    record: dict[str, Any] | None = None


class SequenceAllocator:
    """Mints ticket numbers; optionally creates the numbered record atomically."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        max_attempts: int = COUNTER_MAX_ATTEMPTS,
        width: int = TICKET_NUMBER_WIDTH,
    ):
        self._store = store
        self._max_attempts = max_attempts
        self._width = width

    async def allocate(
        self,
        series: TicketSeries,
        *,
        build_record: RecordBuilder | None = None,
    ) -> Allocation:
        """Commit the next value of ``series`` and return its ticket number.

        ``build_record`` receives the ticket number being minted and returns
        a document committed in the same transaction as the counter bump.
        It may be called more than once if the transaction is retried; only
        the last call's document is stored.

        Raises AllocationError if the transaction cannot commit.
        """
        attempt: dict[str, Any] = {}

        def _bump(current: dict[str, Any] | None):
            value = int(current.get("currentValue", 0)) + 1 if current else 1
            ticket_number = series.format(value, self._width)
            record = build_record(ticket_number) if build_record else None
            attempt.update(value=value, ticket_number=ticket_number, record=record)
            counter = {
                "id": series.counter_id,
                "series": series.value,
                "type": "counter",
                "seriesName": series.value,
                "currentValue": value,
            }
            return counter, [record] if record else []

        try:
            await self._store.transact(
                series.counter_id, series.value, _bump,
                max_attempts=self._max_attempts,
            )
        except StoreError as e:
            logger.warning("Allocation in series %s failed: %s", series.value, e)
            raise AllocationError(series.value) from e

        logger.info("Allocated %s", attempt["ticket_number"])
        return Allocation(
            series=series,
            value=attempt["value"],
            ticket_number=attempt["ticket_number"],
            record=attempt["record"],
        )

    async def peek(self, series: TicketSeries) -> int:
        """Current high-water mark of ``series`` (0 if nothing was allocated)."""
        try:
            counter = await self._store.get(series.counter_id, series.value)
        except DocumentNotFoundError:
            return 0
        return int(counter.get("currentValue", 0))
