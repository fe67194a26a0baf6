"""
Ticketing exceptions — raised by the core, mapped to HTTP by routers.incidents.
"""

from __future__ import annotations


class TicketingError(Exception):
    """Base class for every error surfaced by incident creation."""


class ValidationError(TicketingError):
    """Required fields missing or malformed. Nothing was written."""

    def __init__(self, fields: list[str], message: str = "Missing required fields"):
        super().__init__(f"{message}: {', '.join(fields)}" if fields else message)
        self.fields = fields


class AllocationError(TicketingError):
    """A ticket number could not be committed. Nothing was written for the item.

    Retryable: usually the counter transaction exhausted its attempts under
    contention, or the store was unreachable.
    """

    def __init__(self, series: str, message: str | None = None):
        super().__init__(message or f"Could not allocate a ticket number in series {series!r}")
        self.series = series


class PartialBatchFailure(TicketingError):
    """A batch stopped part way: ``issued`` are committed, nothing after
    ``failed_index`` (0-based) was attempted."""

    def __init__(self, issued: list[str], failed_index: int, cause: Exception | None = None):
        super().__init__(
            f"Batch failed at item {failed_index} after issuing "
            f"{len(issued)} ticket(s): {', '.join(issued)}"
        )
        self.issued = list(issued)
        self.failed_index = failed_index
        self.cause = cause


class DuplicateCheckUnavailable(TicketingError):
    """The durable duplicate check failed and the guard is configured to fail closed."""
