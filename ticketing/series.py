"""
Ticket series — independent numbering namespaces and their ticket formats.
"""

from __future__ import annotations

from enum import Enum

from ticketing.config import TICKET_NUMBER_WIDTH


class TicketSeries(str, Enum):
    STANDARD = "standard"   # single-fault incidents, IM000001
    GPON = "gpon"           # GPON multi-fault batches, GIM000001

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]

    @property
    def counter_id(self) -> str:
        return f"counter-{self.value}"

    def format(self, value: int, width: int = TICKET_NUMBER_WIDTH) -> str:
        """IM + value zero-padded to ``width`` digits."""
        if value < 0:
            raise ValueError(f"Ticket value must be non-negative, got {value}")
        return f"{self.prefix}{value:0{width}d}"


_PREFIXES = {
    TicketSeries.STANDARD: "IM",
    TicketSeries.GPON: "GIM",
}


def series_for_ticket(ticket_number: str) -> TicketSeries:
    """Resolve the series from a ticket number's prefix.

    Raises ValueError for anything that is not prefix + digits.
    """
    for series in TicketSeries:
        rest = ticket_number[len(series.prefix):]
        if ticket_number.startswith(series.prefix) and rest.isdigit():
            return series
    raise ValueError(f"Not a ticket number: {ticket_number!r}")
