"""
IncidentWriter — turns one creation request into committed incident(s).

Single incident:
    validate → guard.check → (known: return) → allocate + write in one
    store transaction → guard.remember

GPON batch:
    validate → guard.check → (known: return) → one independent
    allocate + write transaction per fault, in order → guard.remember

A batch is not atomic.  If fault k fails after faults 0..k-1 committed,
PartialBatchFailure reports the committed numbers and k, later faults are
not attempted, and the batch is not remembered, so a retry goes through.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from ticketing.allocator import SequenceAllocator
from ticketing.clock import isoformat_ms, utcnow
from ticketing.errors import AllocationError, PartialBatchFailure, ValidationError
from ticketing.fingerprint import (
    SubmissionFingerprint,
    fingerprint_gpon_batch,
    fingerprint_incident,
    normalize_nodes,
    normalize_stakeholders,
)
from ticketing.guard import SubmissionGuard
from ticketing.models import GponFault, GponIncidentCreateRequest, IncidentCreateRequest
from ticketing.series import TicketSeries

logger = logging.getLogger("ticketing.writer")

INITIAL_STATUS = "In Progress"
DEFAULT_OUTAGE_NODES = {"nodeA": False, "nodeB": False, "nodeC": False, "nodeD": False}


@dataclass(frozen=True)
class CreationResult:
    ticket_numbers: list[str]
    deduplicated: bool = False
    matched_tier: str | None = None

    @property
    def ticket_number(self) -> str:
        return self.ticket_numbers[0]


def _text(value: str | None) -> str:
    return (value or "").strip()


def _missing(**fields: Any) -> list[str]:
    return [name for name, value in fields.items() if not value]


class IncidentWriter:
    def __init__(
        self,
        allocator: SequenceAllocator,
        guard: SubmissionGuard,
        *,
        now: Callable[[], datetime] = utcnow,
    ):
        self._allocator = allocator
        self._guard = guard
        self._now = now

    # ------------------------------------------------------------------
    # Single incident
    # ------------------------------------------------------------------

    async def create_incident(self, req: IncidentCreateRequest) -> CreationResult:
        missing = _missing(
            exchangeName=_text(req.exchange_name),
            nodes=normalize_nodes(req.nodes),
            stakeholders=normalize_stakeholders(req.stakeholders),
            faultType=_text(req.fault_type),
        )
        if missing:
            raise ValidationError(missing)

        fp = fingerprint_incident(req)
        async with self._guard.hold(fp):
            known = await self._guard.check(fp)
            if known:
                return CreationResult(known.ticket_numbers[:1], True, known.tier)

            created_at = isoformat_ms(self._now())
            allocation = await self._allocator.allocate(
                TicketSeries.STANDARD,
                build_record=lambda number: self._incident_record(number, req, fp, created_at),
            )
            self._guard.remember(fp, [allocation.ticket_number])

        logger.info(
            "Created incident %s for exchange %s", allocation.ticket_number, fp.exchange,
        )
        return CreationResult([allocation.ticket_number])

    def _incident_record(
        self,
        ticket_number: str,
        req: IncidentCreateRequest,
        fp: SubmissionFingerprint,
        created_at: str,
    ) -> dict[str, Any]:
        doc = req.model_dump(by_alias=True)
        doc.update(
            id=str(uuid.uuid4()),
            series=TicketSeries.STANDARD.value,
            type="incident",
            ticketNumber=ticket_number,
            exchangeName=fp.exchange,
            outageNodes=req.outage_nodes or dict(DEFAULT_OUTAGE_NODES),
            submissionFingerprint=fp.digest,
            status=INITIAL_STATUS,
            createdAt=created_at,
        )
        return doc

    # ------------------------------------------------------------------
    # GPON batch
    # ------------------------------------------------------------------

    async def create_incident_batch(self, req: GponIncidentCreateRequest) -> CreationResult:
        missing = _missing(
            exchangeName=_text(req.exchange_name),
            stakeholders=normalize_stakeholders(req.stakeholders),
            ticketGenerator=_text(req.ticket_generator),
            faults=req.faults,
        )
        if missing:
            raise ValidationError(missing)

        fp = fingerprint_gpon_batch(req)
        async with self._guard.hold(fp):
            known = await self._guard.check(fp)
            if known:
                return CreationResult(known.ticket_numbers, True, known.tier)

            batch_id = str(uuid.uuid4())
            created_at = isoformat_ms(self._now())
            issued: list[str] = []
            for index, fault in enumerate(req.faults):

                def _record(number: str, index=index, fault=fault) -> dict[str, Any]:
                    return self._gpon_record(
                        number, req, fault, fp,
                        batch_id=batch_id, index=index, created_at=created_at,
                    )

                try:
                    allocation = await self._allocator.allocate(TicketSeries.GPON, build_record=_record)
                except AllocationError as e:
                    if not issued:
                        raise
                    logger.error(
                        "GPON batch %s failed at fault %d/%d; already issued: %s",
                        batch_id, index + 1, len(req.faults), ", ".join(issued),
                    )
                    raise PartialBatchFailure(issued, index, e) from e
                issued.append(allocation.ticket_number)

            self._guard.remember(fp, issued)

        logger.info(
            "Created %d GPON incident(s) for exchange %s: %s",
            len(issued), fp.exchange, ", ".join(issued),
        )
        return CreationResult(issued)

    def _gpon_record(
        self,
        ticket_number: str,
        req: GponIncidentCreateRequest,
        fault: GponFault,
        fp: SubmissionFingerprint,
        *,
        batch_id: str,
        index: int,
        created_at: str,
    ) -> dict[str, Any]:
        doc = req.model_dump(by_alias=True, exclude={"faults"})
        doc.update(fault.model_dump(by_alias=True))
        doc.update(
            id=str(uuid.uuid4()),
            series=TicketSeries.GPON.value,
            type="incident",
            ticketNumber=ticket_number,
            exchangeName=fp.exchange,
            submissionFingerprint=fp.digest,
            batchId=batch_id,
            batchIndex=index,
            batchSize=len(req.faults),
            status=INITIAL_STATUS,
            createdAt=created_at,
        )
        return doc
