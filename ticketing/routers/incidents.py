"""
Router: Incidents — ticket creation with duplicate-submission suppression.

Endpoints:
  POST /api/incidents                 — create one standard incident (IM…)
  POST /api/gpon-incidents            — create one GPON incident per fault (GIM…)
  GET  /api/incidents/{ticket_number} — read back an incident by ticket number
  GET  /api/counters/{series}         — current high-water mark of a series

A repeated submission gets the same response shape as the original one;
``deduplicated`` / ``matchedTier`` say whether anything was written.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from ticketing.errors import (
    AllocationError,
    DuplicateCheckUnavailable,
    PartialBatchFailure,
    TicketingError,
    ValidationError,
)
from ticketing.models import (
    CounterResponse,
    GponIncidentCreateRequest,
    GponIncidentsCreatedResponse,
    IncidentCreateRequest,
    IncidentCreatedResponse,
)
from ticketing.series import TicketSeries, series_for_ticket
from ticketing.services import TicketingServices
from ticketing.stores import StoreError

logger = logging.getLogger("ticketing.incidents")

router = APIRouter(prefix="/api", tags=["incidents"])


def _services(request: Request) -> TicketingServices:
    return request.app.state.services


def _error_response(exc: TicketingError) -> JSONResponse:
    """Map core errors to the JSON bodies the incident forms display."""
    if isinstance(exc, ValidationError):
        return JSONResponse(
            status_code=400,
            content={"message": str(exc), "error": "validation_error", "fields": exc.fields},
        )
    if isinstance(exc, PartialBatchFailure):
        return JSONResponse(
            status_code=500,
            content={
                "message": (
                    f"Only {len(exc.issued)} incident(s) were created before a failure. "
                    "Do not resubmit the whole form."
                ),
                "error": "partial_batch_failure",
                "incidentNumbers": exc.issued,
                "failedIndex": exc.failed_index,
            },
        )
    if isinstance(exc, AllocationError):
        return JSONResponse(
            status_code=503,
            content={"message": str(exc), "error": "allocation_error", "retryable": True},
        )
    if isinstance(exc, DuplicateCheckUnavailable):
        return JSONResponse(
            status_code=503,
            content={"message": str(exc), "error": "duplicate_check_unavailable", "retryable": True},
        )
    return JSONResponse(status_code=500, content={"message": str(exc), "error": "internal_error"})


@router.post("/incidents", summary="Create an incident", response_model=IncidentCreatedResponse)
async def create_incident(req: IncidentCreateRequest, request: Request):
    try:
        result = await _services(request).writer.create_incident(req)
    except TicketingError as e:
        logger.warning("Incident creation failed: %s", e)
        return _error_response(e)
    return IncidentCreatedResponse(
        incident_number=result.ticket_number,
        deduplicated=result.deduplicated,
        matched_tier=result.matched_tier,
    )


@router.post(
    "/gpon-incidents",
    summary="Create GPON incidents (one per fault)",
    response_model=GponIncidentsCreatedResponse,
)
async def create_gpon_incidents(req: GponIncidentCreateRequest, request: Request):
    try:
        result = await _services(request).writer.create_incident_batch(req)
    except TicketingError as e:
        logger.warning("GPON incident creation failed: %s", e)
        return _error_response(e)
    return GponIncidentsCreatedResponse(
        incident_numbers=result.ticket_numbers,
        deduplicated=result.deduplicated,
        matched_tier=result.matched_tier,
    )


@router.get("/incidents/{ticket_number}", summary="Get an incident by ticket number")
async def get_incident(ticket_number: str, request: Request):
    try:
        series = series_for_ticket(ticket_number)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Not a ticket number: {ticket_number}")

    store = _services(request).store
    try:
        items = await store.list(
            query="SELECT * FROM c WHERE c.type = @type AND c.ticketNumber = @ticket",
            parameters=[
                {"name": "@type", "value": "incident"},
                {"name": "@ticket", "value": ticket_number},
            ],
            partition_key=series.value,
        )
    except StoreError as e:
        logger.warning("Lookup of %s failed: %s", ticket_number, e)
        raise HTTPException(status_code=503, detail="Incident store unavailable")
    if not items:
        raise HTTPException(status_code=404, detail="Incident not found")
    return {k: v for k, v in items[0].items() if not k.startswith("_")}


@router.get("/counters/{series}", summary="Current counter value", response_model=CounterResponse)
async def get_counter(series: TicketSeries, request: Request):
    try:
        value = await _services(request).allocator.peek(series)
    except StoreError as e:
        logger.warning("Counter read for %s failed: %s", series.value, e)
        raise HTTPException(status_code=503, detail="Incident store unavailable")
    return CounterResponse(
        series_name=series.value,
        current_value=value,
        last_ticket_number=series.format(value) if value else None,
    )
