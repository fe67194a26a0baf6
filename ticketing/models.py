"""
Pydantic request/response models — shared by the router and the writer.

Wire format is the camelCase JSON the incident forms already send
(exchangeName, faultType, oltIp ...); Python code uses snake_case.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class IncidentCreateRequest(_CamelModel):
    """Single-fault incident form.

    Required fields accept null so the writer reports them as missing
    instead of pydantic rejecting the body.
    """
    exchange_name: str | None = None
    nodes: Any = None                      # {"nodeA": "...", "nodeB": "..."} or a list
    stakeholders: list[str] | None = None
    fault_type: str | None = None
    equipment_type: str = ""
    domain: str = ""
    ticket_generator: str = ""
    is_multiple_fault: bool = False
    outage_nodes: dict[str, bool] | None = None
    remarks: str = ""


class FieldEntry(_CamelModel):
    """One FAT / FSP row of a GPON fault (the form keys rows by a client id)."""
    id: str | None = None
    value: str = ""


class GponFault(_CamelModel):
    fdh: str = ""
    fats: list[FieldEntry] = []
    olt_ip: str = ""
    fsps: list[FieldEntry] = []
    is_outage: bool = False
    remarks: str = ""


class GponIncidentCreateRequest(_CamelModel):
    """GPON multi-fault form: one ticket per fault."""
    exchange_name: str | None = None
    stakeholders: list[str] | None = None
    ticket_generator: str | None = None
    faults: list[GponFault] | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

MatchedTier = Literal["local", "durable"]


class IncidentCreatedResponse(_CamelModel):
    message: str = "Incident Created"
    incident_number: str
    deduplicated: bool = False
    matched_tier: MatchedTier | None = Field(
        default=None,
        description="Which duplicate check recognised the submission, if any.",
    )


class GponIncidentsCreatedResponse(_CamelModel):
    message: str = "GPON incidents created successfully"
    incident_numbers: list[str]
    deduplicated: bool = False
    matched_tier: MatchedTier | None = None


class CounterResponse(_CamelModel):
    series_name: str
    current_value: int
    last_ticket_number: str | None = None
