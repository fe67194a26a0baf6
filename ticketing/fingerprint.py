"""
Submission fingerprints — the dedup key of a creation request.

A fingerprint covers only the fields that make two requests "the same
logical submission".  Unordered collections (stakeholders, FAT/FSP values,
node maps) are sorted before hashing so re-ordering a form does not defeat
the guard.  GPON fault order is kept: ticket numbers are returned
positionally.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Iterable

from ticketing.models import FieldEntry, GponIncidentCreateRequest, IncidentCreateRequest
from ticketing.series import TicketSeries


@dataclass(frozen=True)
class SubmissionFingerprint:
    """Digest plus the coarse attributes the durable check compares."""
    series: TicketSeries
    digest: str
    exchange: str
    stakeholders: tuple[str, ...]
    item_count: int = 1
    nodes: tuple = ()
    fault_type: str = ""


# ---------------------------------------------------------------------------
# Normalisation (also applied to stored incidents by the durable check)
# ---------------------------------------------------------------------------


def _clean(value: Any) -> str:
    return str(value if value is not None else "").strip()


def normalize_stakeholders(stakeholders: Iterable[Any] | None) -> tuple[str, ...]:
    return tuple(sorted({_clean(s) for s in stakeholders or () if _clean(s)}))


def normalize_nodes(nodes: Any) -> tuple:
    """Node maps become sorted (key, value) pairs; lists become sorted values."""
    if not nodes:
        return ()
    if isinstance(nodes, dict):
        return tuple(sorted((str(k), _clean(v)) for k, v in nodes.items() if _clean(v)))
    if isinstance(nodes, (list, tuple, set)):
        return tuple(sorted(_clean(n) for n in nodes if _clean(n)))
    return (_clean(nodes),)


def _entry_values(entries: list[FieldEntry]) -> list[str]:
    return sorted(_clean(e.value) for e in entries if _clean(e.value))


def _digest(payload: dict[str, Any]) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def fingerprint_incident(req: IncidentCreateRequest) -> SubmissionFingerprint:
    exchange = _clean(req.exchange_name)
    stakeholders = normalize_stakeholders(req.stakeholders)
    nodes = normalize_nodes(req.nodes)
    fault_type = _clean(req.fault_type)
    payload = {
        "series": TicketSeries.STANDARD.value,
        "exchange": exchange,
        "nodes": nodes,
        "stakeholders": stakeholders,
        "faultType": fault_type,
        "equipmentType": _clean(req.equipment_type),
        "domain": _clean(req.domain),
    }
    return SubmissionFingerprint(
        series=TicketSeries.STANDARD,
        digest=_digest(payload),
        exchange=exchange,
        stakeholders=stakeholders,
        nodes=nodes,
        fault_type=fault_type,
    )


def fingerprint_gpon_batch(req: GponIncidentCreateRequest) -> SubmissionFingerprint:
    exchange = _clean(req.exchange_name)
    stakeholders = normalize_stakeholders(req.stakeholders)
    faults = [
        {
            "fdh": _clean(f.fdh),
            "oltIp": _clean(f.olt_ip),
            "fats": _entry_values(f.fats),
            "fsps": _entry_values(f.fsps),
            "isOutage": bool(f.is_outage),
        }
        for f in req.faults
    ]
    payload = {
        "series": TicketSeries.GPON.value,
        "exchange": exchange,
        "stakeholders": stakeholders,
        "ticketGenerator": _clean(req.ticket_generator),
        "faultCount": len(faults),
        "faults": faults,
    }
    return SubmissionFingerprint(
        series=TicketSeries.GPON,
        digest=_digest(payload),
        exchange=exchange,
        stakeholders=stakeholders,
        item_count=len(faults),
    )
