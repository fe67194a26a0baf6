from datetime import datetime, timedelta, timezone

import pytest

from ticketing.guard import LocalSubmissionCache
from ticketing.services import TicketingServices
from ticketing.stores import TransactionConflictError
from ticketing.stores.mock_store import MockDocumentStore


class FakeClock:
    """Drives both the local cache TTL and the incident timestamps."""

    def __init__(self, start: datetime = datetime(2025, 3, 4, 9, 30, tzinfo=timezone.utc)):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def time(self) -> float:
        return self._now.timestamp()

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


class FlakyStore(MockDocumentStore):
    """Mock store whose N-th transactions (1-based) fail as if contention never let up."""

    def __init__(self, fail_on: set[int] | None = None, *, fail_queries: bool = False):
        super().__init__("ticketing", "tickets", "/series")
        self.fail_on = fail_on or set()
        self.fail_queries = fail_queries
        self.transactions = 0

    async def transact(self, item_id, partition_key, update, *, max_attempts=5):
        self.transactions += 1
        if self.transactions in self.fail_on:
            raise TransactionConflictError(item_id, max_attempts)
        return await super().transact(item_id, partition_key, update, max_attempts=max_attempts)

    async def list(self, *, query=None, parameters=None, partition_key=None):
        if self.fail_queries:
            raise ConnectionError("store unreachable")
        return await super().list(query=query, parameters=parameters, partition_key=partition_key)


async def incident_docs(store, series: str | None = None) -> list[dict]:
    return await store.list(
        query="SELECT * FROM c WHERE c.type = @type ORDER BY c.ticketNumber ASC",
        parameters=[{"name": "@type", "value": "incident"}],
        partition_key=series,
    )


def build_services(store, clock: FakeClock, **guard_options) -> TicketingServices:
    return TicketingServices.build(
        store,
        cache=LocalSubmissionCache(30, clock=clock.time),
        now=clock.now,
        durable_window_seconds=600,
        **guard_options,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def services(store, clock):
    return build_services(store, clock)


@pytest.fixture
def incident_payload():
    return {
        "exchangeName": "KHI-CLIFTON",
        "nodes": {"nodeA": "CLF-AGG-01", "nodeB": "CLF-ACC-07"},
        "stakeholders": ["NOC", "Transmission", "Field Ops"],
        "faultType": "Link Down",
        "equipmentType": "Switch",
        "domain": "Metro",
        "ticketGenerator": "ayesha",
    }


@pytest.fixture
def gpon_payload():
    return {
        "exchangeName": "LHR-GULBERG",
        "stakeholders": ["GPON Team", "NOC"],
        "ticketGenerator": "bilal",
        "faults": [
            {
                "fdh": "FDH-12",
                "fats": [{"id": "1", "value": "FAT-3"}, {"id": "2", "value": "FAT-1"}],
                "oltIp": "10.20.1.5",
                "fsps": [{"id": "1", "value": "0/1/3"}],
                "isOutage": True,
            },
            {
                "fdh": "FDH-14",
                "fats": [{"id": "1", "value": "FAT-9"}],
                "oltIp": "10.20.1.6",
                "fsps": [{"id": "1", "value": "0/2/1"}],
                "isOutage": False,
                "remarks": "LOS on two ONTs",
            },
            {
                "fdh": "FDH-20",
                "fats": [],
                "oltIp": "10.20.1.7",
                "fsps": [],
                "isOutage": False,
            },
        ],
    }
