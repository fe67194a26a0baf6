import asyncio
import copy
import itertools

import pytest
from azure.cosmos.exceptions import CosmosBatchOperationError, CosmosResourceNotFoundError

from ticketing.stores import StoreError, TransactionConflictError
from ticketing.stores import cosmos_nosql
from ticketing.stores.cosmos_nosql import CosmosDocumentStore


class FakeContainer:
    """Stands in for a ContainerProxy: point reads plus transactional batches."""

    def __init__(self, batch_errors=()):
        self.docs: dict[str, dict] = {}
        self.batch_errors = list(batch_errors)
        self.batches: list[list[tuple]] = []
        self.reads = 0
        self._etags = itertools.count(1)

    def read_item(self, item, partition_key):
        self.reads += 1
        if item not in self.docs:
            raise CosmosResourceNotFoundError(status_code=404, message=f"{item} not found")
        return copy.deepcopy(self.docs[item])

    def execute_item_batch(self, batch_operations, partition_key):
        self.batches.append(batch_operations)
        if self.batch_errors:
            raise self.batch_errors.pop(0)
        results = []
        for op in batch_operations:
            body = dict(op[1][-1], _etag=f'"{next(self._etags)}"')
            self.docs[body["id"]] = body
            results.append({"resourceBody": copy.deepcopy(body)})
        return results


def _batch_error(status):
    return CosmosBatchOperationError(
        error_index=0, headers={}, status_code=status, message="batch failed",
    )


@pytest.fixture
def make_store(monkeypatch):
    def _make(container):
        monkeypatch.setattr(cosmos_nosql, "get_or_create_container", lambda *a, **kw: container)
        return CosmosDocumentStore("ticketing", "tickets", "/series")
    return _make


def bump(current):
    value = (current or {}).get("currentValue", 0) + 1
    record = {"id": f"inc-{value}", "series": "gpon", "type": "incident"}
    return {"seriesName": "gpon", "series": "gpon", "currentValue": value}, [record]


def test_absent_counter_is_created_with_companion(make_store):
    container = FakeContainer()
    store = make_store(container)

    committed = asyncio.run(store.transact("counter-gpon", "gpon", bump))

    assert committed["currentValue"] == 1
    [ops] = container.batches
    assert [op[0] for op in ops] == ["create", "create"]
    assert container.docs["inc-1"]["type"] == "incident"


def test_existing_counter_is_replaced_on_its_etag(make_store):
    container = FakeContainer()
    container.docs["counter-gpon"] = {
        "id": "counter-gpon", "series": "gpon", "currentValue": 4, "_etag": '"seen"', "_ts": 1,
    }
    store = make_store(container)

    committed = asyncio.run(store.transact("counter-gpon", "gpon", bump))

    assert committed["currentValue"] == 5
    op, args, kwargs = container.batches[0][0]
    assert op == "replace"
    assert kwargs == {"if_match_etag": '"seen"'}
    # system properties are not sent back
    assert not any(k.startswith("_") for k in args[1])


def test_lost_race_is_retried_with_a_fresh_read(make_store):
    container = FakeContainer(batch_errors=[_batch_error(412)])
    container.docs["counter-gpon"] = {"id": "counter-gpon", "series": "gpon", "currentValue": 2, "_etag": '"a"'}
    store = make_store(container)

    committed = asyncio.run(store.transact("counter-gpon", "gpon", bump))

    assert container.reads == 2
    assert len(container.batches) == 2
    assert committed["currentValue"] == 3
    assert container.docs["counter-gpon"]["currentValue"] == 3


def test_non_retryable_batch_failure_raises_store_error(make_store):
    container = FakeContainer(batch_errors=[_batch_error(400)])
    store = make_store(container)

    with pytest.raises(StoreError) as exc:
        asyncio.run(store.transact("counter-gpon", "gpon", bump))
    assert not isinstance(exc.value, TransactionConflictError)
    assert container.reads == 1


def test_exhausted_attempts_raise_conflict(make_store):
    container = FakeContainer(batch_errors=[_batch_error(409) for _ in range(3)])
    store = make_store(container)

    with pytest.raises(TransactionConflictError) as exc:
        asyncio.run(store.transact("counter-gpon", "gpon", bump, max_attempts=3))
    assert exc.value.attempts == 3
    assert container.reads == 3
    assert container.docs == {}
