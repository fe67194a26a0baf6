import asyncio

import pytest

from ticketing.stores import DocumentNotFoundError, DocumentStore, get_document_store
from ticketing.stores.mock_store import MockDocumentStore


@pytest.fixture
def mock_store():
    store = MockDocumentStore("ticketing", "tickets", "/series")
    docs = [
        {"id": "1", "series": "standard", "type": "incident", "exchangeName": "A", "createdAt": "2025-01-01T10:00:00.000+00:00"},
        {"id": "2", "series": "standard", "type": "incident", "exchangeName": "A", "createdAt": "2025-01-01T10:05:00.000+00:00"},
        {"id": "3", "series": "standard", "type": "incident", "exchangeName": "B", "createdAt": "2025-01-01T10:06:00.000+00:00"},
        {"id": "4", "series": "gpon", "type": "incident", "exchangeName": "A", "createdAt": "2025-01-01T10:07:00.000+00:00"},
    ]
    for doc in docs:
        asyncio.run(store.upsert(doc))
    return store


def test_registry_builds_mock_store():
    store = get_document_store("ticketing", "tickets", "/series", backend_type="mock")
    assert isinstance(store, MockDocumentStore)
    assert isinstance(store, DocumentStore)


def test_unknown_backend_rejected():
    with pytest.raises(ValueError):
        get_document_store("ticketing", "tickets", "/series", backend_type="sqlite")


def test_query_with_range_and_order(mock_store):
    items = asyncio.run(mock_store.list(
        query=(
            "SELECT * FROM c WHERE c.exchangeName = @x AND c.createdAt >= @since "
            "ORDER BY c.createdAt DESC"
        ),
        parameters=[
            {"name": "@x", "value": "A"},
            {"name": "@since", "value": "2025-01-01T10:01:00.000+00:00"},
        ],
    ))
    assert [i["id"] for i in items] == ["4", "2"]


def test_query_scoped_to_partition(mock_store):
    items = asyncio.run(mock_store.list(
        query="SELECT * FROM c WHERE c.exchangeName = @x",
        parameters=[{"name": "@x", "value": "A"}],
        partition_key="standard",
    ))
    assert sorted(i["id"] for i in items) == ["1", "2"]


def test_unsupported_query_rejected(mock_store):
    with pytest.raises(ValueError):
        asyncio.run(mock_store.list(query="SELECT c.id FROM c"))
    with pytest.raises(ValueError):
        asyncio.run(mock_store.list(query="SELECT * FROM c WHERE c.x = @missing"))


def test_get_missing_raises(mock_store):
    with pytest.raises(DocumentNotFoundError):
        asyncio.run(mock_store.get("nope", "standard"))
    # DocumentNotFoundError is also a KeyError
    with pytest.raises(KeyError):
        asyncio.run(mock_store.get("4", "standard"))


def test_transact_creates_then_updates(mock_store):
    def bump(current):
        value = (current or {}).get("n", 0) + 1
        return {"id": "ctr", "series": "standard", "n": value}, []

    first = asyncio.run(mock_store.transact("ctr", "standard", bump))
    second = asyncio.run(mock_store.transact("ctr", "standard", bump))
    assert (first["n"], second["n"]) == (1, 2)
    assert first["_etag"] != second["_etag"]


def test_transact_commits_companion_documents(mock_store):
    def bump(current):
        return {"id": "ctr", "series": "gpon", "n": 1}, [{"id": "inc-1", "series": "gpon", "type": "incident"}]

    asyncio.run(mock_store.transact("ctr", "gpon", bump))
    assert asyncio.run(mock_store.get("inc-1", "gpon"))["type"] == "incident"
