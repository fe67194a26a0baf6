"""
DocumentStore — backend-agnostic document CRUD + query + transaction protocol.

Provides:
  - DocumentStore Protocol (abstract interface)
  - Store exception types shared by every backend
  - Registry + factory function (get_document_store)
  - Auto-registers CosmosDocumentStore and MockDocumentStore on import

Usage:
    from ticketing.stores import get_document_store, DocumentStore

    store = get_document_store("ticketing", "tickets", "/series")
    items = await store.list(
        query="SELECT * FROM c WHERE c.exchangeName = @x",
        parameters=[{"name": "@x", "value": "KHI-01"}],
        partition_key="standard",
    )
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable

# A transaction update receives the current document (None when absent)
# and returns (new_document, documents_to_create_alongside_it).
TransactionUpdate = Callable[
    [dict[str, Any] | None],
    tuple[dict[str, Any], list[dict[str, Any]]],
]


class StoreError(Exception):
    """The document store rejected or failed an operation."""


class TransactionConflictError(StoreError):
    """An optimistic transaction kept losing to concurrent writers."""

    def __init__(self, item_id: str, attempts: int):
        super().__init__(
            f"Transaction on {item_id!r} did not commit after {attempts} attempts"
        )
        self.item_id = item_id
        self.attempts = attempts


class DocumentNotFoundError(StoreError, KeyError):
    """No document with the requested id in the requested partition."""


@runtime_checkable
class DocumentStore(Protocol):
    """Backend-agnostic document CRUD + query interface."""

    async def list(
        self,
        *,
        query: str | None = None,
        parameters: list[dict[str, Any]] | None = None,
        partition_key: str | None = None,
    ) -> list[dict[str, Any]]:
        """List/query documents. If query is None, return all.

        Args:
            query: Cosmos SQL query string (e.g. "SELECT * FROM c WHERE c.x = @x")
            parameters: Parameterized query values (e.g. [{"name": "@x", "value": 1}]).
                        Always use parameters instead of f-string interpolation.
            partition_key: Scope query to a single partition (avoids cross-partition cost).
        """
        ...

    async def get(
        self,
        item_id: str,
        partition_key: str,
    ) -> dict[str, Any]:
        """Get a single document by ID + partition key.

        Raises DocumentNotFoundError when it does not exist.
        """
        ...

    async def upsert(
        self,
        item: dict[str, Any],
    ) -> dict[str, Any]:
        """Insert or update a document."""
        ...

    async def transact(
        self,
        item_id: str,
        partition_key: str,
        update: TransactionUpdate,
        *,
        max_attempts: int = 5,
    ) -> dict[str, Any]:
        """Optimistic read-modify-write of one document.

        Reads ``item_id``, calls ``update`` with it (None if absent) and
        commits the returned document only if nobody changed it since the
        read.  Documents returned alongside it are created in the same
        atomic batch and must share ``partition_key``.  A lost race re-runs
        ``update`` against the fresh document, up to ``max_attempts`` times.

        Returns the committed document.
        Raises TransactionConflictError when every attempt lost the race,
        StoreError for any other failure.
        """
        ...


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_document_store_registry: dict[str, type] = {}


def register_document_store(name: str, cls: type) -> None:
    """Register a DocumentStore implementation by name."""
    _document_store_registry[name] = cls


def get_document_store(
    db_name: str,
    container_name: str,
    partition_key_path: str,
    *,
    backend_type: str | None = None,
    ensure_created: bool = False,
) -> DocumentStore:
    """Factory that returns the appropriate DocumentStore implementation.

    Args:
        db_name: Database name (e.g. "ticketing")
        container_name: Container name within the database
        partition_key_path: Cosmos partition key path (e.g. "/series")
        backend_type: Override store type. Defaults to 'cosmosdb-nosql'.
                      Must match a registered store name.
        ensure_created: If True, create the container via ARM on first access.
    """
    bt = backend_type or "cosmosdb-nosql"
    if bt not in _document_store_registry:
        raise ValueError(
            f"Unknown document store: {bt}. "
            f"Available: {list(_document_store_registry)}"
        )
    return _document_store_registry[bt](
        db_name, container_name, partition_key_path,
        ensure_created=ensure_created,
    )


# ---------------------------------------------------------------------------
# Auto-register at module load
# ---------------------------------------------------------------------------

from .cosmos_nosql import CosmosDocumentStore  # noqa: E402
from .mock_store import MockDocumentStore  # noqa: E402

register_document_store("cosmosdb-nosql", CosmosDocumentStore)
register_document_store("mock", MockDocumentStore)
