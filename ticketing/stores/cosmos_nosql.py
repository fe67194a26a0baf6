"""
CosmosDocumentStore — Cosmos DB NoSQL implementation of DocumentStore.

Wraps cosmos_helpers.get_or_create_container() and the Cosmos SDK's
synchronous methods with asyncio.to_thread() for non-blocking access.

Transactions use ETag optimistic concurrency: the document is replaced with
If-Match on the ETag that was read, inside a transactional batch that also
creates any companion documents.  A 409/412 from the batch means a
concurrent writer won and the attempt is re-run.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from azure.core.exceptions import AzureError
from azure.cosmos.exceptions import (
    CosmosBatchOperationError,
    CosmosResourceNotFoundError,
)
from azure.cosmos.http_constants import StatusCodes

from ticketing.cosmos_helpers import get_or_create_container
from ticketing.stores import (
    DocumentNotFoundError,
    StoreError,
    TransactionConflictError,
    TransactionUpdate,
)

logger = logging.getLogger("ticketing.stores.cosmos")

_RETRYABLE_STATUS = (StatusCodes.CONFLICT, StatusCodes.PRECONDITION_FAILED)


def _strip_system_properties(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in item.items() if not k.startswith("_")}


class CosmosDocumentStore:
    """Cosmos NoSQL implementation of DocumentStore."""

    def __init__(
        self,
        db_name: str,
        container_name: str,
        pk_path: str,
        *,
        ensure_created: bool = False,
    ):
        self._container = get_or_create_container(
            db_name, container_name, pk_path,
            ensure_created=ensure_created,
        )

    async def list(
        self,
        *,
        query: str | None = None,
        parameters: list[dict[str, Any]] | None = None,
        partition_key: str | None = None,
    ) -> list[dict[str, Any]]:
        q = query or "SELECT * FROM c"
        kwargs: dict = {"query": q}
        if parameters:
            kwargs["parameters"] = parameters
        if partition_key:
            kwargs["partition_key"] = partition_key
        else:
            kwargs["enable_cross_partition_query"] = True
        try:
            return await asyncio.to_thread(
                lambda: list(self._container.query_items(**kwargs))
            )
        except AzureError as e:
            raise StoreError(f"Query failed: {e.message}") from e

    async def get(self, item_id: str, partition_key: str) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(
                self._container.read_item, item_id, partition_key=partition_key
            )
        except CosmosResourceNotFoundError as e:
            raise DocumentNotFoundError(item_id) from e
        except AzureError as e:
            raise StoreError(f"Read of {item_id!r} failed: {e.message}") from e

    async def upsert(self, item: dict[str, Any]) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._container.upsert_item, item)
        except AzureError as e:
            raise StoreError(f"Upsert failed: {e.message}") from e

    async def transact(
        self,
        item_id: str,
        partition_key: str,
        update: TransactionUpdate,
        *,
        max_attempts: int = 5,
    ) -> dict[str, Any]:
        return await asyncio.to_thread(
            self._transact_sync, item_id, partition_key, update, max_attempts
        )

    # ------------------------------------------------------------------
    # Sync internals (run in a worker thread)
    # ------------------------------------------------------------------

    def _transact_sync(
        self,
        item_id: str,
        partition_key: str,
        update: TransactionUpdate,
        max_attempts: int,
    ) -> dict[str, Any]:
        for attempt in range(1, max_attempts + 1):
            try:
                current = self._container.read_item(item_id, partition_key=partition_key)
            except CosmosResourceNotFoundError:
                current = None
            except AzureError as e:
                raise StoreError(f"Read of {item_id!r} failed: {e.message}") from e

            document, creates = update(current)
            document = _strip_system_properties(document)
            document["id"] = item_id

            operations: list[tuple] = []
            if current is None:
                operations.append(("create", (document,)))
            else:
                operations.append(
                    ("replace", (item_id, document), {"if_match_etag": current["_etag"]})
                )
            operations.extend(("create", (c,)) for c in creates)

            try:
                results = self._container.execute_item_batch(
                    batch_operations=operations, partition_key=partition_key,
                )
            except CosmosBatchOperationError as e:
                if e.status_code in _RETRYABLE_STATUS:
                    logger.debug(
                        "Transaction on %s lost race (attempt %d/%d, status %s)",
                        item_id, attempt, max_attempts, e.status_code,
                    )
                    continue
                raise StoreError(
                    f"Transaction on {item_id!r} failed at operation "
                    f"{e.error_index}: {e.message}"
                ) from e
            except AzureError as e:
                raise StoreError(f"Transaction on {item_id!r} failed: {e.message}") from e

            committed = results[0].get("resourceBody") if results else None
            return committed or document

        raise TransactionConflictError(item_id, max_attempts)
