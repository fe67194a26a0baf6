"""
MockDocumentStore — in-memory document store for tests and offline demos.

Accepts the same constructor signature as CosmosDocumentStore.  Understands
the subset of Cosmos SQL this service issues:

    SELECT * FROM c [WHERE c.f <op> @p [AND ...]] [ORDER BY c.f [ASC|DESC]]

with <op> one of = != > >= < <=.  Transactions emulate ETag optimistic
concurrency, yielding to the event loop between read and commit so that
concurrent callers really do race.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import operator
import re
from typing import Any

from ticketing.stores import (
    DocumentNotFoundError,
    TransactionConflictError,
    TransactionUpdate,
)

_QUERY_RE = re.compile(
    r"^\s*SELECT\s+\*\s+FROM\s+c"
    r"(?:\s+WHERE\s+(?P<where>.+?))?"
    r"(?:\s+ORDER\s+BY\s+c\.(?P<order>\w+)(?:\s+(?P<direction>ASC|DESC))?)?\s*$",
    re.IGNORECASE | re.DOTALL,
)
_CONDITION_RE = re.compile(r"^c\.(?P<field>\w+)\s*(?P<op>!=|>=|<=|=|>|<)\s*(?P<param>@\w+)$")

_OPERATORS = {
    "=": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


def _compile_where(where: str | None, params: dict[str, Any]):
    if not where:
        return []
    predicates = []
    for clause in re.split(r"\s+AND\s+", where.strip(), flags=re.IGNORECASE):
        m = _CONDITION_RE.match(clause.strip())
        if not m:
            raise ValueError(f"Unsupported condition for mock store: {clause!r}")
        if m["param"] not in params:
            raise ValueError(f"Missing query parameter {m['param']}")
        predicates.append((m["field"], _OPERATORS[m["op"]], params[m["param"]]))
    return predicates


def _matches(item: dict[str, Any], predicates) -> bool:
    for field, op, value in predicates:
        if field not in item:
            return False
        try:
            if not op(item[field], value):
                return False
        except TypeError:
            return False
    return True


class MockDocumentStore:
    """In-memory document store with optimistic transactions."""

    def __init__(
        self,
        db_name: str = "",
        container_name: str = "",
        pk_path: str = "/series",
        *,
        ensure_created: bool = False,
    ):
        self._pk_field = pk_path.lstrip("/")
        self._items: dict[tuple[str, str], dict[str, Any]] = {}
        self._etags = itertools.count(1)

    def _key(self, item_id: str, partition_key: str) -> tuple[str, str]:
        return (partition_key, item_id)

    def _stamp(self, item: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(item)
        stored["_etag"] = f'"{next(self._etags)}"'
        return stored

    async def list(
        self,
        *,
        query: str | None = None,
        parameters: list[dict[str, Any]] | None = None,
        partition_key: str | None = None,
    ) -> list[dict[str, Any]]:
        m = _QUERY_RE.match(query or "SELECT * FROM c")
        if not m:
            raise ValueError(f"Unsupported query for mock store: {query!r}")
        params = {p["name"]: p["value"] for p in parameters or []}
        predicates = _compile_where(m["where"], params)

        items = [
            copy.deepcopy(item)
            for (pk, _), item in self._items.items()
            if (partition_key is None or pk == partition_key) and _matches(item, predicates)
        ]
        if m["order"]:
            field = m["order"]
            items.sort(
                key=lambda i: (i.get(field) is not None, i.get(field)),
                reverse=(m["direction"] or "ASC").upper() == "DESC",
            )
        return items

    async def get(self, item_id: str, partition_key: str) -> dict[str, Any]:
        key = self._key(item_id, partition_key)
        if key not in self._items:
            raise DocumentNotFoundError(item_id)
        return copy.deepcopy(self._items[key])

    async def upsert(self, item: dict[str, Any]) -> dict[str, Any]:
        stored = self._stamp(item)
        self._items[self._key(item["id"], item[self._pk_field])] = stored
        return copy.deepcopy(stored)

    async def transact(
        self,
        item_id: str,
        partition_key: str,
        update: TransactionUpdate,
        *,
        max_attempts: int = 5,
    ) -> dict[str, Any]:
        key = self._key(item_id, partition_key)
        for _ in range(max_attempts):
            current = self._items.get(key)
            read_etag = current["_etag"] if current else None
            document, creates = update(copy.deepcopy(current) if current else None)

            # Network round-trip: let other transactions interleave here.
            await asyncio.sleep(0)

            latest = self._items.get(key)
            if (latest["_etag"] if latest else None) != read_etag:
                continue
            if any(self._key(c["id"], partition_key) in self._items for c in creates):
                continue

            document = {k: v for k, v in document.items() if not k.startswith("_")}
            document["id"] = item_id
            document.setdefault(self._pk_field, partition_key)
            stored = self._stamp(document)
            self._items[key] = stored
            for c in creates:
                self._items[self._key(c["id"], partition_key)] = self._stamp(c)
            return copy.deepcopy(stored)

        raise TransactionConflictError(item_id, max_attempts)
