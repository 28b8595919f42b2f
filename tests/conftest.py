"""
Shared fixtures: an in-memory stand-in for the remote collection store.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from typing import Any

import pytest

from docgen.domains.errors import RemoteFailure
from docgen.infrastructure.remote.query import AllOf, Filter
from docgen.infrastructure.storage.read_state import ReadStateStorage


class FakeCollectionClient:
    """
    Synchronous in-memory replacement for CollectionClient.

    `fail` holds (operation, collection) pairs that raise RemoteFailure.
    """

    def __init__(self, data: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.data: dict[str, list[dict[str, Any]]] = {k: [dict(r) for r in v] for k, v in (data or {}).items()}
        self.fail: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _check(self, operation: str, collection: str) -> None:
        self.calls.append((operation, collection))
        if (operation, collection) in self.fail:
            raise RemoteFailure(
                f"{operation} on {collection} failed",
                operation=operation,
                collection=collection,
                status_code=400,
            )

    @staticmethod
    def _match(row: dict[str, Any], flt: Filter | AllOf | None) -> bool:
        if flt is None:
            return True
        filters = flt.filters if isinstance(flt, AllOf) else [flt]
        return all(row.get(f.field) == f.value for f in filters)

    def list_records(self, collection, *, filter=None, sort=None, fields=None):
        with self._lock:
            return self._list(collection, filter, sort, fields)

    def _list(self, collection, filter, sort, fields):
        self._check("list", collection)
        rows = [dict(r) for r in self.data.get(collection, []) if self._match(r, filter)]
        if isinstance(sort, str) and sort:
            key = sort.lstrip("-")
            rows.sort(key=lambda r: str(r.get(key, "")), reverse=sort.startswith("-"))
        if fields:
            rows = [{k: r.get(k) for k in fields} for r in rows]
        return rows

    def count_records(self, collection, *, filter=None):
        with self._lock:
            self._check("count", collection)
            return sum(1 for r in self.data.get(collection, []) if self._match(r, filter))

    def create_record(self, collection, payload):
        with self._lock:
            return self._create(collection, payload)

    def _create(self, collection, payload):
        self._check("create", collection)
        n = next(self._ids)
        row = {"id": f"rec{n}", "created": f"2024-03-10 10:00:{n:02d}.000Z", **payload}
        self.data.setdefault(collection, []).append(row)
        return dict(row)

    def update_record(self, collection, record_id, payload):
        with self._lock:
            return self._update(collection, record_id, payload)

    def _update(self, collection, record_id, payload):
        self._check("update", collection)
        for row in self.data.get(collection, []):
            if row["id"] == record_id:
                row.update(payload)
                return dict(row)
        raise RemoteFailure("not found", operation="update", collection=collection, status_code=404)

    def delete_record(self, collection, record_id):
        with self._lock:
            return self._delete(collection, record_id)

    def _delete(self, collection, record_id):
        self._check("delete", collection)
        rows = self.data.get(collection, [])
        for i, row in enumerate(rows):
            if row["id"] == record_id:
                rows.pop(i)
                return None
        raise RemoteFailure("not found", operation="delete", collection=collection, status_code=404)


class GatedProxy:
    """
    Async proxy whose calls block until released, to force a specific resolution
    order between overlapping operations. list() for a scope waits on
    release(scope); create() and update() wait on release_op("create" | "update").
    """

    def __init__(self, schema, rows_by_scope: dict[str | None, list[dict[str, Any]]]) -> None:
        self.schema = schema
        self._rows = rows_by_scope
        self._gates: dict[str | None, asyncio.Event] = {}
        self._op_gates: dict[str, asyncio.Event] = {}
        self.created: list[dict[str, Any]] = []

    def _gate(self, scope):
        if scope not in self._gates:
            self._gates[scope] = asyncio.Event()
        return self._gates[scope]

    def _op_gate(self, op: str):
        if op not in self._op_gates:
            self._op_gates[op] = asyncio.Event()
        return self._op_gates[op]

    def release(self, scope) -> None:
        self._gate(scope).set()

    def release_op(self, op: str) -> None:
        self._op_gate(op).set()

    async def list(self, scope=None, sort=None, fields=None):
        await self._gate(scope).wait()
        return [self.schema.normalize(r) for r in self._rows.get(scope, [])]

    async def create(self, payload):
        await self._op_gate("create").wait()
        row = self.schema.normalize({"id": f"srv{len(self.created) + 1}", **payload})
        self.created.append(row)
        return row

    async def update(self, record_id, patch):
        await self._op_gate("update").wait()
        return self.schema.normalize({"id": record_id, **patch})


@pytest.fixture
def read_storage(tmp_path) -> ReadStateStorage:
    return ReadStateStorage(tmp_path / "state" / "notif_read.json")


def projet(
    record_id: str,
    *,
    client_name: str = "Acme",
    code_client: str = "C001",
    status: str = "success",
    created: str = "2024-03-01 09:00:00.000Z",
    emails: list[dict[str, Any]] | None = None,
    documents: list[dict[str, Any]] | None = None,
    questions: list[dict[str, Any]] | None = None,
    sent_emails: list[str] | None = None,
    contacts: list[dict[str, Any]] | None = None,
    code_projet: str = "",
) -> dict[str, Any]:
    return {
        "id": record_id,
        "created": created,
        "client_name": client_name,
        "code_client": code_client,
        "code_projet": code_projet,
        "generation_status": status,
        "scheduled_emails": emails or [],
        "scheduled_documents": documents or [],
        "scheduled_questions": questions or [],
        "sent_email_ids": sent_emails or [],
        "contacts": contacts or [],
    }
