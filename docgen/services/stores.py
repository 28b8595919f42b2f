"""
Per-Entity Stores: one in-memory ordered collection per entity type.

A store exposes `items`, `loading`, `error` and async fetch / add / update /
remove operations. Mutations go through the OptimisticMutationEngine; fetches
are guarded by a token so that a response for a scope that is no longer the
requested one is dropped instead of committed.

Store operations never raise on remote failure. The outcome is reported through
the return value and the single `error` slot, which is cleared when a new
operation starts.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Iterable

from docgen.domains import entities
from docgen.domains.entities import PREPEND, REVERT, SCHEDULE_FIELDS, EntitySchema
from docgen.domains.errors import ReconciliationFailure, RemoteFailure
from docgen.infrastructure.remote.collection_client import CollectionClient
from docgen.infrastructure.remote.query import Filter, all_of
from docgen.services.optimistic import OptimisticMutationEngine, RecordSet
from docgen.services.proxy import EntityCollectionProxy
from docgen.utils.logger import get_logger

logger = get_logger()

Listener = Callable[["EntityStore"], None]


def _raise_on_failures(results: list[Any], total: int) -> None:
    """Re-raise unexpected errors; fold RemoteFailures into one ReconciliationFailure."""
    failures = [r for r in results if isinstance(r, BaseException)]
    for f in failures:
        if not isinstance(f, RemoteFailure):
            raise f
    if failures:
        raise ReconciliationFailure(
            f"{len(failures)} of {total} steps failed",
            failures=failures,
        )


class EntityStore:
    """Optimistic, optionally scoped store over one remote collection."""

    # When True, a scoped store with no scope holds the whole collection.
    scope_optional = False

    def __init__(
        self,
        schema: EntitySchema,
        proxy: EntityCollectionProxy | None = None,
        client: CollectionClient | None = None,
    ) -> None:
        self.schema = schema
        self._proxy = proxy or EntityCollectionProxy(schema, client)
        self._records = RecordSet()
        self._listeners: list[Listener] = []
        self._scope: str | None = None
        self._fetch_token = 0
        self.loading = False
        self.error: str | None = None
        self._engine = OptimisticMutationEngine(
            self._proxy,
            self._records,
            create_order=schema.create_order,
            update_policy=schema.update_policy,
            normalize=schema.normalize,
            on_change=self._notify,
            belongs=self._holds,
            on_cleanup_error=lambda e: self._fail("delete", e),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.schema.name!r}, scope={self._scope!r}, items={len(self._records)})"

    @property
    def items(self) -> list[dict[str, Any]]:
        return list(self._records)

    @property
    def scope(self) -> str | None:
        return self._scope

    @property
    def scoped(self) -> bool:
        return bool(self.schema.scope_field)

    @property
    def pending_ids(self) -> list[str]:
        return self._engine.ledger.pending()

    def get(self, record_id: str) -> dict[str, Any] | None:
        return self._records.get(record_id)

    def _holds(self, record: dict[str, Any]) -> bool:
        """Whether `record` belongs to what the store currently shows."""
        if not self.scoped:
            return True
        if self._scope is None:
            return self.scope_optional
        return record.get(self.schema.scope_field) == self._scope

    # --- change notification ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _fail(self, operation: str, exc: Exception) -> None:
        self.error = self.schema.error_message(operation)
        logger.warning("%s %s failed: %s", self.schema.name, operation, exc)
        self._notify()

    # --- fetching ---

    async def _load(self, scope: str | None, *, clear_error: bool = True) -> bool:
        self._fetch_token += 1
        token = self._fetch_token
        if scope != self._scope:
            self._records.reset([])
        self._scope = scope
        self.loading = True
        if clear_error:
            self.error = None
        self._notify()

        try:
            rows = await self._proxy.list(scope)
        except RemoteFailure as e:
            if token != self._fetch_token:
                return False
            self.loading = False
            self._fail("list", e)
            return False

        if token != self._fetch_token:
            logger.debug("Dropping stale %s response for scope %r", self.schema.name, scope)
            return False
        self._records.reset(rows)
        self.loading = False
        logger.info("Loaded %d %s (scope=%r)", len(rows), self.schema.name, scope)
        self._notify()
        return True

    async def fetch(self) -> bool:
        """Load the whole collection. Scoped stores are cleared instead."""
        if self.scoped:
            return await self.fetch_by_scope(None)
        return await self._load(None)

    async def fetch_by_scope(self, scope: str | None) -> bool:
        """
        Switch to `scope` and load its records.

        An empty scope clears the store. A response that arrives after a newer
        fetch was issued is discarded.
        """
        if not self.scoped:
            raise ValueError(f"{self.schema.name} is not a scoped store")
        if not scope:
            self._fetch_token += 1
            self._scope = None
            self._records.reset([])
            self.loading = False
            self._notify()
            return True
        return await self._load(scope)

    async def refresh(self) -> bool:
        if self.scoped:
            return await self.fetch_by_scope(self._scope)
        return await self._load(None)

    # --- mutations ---

    async def add(self, data: dict[str, Any]) -> dict[str, Any] | None:
        self.error = None
        payload = dict(data)
        if self.scoped and self._scope and not payload.get(self.schema.scope_field):
            payload[self.schema.scope_field] = self._scope
        try:
            return await self._engine.create(payload)
        except RemoteFailure as e:
            self._fail("create", e)
            return None

    async def update(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any] | None:
        self.error = None
        try:
            return await self._engine.update(record_id, patch)
        except RemoteFailure as e:
            self._fail("update", e)
            if self.schema.update_policy == REVERT:
                await self._reload_after_failure()
            return None

    async def remove(self, record_id: str) -> bool:
        self.error = None
        try:
            await self._engine.delete(record_id)
            return True
        except RemoteFailure as e:
            self._fail("delete", e)
            return False

    async def _reload_after_failure(self) -> None:
        if self.scoped and not self._scope and not self.scope_optional:
            return
        await self._load(self._scope, clear_error=False)

    # --- bulk operations ---

    async def _delete_all(self, scope: str | None) -> int:
        existing = await self._proxy.list(scope, fields=["id"])
        results = await asyncio.gather(
            *(self._proxy.delete(r["id"]) for r in existing), return_exceptions=True
        )
        _raise_on_failures(results, len(existing))
        return len(existing)

    async def _reseed(self, scope: str | None, rows: list[dict[str, Any]]) -> bool:
        """
        Delete every record in scope, create every row, then refetch the scope.

        Best-effort and not transactional: a failure partway leaves the remote
        collection as a mix of old and new records. The closing refetch always
        runs and is the only consistency point.
        """
        self.error = None
        self.loading = True
        self._notify()
        try:
            deleted = await self._delete_all(scope)
            created = await asyncio.gather(
                *(self._proxy.create(r) for r in rows), return_exceptions=True
            )
            _raise_on_failures(created, len(rows))
            logger.info("Re-seeded %s (scope=%r): %d removed, %d created", self.schema.name, scope, deleted, len(rows))
        except (RemoteFailure, ReconciliationFailure) as e:
            self._fail("replace", e)
        await self._load(scope, clear_error=False)
        return self.error is None

    async def reset(self) -> bool:
        """
        Empty the store and delete every remote record it covers.

        Scoped stores only touch their current scope; with no scope selected
        nothing remote is deleted.
        """
        self.error = None
        self._fetch_token += 1
        self.loading = False
        self._records.reset([])
        self._notify()
        if self.scoped and self._scope is None and not self.scope_optional:
            return True
        try:
            count = await self._delete_all(self._scope if self.scoped else None)
        except (RemoteFailure, ReconciliationFailure) as e:
            self._fail("reset", e)
            return False
        logger.info("Reset %s: %d records deleted", self.schema.name, count)
        return True


class ClientsStore(EntityStore):
    def __init__(self, proxy=None, client=None) -> None:
        super().__init__(entities.CLIENTS, proxy, client)

    async def exists_by_code(self, code_client: str) -> bool:
        code = (code_client or "").strip()
        if not code:
            return False
        try:
            rows = await self._proxy.find(Filter.eq("code_client", code), fields=["id"])
        except RemoteFailure as e:
            logger.warning("Client code lookup failed: %s", e)
            return False
        return len(rows) > 0


class ContactsStore(EntityStore):
    def __init__(self, proxy=None, client=None) -> None:
        super().__init__(entities.CONTACTS, proxy, client)

    async def replace_for_client(self, code_client: str, contacts: Iterable[dict[str, Any]]) -> bool:
        """Replace every contact of one client with `contacts`, then show that client."""
        code = (code_client or "").strip()
        if not code:
            return False
        rows = [{**dict(c), "code_client": code} for c in contacts]
        for row in rows:
            row.pop("id", None)
        return await self._reseed(code, rows)


class TemplatesStore(EntityStore):
    def __init__(self, proxy=None, client=None) -> None:
        super().__init__(entities.TEMPLATES, proxy, client)

    async def duplicate(self, record_id: str) -> dict[str, Any] | None:
        original = self.get(record_id)
        if original is None:
            return None
        payload = {k: v for k, v in original.items() if k in self.schema.fields}
        payload["name"] = f"{original['name']} (copy)"
        payload["status"] = "draft"
        return await self.add(payload)


class ProjectTypesStore(EntityStore):
    def __init__(self, proxy=None, client=None) -> None:
        super().__init__(entities.PROJECT_TYPES, proxy, client)

    async def publish(self, record_id: str) -> dict[str, Any] | None:
        return await self.update(record_id, {"status": "published"})


class VariablesStore(EntityStore):
    """
    Dictionary-like store (key -> label).

    Unlike other scoped stores, fetching without a scope loads the whole
    collection, and replace_all re-seeds one scope (or everything).
    """

    scope_optional = True

    def __init__(self, proxy=None, client=None) -> None:
        super().__init__(entities.VARIABLES, proxy, client)

    async def fetch(self) -> bool:
        return await self._load(None)

    async def fetch_by_scope(self, scope: str | None) -> bool:
        return await self._load(scope or None)

    async def refresh(self) -> bool:
        return await self._load(self._scope)

    def as_mapping(self) -> dict[str, str]:
        return {r["key"]: r["label"] for r in self._records if r["key"]}

    def find_key(self, key: str) -> dict[str, Any] | None:
        for r in self._records:
            if r["key"] == key:
                return r
        return None

    async def set_variable(self, key: str, label: str) -> dict[str, Any] | None:
        existing = self.find_key(key)
        if existing is not None:
            return await self.update(existing["id"], {"label": label})
        payload = {"key": key, "label": label}
        if self._scope:
            payload["scope"] = self._scope
        return await self.add(payload)

    async def delete_variable(self, key: str) -> bool:
        existing = self.find_key(key)
        if existing is None:
            return False
        return await self.remove(existing["id"])

    async def replace_all(
        self,
        scope: str | None,
        entries: dict[str, str] | Iterable[dict[str, Any]],
    ) -> bool:
        """Delete every variable in scope, create every entry, then refetch."""
        if isinstance(entries, dict):
            rows = [{"key": k, "label": v} for k, v in entries.items()]
        else:
            rows = [dict(e) for e in entries]
        for row in rows:
            if scope:
                row["scope"] = scope
        return await self._reseed(scope, rows)


class ProjetsStore(EntityStore):
    """Generation records; they carry the scheduled emails, documents and questions."""

    def __init__(self, proxy=None, client=None) -> None:
        super().__init__(entities.PROJETS, proxy, client)

    def _sent_field(self, category: str) -> str:
        if category not in SCHEDULE_FIELDS:
            raise ValueError(f"Unknown schedule category: {category!r}")
        return SCHEDULE_FIELDS[category][1]

    async def mark_sent(self, record_id: str, category: str, item_id: str) -> bool:
        field = self._sent_field(category)
        record = self.get(record_id)
        if record is None:
            return False
        current = list(record[field])
        if item_id in current:
            return True
        return await self.update(record_id, {field: current + [item_id]}) is not None

    async def unmark_sent(self, record_id: str, category: str, item_id: str) -> bool:
        field = self._sent_field(category)
        record = self.get(record_id)
        if record is None:
            return False
        updated = [i for i in record[field] if i != item_id]
        return await self.update(record_id, {field: updated}) is not None

    def by_client(self, code_client: str) -> list[dict[str, Any]]:
        """Records of one client, one per code_projet (latest wins), newest first."""
        if not code_client:
            return []
        latest: dict[str, dict[str, Any]] = {}
        for r in self._records:
            if r["code_client"] != code_client:
                continue
            key = r["code_projet"] or r["id"]
            prev = latest.get(key)
            if prev is None or r["created"] > prev["created"]:
                latest[key] = r
        return sorted(latest.values(), key=lambda r: r["created"], reverse=True)

    async def generate_code_projet(self, code_client: str) -> str:
        """
        Next project code for a client: `{code}-P001`, `{code}-P002`, ...

        Without a client code a timestamp-based `P-<ms>` is returned.

        Raises:
            RemoteFailure: If the record count cannot be read.
        """
        code = (code_client or "").strip()
        if not code:
            return f"P-{int(time.time() * 1000)}"
        count = await self._proxy.count(Filter.eq("code_client", code))
        return f"{code}-P{count + 1:03d}"

    async def upsert(
        self,
        code_client: str,
        code_projet: str | None,
        data: dict[str, Any],
    ) -> str | None:
        """
        Save a generation record for (code_client, code_projet).

        An existing record with that pair is updated; otherwise a new one is
        created, with a generated code_projet when none is given. Returns the
        record id, or None on failure.
        """
        self.error = None
        code = (code_client or "").strip()
        try:
            resolved = code_projet or await self.generate_code_projet(code)
            existing: list[dict[str, Any]] = []
            if code_projet:
                existing = await self._proxy.find(
                    all_of(Filter.eq("code_client", code), Filter.eq("code_projet", resolved)),
                    fields=["id"],
                )
        except RemoteFailure as e:
            self._fail("create", e)
            return None

        payload = {**data, "code_client": code, "code_projet": resolved}
        if existing:
            updated = await self.update(existing[0]["id"], payload)
            if updated is None:
                return None
            if self.get(updated["id"]) is None:
                self._records.insert(updated, PREPEND)
                self._notify()
            return updated["id"]
        created = await self.add(payload)
        return created["id"] if created is not None else None


def make_store(name: str, client: CollectionClient | None = None) -> EntityStore:
    """Build the store for an entity name declared in docgen.domains.entities."""
    special = {
        "clients": ClientsStore,
        "contacts": ContactsStore,
        "templates": TemplatesStore,
        "project_types": ProjectTypesStore,
        "variables": VariablesStore,
        "projets": ProjetsStore,
    }
    if name in special:
        return special[name](client=client)
    schema = entities.ALL_SCHEMAS.get(name)
    if schema is None:
        raise KeyError(f"Unknown entity: {name}")
    return EntityStore(schema, client=client)
