"""
Entity Collection Proxy: typed async accessor over one remote collection.

Wraps the blocking CollectionClient in worker threads so that each call
suspends only the awaiting coroutine. Every record returned is normalized
through the entity schema.
"""

from __future__ import annotations

import asyncio
from typing import Any

from docgen.domains.entities import EntitySchema
from docgen.infrastructure.remote.collection_client import CollectionClient
from docgen.infrastructure.remote.query import Filter


class EntityCollectionProxy:
    def __init__(self, schema: EntitySchema, client: CollectionClient | None = None) -> None:
        self.schema = schema
        self._client = client or CollectionClient()

    def scope_filter(self, scope: str | None) -> Filter | None:
        if scope is None or not self.schema.scope_field:
            return None
        return Filter.eq(self.schema.scope_field, scope)

    async def list(
        self,
        scope: str | None = None,
        sort: str | list[str] | None = None,
        fields: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        List records, optionally restricted to one scope key.

        Raises:
            RemoteFailure: If the remote call fails.
        """
        rows = await asyncio.to_thread(
            self._client.list_records,
            self.schema.collection,
            filter=self.scope_filter(scope),
            sort=sort if sort is not None else self.schema.sort,
            fields=fields,
        )
        return [self.schema.normalize(r) for r in rows]

    async def find(self, flt: Filter, fields: list[str] | None = None) -> list[dict[str, Any]]:
        rows = await asyncio.to_thread(
            self._client.list_records,
            self.schema.collection,
            filter=flt,
            fields=fields,
        )
        return [self.schema.normalize(r) for r in rows]

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        row = await asyncio.to_thread(
            self._client.create_record,
            self.schema.collection,
            self.schema.to_payload(payload),
        )
        return self.schema.normalize(row)

    async def update(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        row = await asyncio.to_thread(
            self._client.update_record,
            self.schema.collection,
            record_id,
            self.schema.to_payload(patch),
        )
        return self.schema.normalize(row)

    async def delete(self, record_id: str) -> None:
        await asyncio.to_thread(self._client.delete_record, self.schema.collection, record_id)

    async def count(self, flt: Filter | None = None) -> int:
        return await asyncio.to_thread(self._client.count_records, self.schema.collection, filter=flt)
