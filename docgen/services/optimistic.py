"""
Optimistic Mutation Engine.

Local state is changed before the remote call is awaited, then reconciled with
the server's answer:

- create: a provisional record with a temporary id is inserted; on success it is
  replaced in place by the confirmed record, on failure it is removed. If the
  provisional row was dropped meanwhile (a refetch of the same scope landed
  first), the confirmed record is inserted at the create position provided it
  still belongs to what the store holds.
- update: the patch is applied locally; on success the confirmed record replaces
  it. On failure the optimistic value stays (KEEP) or the pre-mutation record is
  restored (REVERT) and the caller is expected to refetch.
- delete: the record is removed locally and is not restored on failure.

Every temporary id goes through a MutationLedger while its create is in flight:
pending, optionally cancelled, then dropped once the remote call resolves.
Overlapping mutations on one record are not sequenced; whichever resolves last
wins.
"""

from __future__ import annotations

import itertools
import secrets
from typing import Any, Callable

from docgen.domains.entities import APPEND, KEEP, PREPEND, REVERT
from docgen.domains.errors import RemoteFailure
from docgen.utils.logger import get_logger

logger = get_logger()

TEMP_PREFIX = "temp-"

PENDING = "pending"
CANCELLED = "cancelled"

_counter = itertools.count(1)


def new_temp_id() -> str:
    """Process-unique provisional id: monotonic counter plus a random suffix."""
    return f"{TEMP_PREFIX}{next(_counter)}-{secrets.token_hex(3)}"


def is_temp_id(record_id: str) -> bool:
    return isinstance(record_id, str) and record_id.startswith(TEMP_PREFIX)


class RecordSet:
    """Ordered in-memory collection of records keyed by their `id`."""

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self._rows: list[dict[str, Any]] = list(records or [])

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self):
        return iter(list(self._rows))

    def snapshot(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self._rows]

    def reset(self, records: list[dict[str, Any]]) -> None:
        self._rows = list(records)

    def index_of(self, record_id: str) -> int:
        for i, row in enumerate(self._rows):
            if row.get("id") == record_id:
                return i
        return -1

    def get(self, record_id: str) -> dict[str, Any] | None:
        i = self.index_of(record_id)
        return self._rows[i] if i >= 0 else None

    def insert(self, record: dict[str, Any], order: str = APPEND) -> None:
        if order == PREPEND:
            self._rows.insert(0, record)
        else:
            self._rows.append(record)

    def replace(self, record_id: str, record: dict[str, Any]) -> bool:
        """Swap the record in place. Returns False if record_id is not present."""
        i = self.index_of(record_id)
        if i < 0:
            return False
        self._rows[i] = record
        return True

    def remove(self, record_id: str) -> dict[str, Any] | None:
        i = self.index_of(record_id)
        if i < 0:
            return None
        return self._rows.pop(i)


class MutationLedger:
    """
    Per-store index of creates still in flight.

    Entries exist only between issue() and settle(); a settled create leaves
    nothing behind.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, temp_id: str) -> bool:
        return temp_id in self._entries

    def issue(self) -> str:
        temp_id = new_temp_id()
        while temp_id in self._entries:
            temp_id = new_temp_id()
        self._entries[temp_id] = PENDING
        return temp_id

    def state(self, temp_id: str) -> str | None:
        return self._entries.get(temp_id)

    def cancel(self, temp_id: str) -> bool:
        """Mark a still-pending create as cancelled. Returns False if not pending."""
        if self._entries.get(temp_id) != PENDING:
            return False
        self._entries[temp_id] = CANCELLED
        return True

    def settle(self, temp_id: str) -> str | None:
        """Drop the entry once its remote call resolved. Returns its last state."""
        return self._entries.pop(temp_id, None)

    def pending(self) -> list[str]:
        return list(self._entries)


class OptimisticMutationEngine:
    """
    Applies create/update/delete to a RecordSet ahead of the remote call.

    All three operations re-raise RemoteFailure after local rollback so the
    owning store can record the error. `belongs` tells whether a confirmed
    record still fits the current contents (same scope); `on_cleanup_error`
    receives a failed delete of a create that was cancelled while in flight.
    """

    def __init__(
        self,
        proxy: Any,
        records: RecordSet,
        *,
        create_order: str = APPEND,
        update_policy: str = KEEP,
        normalize: Callable[[dict[str, Any]], dict[str, Any]] | None = None,
        on_change: Callable[[], None] | None = None,
        belongs: Callable[[dict[str, Any]], bool] | None = None,
        on_cleanup_error: Callable[[RemoteFailure], None] | None = None,
    ) -> None:
        self._proxy = proxy
        self._records = records
        self.ledger = MutationLedger()
        self.create_order = create_order
        self.update_policy = update_policy
        self._normalize = normalize or (lambda r: dict(r))
        self._on_change = on_change or (lambda: None)
        self._belongs = belongs or (lambda r: True)
        self._on_cleanup_error = on_cleanup_error

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        temp_id = self.ledger.issue()
        provisional = self._normalize({**payload, "id": temp_id})
        self._records.insert(provisional, self.create_order)
        self._on_change()

        try:
            confirmed = await self._proxy.create(payload)
        except RemoteFailure:
            self.ledger.settle(temp_id)
            self._records.remove(temp_id)
            self._on_change()
            raise

        if self.ledger.settle(temp_id) == CANCELLED:
            # Removed locally while in flight: drop the server copy as well.
            logger.info("Create %s cancelled locally; deleting %s", temp_id, confirmed["id"])
            try:
                await self._proxy.delete(confirmed["id"])
            except RemoteFailure as e:
                if self._on_cleanup_error is None:
                    raise
                self._on_cleanup_error(e)
            return confirmed

        if not self._records.replace(temp_id, confirmed):
            if self._records.index_of(confirmed["id"]) >= 0:
                logger.debug("Confirmed %s already held after refetch", confirmed["id"])
            elif self._belongs(confirmed):
                self._records.insert(confirmed, self.create_order)
            else:
                logger.debug("Confirmed %s no longer in scope; not inserted", confirmed["id"])
        self._on_change()
        return confirmed

    async def update(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        before = self._records.get(record_id)
        snapshot = dict(before) if before is not None else None
        if before is not None:
            self._records.replace(record_id, self._normalize({**before, **patch, "id": record_id}))
            self._on_change()

        try:
            confirmed = await self._proxy.update(record_id, patch)
        except RemoteFailure:
            if self.update_policy == REVERT and snapshot is not None:
                self._records.replace(record_id, snapshot)
                self._on_change()
            raise

        self._records.replace(record_id, confirmed)
        self._on_change()
        return confirmed

    async def delete(self, record_id: str) -> None:
        removed = self._records.remove(record_id)
        if removed is not None:
            self._on_change()
        if is_temp_id(record_id):
            # Nothing exists remotely yet; create() finishes the job once it resolves.
            self.ledger.cancel(record_id)
            return
        await self._proxy.delete(record_id)
