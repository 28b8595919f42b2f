"""
Console wiring: every entity store over one shared client, plus the
notification and search aggregators subscribed to the stores they read.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Callable

from docgen.infrastructure.remote.collection_client import CollectionClient
from docgen.infrastructure.storage.read_state import ReadStateStorage
from docgen.services.notifications import NotificationAggregator
from docgen.services.search import SearchAggregator
from docgen.services.stores import EntityStore, make_store
from docgen.utils.logger import get_logger

logger = get_logger()

# Loaded once at start-up, not scoped to a client.
GLOBAL_STORES = ("clients", "prestations", "templates", "project_types", "variables", "projets")

# Scoped to the client currently open in the detail view.
CLIENT_STORES = (
    "contacts",
    "notes",
    "activity",
    "evaluations",
    "invoices",
    "payments",
    "commandes",
)

SEARCHED_STORES = ("projets", "clients", "templates", "project_types", "variables")


class Console:
    def __init__(
        self,
        client: CollectionClient | None = None,
        storage: ReadStateStorage | None = None,
        today: Callable[[], date] | None = None,
        store_factory: Callable[[str], EntityStore] | None = None,
    ) -> None:
        self._client = client or CollectionClient()
        factory = store_factory or (lambda name: make_store(name, client=self._client))
        self.stores: dict[str, EntityStore] = {
            name: factory(name) for name in (*GLOBAL_STORES, *CLIENT_STORES)
        }
        self.notifications = NotificationAggregator(storage=storage, today=today)
        self.notifications.attach(self.stores["projets"])
        self.search = SearchAggregator()
        for key in SEARCHED_STORES:
            self.search.attach(key, self.stores[key])

    def __getitem__(self, name: str) -> EntityStore:
        return self.stores[name]

    async def load_all(self) -> dict[str, bool]:
        """Fetch every global store concurrently. Returns store name -> success."""
        names = list(GLOBAL_STORES)
        outcomes = await asyncio.gather(*(self.stores[n].fetch() for n in names))
        result = dict(zip(names, outcomes))
        failed = [n for n, ok in result.items() if not ok]
        if failed:
            logger.warning("Initial load incomplete; failed stores: %s", ", ".join(failed))
        return result

    async def open_client(self, code_client: str) -> dict[str, bool]:
        """Switch every client-scoped store to `code_client`."""
        names = list(CLIENT_STORES)
        outcomes = await asyncio.gather(
            *(self.stores[n].fetch_by_scope(code_client) for n in names)
        )
        return dict(zip(names, outcomes))

    def errors(self) -> dict[str, str]:
        return {n: s.error for n, s in self.stores.items() if s.error}

    def client_alerts(self, code_client: str) -> list[dict[str, Any]]:
        return self.notifications.alerts_for_client(code_client)
