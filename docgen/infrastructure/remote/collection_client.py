"""
HTTP client for the remote collection store (PocketBase-compatible REST API).

Blocking and stateless apart from configuration; the async proxy layer runs it
in worker threads. Every failure surfaces as RemoteFailure.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

import requests

from docgen.domains.errors import RemoteFailure
from docgen.infrastructure.remote.query import AllOf, Filter, render_filter, render_sort
from docgen.utils.config import page_size, remote_timeout, remote_token, remote_url
from docgen.utils.logger import get_logger

logger = get_logger()

# Hard stop for runaway paging if the server keeps reporting more pages.
MAX_PAGES = 500


class CollectionClient:
    """
    Thin wrapper over the records endpoints of one remote store.

    list_records pages through the whole collection; create/update/delete map
    1:1 to POST/PATCH/DELETE.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        per_page: int | None = None,
    ) -> None:
        self._base_url = (base_url or remote_url()).rstrip("/")
        self._token = token if token is not None else remote_token()
        self._timeout = timeout if timeout is not None else remote_timeout()
        self._per_page = per_page or page_size()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _records_url(self, collection: str, record_id: str | None = None) -> str:
        url = f"{self._base_url}/api/collections/{quote(collection, safe='')}/records"
        if record_id is not None:
            url += f"/{quote(str(record_id), safe='')}"
        return url

    def _request(
        self,
        operation: str,
        collection: str,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        try:
            r = requests.request(
                method,
                url,
                params=params,
                json=payload,
                headers=self._headers(),
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning(
                "Remote %s on %s failed: %s",
                operation, collection, type(e).__name__,
            )
            raise RemoteFailure(
                f"{operation} on {collection} failed: {e}",
                operation=operation,
                collection=collection,
                original=e,
            ) from e

        status = getattr(r, "status_code", None)
        if status is None or not 200 <= status < 300:
            logger.warning("Remote %s on %s returned HTTP %s", operation, collection, status)
            raise RemoteFailure(
                f"{operation} on {collection} returned HTTP {status}",
                operation=operation,
                collection=collection,
                status_code=status,
            )
        if status == 204 or not r.content:
            return None
        try:
            return r.json()
        except (json.JSONDecodeError, ValueError) as e:
            logger.exception("Remote %s on %s returned invalid JSON", operation, collection)
            raise RemoteFailure(
                f"{operation} on {collection} returned invalid JSON",
                operation=operation,
                collection=collection,
                status_code=status,
                original=e,
            ) from e

    def list_records(
        self,
        collection: str,
        *,
        filter: Filter | AllOf | None = None,
        sort: list[str] | str | None = None,
        fields: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch every record of a collection matching filter, in server sort order.

        Raises:
            RemoteFailure: On transport error, non-2xx status, or malformed body.
        """
        params: dict[str, Any] = {"perPage": self._per_page}
        rendered = render_filter(filter)
        if rendered:
            params["filter"] = rendered
        rendered_sort = render_sort(sort)
        if rendered_sort:
            params["sort"] = rendered_sort
        if fields:
            params["fields"] = ",".join(fields)

        url = self._records_url(collection)
        out: list[dict[str, Any]] = []
        page = 1
        while page <= MAX_PAGES:
            params["page"] = page
            data = self._request("list", collection, "GET", url, params=dict(params))
            if not isinstance(data, dict):
                raise RemoteFailure(
                    f"list on {collection} returned an unexpected body",
                    operation="list",
                    collection=collection,
                )
            items = data.get("items") or []
            out.extend(i for i in items if isinstance(i, dict))
            total_pages = data.get("totalPages") or 1
            if page >= total_pages or not items:
                break
            page += 1
        logger.debug("Listed %d records from %s", len(out), collection)
        return out

    def count_records(self, collection: str, *, filter: Filter | AllOf | None = None) -> int:
        """Number of records matching filter, read from a one-item page."""
        params: dict[str, Any] = {"page": 1, "perPage": 1, "fields": "id"}
        rendered = render_filter(filter)
        if rendered:
            params["filter"] = rendered
        data = self._request("count", collection, "GET", self._records_url(collection), params=params)
        if not isinstance(data, dict):
            raise RemoteFailure(
                f"count on {collection} returned an unexpected body",
                operation="count",
                collection=collection,
            )
        try:
            return int(data.get("totalItems") or 0)
        except (TypeError, ValueError):
            return 0

    def create_record(self, collection: str, payload: dict[str, Any]) -> dict[str, Any]:
        data = self._request("create", collection, "POST", self._records_url(collection), payload=payload)
        if not isinstance(data, dict):
            raise RemoteFailure(
                f"create on {collection} returned no record",
                operation="create",
                collection=collection,
            )
        return data

    def update_record(self, collection: str, record_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self._records_url(collection, record_id)
        data = self._request("update", collection, "PATCH", url, payload=payload)
        if not isinstance(data, dict):
            raise RemoteFailure(
                f"update on {collection} returned no record",
                operation="update",
                collection=collection,
            )
        return data

    def delete_record(self, collection: str, record_id: str) -> None:
        self._request("delete", collection, "DELETE", self._records_url(collection, record_id))
