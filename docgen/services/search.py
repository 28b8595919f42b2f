"""
Cross-Entity Search Aggregator for the global search box.

A query shorter than the activation threshold (after trim and case-folding)
produces no results and computes nothing. Otherwise each category is a
case-insensitive substring match over a few fields, capped, in source order.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

from docgen.utils.config import search_cap, search_min_chars

# Category -> (store key, searched fields, label field, sub-label field, route)
RECORD_CATEGORIES: dict[str, tuple[str, tuple[str, ...], str, str, str]] = {
    "history": ("projets", ("client_name", "code_client"), "client_name", "code_client", "/history"),
    "clients": ("clients", ("nom", "code_client", "ville"), "nom", "code_client", "/clients/{id}"),
    "templates": ("templates", ("name", "type"), "name", "type", "/templates"),
    "project_types": ("project_types", ("name", "code"), "name", "code", "/configuration"),
    "variables": ("variables", ("key", "label"), "key", "label", "/variables"),
}

CATEGORY_ORDER = (
    "history",
    "clients",
    "templates",
    "project_types",
    "variables",
    "planning",
    "contacts",
)


def normalize_query(query: str | None) -> str:
    return (query or "").strip().casefold()


def _matches(needle: str, values: Iterable[Any]) -> bool:
    return any(needle in str(v or "").casefold() for v in values)


def search_records(
    records: Iterable[dict[str, Any]],
    needle: str,
    category: str,
    cap: int,
) -> list[dict[str, Any]]:
    _, fields, label_field, sub_field, route = RECORD_CATEGORIES[category]
    out: list[dict[str, Any]] = []
    for r in records:
        if not _matches(needle, (r.get(f) for f in fields)):
            continue
        out.append({
            "category": category,
            "id": r.get("id", ""),
            "label": r.get(label_field) or "",
            "sub": r.get(sub_field) or "",
            "route": route.format(id=r.get("id", "")),
            "context": {},
        })
        if len(out) >= cap:
            break
    return out


def search_planning(projets: Iterable[dict[str, Any]], needle: str, cap: int) -> list[dict[str, Any]]:
    """Scheduled emails matched on their label or their record's client name."""
    out: list[dict[str, Any]] = []
    for record in projets:
        client_name = record.get("client_name") or ""
        for email in record.get("scheduled_emails") or []:
            label = email.get("label") or ""
            if not _matches(needle, (label, client_name)):
                continue
            out.append({
                "category": "planning",
                "id": email.get("id", ""),
                "label": label,
                "sub": client_name,
                "route": "/planning",
                "context": {"record_id": record.get("id", "")},
            })
            if len(out) >= cap:
                return out
    return out


def search_contacts(projets: Iterable[dict[str, Any]], needle: str, cap: int) -> list[dict[str, Any]]:
    """
    Contacts embedded in generation records, deduplicated by email (falling
    back to name) across all records before capping.
    """
    seen: set[str] = set()
    out: list[dict[str, Any]] = []
    for record in projets:
        for contact in record.get("contacts") or []:
            name = contact.get("name") or ""
            email = contact.get("email") or ""
            role = contact.get("role") or ""
            if not _matches(needle, (" ".join((name, email, role)),)):
                continue
            key = email or name
            if key in seen:
                continue
            seen.add(key)
            out.append({
                "category": "contacts",
                "id": contact.get("id", ""),
                "label": name or email,
                "sub": email or role,
                "route": "/history",
                "context": {"open_record_id": record.get("id", "")},
            })
            if len(out) >= cap:
                return out
    return out


def empty_results() -> dict[str, list[dict[str, Any]]]:
    return {c: [] for c in CATEGORY_ORDER}


def search_all(
    query: str | None,
    data: dict[str, list[dict[str, Any]]],
    cap: int = 3,
    min_chars: int = 2,
) -> dict[str, list[dict[str, Any]]]:
    """
    Run every category against `data` (store key -> records).

    Missing store keys count as empty collections.
    """
    needle = normalize_query(query)
    if len(needle) < min_chars:
        return empty_results()
    results = empty_results()
    for category, (key, *_rest) in RECORD_CATEGORIES.items():
        results[category] = search_records(data.get(key) or [], needle, category, cap)
    projets = data.get("projets") or []
    results["planning"] = search_planning(projets, needle, cap)
    results["contacts"] = search_contacts(projets, needle, cap)
    return results


class SearchAggregator:
    """Holds the transient query and recomputes results on query or store change."""

    def __init__(self, cap: int | None = None, min_chars: int | None = None) -> None:
        self.cap = cap if cap is not None else search_cap()
        self.min_chars = min_chars if min_chars is not None else search_min_chars()
        self._stores: dict[str, Any] = {}
        self._unsubscribers: list[Callable[[], None]] = []
        self.query = ""
        self.is_open = False
        self._results = empty_results()

    def attach(self, key: str, store: Any) -> None:
        self._stores[key] = store
        self._unsubscribers.append(store.subscribe(lambda _s: self.recompute()))
        self.recompute()

    def detach_all(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._stores = {}

    def set_query(self, query: str) -> dict[str, list[dict[str, Any]]]:
        self.query = query or ""
        self.is_open = bool(self.query.strip())
        return self.recompute()

    def recompute(self) -> dict[str, list[dict[str, Any]]]:
        data = {key: store.items for key, store in self._stores.items()}
        self._results = search_all(self.query, data, cap=self.cap, min_chars=self.min_chars)
        return self._results

    @property
    def results(self) -> dict[str, list[dict[str, Any]]]:
        return {k: list(v) for k, v in self._results.items()}

    @property
    def has_results(self) -> bool:
        return any(self._results.values())

    def close(self) -> None:
        self.is_open = False

    def select(self, result: dict[str, Any]) -> dict[str, Any]:
        """Return the navigation target for a clicked result and reset the search box."""
        target = {"route": result.get("route", "/"), "context": dict(result.get("context") or {})}
        self.query = ""
        self.is_open = False
        self._results = empty_results()
        return target
