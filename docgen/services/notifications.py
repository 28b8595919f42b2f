"""
Notification/Alert Aggregator.

Derives a flat list of notifications from generation records:

- unresolved scheduled emails dated within [today, today+2] are "imminent",
  within (today+2, today+7] "this-week";
- unresolved scheduled documents and questions dated within [today, today+7]
  are surfaced with a single "upcoming" tier;
- records whose generation failed and whose creation date lies within
  [today-7, today] raise a "generation-error" notification.

Notifications are rebuilt from scratch on every change. The only durable state
is the set of identifiers the user has marked read, which is loaded once and
written back after each change.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable

from docgen.domains.entities import SCHEDULE_FIELDS
from docgen.domains.errors import ParseFailure
from docgen.infrastructure.storage.read_state import ReadStateStorage
from docgen.utils.logger import get_logger

logger = get_logger()

SOON_DAYS = 2
WEEK_DAYS = 7
ERROR_LOOKBACK_DAYS = 7

_DATE_RE = re.compile(r"^\s*(\d{4}-\d{2}-\d{2})")

_LABELS = {
    ("email", "imminent"): "Email due soon",
    ("email", "this-week"): "Email this week",
    ("document", "upcoming"): "Document to generate",
    ("question", "upcoming"): "Question to handle",
    ("generation-error", "error"): "Generation failed",
}


def parse_day(value: Any) -> date:
    """
    Parse the calendar day of a date or ISO timestamp string (time is dropped).

    Raises:
        ParseFailure: If no YYYY-MM-DD prefix can be read.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    m = _DATE_RE.match(value) if isinstance(value, str) else None
    if not m:
        raise ParseFailure(f"Unparseable date: {value!r}")
    try:
        return date.fromisoformat(m.group(1))
    except ValueError as e:
        raise ParseFailure(f"Unparseable date: {value!r}") from e


def composite_id(category: str, parent_id: str, item_id: str | None = None) -> str:
    if item_id is None:
        return f"{category}:{parent_id}"
    return f"{category}:{parent_id}:{item_id}"


def _classify(category: str, day: date, today: date) -> str | None:
    week = today + timedelta(days=WEEK_DAYS)
    if day < today or day > week:
        return None
    if category != "email":
        return "upcoming"
    if day <= today + timedelta(days=SOON_DAYS):
        return "imminent"
    return "this-week"


def _unresolved_items(record: dict[str, Any], category: str) -> Iterable[tuple[dict[str, Any], date]]:
    items_field, sent_field = SCHEDULE_FIELDS[category]
    resolved = set(record.get(sent_field) or [])
    for item in record.get(items_field) or []:
        if item.get("id") in resolved:
            continue
        try:
            day = parse_day(item.get("date"))
        except ParseFailure as e:
            logger.debug("Skipping %s %s on %s: %s", category, item.get("id"), record.get("id"), e)
            continue
        yield item, day


def derive_notifications(records: Iterable[dict[str, Any]], today: date) -> list[dict[str, Any]]:
    """Build the notification list for `today`. Same input always yields the same output."""
    out: list[dict[str, Any]] = []
    for record in records:
        parent_id = record.get("id") or ""
        client_name = record.get("client_name") or ""
        for category in SCHEDULE_FIELDS:
            for item, day in _unresolved_items(record, category):
                kind = _classify(category, day, today)
                if kind is None:
                    continue
                out.append({
                    "id": composite_id(category, parent_id, item["id"]),
                    "category": category,
                    "kind": kind,
                    "label": _LABELS[(category, kind)],
                    "description": f"{item['label']} - {client_name}",
                    "date": day.isoformat(),
                    "route": "/planning",
                    "context": {"record_id": parent_id},
                })

        if record.get("generation_status") == "error":
            try:
                day = parse_day(record.get("created"))
            except ParseFailure:
                continue
            if today - timedelta(days=ERROR_LOOKBACK_DAYS) <= day <= today:
                out.append({
                    "id": composite_id("generation-error", parent_id),
                    "category": "generation-error",
                    "kind": "error",
                    "label": _LABELS[("generation-error", "error")],
                    "description": client_name,
                    "date": day.isoformat(),
                    "route": "/history",
                    "context": {"record_id": parent_id},
                })
    return out


def client_alerts(records: Iterable[dict[str, Any]], code_client: str, today: date) -> list[dict[str, Any]]:
    """
    Active alerts for one client's generation records.

    Failed generation -> danger; unresolved email/document dated before today ->
    warning (late); dated within [today, today+7] -> info (imminent).
    """
    week = today + timedelta(days=WEEK_DAYS)
    alerts: list[dict[str, Any]] = []
    for record in records:
        if record.get("code_client") != code_client:
            continue
        parent_id = record.get("id") or ""
        if record.get("generation_status") == "error":
            alerts.append({
                "id": composite_id("gen", parent_id),
                "message": "Generation failed",
                "level": "danger",
                "record_id": parent_id,
            })
        for category in ("email", "document"):
            for item, day in _unresolved_items(record, category):
                if day < today:
                    alerts.append({
                        "id": composite_id(f"{category}-late", parent_id, item["id"]),
                        "message": "Late",
                        "level": "warning",
                        "record_id": parent_id,
                    })
                elif day <= week:
                    alerts.append({
                        "id": composite_id(f"{category}-soon", parent_id, item["id"]),
                        "message": "Imminent",
                        "level": "info",
                        "record_id": parent_id,
                    })
    return alerts


class NotificationAggregator:
    """
    Live notification view over one or more record stores.

    Call attach() with each store carrying scheduled items; the list is
    recomputed whenever any of them changes. Stores still loading simply
    contribute what they hold so far.
    """

    def __init__(
        self,
        storage: ReadStateStorage | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._storage = storage or ReadStateStorage()
        self._today = today or date.today
        self._sources: list[Any] = []
        self._unsubscribers: list[Callable[[], None]] = []
        self._notifications: list[dict[str, Any]] = []
        self._read_ids: list[str] = self._storage.load()
        self._read_set = set(self._read_ids)

    def attach(self, store: Any) -> None:
        self._sources.append(store)
        self._unsubscribers.append(store.subscribe(lambda _s: self.recompute()))
        self.recompute()

    def detach_all(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._sources = []

    def _records(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for store in self._sources:
            rows.extend(store.items)
        return rows

    def recompute(self, today: date | None = None) -> list[dict[str, Any]]:
        self._notifications = derive_notifications(self._records(), today or self._today())
        return self._notifications

    @property
    def notifications(self) -> list[dict[str, Any]]:
        return list(self._notifications)

    @property
    def read_ids(self) -> list[str]:
        return list(self._read_ids)

    def is_read(self, notification_id: str) -> bool:
        return notification_id in self._read_set

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if n["id"] not in self._read_set)

    def unread(self) -> list[dict[str, Any]]:
        return [n for n in self._notifications if n["id"] not in self._read_set]

    def _add_read(self, ids: Iterable[str]) -> None:
        changed = False
        for nid in ids:
            if nid not in self._read_set:
                self._read_set.add(nid)
                self._read_ids.append(nid)
                changed = True
        if changed:
            self._storage.save(self._read_ids)

    def mark_read(self, notification_id: str) -> None:
        self._add_read([notification_id])

    def mark_all_read(self) -> None:
        """Union every current notification id into the read-set. Never removes ids."""
        self._add_read(n["id"] for n in self._notifications)

    def alerts_for_client(self, code_client: str, today: date | None = None) -> list[dict[str, Any]]:
        return client_alerts(self._records(), code_client, today or self._today())
