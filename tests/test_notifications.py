"""
Tests for notification derivation, read-state tracking and per-client alerts.
"""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from conftest import FakeCollectionClient, projet
from docgen.domains.entities import PROJETS
from docgen.domains.errors import ParseFailure
from docgen.infrastructure.storage.read_state import ReadStateStorage
from docgen.services.notifications import (
    NotificationAggregator,
    client_alerts,
    composite_id,
    derive_notifications,
    parse_day,
)
from docgen.services.stores import ProjetsStore

TODAY = date(2024, 3, 10)


def _email(item_id: str, day: str, label: str = "Reminder") -> dict:
    return {"id": item_id, "date": day, "label": label, "description": ""}


def _records() -> list[dict]:
    return [
        PROJETS.normalize(projet(
            "r1",
            emails=[
                _email("e1", "2024-03-11"),
                _email("e2", "2024-03-16"),
                _email("e3", "2024-03-18"),
                _email("e4", "2024-03-09"),
                _email("e5", "2024-03-12"),
                _email("e6", "not a date"),
            ],
            sent_emails=["e5"],
            documents=[_email("d1", "2024-03-17T08:00:00Z"), _email("d2", "2024-03-09")],
            questions=[_email("q1", "2024-03-10 14:30:00.000Z")],
        )),
        PROJETS.normalize(projet("r2", status="error", created="2024-03-09 18:00:00.000Z")),
        PROJETS.normalize(projet("r3", status="error", created="2024-02-20 18:00:00.000Z")),
    ]


def test_windowing_example() -> None:
    notifs = {n["id"]: n for n in derive_notifications(_records(), TODAY)}

    assert notifs["email:r1:e1"]["kind"] == "imminent"
    assert notifs["email:r1:e2"]["kind"] == "this-week"
    assert "email:r1:e3" not in notifs
    assert "email:r1:e4" not in notifs
    assert "document:r1:d2" not in notifs
    assert "generation-error:r2" in notifs
    assert "generation-error:r3" not in notifs


def test_resolved_and_unparseable_items_skipped() -> None:
    ids = {n["id"] for n in derive_notifications(_records(), TODAY)}
    assert "email:r1:e5" not in ids
    assert "email:r1:e6" not in ids


def test_documents_and_questions_use_single_week_window() -> None:
    notifs = {n["id"]: n for n in derive_notifications(_records(), TODAY)}
    assert notifs["document:r1:d1"]["kind"] == "upcoming"
    assert notifs["question:r1:q1"]["kind"] == "upcoming"
    assert notifs["document:r1:d1"]["route"] == "/planning"
    assert notifs["generation-error:r2"]["route"] == "/history"
    assert notifs["email:r1:e1"]["context"] == {"record_id": "r1"}


def test_window_boundaries_inclusive() -> None:
    rec = PROJETS.normalize(projet(
        "r",
        emails=[_email("a", "2024-03-10"), _email("b", "2024-03-12"), _email("c", "2024-03-13"), _email("d", "2024-03-17")],
    ))
    kinds = {n["id"]: n["kind"] for n in derive_notifications([rec], TODAY)}
    assert kinds == {
        "email:r:a": "imminent",
        "email:r:b": "imminent",
        "email:r:c": "this-week",
        "email:r:d": "this-week",
    }


def test_error_lookback_boundaries() -> None:
    recs = [
        PROJETS.normalize(projet("today", status="error", created="2024-03-10 23:00:00Z")),
        PROJETS.normalize(projet("week", status="error", created="2024-03-03")),
        PROJETS.normalize(projet("older", status="error", created="2024-03-02")),
        PROJETS.normalize(projet("future", status="error", created="2024-03-11")),
    ]
    ids = {n["id"] for n in derive_notifications(recs, TODAY)}
    assert ids == {"generation-error:today", "generation-error:week"}


def test_recomputation_is_deterministic() -> None:
    records = _records()
    first = {n["id"] for n in derive_notifications(records, TODAY)}
    second = {n["id"] for n in derive_notifications(list(reversed(records)), TODAY)}
    assert first == second
    assert derive_notifications(records, TODAY) == derive_notifications(records, TODAY)


def test_composite_ids_do_not_collide_across_categories() -> None:
    rec = PROJETS.normalize(projet(
        "r", emails=[_email("x", "2024-03-11")], documents=[_email("x", "2024-03-11")],
        questions=[_email("x", "2024-03-11")],
    ))
    ids = [n["id"] for n in derive_notifications([rec], TODAY)]
    assert len(ids) == len(set(ids)) == 3
    assert composite_id("email", "r", "x") == "email:r:x"
    assert composite_id("generation-error", "r") == "generation-error:r"


def test_parse_day() -> None:
    assert parse_day("2024-03-11") == date(2024, 3, 11)
    assert parse_day("2024-03-11 23:59:59.999Z") == date(2024, 3, 11)
    with pytest.raises(ParseFailure):
        parse_day("11/03/2024")
    with pytest.raises(ParseFailure):
        parse_day("2024-13-45")
    with pytest.raises(ParseFailure):
        parse_day(None)


class _StaticStore:
    def __init__(self, items):
        self.items = items
        self._listeners = []

    def subscribe(self, listener):
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def changed(self, items):
        self.items = items
        for listener in list(self._listeners):
            listener(self)


def test_unread_count_and_mark_all_read_persist(read_storage: ReadStateStorage) -> None:
    store = _StaticStore(_records())
    agg = NotificationAggregator(storage=read_storage, today=lambda: TODAY)
    agg.attach(store)
    total = len(agg.notifications)
    assert total > 0
    assert agg.unread_count == total

    agg.mark_all_read()
    assert agg.unread_count == 0
    assert set(read_storage.load()) == {n["id"] for n in agg.notifications}

    reloaded = NotificationAggregator(storage=read_storage, today=lambda: TODAY)
    reloaded.attach(_StaticStore(_records()))
    assert reloaded.unread_count == 0


def test_read_set_never_shrinks(read_storage: ReadStateStorage) -> None:
    store = _StaticStore(_records())
    agg = NotificationAggregator(storage=read_storage, today=lambda: TODAY)
    agg.attach(store)
    agg.mark_all_read()
    size = len(agg.read_ids)

    store.changed([])
    assert agg.notifications == []
    agg.mark_all_read()
    assert len(agg.read_ids) == size
    assert len(read_storage.load()) == size

    store.changed(_records()[:1])
    agg.mark_all_read()
    assert len(agg.read_ids) >= size


def test_mark_read_single(read_storage: ReadStateStorage) -> None:
    agg = NotificationAggregator(storage=read_storage, today=lambda: TODAY)
    agg.attach(_StaticStore(_records()))
    first = agg.notifications[0]["id"]
    agg.mark_read(first)
    assert agg.is_read(first)
    assert agg.unread_count == len(agg.notifications) - 1


def test_corrupt_read_state_treated_as_empty(tmp_path) -> None:
    p = tmp_path / "notif_read.json"
    p.write_text("{broken", encoding="utf-8")
    agg = NotificationAggregator(storage=ReadStateStorage(p), today=lambda: TODAY)
    assert agg.read_ids == []


def test_recomputes_when_store_loads(read_storage: ReadStateStorage) -> None:
    fake = FakeCollectionClient({
        "projets": [projet("r1", emails=[_email("e1", "2024-03-11")])],
    })
    store = ProjetsStore(client=fake)
    agg = NotificationAggregator(storage=read_storage, today=lambda: TODAY)
    agg.attach(store)
    assert agg.notifications == []

    asyncio.run(store.fetch())
    assert [n["id"] for n in agg.notifications] == ["email:r1:e1"]

    asyncio.run(store.mark_sent("r1", "email", "e1"))
    assert agg.notifications == []


def test_client_alerts() -> None:
    recs = [
        PROJETS.normalize(projet(
            "p1",
            code_client="C1",
            status="error",
            emails=[_email("late", "2024-03-01"), _email("soon", "2024-03-15"), _email("far", "2024-04-01")],
            documents=[_email("dl", "2024-03-05")],
        )),
        PROJETS.normalize(projet("p2", code_client="C2", status="error")),
    ]
    alerts = {a["id"]: a["level"] for a in client_alerts(recs, "C1", TODAY)}
    assert alerts == {
        "gen:p1": "danger",
        "email-late:p1:late": "warning",
        "email-soon:p1:soon": "info",
        "document-late:p1:dl": "warning",
    }
