"""
Tests for the cross-entity search aggregator.
"""

from __future__ import annotations

import pytest

from conftest import projet
from docgen.domains.entities import CLIENTS, PROJETS
from docgen.services.search import CATEGORY_ORDER, SearchAggregator, search_all


def _clients(n: int) -> list[dict]:
    return [CLIENTS.normalize({"id": f"c{i}", "nom": f"Acme {i}", "code_client": f"C{i:03d}"}) for i in range(n)]


def _contact(name: str, email: str, role: str = "") -> dict:
    return {"id": f"ct-{name}-{email}", "name": name, "email": email, "role": role, "phone": ""}


class _Store:
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


@pytest.mark.parametrize("query", ["", " ", "a", "  A  ", None])
def test_short_query_yields_nothing(query) -> None:
    results = search_all(query, {"clients": _clients(5)})
    assert set(results) == set(CATEGORY_ORDER)
    assert all(v == [] for v in results.values())


def test_two_characters_activate_search() -> None:
    assert [r["id"] for r in search_all(" ac ", {"clients": _clients(1)})["clients"]] == ["c0"]


def test_cap_keeps_first_matches_in_source_order() -> None:
    results = search_all("acme", {"clients": _clients(10)})
    assert [r["id"] for r in results["clients"]] == ["c0", "c1", "c2"]


def test_case_insensitive_and_route() -> None:
    results = search_all("ACME 4", {"clients": _clients(10)})
    assert len(results["clients"]) == 1
    hit = results["clients"][0]
    assert hit["route"] == "/clients/c4"
    assert hit["sub"] == "C004"


def test_contacts_deduplicated_by_email_then_name() -> None:
    projets = [
        PROJETS.normalize(projet("r1", contacts=[
            _contact("Jane Doe", "jane@x.io"),
            _contact("Bob", ""),
        ])),
        PROJETS.normalize(projet("r2", contacts=[
            _contact("Jane D.", "jane@x.io"),
            _contact("Bob", ""),
            _contact("Joe", "joe@x.io"),
        ])),
    ]
    results = search_all("o", {"projets": projets}, min_chars=1)
    contacts = results["contacts"]
    assert [c["label"] for c in contacts] == ["Jane Doe", "Bob", "Joe"]
    assert contacts[0]["context"] == {"open_record_id": "r1"}


def test_contacts_cap_applies_after_dedup() -> None:
    same = [_contact("Ann", "ann@x.io") for _ in range(5)]
    others = [_contact(f"Ann {i}", f"ann{i}@x.io") for i in range(5)]
    projets = [PROJETS.normalize(projet("r1", contacts=same + others))]
    contacts = search_all("ann", {"projets": projets})["contacts"]
    assert [c["sub"] for c in contacts] == ["ann@x.io", "ann0@x.io", "ann1@x.io"]


def test_planning_matches_email_label_or_client_name() -> None:
    emails = [
        {"id": "e1", "date": "2024-03-11", "label": "Kick-off", "description": ""},
        {"id": "e2", "date": "2024-03-12", "label": "Follow-up", "description": ""},
    ]
    projets = [PROJETS.normalize(projet("r1", client_name="Globex", emails=emails))]
    by_label = search_all("kick", {"projets": projets})["planning"]
    assert [p["id"] for p in by_label] == ["e1"]
    assert by_label[0]["context"] == {"record_id": "r1"}
    assert len(search_all("globex", {"projets": projets})["planning"]) == 2


def test_history_matches_client_name() -> None:
    projets = [PROJETS.normalize(projet("r1", client_name="Initech", code_client="C042"))]
    history = search_all("c042", {"projets": projets})["history"]
    assert [h["id"] for h in history] == ["r1"]
    assert history[0]["route"] == "/history"


def test_aggregator_recomputes_on_store_change() -> None:
    store = _Store([])
    search = SearchAggregator(cap=3, min_chars=2)
    search.attach("clients", store)
    search.set_query("acme")
    assert search.is_open
    assert not search.has_results

    store.changed(_clients(2))
    assert [r["id"] for r in search.results["clients"]] == ["c0", "c1"]


def test_select_returns_target_and_clears_query() -> None:
    search = SearchAggregator(cap=3, min_chars=2)
    search.attach("clients", _Store(_clients(3)))
    search.set_query("acme")
    hit = search.results["clients"][1]

    target = search.select(hit)
    assert target == {"route": "/clients/c1", "context": {}}
    assert search.query == ""
    assert search.is_open is False
    assert not search.has_results


def test_close_keeps_query() -> None:
    search = SearchAggregator(cap=3, min_chars=2)
    search.set_query("acme")
    search.close()
    assert search.query == "acme"
    assert search.is_open is False
