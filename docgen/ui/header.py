"""Streamlit helpers for the console header: global search box and notification bell."""

from __future__ import annotations

from typing import Any

import streamlit as st

from docgen.services.notifications import NotificationAggregator
from docgen.services.search import CATEGORY_ORDER, SearchAggregator

CATEGORY_TITLES = {
    "history": "History",
    "clients": "Clients",
    "templates": "Templates",
    "project_types": "Project types",
    "variables": "Variables",
    "planning": "Planning",
    "contacts": "Contacts",
}

SEARCH_KEY = "global_search"
TARGET_KEY = "search_target"

KIND_ICONS = {
    "imminent": "🔴",
    "this-week": "🟠",
    "upcoming": "🔵",
    "error": "⚠️",
}


def bell_label(unread: int) -> str:
    if unread <= 0:
        return "🔔"
    return f"🔔 {unread if unread < 100 else '99+'}"


def result_sections(results: dict[str, list[dict[str, Any]]]) -> list[tuple[str, list[dict[str, Any]]]]:
    """Non-empty result groups in display order, with their titles."""
    return [
        (CATEGORY_TITLES[c], results[c])
        for c in CATEGORY_ORDER
        if results.get(c)
    ]


def notification_line(notif: dict[str, Any]) -> str:
    icon = KIND_ICONS.get(notif.get("kind", ""), "•")
    return f"{icon} **{notif['label']}** · {notif['description']} ({notif['date']})"


def pick_result(search: SearchAggregator, row: dict[str, Any], st=st) -> None:
    """Button callback: runs before the rerun, so the input widget can still be cleared."""
    st.session_state[TARGET_KEY] = search.select(row)
    st.session_state[SEARCH_KEY] = ""


def render_search(search: SearchAggregator, st=st) -> dict[str, Any] | None:
    """
    Render the search box and its grouped results.

    Returns the navigation target of a result picked on the previous run, else None.
    """
    target = st.session_state.pop(TARGET_KEY, None)
    query = st.text_input("Search", key=SEARCH_KEY, placeholder="Search…")
    if query != search.query:
        search.set_query(query)
    if target is not None:
        return target
    if not search.is_open:
        return None
    if not search.has_results:
        if len(query.strip()) >= search.min_chars:
            st.caption("No results.")
        return None

    for title, rows in result_sections(search.results):
        st.markdown(f"**{title}**")
        for i, row in enumerate(rows):
            label = f"{row['label']} · {row['sub']}" if row["sub"] else row["label"]
            st.button(
                label,
                key=f"search_{row['category']}_{i}",
                use_container_width=True,
                on_click=pick_result,
                args=(search, row, st),
            )
    return None


def render_notifications(notifier: NotificationAggregator, st=st) -> dict[str, Any] | None:
    """Render the notification panel. Returns the route target of a clicked notification."""
    target = None
    with st.expander(bell_label(notifier.unread_count)):
        notifications = notifier.notifications
        if not notifications:
            st.caption("No notifications.")
            return None
        if st.button("Mark all as read", key="notif_mark_all"):
            notifier.mark_all_read()
        for n in notifications:
            line = notification_line(n)
            if not notifier.is_read(n["id"]):
                line = f"{line} ✉️"
            if st.button(line, key=f"notif_{n['id']}", use_container_width=True):
                notifier.mark_read(n["id"])
                target = {"route": n["route"], "context": dict(n["context"])}
    return target
