"""
Docgen console: Streamlit UI entry point.
"""

import asyncio

import streamlit as st

# Load .env first so the remote URL and token are picked up
from docgen.utils.config import load_config, log_file, log_level, remote_url
load_config()

from docgen.infrastructure.remote.collection_client import CollectionClient
from docgen.services.console import Console
from docgen.ui.header import render_notifications, render_search
from docgen.utils.logger import setup_logger, get_logger

setup_logger("docgen", level=log_level(), log_file=log_file())
log = get_logger()

st.set_page_config(page_title="Docgen Console", layout="wide")


@st.cache_resource
def get_collection_client():
    return CollectionClient()


if "console" not in st.session_state:
    st.session_state.console = Console(client=get_collection_client())
    asyncio.run(st.session_state.console.load_all())
if "route" not in st.session_state:
    st.session_state.route = {"route": "/", "context": {}}

console: Console = st.session_state.console

with st.sidebar:
    st.header("Docgen Console")
    st.caption(f"Remote: `{remote_url()}`")
    if st.button("Reload all", use_container_width=True):
        asyncio.run(console.load_all())
        st.rerun()
    errors = console.errors()
    if errors:
        with st.expander("Errors", expanded=True):
            for name, message in errors.items():
                st.error(f"{name}: {message}")

col_search, col_bell = st.columns([3, 1])
with col_search:
    target = render_search(console.search)
with col_bell:
    notif_target = render_notifications(console.notifications)

target = target or notif_target
if target:
    st.session_state.route = target
    st.rerun()

route = st.session_state.route
st.subheader(route["route"])
if route["context"]:
    st.caption(f"Context: {route['context']}")

if route["route"].startswith("/clients/"):
    client_id = route["route"].rsplit("/", 1)[-1]
    client = console["clients"].get(client_id)
    if client is None:
        st.warning("Client not found.")
    else:
        code = client["code_client"]
        if console["contacts"].scope != code:
            asyncio.run(console.open_client(code))
        st.markdown(f"### {client['nom']} ({code})")
        alerts = console.client_alerts(code)
        if alerts:
            for a in alerts:
                st.markdown(f"- **{a['level']}** {a['message']}")
        else:
            st.caption("No active alerts.")
        for name in ("contacts", "notes", "evaluations", "invoices", "commandes"):
            store = console[name]
            with st.expander(f"{name.title()} ({len(store.items)})"):
                st.dataframe(store.items, use_container_width=True)
elif route["route"] == "/history":
    st.dataframe(console["projets"].items, use_container_width=True)
elif route["route"] == "/variables":
    st.table(console["variables"].as_mapping())
else:
    log.debug("No dedicated view for route %s", route["route"])
    st.caption("Use the search box or the notifications to navigate.")
