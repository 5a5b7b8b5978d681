from __future__ import annotations

import streamlit as st

from nlscreener.cache_store import load_meta
from nlscreener.config import configure_logging
from nlscreener.jobs.daily_refresh import CACHE_NAME, load_or_refresh
from nlscreener.screens import EXAMPLE_QUERIES, Screener
from nlscreener.ui_components import render_analysis, render_hero, render_response
from nlscreener.ui_theme import inject_theme, intent_badges
from nlscreener.universe import get_default_universe

SOURCE_DEMO = "Demo universe"
SOURCE_CACHE = "Cached yfinance universe"


@st.cache_data(show_spinner=False, ttl=60 * 30)
def _load_universe(source: str, force_refresh: bool = False):
    if source == SOURCE_CACHE:
        stocks = load_or_refresh(force=force_refresh)
        if stocks:
            return stocks
    return get_default_universe()


def _session_screener(source: str) -> Screener:
    # one Screener (and conversation) per browser session and data source
    if st.session_state.get("screener_source") != source or "screener" not in st.session_state:
        st.session_state["screener"] = Screener(_load_universe(source))
        st.session_state["screener_source"] = source
        st.session_state["turns"] = []
    return st.session_state["screener"]


def _run_turn(screener: Screener, text: str) -> None:
    response = screener.query(text)
    analysis = screener.analyze(text) if response.type not in ("help", "unknown") else None
    st.session_state["turns"].append((text, response, analysis))


def main() -> None:
    configure_logging()
    st.set_page_config(page_title="NL Stock Screener", layout="wide")
    st.markdown(inject_theme(), unsafe_allow_html=True)

    st.sidebar.title("Data")
    source = st.sidebar.radio("Universe", options=[SOURCE_DEMO, SOURCE_CACHE])
    screener = _session_screener(source)

    if source == SOURCE_CACHE and st.sidebar.button("Refresh data"):
        _load_universe.clear()
        screener.set_universe(_load_universe(source, force_refresh=True))
        st.session_state["turns"] = []

    if st.sidebar.button("Clear conversation"):
        screener.clear_context()
        st.session_state["turns"] = []

    st.sidebar.subheader("Examples")
    for example in EXAMPLE_QUERIES:
        st.sidebar.caption(example)

    meta = load_meta()
    updated_at = meta.get(CACHE_NAME, "N/A") if source == SOURCE_CACHE else "built-in"
    render_hero(source, updated_at, screener.universe)

    text = st.chat_input("Ask for stocks, e.g. stocks with PE < 15 and ROE > 20%")
    if text:
        _run_turn(screener, text)

    follow_up = None
    turns = st.session_state["turns"]
    for idx, (asked, response, analysis) in enumerate(turns):
        st.markdown(f'<div class="query-echo">{asked}</div>', unsafe_allow_html=True)
        if response.analysis is not None:
            st.markdown(
                intent_badges(response.analysis.intent, response.analysis.sectors, response.warnings),
                unsafe_allow_html=True,
            )
        render_response(response)
        if analysis is not None and idx == len(turns) - 1:
            with st.expander("Analysis", expanded=True):
                follow_up = render_analysis(analysis)

    if follow_up:
        _run_turn(screener, follow_up)
        st.rerun()


if __name__ == "__main__":
    main()
