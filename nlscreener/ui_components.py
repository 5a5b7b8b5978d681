from __future__ import annotations

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from .insights import column_label
from .models import AnalysisResult, ScreenerResponse, Stock

PERCENT_COLUMNS = frozenset(
    {
        "changePct",
        "roe",
        "roa",
        "roce",
        "dividendYield",
        "revenueGrowth",
        "profitGrowth",
        "volumeChange5d",
        "return1d",
        "return1w",
        "return1m",
        "return3m",
        "return6m",
        "return1y",
        "return3y",
        "cagr3y",
        "deliveryPct",
        "deliveryPctAvg",
    }
)


def render_hero(source_label: str, updated_at: str, universe: list[Stock]) -> None:
    sectors = {s.sector for s in universe}
    st.markdown(
        f"""
<div class="hero">
  <h2 style="margin:0">Natural Language Stock Screener</h2>
  <p style="margin:.3rem 0 0 0">{source_label} | Last refresh: {updated_at}</p>
</div>
""",
        unsafe_allow_html=True,
    )
    c1, c2 = st.columns(2)
    c1.metric("Stocks", len(universe))
    c2.metric("Sectors", len(sectors))


def response_frame(stocks: list[Stock], columns: list[str]) -> pd.DataFrame:
    """Result rows restricted to ``columns`` with display labels."""
    cols = columns or ["symbol", "name", "sector"]
    df = pd.DataFrame([s.to_dict() for s in stocks], columns=list(Stock.__dataclass_fields__))
    df = df[cols]
    return df.rename(columns={c: column_label(c) for c in cols})


def _fmt_number(value: float | None) -> str:
    if value is None or pd.isna(value):
        return "-"
    if abs(float(value)) >= 1e9:
        return f"{float(value) / 1e9:,.1f}B"
    return f"{float(value):,.2f}"


def _fmt_pct_direct(value: float | None) -> str:
    if value is None or pd.isna(value):
        return "-"
    return f"{float(value):.2f}%"


def render_cards(stock: Stock, columns: list[str]) -> None:
    st.subheader(f"{stock.name} ({stock.symbol})")
    st.caption(f"{stock.sector} | {stock.industry or '-'}")
    numeric = [c for c in columns if c not in ("symbol", "name", "sector", "industry")]
    for start in range(0, len(numeric), 4):
        cells = st.columns(4)
        for cell, col in zip(cells, numeric[start : start + 4]):
            value = stock.get(col)
            text = _fmt_pct_direct(value) if col in PERCENT_COLUMNS else _fmt_number(value)
            cell.metric(column_label(col), text)


def render_response(response: ScreenerResponse) -> None:
    if response.success:
        st.success(response.interpretation)
    elif response.type == "help":
        st.info(response.interpretation)
    else:
        st.warning(response.interpretation or response.error or "Query failed")
    for warning in response.warnings:
        st.caption(f"⚠ {warning}")
    if response.suggestions:
        st.caption("Try: " + " | ".join(response.suggestions))

    if not response.data:
        return
    if response.type == "single_stock":
        render_cards(response.data[0], response.columns)
        return
    df = response_frame(response.data, response.columns)
    st.dataframe(df, use_container_width=True, hide_index=True)
    st.caption(f"Showing {len(response.data)} of {response.total} in {response.execution_time:.1f} ms")
    st.download_button(
        "Download CSV",
        data=df.to_csv(index=False).encode("utf-8-sig"),
        file_name="screen_results.csv",
        mime="text/csv",
    )


def render_treemap(treemap: dict) -> None:
    if not treemap or not treemap.get("rows"):
        return
    records = []
    for sector, values in zip(treemap["rows"], treemap["values"]):
        for industry, value in zip(treemap["columns"], values):
            if value > 0:
                records.append({"sector": sector, "industry": industry, "mcap": value})
    if not records:
        return
    df = pd.DataFrame(records)
    df["log_cap"] = np.log(df["mcap"].clip(lower=1.0))
    fig = px.treemap(
        df,
        path=["sector", "industry"],
        values="log_cap",
        color="mcap",
        color_continuous_scale="Tealgrn",
        hover_data={"mcap": ":.3s", "log_cap": False},
    )
    fig.update_layout(margin=dict(t=10, l=0, r=0, b=0), height=460)
    st.plotly_chart(fig, use_container_width=True)


def render_heatmap(heatmap: dict) -> None:
    if not heatmap or not heatmap.get("rows"):
        return
    fig = go.Figure(
        data=go.Heatmap(
            z=heatmap["values"],
            x=[column_label(c) for c in heatmap["columns"]],
            y=heatmap["rows"],
            colorscale="Tealgrn",
            text=[[f"{v:.1f}" for v in row] for row in heatmap["values"]],
            texttemplate="%{text}",
        )
    )
    fig.update_layout(margin=dict(t=10, l=0, r=0, b=0), height=360)
    st.plotly_chart(fig, use_container_width=True)


def render_radar(radar: dict) -> None:
    if not radar or not radar.get("datasets"):
        return
    fig = go.Figure()
    for dataset in radar["datasets"]:
        fig.add_trace(
            go.Scatterpolar(r=dataset["data"], theta=radar["labels"], fill="toself", name=dataset["label"])
        )
    fig.update_layout(polar=dict(radialaxis=dict(range=[0, 100])), margin=dict(t=20, l=20, r=20, b=20), height=420)
    st.plotly_chart(fig, use_container_width=True)


def render_analysis(result: AnalysisResult) -> str | None:
    """Charts and summary for the smart path; returns a clicked follow-up."""
    if not result.success:
        st.warning(result.error or "Analysis failed")
        return None
    if result.output_config is not None:
        st.subheader(result.output_config.title)
        if result.output_config.subtitle:
            st.caption(result.output_config.subtitle)
    st.markdown(result.summary)
    st.caption(" → ".join(result.pipeline_steps))

    viz = result.visualization_data
    render_treemap(viz.get("treemap", {}))
    render_heatmap(viz.get("heatmap", {}))
    render_radar(viz.get("radar", {}))

    clicked = None
    if result.follow_ups:
        cells = st.columns(len(result.follow_ups))
        for idx, (cell, prompt) in enumerate(zip(cells, result.follow_ups)):
            if cell.button(prompt, key=f"follow_up_{idx}"):
                clicked = prompt
    return clicked
