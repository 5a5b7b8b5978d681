from __future__ import annotations

import logging
import time
from typing import Any

from .config import DEFAULT_LIMIT, HEATMAP_METRICS, LOWER_IS_BETTER, RADAR_RANGES
from .intent import analyze_intent, build_output_config
from .models import AnalysisResult, IntentAnalysis, SortCondition, Stock
from .numeric import NumericPipeline, Row, ScoreFactor, group, pivot
from .query_parser import parse_query

logger = logging.getLogger(__name__)

COMPOSITE_SCORE = "_compositeScore"
SMART_SCORING_INTENTS = frozenset({"analyze", "compare", "rank", "summarize"})
SMART_DEFAULT_FACTORS = ("roe", "roa", "pe", "debtToEquity")

COLUMN_LABELS = {
    "symbol": "Symbol",
    "name": "Name",
    "sector": "Sector",
    "industry": "Industry",
    "price": "Price",
    "changePct": "Chg%",
    "mcap": "Mcap",
    "pe": "P/E",
    "pb": "P/B",
    "roe": "ROE",
    "roa": "ROA",
    "roce": "ROCE",
    "debtToEquity": "D/E",
    "dividendYield": "Div%",
    "return1y": "1Y Ret",
    "return3y": "3Y Ret",
    "cagr3y": "CAGR",
    "beta": "Beta",
    COMPOSITE_SCORE: "Score",
    "_rank": "Rank",
}


def column_label(name: str) -> str:
    return COLUMN_LABELS.get(name, name)


def build_smart_pipeline(text: str, analysis: IntentAnalysis) -> NumericPipeline:
    parsed = parse_query(text)
    query = parsed.query
    pipeline = NumericPipeline()

    if analysis.sectors:
        pipeline.filter_sectors(list(analysis.sectors))
    if query is not None and query.filters:
        pipeline.filter(list(query.filters))
    if query is not None and query.exclude.sectors:
        pipeline.filter_sectors([], list(query.exclude.sectors))

    if analysis.intent in SMART_SCORING_INTENTS:
        fields = analysis.metrics or list(SMART_DEFAULT_FACTORS)
        factors = [ScoreFactor(field=f, name=f, higher_is_better=f not in LOWER_IS_BETTER) for f in fields]
        pipeline.score(factors, COMPOSITE_SCORE)
        pipeline.rank(COMPOSITE_SCORE, "desc", "_rank")

    if query is not None and query.sort is not None:
        pipeline.sort([query.sort])
    elif analysis.intent == "rank":
        pipeline.sort([SortCondition(COMPOSITE_SCORE, "desc")])

    limit = query.limit if query is not None and query.limit else DEFAULT_LIMIT
    pipeline.limit(limit)
    return pipeline


def _radar_value(value: Any, field: str) -> float:
    if value is None:
        return 50.0
    low, high = RADAR_RANGES.get(field, (0.0, 100.0))
    scaled = (float(value) - low) / (high - low) * 100.0
    return max(0.0, min(100.0, scaled))


def build_visualization_data(rows: list[Row], analysis: IntentAnalysis) -> dict[str, Any]:
    viz: dict[str, Any] = {}
    if "heatmap" in analysis.visualizations:
        summaries = group(rows, "sector", [(m, "avg") for m in HEATMAP_METRICS])
        viz["heatmap"] = {
            "rows": [s["sector"] for s in summaries],
            "columns": list(HEATMAP_METRICS),
            "values": [[s[f"{m}_avg"] for m in HEATMAP_METRICS] for s in summaries],
        }
    if "radar" in analysis.visualizations and rows:
        metrics = list(RADAR_RANGES)
        viz["radar"] = {
            "labels": [column_label(m) for m in metrics],
            "datasets": [
                {"label": row.get("symbol"), "data": [_radar_value(row.get(m), m) for m in metrics]} for row in rows[:4]
            ],
        }
    if "treemap" in analysis.visualizations and rows:
        viz["treemap"] = pivot(rows, "sector", "industry", "mcap", "sum")
    return viz


def build_follow_ups(analysis: IntentAnalysis) -> list[str]:
    follow_ups: list[str] = []
    if analysis.symbols:
        follow_ups.append(f"compare {analysis.symbols[0]} with peers")
        follow_ups.append(f"technical analysis of {analysis.symbols[0]}")
    if analysis.sectors:
        follow_ups.append(f"top 5 {analysis.sectors[0]} stocks by roe")
        follow_ups.append("+1 pe < 30")
    if analysis.intent == "screen":
        follow_ups.append("+1 add dividend yield > 2%")
        follow_ups.append("+1 sort by ROE")
    if not follow_ups:
        follow_ups = ["compare TCS vs INFY", "energy stocks with pe < 20", "top 10 stocks by dividend yield"]
    return follow_ups[:4]


def build_summary(rows: list[Row], analysis: IntentAnalysis) -> str:
    if not rows:
        return "No stocks matched the specified criteria."
    avg_pe = sum(r.get("pe") or 0.0 for r in rows) / len(rows)
    avg_roe = sum(r.get("roe") or 0.0 for r in rows) / len(rows)
    summary = f"Based on the analysis of {len(rows)} stocks"
    if analysis.sectors:
        summary += f" in the {', '.join(analysis.sectors)} sector"
    summary += f", the average P/E ratio is {avg_pe:.1f} and average ROE is {avg_roe:.1f}%."
    top = rows[0]
    summary += f" {top.get('symbol')} ({top.get('name')}) emerges as the top pick"
    if top.get(COMPOSITE_SCORE):
        summary += f" with a composite score of {top[COMPOSITE_SCORE]}"
    return summary + "."


def run_analysis(text: str, universe: list[Stock]) -> AnalysisResult:
    """Intent analysis plus an executed pipeline and chart-ready data."""
    start = time.perf_counter()
    analysis = analyze_intent(text)
    try:
        output_config = build_output_config(analysis)
        pipeline = build_smart_pipeline(text, analysis)
        result = pipeline.execute([s.to_dict() for s in universe])
        return AnalysisResult(
            success=True,
            analysis=analysis,
            output_config=output_config,
            data=result.data,
            total=result.metadata.output_count,
            pipeline_steps=result.metadata.operations_applied,
            visualization_data=build_visualization_data(result.data, analysis),
            follow_ups=build_follow_ups(analysis),
            summary=build_summary(result.data, analysis),
            execution_time=(time.perf_counter() - start) * 1000.0,
        )
    except Exception as exc:
        logger.exception("analysis failed for %r", text)
        return AnalysisResult(
            success=False,
            analysis=analysis,
            execution_time=(time.perf_counter() - start) * 1000.0,
            error=str(exc) or exc.__class__.__name__,
        )
