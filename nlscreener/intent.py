from __future__ import annotations

import re
from dataclasses import dataclass

from .config import DEFAULT_LIMIT, DEFAULT_SCORE_FACTORS, LOWER_IS_BETTER, MAX_CARDS, MAX_VISUALIZATIONS
from .fields import resolve_field, resolve_sector
from .models import IntentAnalysis, OutputConfig, PipelineStep
from .numeric import ScoreFactor
from .query_parser import extract


@dataclass(frozen=True)
class IntentPattern:
    intent: str
    output_type: str
    patterns: tuple[re.Pattern, ...]
    visualizations: tuple[str, ...]
    cards: tuple[str, ...]


def _compile(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# Checked in order; the first group with a matching pattern decides the intent.
INTENT_PATTERNS: tuple[IntentPattern, ...] = (
    IntentPattern(
        "screen",
        "list",
        _compile(
            r"(?:find|show|list|give me|get|screen|filter)\s+(?:all\s+)?(?:stocks?|companies)",
            r"(?:stocks?|companies)\s+(?:with|where|having|that have)",
            r"(?:which|what)\s+(?:stocks?|companies)",
            r"top\s+\d+\s+(?:stocks?|companies)",
            r"\b(?:mcap|pe|pb|roe|roa)\s*[><]=?\s*[\d.]",
        ),
        ("table",),
        (),
    ),
    IntentPattern(
        "compare",
        "cards",
        _compile(
            r"compare\s+.+(?:vs|versus|and|with|to)",
            r"comparison\s+(?:of|between)",
            r"(?:how does|how do)\s+.+\s+compare",
            r"side\s*by\s*side",
            r"\bvs\.?\b",
        ),
        ("radar", "bar_chart", "table"),
        ("peer-comparison", "valuation-summary", "growth-summary"),
    ),
    IntentPattern(
        "analyze",
        "cards",
        _compile(
            r"(?:analyze|analysis|analyse)\s+",
            r"(?:deep\s*dive|detailed|comprehensive)\s+(?:look|analysis|view)",
            r"(?:tell me|explain)\s+(?:about|everything)",
            r"(?:what|how)\s+(?:is|are)\s+.+\s+(?:doing|performing)",
        ),
        ("line_chart", "radar", "gauge"),
        ("valuation-summary", "growth-summary", "risk-health-dashboard", "candlestick-hero"),
    ),
    IntentPattern(
        "rank",
        "list",
        _compile(
            r"\b(?:rank|ranking|ranked)\b",
            r"(?:best|worst|top|bottom)\s+(?:performing|rated)",
            r"(?:highest|lowest)\s+(?:pe|pb|roe|roa|return|growth)",
            r"sort(?:ed)?\s+by",
        ),
        ("table", "bar_chart"),
        ("multi-factor-scorecard",),
    ),
    IntentPattern(
        "sector_analysis",
        "cards",
        _compile(
            r"(?:sector|industry)\s+(?:analysis|breakdown|overview|performance)",
            r"(?:how is|how are)\s+(?:the\s+)?(?:tech|energy|finance|banking|pharma)\s+sector",
            r"(?:all|every)\s+(?:stocks?\s+)?in\s+(?:the\s+)?(.+?)\s+sector",
        ),
        ("heatmap", "treemap", "bar_chart"),
        ("sector-insights", "momentum-heatmap", "peer-comparison"),
    ),
    IntentPattern(
        "portfolio",
        "cards",
        _compile(
            r"(?:my\s+)?portfolio",
            r"(?:allocation|diversification|rebalance)",
            r"(?:correlation|exposure)\s+(?:analysis|matrix)",
        ),
        ("pie", "sankey", "heatmap"),
        ("portfolio-correlation", "rebalance-optimizer", "risk-health-dashboard"),
    ),
    IntentPattern(
        "trend",
        "cards",
        _compile(
            r"(?:trend|trending|historical)\s+",
            r"(?:over|in|for)\s+(?:the\s+)?(?:last|past)\s+\d+\s+(?:days?|weeks?|months?|years?)",
            r"(?:how has|how have)\s+.+\s+(?:performed|changed|moved)",
            r"price\s+(?:history|action|movement)",
        ),
        ("line_chart", "candlestick", "area"),
        ("candlestick-hero", "technical-indicators", "momentum-heatmap"),
    ),
    IntentPattern(
        "alert",
        "list",
        _compile(
            r"\b(?:alert|alerts|notify|notification)\b",
            r"\b(?:let me know|tell me)\s+when\b",
        ),
        ("table",),
        ("warning-sentinel-mini",),
    ),
    IntentPattern(
        "explain",
        "report",
        _compile(
            r"(?:what\s+is|what's|explain|define)\s+(?:a\s+)?(?:pe|pb|roe|dcf|piotroski)",
            r"(?:how\s+does|how\s+do)\s+(?:you\s+)?(?:calculate|compute|measure)",
            r"(?:meaning|definition)\s+of",
        ),
        (),
        (),
    ),
    IntentPattern(
        "summarize",
        "report",
        _compile(
            r"(?:summarize|summary|overview|recap)",
            r"(?:key|main|important)\s+(?:points|metrics|highlights)",
            r"(?:quick|brief)\s+(?:look|summary|overview)",
        ),
        ("gauge", "radar"),
        ("valuation-summary", "multi-factor-scorecard"),
    ),
)

INTENT_CARDS = {
    "screen": (),
    "compare": ("peer-comparison", "valuation-summary", "multi-factor-scorecard"),
    "analyze": (
        "valuation-summary",
        "growth-summary",
        "risk-health-dashboard",
        "piotroski-score",
        "candlestick-hero",
    ),
    "rank": ("multi-factor-scorecard", "momentum-heatmap"),
    "sector_analysis": ("sector-insights", "momentum-heatmap", "peer-comparison"),
    "portfolio": ("portfolio-correlation", "rebalance-optimizer", "risk-health-dashboard", "drawdown-var"),
    "trend": ("candlestick-hero", "technical-indicators", "pattern-matcher", "delivery-analysis"),
    "alert": ("warning-sentinel-mini",),
    "explain": (),
    "summarize": ("valuation-summary", "financial-health-dna"),
    "custom": (),
}

METRIC_VISUALIZATIONS = {
    "price": ("candlestick", "line_chart"),
    "volume": ("bar_chart", "area"),
    "return": ("line_chart", "bar_chart"),
    "pe": ("gauge", "bar_chart"),
    "pb": ("gauge", "bar_chart"),
    "roe": ("gauge", "radar"),
    "roa": ("gauge", "radar"),
    "growth": ("line_chart", "bar_chart"),
}

SECTOR_WORDS = (
    "tech",
    "technology",
    "energy",
    "pharma",
    "healthcare",
    "finance",
    "banking",
    "auto",
    "consumer",
    "industrial",
    "material",
    "telecom",
)

# Keyword -> field, for keywords the registry does not resolve on their own.
METRIC_WORDS = {
    "pe": "pe",
    "pb": "pb",
    "ps": "ps",
    "roe": "roe",
    "roa": "roa",
    "roce": "roce",
    "mcap": "mcap",
    "price": "price",
    "volume": "volume",
    "return": "return1y",
    "growth": "revenueGrowth",
    "dividend": "dividendYield",
    "debt": "debtToEquity",
    "beta": "beta",
    "rsi": "rsi",
}

SYMBOL_STOP_WORDS = frozenset({"AND", "OR", "NOT", "WITH", "THE", "FOR", "ALL", "VS"})

INTENT_DESCRIPTIONS = {
    "screen": "Screening stocks based on criteria",
    "compare": "Comparing stocks side-by-side",
    "analyze": "Analyzing in depth",
    "rank": "Ranking stocks by metric",
    "sector_analysis": "Analyzing sector performance",
    "portfolio": "Analyzing portfolio composition",
    "trend": "Examining historical trends",
    "alert": "Setting up price/metric alert",
    "explain": "Explaining concept",
    "summarize": "Generating summary",
    "custom": "Processing custom query",
}

OUTPUT_DESCRIPTIONS = {
    "list": "Results will be shown as a sortable table",
    "cards": "Results will include visual cards with key insights",
    "report": "A detailed report will be generated",
}

SCORING_INTENTS = frozenset({"analyze", "compare", "rank"})
SECTOR_AGGREGATIONS = [("mcap", "sum"), ("return1y", "avg"), ("pe", "avg")]

_RANK_BY_RE = re.compile(r"\b(?:rank|sort|order)(?:ed)?\s+by\s+(\w+)", re.IGNORECASE)
_LIMIT_RE = re.compile(r"\b(?:top|first|show)\s*(\d+)", re.IGNORECASE)
_REPORT_RE = re.compile(r"\b(?:report|detailed|comprehensive)\b", re.IGNORECASE)


def _word_pattern(word: str) -> re.Pattern:
    # Short keywords must stand alone ("pe" should not fire inside "open").
    tail = r"\b" if len(word) <= 4 else ""
    return re.compile(rf"\b{re.escape(word)}{tail}", re.IGNORECASE)


def classify_intent(text: str) -> IntentPattern | None:
    lower = text.lower()
    for group in INTENT_PATTERNS:
        if any(p.search(lower) for p in group.patterns):
            return group
    return None


def extract_symbols(text: str) -> list[str]:
    out: list[str] = []
    for tok in re.findall(r"\b[A-Z]{2,12}\b", text):
        if tok not in SYMBOL_STOP_WORDS and tok not in out:
            out.append(tok)
    return out


def extract_sectors(text: str) -> list[str]:
    out: list[str] = []
    for word in SECTOR_WORDS:
        if _word_pattern(word).search(text):
            sector = resolve_sector(word)
            if sector and sector not in out:
                out.append(sector)
    return out


def extract_metrics(text: str) -> tuple[list[str], list[str]]:
    """Return (resolved fields, matched keywords)."""
    fields: list[str] = []
    keywords: list[str] = []
    for word, fallback in METRIC_WORDS.items():
        if not _word_pattern(word).search(text):
            continue
        keywords.append(word)
        name = resolve_field(word) or fallback
        if name not in fields:
            fields.append(name)
    return fields, keywords


def score_factors(metrics: list[str]) -> list[ScoreFactor]:
    names = metrics or list(DEFAULT_SCORE_FACTORS)
    return [ScoreFactor(field=f, weight=1.0, higher_is_better=f not in LOWER_IS_BETTER, name=f) for f in names]


def build_pipeline_steps(text: str, intent: str, metrics: list[str], sectors: list[str]) -> list[PipelineStep]:
    steps: list[PipelineStep] = []

    def add(operation: str, description: str, **params) -> None:
        steps.append(PipelineStep(step=len(steps) + 1, operation=operation, description=description, params=params))

    add("load", "Load stock database", source="stocks")
    if sectors:
        add("filter", f"Filter by sector: {', '.join(sectors)}", sectors=list(sectors))

    conditions = extract(text).filters
    if conditions:
        add("filter", f"Apply {len(conditions)} filter conditions", conditions=list(conditions))

    if intent in SCORING_INTENTS:
        factors = score_factors(metrics)
        add("score", f"Calculate composite score from {len(factors)} factors", factors=factors)

    rank_match = _RANK_BY_RE.search(text)
    if rank_match or intent == "rank":
        rank_field = (resolve_field(rank_match.group(1)) if rank_match else None) or "_score"
        add("rank", f"Rank by {rank_field}", field=rank_field, order="desc")

    limit_match = _LIMIT_RE.search(text)
    n = int(limit_match.group(1)) if limit_match else DEFAULT_LIMIT
    add("limit", f"Return top {n} results", n=n)

    if intent == "sector_analysis":
        add("group", "Aggregate by sector", field="sector", aggregations=list(SECTOR_AGGREGATIONS))
    return steps


def build_explanation(intent: str, symbols: list[str], sectors: list[str], metrics: list[str], output_type: str) -> str:
    parts = [INTENT_DESCRIPTIONS[intent]]
    if symbols:
        parts.append(f"for {', '.join(symbols)}")
    if sectors:
        parts.append(f"in {', '.join(sectors)} sector")
    if metrics:
        parts.append(f"focusing on {', '.join(metrics)}")
    parts.append(f"→ {OUTPUT_DESCRIPTIONS[output_type]}")
    return " ".join(parts)


def analyze_intent(text: str) -> IntentAnalysis:
    """Classify ``text`` and describe how it would be answered. Nothing is executed here."""
    text = text or ""
    group = classify_intent(text)
    if group is None:
        intent, output_type, confidence = "custom", "list", 0.0
        visualizations, cards = ["table"], []
    else:
        intent, output_type, confidence = group.intent, group.output_type, 0.8
        visualizations, cards = list(group.visualizations), list(group.cards)

    symbols = extract_symbols(text)
    sectors = extract_sectors(text)
    metrics, keywords = extract_metrics(text)

    for keyword in keywords:
        for viz in METRIC_VISUALIZATIONS.get(keyword, ()):
            if viz not in visualizations:
                visualizations.append(viz)

    pipeline = build_pipeline_steps(text, intent, metrics, sectors)

    if len(symbols) == 1 and intent not in ("screen", "rank"):
        output_type = "cards"
        if not cards:
            cards = list(INTENT_CARDS["analyze"])
    if _REPORT_RE.search(text):
        output_type = "report"

    return IntentAnalysis(
        intent=intent,
        output_type=output_type,
        confidence=confidence,
        symbols=symbols,
        sectors=sectors,
        metrics=metrics,
        visualizations=visualizations[:MAX_VISUALIZATIONS],
        suggested_cards=cards[:MAX_CARDS],
        pipeline=pipeline,
        explanation=build_explanation(intent, symbols, sectors, metrics, output_type),
    )


def build_output_config(analysis: IntentAnalysis) -> OutputConfig:
    base = ["symbol", "name", "sector", "price", "changePct"]
    metric_columns = analysis.metrics or ["pe", "roe", "mcap", "return1y"]
    columns = base + [c for c in metric_columns if c not in base]

    intent = analysis.intent
    if intent == "screen":
        title = "Stock Screener Results"
    elif intent == "compare":
        title = "Comparison: " + (" vs ".join(analysis.symbols) or "Stocks")
    elif intent == "analyze":
        title = f"Analysis: {analysis.symbols[0] if analysis.symbols else 'Stocks'}"
    elif intent == "rank":
        title = "Stock Rankings"
    elif intent == "sector_analysis":
        title = f"{analysis.sectors[0] if analysis.sectors else 'Sector'} Analysis"
    elif intent == "portfolio":
        title = "Portfolio Analysis"
    elif intent == "trend":
        title = "Trend Analysis: " + (", ".join(analysis.symbols) or "Stocks")
    elif intent == "alert":
        title = "Alert Preview"
    else:
        title = "Results"

    return OutputConfig(
        type=analysis.output_type,
        visualizations=list(analysis.visualizations),
        cards=list(analysis.suggested_cards),
        columns=columns,
        title=title,
        subtitle=analysis.explanation,
    )
