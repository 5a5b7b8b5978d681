from __future__ import annotations

import logging
import re
import time

from .config import (
    BASE_COLUMNS,
    COMPARISON_COLUMNS,
    DEFAULT_LIMIT,
    MAX_COMPARISON_ROWS,
    MAX_HELP_FIELDS,
    MAX_HELP_SECTORS,
    MAX_RESULT_COLUMNS,
    MAX_SIMILAR_SYMBOLS,
    SINGLE_STOCK_COLUMN_COUNT,
)
from .executor import ConversationContext
from .fields import SECTORS, describe_field, field_names, sector_matches
from .insights import run_analysis
from .intent import analyze_intent
from .models import STOCK_ATTRIBUTES, AnalysisResult, ParsedQuery, ScreenerResponse, Stock
from .query_parser import parse_query
from .universe import get_default_universe

logger = logging.getLogger(__name__)

HELP_RE = re.compile(r"^\s*(?:help|syntax)\b|^\s*\?\s*$|\bhow\s+(?:do\s+i|to)\b", re.IGNORECASE)

# Columns that read better next to each other.
RELATED_COLUMNS = {
    "pe": ("pb", "ps", "eps"),
    "pb": ("pe",),
    "roe": ("roa", "roce"),
    "roa": ("roe",),
    "roce": ("roe",),
    "debtToEquity": ("currentRatio",),
    "dividendYield": ("eps",),
    "revenueGrowth": ("profitGrowth", "revenue"),
    "profitGrowth": ("revenueGrowth",),
    "volume": ("avgVolume20d", "volumeChange5d"),
    "volumeChange5d": ("volume", "avgVolume20d"),
    "return1y": ("return6m", "cagr3y"),
    "cagr3y": ("return3y", "return1y"),
}

EXAMPLE_QUERIES = [
    "stocks with PE < 15 and ROE > 20%",
    "top 10 by market cap in technology",
    "compare TCS vs INFY",
    "companies with dividend yield > 2% excluding energy",
    "stocks with 3 year return > 20%",
    "+1 exclude energy",
]

UNKNOWN_SUGGESTIONS = EXAMPLE_QUERIES[:4]

EMPTY_RESULT_SUGGESTIONS = [
    "Try relaxing one of the numeric conditions",
    "Remove a sector restriction",
    "Ask for help to see the available fields",
]


def _norm_token(text: str) -> str:
    return "".join(ch for ch in (text or "").upper() if ch.isalnum())


def is_help_request(text: str) -> bool:
    return bool(HELP_RE.search(text or ""))


class Screener:
    """Conversation-scoped entry point: text in, ScreenerResponse out.

    Each instance owns its conversation context, so one instance per chat session.
    """

    def __init__(self, universe: list[Stock] | None = None, default_limit: int = DEFAULT_LIMIT):
        self.universe = list(universe) if universe is not None else get_default_universe()
        self.default_limit = default_limit
        self.context = ConversationContext()

    def set_universe(self, universe: list[Stock]) -> None:
        self.universe = list(universe)
        self.context.clear()

    def clear_context(self) -> None:
        self.context.clear()

    @property
    def last_results(self) -> list[Stock]:
        return self.context.last_results

    def query(self, text: str) -> ScreenerResponse:
        start = time.perf_counter()
        if is_help_request(text):
            return self.help_response()
        try:
            parsed = parse_query(text, self.context.last_query)
            if parsed.query is not None and parsed.query.limit is None and not parsed.refinement:
                parsed.query.limit = self.default_limit
            if parsed.type == "single_stock":
                response = self._single_stock(parsed)
            elif parsed.type == "comparison":
                response = self._comparison(parsed)
            elif parsed.type in ("screener", "watchlist", "alert"):
                response = self._screener(parsed)
            else:
                response = ScreenerResponse(
                    success=False,
                    type="unknown",
                    interpretation="I could not understand this query.",
                    suggestions=list(UNKNOWN_SUGGESTIONS),
                )
            response.analysis = analyze_intent(text)
        except Exception as exc:
            logger.exception("query failed: %r", text)
            response = ScreenerResponse(
                success=False,
                type="unknown",
                interpretation="Something went wrong while running this query.",
                error=str(exc) or exc.__class__.__name__,
            )
        response.execution_time = (time.perf_counter() - start) * 1000.0
        return response

    def analyze(self, text: str) -> AnalysisResult:
        return run_analysis(text, self.universe)

    def _screener(self, parsed: ParsedQuery) -> ScreenerResponse:
        result = self.context.process_query(parsed, self.universe)
        interpretation = result.interpretation
        if parsed.type == "watchlist":
            interpretation += ". Note: watchlists are not saved; showing matching stocks"
        elif parsed.type == "alert":
            interpretation += ". Note: alerts are not scheduled; showing stocks matching the condition now"
        response = ScreenerResponse(
            success=result.success,
            type=parsed.type,
            data=result.data,
            total=result.total,
            interpretation=interpretation,
            columns=self.determine_columns(parsed),
            error=result.message if not result.success else None,
            warnings=list(result.warnings),
        )
        if result.success and not result.data:
            response.suggestions = list(EMPTY_RESULT_SUGGESTIONS)
        return response

    def _find(self, symbol: str) -> Stock | None:
        wanted = symbol.upper()
        for stock in self.universe:
            if stock.symbol.upper() == wanted:
                return stock
        return None

    def _single_stock(self, parsed: ParsedQuery) -> ScreenerResponse:
        symbol = parsed.symbols[0] if parsed.symbols else ""
        stock = self._find(symbol) if symbol else None
        if stock is None:
            similar = self.find_similar_symbols(symbol)
            return ScreenerResponse(
                success=False,
                type="single_stock",
                interpretation=f'Stock "{symbol}" not found in database.',
                suggestions=[f"Did you mean {s}?" for s in similar],
            )
        return ScreenerResponse(
            success=True,
            type="single_stock",
            data=[stock],
            total=1,
            interpretation=f"Showing details for {stock.symbol} ({stock.name})",
            columns=list(STOCK_ATTRIBUTES[:SINGLE_STOCK_COLUMN_COUNT]),
        )

    def _comparison(self, parsed: ParsedQuery) -> ScreenerResponse:
        sectors = parsed.query.include.sectors if parsed.query is not None else []
        picked: list[Stock] = []
        seen: set[str] = set()
        for symbol in parsed.symbols:
            stock = self._find(symbol)
            if stock is not None and stock.symbol not in seen:
                picked.append(stock)
                seen.add(stock.symbol)
        for sector in sectors:
            for stock in self.universe:
                if stock.symbol not in seen and sector_matches(stock.sector, sector):
                    picked.append(stock)
                    seen.add(stock.symbol)
        missing = [s for s in parsed.symbols if self._find(s) is None]

        picked = picked[:MAX_COMPARISON_ROWS]
        parts = []
        if parsed.symbols:
            parts.append("Comparing " + ", ".join(parsed.symbols))
        if sectors:
            parts.append("Sector: " + ", ".join(sectors))
        if missing:
            parts.append("Not found: " + ", ".join(missing))
        return ScreenerResponse(
            success=bool(picked),
            type="comparison",
            data=picked,
            total=len(picked),
            interpretation=". ".join(parts) or "Nothing to compare",
            columns=list(COMPARISON_COLUMNS),
            suggestions=[] if picked else ["compare TCS vs INFY", "compare banking stocks"],
        )

    def find_similar_symbols(self, symbol: str) -> list[str]:
        """Symbols sharing a prefix or substring with ``symbol``, closest first."""
        key = _norm_token(symbol)
        if not key:
            return []
        scored = []
        for stock in self.universe:
            sym = _norm_token(stock.symbol)
            name = _norm_token(stock.name)
            if sym.startswith(key) or key.startswith(sym):
                scored.append((0, stock.symbol))
            elif key in sym or key in name:
                scored.append((1, stock.symbol))
            elif key[:2] and sym.startswith(key[:2]):
                scored.append((2, stock.symbol))
        scored.sort(key=lambda x: x[0])
        return [sym for _, sym in scored][:MAX_SIMILAR_SYMBOLS]

    def determine_columns(self, parsed: ParsedQuery) -> list[str]:
        columns = list(BASE_COLUMNS)
        query = parsed.query
        if query is None:
            return columns
        wanted = [f.field for f in query.filters]
        if query.sort is not None:
            wanted.append(query.sort.field)
        related = [r for name in wanted for r in RELATED_COLUMNS.get(name, ())]
        for name in wanted + related:
            if name in STOCK_ATTRIBUTES and name not in columns:
                columns.append(name)
        return columns[:MAX_RESULT_COLUMNS]

    def help_response(self) -> ScreenerResponse:
        lines = ["Ask in plain English. Available fields:"]
        lines.extend(f"- {describe_field(name)}" for name in field_names()[:MAX_HELP_FIELDS])
        lines.append("Sectors: " + ", ".join(SECTORS[:MAX_HELP_SECTORS]))
        lines.append('Follow up with "+1 ..." to refine the previous results.')
        return ScreenerResponse(
            success=True,
            type="help",
            interpretation="\n".join(lines),
            suggestions=list(EXAMPLE_QUERIES),
        )
