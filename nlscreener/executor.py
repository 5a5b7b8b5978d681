from __future__ import annotations

import logging
import time
from collections import deque
from functools import cmp_to_key

from .config import DEFAULT_LIMIT, HISTORY_LIMIT
from .fields import sector_matches
from .models import ConversationState, FilterCondition, ParsedQuery, ScreenerQuery, ScreenerResult, SortCondition, Stock
from .numeric import OPERATOR_EVALUATORS, compare_values, evaluate_condition

logger = logging.getLogger(__name__)

OPERATOR_TEXT = {
    ">": "greater than",
    "<": "less than",
    ">=": "at least",
    "<=": "at most",
    "=": "equal to",
    "!=": "not equal to",
    "between": "between",
    "contains": "contains",
    "in": "in",
    "not_in": "not in",
}

UNPARSED_INTERPRETATION = 'I could not understand this query. Try something like "stocks with PE < 15 and ROE > 20%"'


def matches_sectors(stock: Stock, include: list[str], exclude: list[str]) -> bool:
    if any(sector_matches(stock.sector, s) for s in exclude):
        return False
    if include:
        return any(sector_matches(stock.sector, s) for s in include)
    return True


def sort_stocks(stocks: list[Stock], sort: SortCondition | None) -> list[Stock]:
    if sort is None:
        return list(stocks)
    key = cmp_to_key(lambda a, b: compare_values(a.get(sort.field), b.get(sort.field), sort.order))
    return sorted(stocks, key=key)


def unknown_operator_warnings(filters: list[FilterCondition]) -> list[str]:
    return [
        f"ignored unknown operator {f.operator!r} on {f.field}"
        for f in filters
        if f.operator not in OPERATOR_EVALUATORS
    ]


def execute_query(query: ScreenerQuery, universe: list[Stock]) -> ScreenerResult:
    """Apply filters, sectors, symbol exclusions, sort and paging in that fixed order."""
    start = time.perf_counter()
    try:
        results = [s for s in universe if all(evaluate_condition(s.get(f.field), f) for f in query.filters)]
        results = [s for s in results if matches_sectors(s, query.include.sectors, query.exclude.sectors)]

        if query.exclude.symbols:
            excluded = {sym.upper() for sym in query.exclude.symbols}
            results = [s for s in results if s.symbol.upper() not in excluded]
        if query.include.symbols:
            included = {sym.upper() for sym in query.include.symbols}
            results = [s for s in results if s.symbol.upper() in included]

        results = sort_stocks(results, query.sort)

        total = len(results)
        offset = query.offset or 0
        limit = DEFAULT_LIMIT if query.limit is None else query.limit
        page = results[offset : offset + limit]
        return ScreenerResult(
            success=True,
            data=page,
            total=total,
            query=query,
            execution_time=(time.perf_counter() - start) * 1000.0,
            warnings=unknown_operator_warnings(query.filters),
        )
    except Exception as exc:
        logger.exception("query execution failed")
        return ScreenerResult(
            success=False,
            data=[],
            total=0,
            query=query,
            execution_time=(time.perf_counter() - start) * 1000.0,
            message=str(exc) or exc.__class__.__name__,
        )


def _format_value(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ", ".join(_format_value(v) for v in value)
    return str(value)


def describe_filter(f: FilterCondition) -> str:
    op_text = OPERATOR_TEXT.get(f.operator, f.operator)
    if f.operator == "between" and f.value_end is not None:
        return f"{f.field} between {_format_value(f.value)} and {_format_value(f.value_end)}"
    return f"{f.field} {op_text} {_format_value(f.value)}"


def build_interpretation(parsed: ParsedQuery, result: ScreenerResult) -> str:
    parts: list[str] = []
    query = parsed.query
    if parsed.refinement:
        parts.append("Refining previous results")
    if query is not None:
        if query.filters:
            parts.append("Filters: " + ", ".join(describe_filter(f) for f in query.filters))
        if query.include.sectors:
            parts.append("Including sectors: " + ", ".join(query.include.sectors))
        if query.exclude.sectors:
            parts.append("Excluding sectors: " + ", ".join(query.exclude.sectors))
        if query.sort is not None:
            parts.append(f"Sorted by: {query.sort.field} ({query.sort.order})")
    parts.append(f"Found {result.total} stocks, showing {len(result.data)}")
    return ". ".join(parts)


class ConversationContext:
    """Per-conversation state for follow-up refinement.

    One instance belongs to exactly one conversation; it is not thread safe.
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self._history_limit = history_limit
        self.state = ConversationState(history=deque(maxlen=history_limit))

    def process_query(self, parsed: ParsedQuery, universe: list[Stock]) -> ScreenerResult:
        if parsed.query is None:
            result = ScreenerResult(
                success=False,
                data=[],
                total=0,
                query=ScreenerQuery(),
                execution_time=0.0,
                message="Could not parse query",
                interpretation=UNPARSED_INTERPRETATION,
            )
            self._record(parsed, result)
            return result

        base = universe
        if parsed.refinement and self.state.last_results:
            base = self.state.last_results

        result = execute_query(parsed.query, base)
        result.interpretation = build_interpretation(parsed, result)
        if parsed.ignored:
            result.warnings.extend(f"ignored condition: {text}" for text in parsed.ignored)
        self._record(parsed, result)
        return result

    def _record(self, parsed: ParsedQuery, result: ScreenerResult) -> None:
        self.state.last_query = parsed
        self.state.last_results = list(result.data)
        self.state.history.append(parsed)

    @property
    def last_query(self) -> ParsedQuery | None:
        return self.state.last_query

    @property
    def last_results(self) -> list[Stock]:
        return list(self.state.last_results)

    @property
    def history(self) -> list[ParsedQuery]:
        return list(self.state.history)

    def clear(self) -> None:
        self.state = ConversationState(history=deque(maxlen=self._history_limit))
