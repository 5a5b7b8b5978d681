from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from .config import DEFAULT_LIMIT
from .fields import SECTOR_ALIASES, SECTORS, field_type, lookup_sector, resolve_field, resolve_sector
from .models import FilterCondition, ParsedQuery, ScreenerQuery, SortCondition, SymbolSectorSet
from .parsers import parse_number, parse_time_period

logger = logging.getLogger(__name__)

OPERATOR_WORDS = {
    ">": ">",
    "<": "<",
    ">=": ">=",
    "<=": "<=",
    "=": "=",
    "==": "=",
    "!=": "!=",
    "<>": "!=",
    "greater than": ">",
    "more than": ">",
    "above": ">",
    "over": ">",
    "less than": "<",
    "below": "<",
    "under": "<",
    "at least": ">=",
    "at most": "<=",
    "equal to": "=",
    "not equal to": "!=",
    "between": "between",
    "contains": "contains",
}

_REFINEMENT_RE = re.compile(r"^\+\d+\s*")
_SYMBOL_TOKEN_RE = re.compile(r"\b([A-Z]{1,12})\b")
_FILTER_WORDS_RE = re.compile(
    r"(?:>|<|=|\b(?:greater|less|above|below|under|over|between|more than|at least|at most)\b)",
    re.IGNORECASE,
)
_LIST_WORDS_RE = re.compile(
    r"\b(?:stocks|companies|list|all|give me|show me|find|screen|screener|filter|top\s+\d+)\b",
    re.IGNORECASE,
)

SYMBOL_STOP_WORDS = frozenset({"AND", "OR", "NOT", "WITH", "THE", "FOR", "ALL", "VS", "I", "A"})


def _has_symbol_token(text: str) -> bool:
    return any(tok not in SYMBOL_STOP_WORDS for tok in _SYMBOL_TOKEN_RE.findall(text))


# First match wins. Each predicate receives the raw text and its lowercase form.
QUERY_TYPE_RULES: tuple[tuple[str, Callable[[str, str], bool]], ...] = (
    ("watchlist", lambda raw, lower: bool(re.search(r"\bwatch\s?list\b|\badd to\b", lower))),
    ("alert", lambda raw, lower: bool(re.search(r"\balerts?\b|\bnotify\b", lower))),
    ("comparison", lambda raw, lower: bool(re.search(r"\bcompare[ds]?\b|\bvs\b\.?|\bversus\b|\bcomparison\b", lower))),
    (
        "single_stock",
        lambda raw, lower: _has_symbol_token(raw)
        and not _FILTER_WORDS_RE.search(lower)
        and not _LIST_WORDS_RE.search(lower),
    ),
    ("screener", lambda raw, lower: bool(_FILTER_WORDS_RE.search(lower) or _LIST_WORDS_RE.search(lower))),
)


def detect_query_type(text: str) -> str:
    raw = (text or "").strip()
    lower = raw.lower()
    for query_type, predicate in QUERY_TYPE_RULES:
        if predicate(raw, lower):
            return query_type
    return "unknown"


_FIELD = r"([\w/]+(?:\s+[\w/]+){0,2}?)"
_VALUE = r"(-?\$?\d[\d,]*(?:\.\d+)?(?:\s*(?:[kmbt](?![a-z])|%|percent\b))?)"

CONDITION_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(_FIELD + r"\s*(>=|<=|!=|==|<>|>|<|=)\s*" + _VALUE, re.IGNORECASE),
    re.compile(
        _FIELD + r"\s+(not equal to|greater than|more than|less than|at least|at most|equal to)\s*" + _VALUE,
        re.IGNORECASE,
    ),
    re.compile(_FIELD + r"\s+(below|above|under|over)\s*" + _VALUE, re.IGNORECASE),
    re.compile(r"\b(?:with|having)\s+" + _FIELD + r"\s+(?:of|at)()\s*" + _VALUE, re.IGNORECASE),
)
BETWEEN_PATTERN = re.compile(_FIELD + r"\s+between\s+" + _VALUE + r"\s+and\s+" + _VALUE, re.IGNORECASE)
_CLAUSE_WORDS = r"(?:and|or|with|where|having|sorted|sort|by|top|limit|in|from|exclude|excluding|except|without|not)"
_TEXT_VALUE = r"([a-z][\w&.\-]*(?:\s+(?!" + _CLAUSE_WORDS + r"\b)[a-z][\w&.\-]*)*)"
TEXT_CONDITION_PATTERN = re.compile(r"\b(\w+)\s*(!=|=|\bcontains\b)\s*" + _TEXT_VALUE, re.IGNORECASE)

RETURN_PATTERN = re.compile(
    r"(-?\d+(?:\.\d+)?)\s*%?\s*(?:avg|average)?\s*(?:return|cagr|growth)s?\s*(?:in|over|for)?\s*"
    r"(?:the\s+)?(?:last|past)?\s*(\d+\s*(?:years?|yrs?|months?|mo))\b",
    re.IGNORECASE,
)
RETURN_FIELDS = {
    ("year", 3): "cagr3y",
    ("year", 1): "return1y",
    ("month", 6): "return6m",
    ("month", 3): "return3m",
    ("month", 1): "return1m",
}

INCLUDE_SECTOR_PATTERN = re.compile(
    r"(?<!not )\b(?:in|from|of)\s+(?:the\s+)?([\w&]+(?:\s+[\w&]+){0,2}?)\s+(?:sector|industry|space)s?\b",
    re.IGNORECASE,
)
BARE_SECTOR_PATTERN = re.compile(r"(?<!not )\b(?:in|from)\s+(?:the\s+)?([\w&]+)(?:\s+([\w&]+))?", re.IGNORECASE)
# "<sector or alias> stocks|companies" phrases, each resolving to a single sector.
SECTOR_PHRASES: tuple[str, ...] = tuple(
    {a for aliases in SECTOR_ALIASES.values() for a in aliases} | {s.lower() for s in SECTORS}
)
EXCLUDE_WORDS = ("exclude", "excluding", "except", "not", "without", "omit")
REFINEMENT_EXCLUDE_WORDS = EXCLUDE_WORDS + ("remove",)
_EXCLUDE_SPLIT_RE = re.compile(r"\s*,\s*|\s+and\s+|\s+or\s+", re.IGNORECASE)
_EXCLUDE_FILLER_RE = re.compile(r"\b(?:the|in|any|sector|sectors|stocks|companies|industry|space)\b", re.IGNORECASE)

VOLUME_DOWN_PHRASES = ("descending volume", "decreasing volume", "volume dropping", "volume falling", "volume decreasing")
VOLUME_UP_PHRASES = ("ascending volume", "increasing volume", "volume rising", "volume increasing")

LIMIT_PATTERN = re.compile(r"\b(?:top|first|show|list|limit)\s*(\d+)\b", re.IGNORECASE)
REFINEMENT_LIMIT_PATTERN = re.compile(r"\b(?:top|first|show|list|limit|make it)\s*(\d+)\b", re.IGNORECASE)

SUPERLATIVE_DESC = ("biggest", "largest", "highest")
SUPERLATIVE_ASC = ("lowest", "smallest")
SORT_BY_PATTERN = re.compile(r"\bby\s+([\w/]+(?:\s+[\w/]+){0,2})", re.IGNORECASE)
SORT_DIRECTIONS = {"asc": "asc", "ascending": "asc", "desc": "desc", "descending": "desc"}

COMPARISON_SECTOR_PATTERN = re.compile(r"\b(?:all|compare)\s+([\w&]+)\s+(?:stocks|companies)\b", re.IGNORECASE)


@dataclass
class Extraction:
    filters: list[FilterCondition] = field(default_factory=list)
    include_sectors: list[str] = field(default_factory=list)
    exclude_sectors: list[str] = field(default_factory=list)
    exclude_symbols: list[str] = field(default_factory=list)
    limit: int | None = None
    sort: SortCondition | None = None
    ignored: list[str] = field(default_factory=list)


def _append_unique(items: list, new_items) -> None:
    for item in new_items:
        if item not in items:
            items.append(item)


def normalize_operator(op: str) -> str:
    return OPERATOR_WORDS.get((op or "").lower().strip(), "=")


def resolve_field_phrase(phrase: str) -> str | None:
    """Resolve a short phrase, falling back to its trailing words ("stocks with PE" -> pe)."""
    words = (phrase or "").split()
    for start in range(len(words)):
        resolved = resolve_field(" ".join(words[start:]))
        if resolved:
            return resolved
    return None


def coerce_value(raw: str, field_name: str):
    ftype = field_type(field_name)
    if ftype == "number":
        return parse_number(raw)
    if ftype == "string":
        return raw.strip()
    return None


def _overlaps(span: tuple[int, int], spans: list[tuple[int, int]]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in spans)


def _extract_conditions(text: str, out: Extraction, skip_spans: list[tuple[int, int]]) -> None:
    for pattern in CONDITION_PATTERNS:
        for match in pattern.finditer(text):
            phrase, op_raw, value_raw = match.group(1), match.group(2), match.group(3)
            if _overlaps(match.span(), skip_spans):
                continue
            field_name = resolve_field_phrase(phrase)
            value = coerce_value(value_raw, field_name) if field_name else None
            if field_name is None or value is None or field_type(field_name) != "number":
                out.ignored.append(match.group(0).strip())
                logger.debug("dropped condition %r", match.group(0))
                continue
            _append_unique(out.filters, [FilterCondition(field_name, normalize_operator(op_raw), value)])

    for match in BETWEEN_PATTERN.finditer(text):
        field_name = resolve_field_phrase(match.group(1))
        low = parse_number(match.group(2))
        high = parse_number(match.group(3))
        if field_name is None or low is None or high is None or field_type(field_name) != "number":
            out.ignored.append(match.group(0).strip())
            logger.debug("dropped range %r", match.group(0))
            continue
        if low > high:
            low, high = high, low
        _append_unique(out.filters, [FilterCondition(field_name, "between", low, high)])

    for match in TEXT_CONDITION_PATTERN.finditer(text):
        field_name = resolve_field(match.group(1))
        if field_name is None or field_type(field_name) != "string":
            continue
        value = coerce_value(match.group(3), field_name)
        _append_unique(out.filters, [FilterCondition(field_name, normalize_operator(match.group(2)), value)])


def _extract_return_filter(text: str, out: Extraction) -> list[tuple[int, int]]:
    match = RETURN_PATTERN.search(text)
    if not match:
        return []
    period = parse_time_period(match.group(2))
    field_name = RETURN_FIELDS.get((period.unit, period.value)) if period else None
    if field_name is None:
        out.ignored.append(match.group(0).strip())
        return [match.span()]
    _append_unique(out.filters, [FilterCondition(field_name, ">=", float(match.group(1)))])
    return [match.span()]


def _exclusion_match(text: str, words: tuple[str, ...]) -> re.Match | None:
    pattern = r"\b(?:" + "|".join(words) + r")\s+(.+)$"
    return re.search(pattern, text, re.IGNORECASE)


def _extract_exclusions(text: str, out: Extraction, words: tuple[str, ...]) -> tuple[int, int] | None:
    match = _exclusion_match(text, words)
    if not match:
        return None
    for piece in _EXCLUDE_SPLIT_RE.split(match.group(1)):
        piece = piece.strip()
        if not piece:
            continue
        cleaned = _EXCLUDE_FILLER_RE.sub(" ", piece).strip()
        sector = resolve_sector(cleaned) if cleaned else None
        if sector:
            _append_unique(out.exclude_sectors, [sector])
        elif re.fullmatch(r"[A-Z]{2,12}", piece) and piece not in SYMBOL_STOP_WORDS and resolve_field(piece) is None:
            _append_unique(out.exclude_symbols, [piece])
    return match.span()


def _resolve_sector_phrase(phrase: str) -> str | None:
    words = phrase.split()
    for start in range(len(words)):
        sector = resolve_sector(" ".join(words[start:]))
        if sector:
            return sector
    return None


def _extract_inclusions(lower: str, out: Extraction, excluded_span: tuple[int, int] | None) -> None:
    def allowed(match: re.Match) -> bool:
        return not (excluded_span and _overlaps(match.span(), [excluded_span]))

    for match in INCLUDE_SECTOR_PATTERN.finditer(lower):
        if not allowed(match):
            continue
        sector = _resolve_sector_phrase(match.group(1))
        if sector:
            _append_unique(out.include_sectors, [sector])
        else:
            out.ignored.append(match.group(0).strip())

    # "in technology", "from financial services": exact names and aliases only
    for match in BARE_SECTOR_PATTERN.finditer(lower):
        if not allowed(match):
            continue
        candidates = [match.group(1)]
        if match.group(2):
            candidates.insert(0, f"{match.group(1)} {match.group(2)}")
        for candidate in candidates:
            sector = lookup_sector(candidate) if len(candidate) >= 3 else None
            if sector:
                _append_unique(out.include_sectors, [sector])
                break

    found: list[tuple[int, str]] = []
    for phrase in SECTOR_PHRASES:
        pattern = re.compile(r"\b" + re.escape(phrase) + r"\s+(?:stocks|companies)\b")
        found.extend((m.start(), lookup_sector(phrase)) for m in pattern.finditer(lower) if allowed(m))
    _append_unique(out.include_sectors, [sector for _, sector in sorted(found)])


def _extract_volume_trend(lower: str, out: Extraction) -> None:
    if any(p in lower for p in VOLUME_DOWN_PHRASES):
        _append_unique(out.filters, [FilterCondition("volumeChange5d", "<", 0.0)])
    if any(p in lower for p in VOLUME_UP_PHRASES):
        _append_unique(out.filters, [FilterCondition("volumeChange5d", ">", 0.0)])


def _leading_field(words: list[str]) -> str | None:
    for size in (3, 2, 1):
        if len(words) >= size:
            field_name = resolve_field(" ".join(words[:size]))
            if field_name:
                return field_name
    return None


def _superlative_sort(lower: str, words: tuple[str, ...], order: str) -> SortCondition | None:
    if not any(re.search(rf"\b{w}\b", lower) for w in words):
        return None
    if order == "desc":
        if "volume drop" in lower or "volume fall" in lower:
            return SortCondition("volumeChange5d", "asc")
        if re.search(r"\bmcap\b|market cap", lower):
            return SortCondition("mcap", "desc")
        if "return" in lower:
            return SortCondition("return1y", "desc")
    target = re.search(r"\b(?:" + "|".join(words) + r")\s+([\w/]+(?:\s+[\w/]+){0,2})", lower)
    if target:
        field_name = _leading_field(target.group(1).split())
        if field_name:
            return SortCondition(field_name, order)
    return None


def _extract_sort(lower: str, out: Extraction) -> None:
    sort = _superlative_sort(lower, SUPERLATIVE_DESC, "desc") or _superlative_sort(lower, SUPERLATIVE_ASC, "asc")
    if "descending volume" in lower or "volume drop" in lower:
        sort = SortCondition("volumeChange5d", "asc")
    by = SORT_BY_PATTERN.search(lower)
    if by:
        words = by.group(1).split()
        order = None
        if words and words[-1] in SORT_DIRECTIONS:
            order = SORT_DIRECTIONS[words.pop()]
        field_name = _leading_field(words)
        if field_name:
            if order is None:
                order = "asc" if re.search(r"\b(?:lowest|smallest)\b", lower) else "desc"
            sort = SortCondition(field_name, order)
    if sort is not None:
        out.sort = sort


def extract(text: str, refinement: bool = False) -> Extraction:
    """Run every extraction pass over ``text`` and union the results."""
    out = Extraction()
    lower = text.lower()
    skip_spans = _extract_return_filter(text, out)
    _extract_conditions(text, out, skip_spans)
    excluded_span = _extract_exclusions(text, out, REFINEMENT_EXCLUDE_WORDS if refinement else EXCLUDE_WORDS)
    _extract_inclusions(lower, out, excluded_span)
    _extract_volume_trend(lower, out)

    limit_pattern = REFINEMENT_LIMIT_PATTERN if refinement else LIMIT_PATTERN
    limit_match = limit_pattern.search(lower)
    if limit_match:
        out.limit = int(limit_match.group(1))

    _extract_sort(lower, out)
    return out


def _screener_query(ex: Extraction) -> ScreenerQuery:
    return ScreenerQuery(
        filters=list(ex.filters),
        sort=ex.sort,
        limit=ex.limit if ex.limit is not None else DEFAULT_LIMIT,
        include=SymbolSectorSet(sectors=list(ex.include_sectors)),
        exclude=SymbolSectorSet(sectors=list(ex.exclude_sectors), symbols=list(ex.exclude_symbols)),
    )


def parse_screener(text: str) -> ParsedQuery:
    ex = extract(text)
    return ParsedQuery(type="screener", raw=text, query=_screener_query(ex), ignored=ex.ignored)


def parse_refinement(text: str, prior: ParsedQuery | None = None) -> ParsedQuery:
    """Merge a "+N ..." follow-up onto a copy of the prior screener query."""
    remainder = _REFINEMENT_RE.sub("", text, count=1)
    if prior is not None and prior.query is not None:
        base = prior.query.copy()
    else:
        base = ScreenerQuery(limit=DEFAULT_LIMIT)

    ex = extract(remainder, refinement=True)
    _append_unique(base.filters, ex.filters)
    _append_unique(base.include.sectors, ex.include_sectors)
    _append_unique(base.exclude.sectors, ex.exclude_sectors)
    _append_unique(base.exclude.symbols, ex.exclude_symbols)
    if ex.limit is not None:
        base.limit = ex.limit
    if ex.sort is not None:
        base.sort = ex.sort
    return ParsedQuery(type="screener", raw=text, query=base, refinement=True, ignored=ex.ignored)


def parse_single_stock(text: str) -> ParsedQuery:
    tokens = [t for t in _SYMBOL_TOKEN_RE.findall(text) if t not in SYMBOL_STOP_WORDS]
    preferred = [t for t in tokens if len(t) >= 2]
    symbols = (preferred or tokens)[:1]
    return ParsedQuery(type="single_stock", raw=text, symbols=symbols)


def parse_comparison(text: str) -> ParsedQuery:
    symbols: list[str] = []
    for tok in _SYMBOL_TOKEN_RE.findall(text):
        if len(tok) < 2 or tok in SYMBOL_STOP_WORDS or resolve_field(tok) is not None:
            continue
        _append_unique(symbols, [tok])

    sectors: list[str] = []
    match = COMPARISON_SECTOR_PATTERN.search(text)
    if match:
        sector = resolve_sector(match.group(1))
        if sector:
            sectors.append(sector)
    query = ScreenerQuery(include=SymbolSectorSet(sectors=sectors))
    return ParsedQuery(type="comparison", raw=text, symbols=symbols, query=query)


def parse_watchlist(text: str) -> ParsedQuery:
    lower = text.lower()
    action = "view" if re.search(r"\b(?:view|show|list)\b", lower) else "create"
    ex = extract(text)
    return ParsedQuery(type="watchlist", raw=text, query=_screener_query(ex), action=action, ignored=ex.ignored)


def parse_alert(text: str) -> ParsedQuery:
    ex = extract(text)
    return ParsedQuery(type="alert", raw=text, query=_screener_query(ex), action="create", ignored=ex.ignored)


_PARSERS: dict[str, Callable[[str], ParsedQuery]] = {
    "screener": parse_screener,
    "single_stock": parse_single_stock,
    "comparison": parse_comparison,
    "watchlist": parse_watchlist,
    "alert": parse_alert,
}


def parse_query(text: str, prior: ParsedQuery | None = None) -> ParsedQuery:
    normalized = (text or "").strip()
    if _REFINEMENT_RE.match(normalized):
        return parse_refinement(normalized, prior)

    query_type = detect_query_type(normalized)
    parser = _PARSERS.get(query_type)
    if parser is None:
        return ParsedQuery(type="unknown", raw=text or "")
    parsed = parser(normalized)
    if parsed.ignored:
        logger.debug("ignored %d condition(s) in %r", len(parsed.ignored), normalized)
    return parsed
