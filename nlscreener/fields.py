from __future__ import annotations

import re

from .exceptions import RegistryError
from .models import FieldDescriptor


def _field(name: str, type_: str, aliases: tuple[str, ...], description: str, unit: str | None = None) -> FieldDescriptor:
    return FieldDescriptor(name=name, type=type_, aliases=aliases, description=description, unit=unit)


QUERYABLE_FIELDS: dict[str, FieldDescriptor] = {
    f.name: f
    for f in [
        _field("symbol", "string", ("ticker", "stock"), "Stock ticker symbol"),
        _field("name", "string", ("company", "company_name"), "Company name"),
        _field("sector", "string", ("sect",), "Business sector"),
        _field("industry", "string", ("ind",), "Industry classification"),
        _field("mcap", "number", ("market_cap", "marketcap", "market cap", "cap"), "Market capitalization", "USD"),
        _field("pe", "number", ("p/e", "pe_ratio", "pe ratio", "price to earnings"), "Price to earnings ratio", "x"),
        _field("pb", "number", ("p/b", "pb_ratio", "pb ratio", "price to book"), "Price to book ratio", "x"),
        _field("ps", "number", ("p/s", "ps_ratio", "ps ratio", "price to sales"), "Price to sales ratio", "x"),
        _field("roe", "number", ("return on equity",), "Return on equity", "%"),
        _field("roa", "number", ("return on assets",), "Return on assets", "%"),
        _field("roce", "number", ("return on capital",), "Return on capital employed", "%"),
        _field(
            "debtToEquity",
            "number",
            ("d/e", "de", "debt_to_equity", "debt to equity", "debt/equity"),
            "Debt to equity ratio",
            "x",
        ),
        _field("currentRatio", "number", ("current_ratio", "current ratio", "cr"), "Current ratio", "x"),
        _field(
            "dividendYield",
            "number",
            ("div_yield", "dividend yield", "yield", "div yield", "dy"),
            "Dividend yield",
            "%",
        ),
        _field("eps", "number", ("earnings per share",), "Earnings per share", "USD"),
        _field("revenue", "number", ("sales", "rev"), "Annual revenue", "USD"),
        _field(
            "revenueGrowth",
            "number",
            ("revenue_growth", "revenue growth", "sales growth", "rev growth"),
            "Revenue growth year over year",
            "%",
        ),
        _field(
            "profitGrowth",
            "number",
            ("profit_growth", "profit growth", "earnings growth", "np growth"),
            "Net profit growth year over year",
            "%",
        ),
        _field("price", "number", ("current_price", "cmp", "ltp"), "Current market price", "USD"),
        _field("change", "number", ("price_change",), "Price change today", "USD"),
        _field(
            "changePct",
            "number",
            ("change_pct", "change %", "change_percent", "pct change"),
            "Price change today in percent",
            "%",
        ),
        _field("volume", "number", ("vol", "today_volume"), "Volume traded today"),
        _field("avgVolume20d", "number", ("avg_volume", "average volume", "avg vol"), "Average volume over 20 days"),
        _field(
            "volumeChange5d",
            "number",
            ("volume_change", "vol change", "volume trend"),
            "Volume change over 5 days",
            "%",
        ),
        _field("high52w", "number", ("52w_high", "52 week high", "yearly high", "52wh"), "52 week high", "USD"),
        _field("low52w", "number", ("52w_low", "52 week low", "yearly low", "52wl"), "52 week low", "USD"),
        _field("return1d", "number", ("daily return", "1d return", "today return"), "1 day return", "%"),
        _field("return1w", "number", ("weekly return", "1w return", "week return"), "1 week return", "%"),
        _field("return1m", "number", ("monthly return", "1m return", "month return"), "1 month return", "%"),
        _field("return3m", "number", ("3m return", "quarterly return"), "3 month return", "%"),
        _field("return6m", "number", ("6m return", "half year return"), "6 month return", "%"),
        _field(
            "return1y",
            "number",
            ("yearly return", "1y return", "annual return", "1 year return"),
            "1 year return",
            "%",
        ),
        _field("return3y", "number", ("3y return", "3 year return"), "3 year return", "%"),
        _field("cagr3y", "number", ("3y cagr", "3 year cagr", "cagr"), "3 year compound annual growth rate", "%"),
        _field("beta", "number", (), "Beta against the market index"),
        _field("rsi", "number", ("rsi14", "relative strength"), "Relative strength index (14 days)"),
        _field(
            "deliveryPct",
            "number",
            ("delivery", "delivery %", "delivery_pct", "del pct"),
            "Delivery percentage today",
            "%",
        ),
        _field("deliveryPctAvg", "number", ("avg delivery", "delivery avg"), "Average delivery percentage", "%"),
    ]
}

SECTORS: tuple[str, ...] = (
    "Technology",
    "Financials",
    "Healthcare",
    "Consumer Discretionary",
    "Consumer Staples",
    "Energy",
    "Industrials",
    "Materials",
    "Real Estate",
    "Communication Services",
    "Utilities",
    "Pharma",
    "Biotech",
    "Auto",
    "Banking",
    "NBFC",
    "IT",
    "FMCG",
    "Metals",
    "Oil & Gas",
    "Power",
    "Telecom",
    "Media",
    "Chemicals",
    "Cement",
    "Infrastructure",
)

# Overlapping aliases are allowed here; the first sector listed wins.
SECTOR_ALIASES: dict[str, tuple[str, ...]] = {
    "Technology": ("tech", "it", "software", "information technology"),
    "Financials": ("finance", "financial", "financial services", "banking", "banks", "nbfc"),
    "Healthcare": ("health", "hospital", "hospitals"),
    "Pharma": ("pharmaceutical", "pharmaceuticals", "drug", "drugs"),
    "Biotech": ("biotechnology", "bio"),
    "Energy": ("oil", "gas", "oil & gas", "petroleum"),
    "Auto": ("automobile", "automotive", "car", "cars", "ev", "electric vehicle"),
    "Consumer Discretionary": ("consumer", "retail", "discretionary"),
    "Consumer Staples": ("staples", "fmcg", "food", "consumer goods"),
    "Industrials": ("industrial", "manufacturing"),
    "Materials": ("material", "metals", "mining", "steel", "cement", "chemicals"),
    "Real Estate": ("realty", "property", "housing"),
    "Utilities": ("utility", "electricity"),
}

_MIN_CONTAINMENT = 3


def normalize_key(text: str) -> str:
    return re.sub(r"[\s_\-]+", "", (text or "").lower())


def _build_normalized_index() -> dict[str, str]:
    index: dict[str, str] = {}
    for name, desc in QUERYABLE_FIELDS.items():
        for key in (name, *desc.aliases):
            norm = normalize_key(key)
            owner = index.get(norm)
            if owner is not None and owner != name:
                raise RegistryError(f"alias {key!r} of {name!r} collides with field {owner!r}")
            index[norm] = name
    return index


def validate_registry() -> None:
    """Fail loudly when two fields share a normalized alias."""
    _build_normalized_index()


_NORMALIZED_FIELDS = _build_normalized_index()
_EXACT_ALIASES = {alias.lower(): name for name, desc in QUERYABLE_FIELDS.items() for alias in desc.aliases}


def resolve_field(text: str) -> str | None:
    raw = (text or "").strip()
    if not raw:
        return None
    if raw in QUERYABLE_FIELDS:
        return raw
    lower = raw.lower()
    if lower in _EXACT_ALIASES:
        return _EXACT_ALIASES[lower]
    norm = normalize_key(raw)
    for name in QUERYABLE_FIELDS:
        if normalize_key(name) == norm:
            return name
    return _NORMALIZED_FIELDS.get(norm)


def lookup_sector(text: str) -> str | None:
    """Exact or normalized name/alias match only; no containment."""
    raw = (text or "").strip()
    if not raw:
        return None
    if raw in SECTORS:
        return raw
    lower = raw.lower()
    for sector, aliases in SECTOR_ALIASES.items():
        if lower in aliases:
            return sector
    norm = normalize_key(raw)
    for sector in SECTORS:
        if normalize_key(sector) == norm:
            return sector
    for sector, aliases in SECTOR_ALIASES.items():
        if any(normalize_key(a) == norm for a in aliases):
            return sector
    return None


def resolve_sector(text: str) -> str | None:
    found = lookup_sector(text)
    if found:
        return found
    lower = (text or "").strip().lower()
    if len(lower) < _MIN_CONTAINMENT:
        return None
    for sector in SECTORS:
        cand = sector.lower()
        if len(cand) < _MIN_CONTAINMENT:
            continue
        if cand in lower or lower in cand:
            return sector
    return None


def field_names() -> list[str]:
    return list(QUERYABLE_FIELDS)


def field_type(name: str) -> str | None:
    desc = QUERYABLE_FIELDS.get(name)
    return desc.type if desc else None


def describe_field(name: str) -> str:
    desc = QUERYABLE_FIELDS[name]
    unit = f" ({desc.unit})" if desc.unit else ""
    aliases = ", ".join(desc.aliases[:3])
    return f"{name}: {desc.description}{unit}" + (f" [{aliases}]" if aliases else "")


def sector_matches(stock_sector: str, wanted: str) -> bool:
    """Case-insensitive containment either way, or the same canonical sector."""
    have = (stock_sector or "").lower()
    want = (wanted or "").lower()
    if not have or not want:
        return False
    if have == want:
        return True
    if min(len(have), len(want)) >= _MIN_CONTAINMENT and (have in want or want in have):
        return True
    return resolve_sector(stock_sector) == wanted
