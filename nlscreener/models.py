from __future__ import annotations

import math
from collections import deque
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any

QUERY_TYPES = ("screener", "single_stock", "comparison", "watchlist", "alert", "unknown")
RESPONSE_TYPES = QUERY_TYPES + ("help",)
OPERATORS = (">", "<", ">=", "<=", "=", "!=", "between", "in", "not_in", "contains")


def _finite_or_none(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


@dataclass(frozen=True)
class Stock:
    symbol: str
    name: str
    sector: str
    industry: str = ""
    mcap: float | None = None
    price: float | None = None
    change: float | None = None
    changePct: float | None = None
    pe: float | None = None
    pb: float | None = None
    ps: float | None = None
    roe: float | None = None
    roa: float | None = None
    roce: float | None = None
    debtToEquity: float | None = None
    currentRatio: float | None = None
    dividendYield: float | None = None
    eps: float | None = None
    revenue: float | None = None
    revenueGrowth: float | None = None
    profitGrowth: float | None = None
    volume: float | None = None
    avgVolume20d: float | None = None
    volumeChange5d: float | None = None
    high52w: float | None = None
    low52w: float | None = None
    return1d: float | None = None
    return1w: float | None = None
    return1m: float | None = None
    return3m: float | None = None
    return6m: float | None = None
    return1y: float | None = None
    return3y: float | None = None
    cagr3y: float | None = None
    beta: float | None = None
    rsi: float | None = None
    deliveryPct: float | None = None
    deliveryPctAvg: float | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> Stock:
        """Build a record from a loose mapping, dropping unknown keys.

        Numeric attributes that are missing, NaN, infinite or unparseable become None.
        """
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            raw = data[f.name]
            if f.name in TEXT_ATTRIBUTES:
                kwargs[f.name] = "" if raw is None or raw != raw else str(raw).strip()
            else:
                kwargs[f.name] = _finite_or_none(raw)
        kwargs["symbol"] = str(kwargs.get("symbol") or "").upper()
        kwargs.setdefault("name", kwargs["symbol"])
        kwargs.setdefault("sector", "Unknown")
        return cls(**kwargs)

    def get(self, name: str) -> Any:
        return getattr(self, name, None)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


TEXT_ATTRIBUTES = frozenset({"symbol", "name", "sector", "industry"})
STOCK_ATTRIBUTES = tuple(f.name for f in fields(Stock))


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    type: str
    aliases: tuple[str, ...] = ()
    description: str = ""
    unit: str | None = None


@dataclass(frozen=True)
class FilterCondition:
    field: str
    operator: str
    value: Any
    value_end: Any = None

    def to_dict(self) -> dict[str, Any]:
        out = {"field": self.field, "operator": self.operator, "value": self.value}
        if self.value_end is not None:
            out["valueEnd"] = self.value_end
        return out


@dataclass(frozen=True)
class SortCondition:
    field: str
    order: str = "desc"


@dataclass
class SymbolSectorSet:
    sectors: list[str] = field(default_factory=list)
    symbols: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.sectors and not self.symbols


@dataclass
class ScreenerQuery:
    filters: list[FilterCondition] = field(default_factory=list)
    sort: SortCondition | None = None
    limit: int | None = None
    offset: int = 0
    include: SymbolSectorSet = field(default_factory=SymbolSectorSet)
    exclude: SymbolSectorSet = field(default_factory=SymbolSectorSet)

    def copy(self) -> ScreenerQuery:
        return replace(
            self,
            filters=list(self.filters),
            include=SymbolSectorSet(list(self.include.sectors), list(self.include.symbols)),
            exclude=SymbolSectorSet(list(self.exclude.sectors), list(self.exclude.symbols)),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"filters": [f.to_dict() for f in self.filters]}
        if self.sort is not None:
            out["sort"] = {"field": self.sort.field, "order": self.sort.order}
        if self.limit is not None:
            out["limit"] = self.limit
        if self.offset:
            out["offset"] = self.offset
        if not self.include.is_empty():
            out["include"] = asdict(self.include)
        if not self.exclude.is_empty():
            out["exclude"] = asdict(self.exclude)
        return out


@dataclass
class ParsedQuery:
    type: str
    raw: str
    query: ScreenerQuery | None = None
    symbols: list[str] = field(default_factory=list)
    action: str | None = None
    refinement: bool = False
    ignored: list[str] = field(default_factory=list)


@dataclass
class ScreenerResult:
    success: bool
    data: list[Stock]
    total: int
    query: ScreenerQuery
    execution_time: float
    message: str | None = None
    interpretation: str = ""
    warnings: list[str] = field(default_factory=list)


@dataclass
class ConversationState:
    last_query: ParsedQuery | None = None
    last_results: list[Stock] = field(default_factory=list)
    history: deque = field(default_factory=deque)


@dataclass
class PipelineMetadata:
    input_count: int
    output_count: int
    operations_applied: list[str]
    columns: list[str]
    execution_time: float = 0.0
    aggregates: dict[str, float] | None = None
    groups: dict[str, list[dict]] | None = None


@dataclass
class PipelineResult:
    data: list[dict]
    metadata: PipelineMetadata


@dataclass
class PipelineStep:
    step: int
    operation: str
    description: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class IntentAnalysis:
    intent: str
    output_type: str
    confidence: float
    symbols: list[str]
    sectors: list[str]
    metrics: list[str]
    visualizations: list[str]
    suggested_cards: list[str]
    pipeline: list[PipelineStep]
    explanation: str


@dataclass
class OutputConfig:
    type: str
    visualizations: list[str]
    cards: list[str]
    columns: list[str]
    title: str
    subtitle: str = ""


@dataclass
class ScreenerResponse:
    success: bool
    type: str
    data: list[Stock] = field(default_factory=list)
    total: int = 0
    interpretation: str = ""
    suggestions: list[str] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)
    execution_time: float = 0.0
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    analysis: IntentAnalysis | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "type": self.type,
            "data": [s.to_dict() for s in self.data],
            "total": self.total,
            "interpretation": self.interpretation,
            "executionTime": self.execution_time,
        }
        if self.suggestions:
            out["suggestions"] = list(self.suggestions)
        if self.columns:
            out["columns"] = list(self.columns)
        if self.error:
            out["error"] = self.error
        if self.warnings:
            out["warnings"] = list(self.warnings)
        if self.analysis is not None:
            out["visualizations"] = list(self.analysis.visualizations)
            out["suggestedCards"] = list(self.analysis.suggested_cards)
        return out


@dataclass
class AnalysisResult:
    success: bool
    analysis: IntentAnalysis
    output_config: OutputConfig | None = None
    data: list[dict] = field(default_factory=list)
    total: int = 0
    pipeline_steps: list[str] = field(default_factory=list)
    visualization_data: dict[str, Any] = field(default_factory=dict)
    follow_ups: list[str] = field(default_factory=list)
    summary: str = ""
    execution_time: float = 0.0
    error: str | None = None
