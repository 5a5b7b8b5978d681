from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Callable, Iterable

import numpy as np
import pandas as pd

from .config import SCORE_NEUTRAL, SCORE_THRESHOLD_PENALTY
from .fields import sector_matches
from .formula import evaluate as evaluate_formula
from .models import FilterCondition, PipelineMetadata, PipelineResult, PipelineStep, SortCondition

Row = dict[str, Any]

AGGREGATE_FUNCTIONS = ("sum", "avg", "min", "max", "count", "median", "stddev", "percentile")
COMPARE_MODES = ("absolute", "relative", "percentile", "zscore")
NORMALIZE_MODES = ("minmax", "zscore", "percentile", "rank")
TRANSFORMS = ("log", "sqrt", "square", "abs", "round", "ceil", "floor", "percent")


@dataclass(frozen=True)
class ScoreFactor:
    field: str
    weight: float = 1.0
    higher_is_better: bool = True
    name: str = ""
    threshold_min: float | None = None
    threshold_max: float | None = None


@dataclass(frozen=True)
class CalculateSpec:
    output_field: str
    formula: str
    fields: tuple[str, ...]


def _num(value: Any) -> float | None:
    if value is None or isinstance(value, (bool, str)):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def _present(value: Any) -> bool:
    if value is None:
        return False
    return not (isinstance(value, float) and math.isnan(value))


def _values(rows: Iterable[Row], field: str) -> np.ndarray:
    vals = [_num(r.get(field)) for r in rows]
    return np.array([v for v in vals if v is not None], dtype=float)


def _eq(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a.casefold() == b.casefold()
    return a == b


def _between(a: Any, low: Any, high: Any) -> bool:
    if high is None and isinstance(low, (list, tuple)) and len(low) == 2:
        low, high = low
    if low is None or high is None:
        return False
    return low <= a <= high


def _contains(a: Any, b: Any) -> bool:
    return isinstance(a, str) and b is not None and str(b).lower() in a.lower()


def _in(a: Any, b: Any) -> bool:
    return isinstance(b, (list, tuple, set, frozenset)) and any(_eq(a, x) for x in b)


OPERATOR_EVALUATORS: dict[str, Callable[[Any, Any, Any], bool]] = {
    ">": lambda a, b, c: a > b,
    "<": lambda a, b, c: a < b,
    ">=": lambda a, b, c: a >= b,
    "<=": lambda a, b, c: a <= b,
    "=": lambda a, b, c: _eq(a, b),
    "!=": lambda a, b, c: not _eq(a, b),
    "between": _between,
    "in": lambda a, b, c: _in(a, b),
    "not_in": lambda a, b, c: isinstance(b, (list, tuple, set, frozenset)) and not _in(a, b),
    "contains": lambda a, b, c: _contains(a, b),
}


def evaluate_condition(value: Any, cond: FilterCondition) -> bool:
    """Missing values never pass; unknown operators always do."""
    if not _present(value):
        return False
    evaluator = OPERATOR_EVALUATORS.get(cond.operator)
    if evaluator is None:
        return True
    try:
        return bool(evaluator(value, cond.value, cond.value_end))
    except TypeError:
        return False


def filter_rows(rows: list[Row], conditions: list[FilterCondition]) -> list[Row]:
    return [r for r in rows if all(evaluate_condition(r.get(c.field), c) for c in conditions)]


def filter_sectors(rows: list[Row], include: list[str], exclude: list[str] | None = None) -> list[Row]:
    exclude = exclude or []
    out = []
    for row in rows:
        sector = str(row.get("sector") or "")
        if any(sector_matches(sector, s) for s in exclude):
            continue
        if include and not any(sector_matches(sector, s) for s in include):
            continue
        out.append(row)
    return out


def compare_values(a: Any, b: Any, order: str) -> int:
    a_missing, b_missing = not _present(a), not _present(b)
    if a_missing and b_missing:
        return 0
    if a_missing:
        return 1
    if b_missing:
        return -1
    if a == b:
        return 0
    result = -1 if a < b else 1
    return result if order == "asc" else -result


def sort_rows(rows: list[Row], sorts: list[SortCondition]) -> list[Row]:
    """Stable multi-key sort; missing values go last in either direction."""

    def cmp(a: Row, b: Row) -> int:
        for s in sorts:
            result = compare_values(a.get(s.field), b.get(s.field), s.order)
            if result:
                return result
        return 0

    return sorted(rows, key=cmp_to_key(cmp))


def limit_rows(rows: list[Row], n: int, offset: int = 0) -> list[Row]:
    offset = max(offset or 0, 0)
    return rows[offset : offset + max(n, 0)]


def rank(rows: list[Row], field: str, order: str = "desc", output_field: str = "_rank") -> list[Row]:
    ordered = sort_rows(rows, [SortCondition(field, order)])
    return [{**row, output_field: idx + 1} for idx, row in enumerate(ordered)]


def _minmax(value: float | None, low: float, high: float) -> float:
    if value is None or high == low:
        return SCORE_NEUTRAL
    return (value - low) / (high - low) * 100.0


def score(rows: list[Row], factors: list[ScoreFactor], output_field: str = "_score") -> list[Row]:
    """Weighted composite score in [0, 100], relative to the rows passed in."""
    ranges: dict[str, tuple[float, float]] = {}
    for factor in factors:
        vals = _values(rows, factor.field)
        ranges[factor.field] = (float(vals.min()), float(vals.max())) if vals.size else (0.0, 0.0)

    out = []
    for row in rows:
        enriched = dict(row)
        total = 0.0
        total_weight = 0.0
        for factor in factors:
            raw = _num(row.get(factor.field))
            low, high = ranges[factor.field]
            norm = _minmax(raw, low, high)
            enriched[f"_norm_{factor.field}"] = norm
            value = norm if factor.higher_is_better else 100.0 - norm
            if raw is not None:
                if factor.threshold_min is not None and raw < factor.threshold_min:
                    value *= SCORE_THRESHOLD_PENALTY
                if factor.threshold_max is not None and raw > factor.threshold_max:
                    value *= SCORE_THRESHOLD_PENALTY
            weight = max(float(factor.weight), 0.0)
            total += value * weight
            total_weight += weight
        composite = round(total / total_weight) if total_weight > 0 else 0
        enriched[output_field] = min(max(composite, 0), 100)
        out.append(enriched)
    return out


_IDENT_RE_CACHE: dict[str, Any] = {}


def _substitute(formula: str, fields: Iterable[str], row: Row) -> str:
    for name in sorted(fields, key=len, reverse=True):
        pattern = _IDENT_RE_CACHE.get(name)
        if pattern is None:
            pattern = _IDENT_RE_CACHE[name] = re.compile(rf"\b{re.escape(name)}\b")
        value = _num(row.get(name))
        formula = pattern.sub(np.format_float_positional(value if value is not None else 0.0), formula)
    return formula


def calculate(rows: list[Row], specs: list[CalculateSpec]) -> list[Row]:
    out = []
    for row in rows:
        enriched = dict(row)
        for spec in specs:
            enriched[spec.output_field] = evaluate_formula(_substitute(spec.formula, spec.fields, row))
        out.append(enriched)
    return out


def _percentile_rank(value: float | None, pool: np.ndarray) -> float | None:
    if value is None or pool.size == 0:
        return None
    return float((pool < value).sum()) / pool.size * 100.0


def compare(
    rows: list[Row],
    field: str,
    mode: str = "percentile",
    benchmark: float | None = None,
    output_field: str | None = None,
) -> list[Row]:
    if mode not in COMPARE_MODES:
        raise ValueError(f"unknown compare mode: {mode}")
    output = output_field or f"_compare_{field}"
    pool = _values(rows, field)
    mean = float(pool.mean()) if pool.size else 0.0
    std = float(pool.std()) if pool.size else 0.0
    baseline = benchmark if benchmark is not None else mean

    out = []
    for row in rows:
        value = _num(row.get(field))
        if value is None:
            result = None
        elif mode == "absolute":
            result = value - benchmark if benchmark is not None else value
        elif mode == "relative":
            result = (value - baseline) / baseline * 100.0 if baseline != 0 else 0.0
        elif mode == "percentile":
            result = _percentile_rank(value, pool)
        else:
            result = (value - mean) / std if std != 0 else 0.0
        out.append({**row, output: result})
    return out


def merge(datasets: list[list[Row]], key_field: str = "symbol", mode: str = "inner") -> list[Row]:
    if not datasets:
        return []
    result = [dict(r) for r in datasets[0]]
    for dataset in datasets[1:]:
        by_key = {r.get(key_field): r for r in dataset}
        if mode == "inner":
            result = [{**r, **by_key[r.get(key_field)]} for r in result if r.get(key_field) in by_key]
        elif mode == "left":
            result = [{**r, **by_key.get(r.get(key_field), {})} for r in result]
        elif mode == "outer":
            current = {r.get(key_field): r for r in result}
            keys = list(current)
            keys.extend(k for k in by_key if k not in current)
            result = [{**current.get(k, {}), **by_key.get(k, {}), key_field: k} for k in keys]
        else:
            raise ValueError(f"unknown merge mode: {mode}")
    return result


def aggregate(rows: list[Row], field: str, functions: Iterable[str]) -> dict[str, float]:
    vals = _values(rows, field)
    empty = vals.size == 0
    out: dict[str, float] = {}
    for fn in functions:
        if fn == "sum":
            out[f"{field}_sum"] = float(vals.sum())
        elif fn == "avg":
            out[f"{field}_avg"] = 0.0 if empty else float(vals.mean())
        elif fn == "min":
            out[f"{field}_min"] = 0.0 if empty else float(vals.min())
        elif fn == "max":
            out[f"{field}_max"] = 0.0 if empty else float(vals.max())
        elif fn == "count":
            out[f"{field}_count"] = float(vals.size)
        elif fn == "median":
            out[f"{field}_median"] = 0.0 if empty else float(np.median(vals))
        elif fn == "stddev":
            out[f"{field}_stddev"] = 0.0 if empty else float(vals.std())
        elif fn == "percentile":
            for p in (25, 50, 75):
                out[f"{field}_p{p}"] = 0.0 if empty else float(np.percentile(vals, p))
        else:
            raise ValueError(f"unknown aggregate function: {fn}")
    return out


def group(
    rows: list[Row],
    field: str,
    aggregations: list[tuple[str, str]] | None = None,
) -> dict[str, list[Row]] | list[Row]:
    """Partition by ``field``; with aggregations, one summary row per group."""
    groups: dict[str, list[Row]] = {}
    for row in rows:
        value = row.get(field)
        key = str(value) if _present(value) else "unknown"
        groups.setdefault(key, []).append(row)
    if aggregations is None:
        return groups

    summaries = []
    for key, members in groups.items():
        summary: Row = {field: key, "_count": len(members)}
        for agg_field, fn in aggregations:
            summary.update(aggregate(members, agg_field, [fn]))
        summaries.append(summary)
    return summaries


def _apply_transform(value: float, transformation: str) -> float | None:
    if transformation == "log":
        return math.log(value) if value > 0 else None
    if transformation == "sqrt":
        return math.sqrt(value) if value >= 0 else None
    if transformation == "square":
        return value * value
    if transformation == "abs":
        return abs(value)
    if transformation == "round":
        return float(math.floor(value + 0.5))
    if transformation == "ceil":
        return float(math.ceil(value))
    if transformation == "floor":
        return float(math.floor(value))
    if transformation == "percent":
        return value * 100.0
    raise ValueError(f"unknown transform: {transformation}")


def transform(rows: list[Row], field: str, transformation: str, output_field: str | None = None) -> list[Row]:
    if transformation not in TRANSFORMS:
        raise ValueError(f"unknown transform: {transformation}")
    output = output_field or field
    out = []
    for row in rows:
        value = _num(row.get(field))
        out.append({**row, output: None if value is None else _apply_transform(value, transformation)})
    return out


def normalize(rows: list[Row], field: str, mode: str = "minmax", output_field: str | None = None) -> list[Row]:
    """Rescale ``field`` into ``_norm_<field>``.

    ``minmax`` and ``percentile`` are bounded to [0, 100], ``rank`` to (0, 100];
    ``zscore`` is unbounded. Row order is preserved.
    """
    if mode not in NORMALIZE_MODES:
        raise ValueError(f"unknown normalize mode: {mode}")
    output = output_field or f"_norm_{field}"
    pool = _values(rows, field)
    if pool.size == 0:
        return [dict(r) for r in rows]

    if mode == "rank":
        n = len(rows)
        indexed = [{**r, "__idx": i} for i, r in enumerate(rows)]
        positions = {r["__idx"]: r["_rank"] for r in rank(indexed, field, "desc")}
        return [{**r, output: (n - positions[i] + 1) / n * 100.0} for i, r in enumerate(rows)]

    low, high = float(pool.min()), float(pool.max())
    mean, std = float(pool.mean()), float(pool.std())
    out = []
    for row in rows:
        value = _num(row.get(field))
        if value is None:
            result = None
        elif mode == "minmax":
            result = _minmax(value, low, high)
        elif mode == "zscore":
            result = (value - mean) / std if std != 0 else 0.0
        else:
            result = _percentile_rank(value, pool)
        out.append({**row, output: result})
    return out


def pivot(rows: list[Row], row_field: str, column_field: str, value_field: str, agg: str = "avg") -> dict[str, list]:
    if agg not in ("sum", "avg"):
        raise ValueError(f"unknown pivot aggregation: {agg}")
    if not rows:
        return {"rows": [], "columns": [], "values": []}
    df = pd.DataFrame(
        {
            "r": [str(r.get(row_field)) for r in rows],
            "c": [str(r.get(column_field)) for r in rows],
            "v": pd.to_numeric(pd.Series([r.get(value_field) for r in rows], dtype=object), errors="coerce").fillna(0.0),
        }
    )
    table = df.pivot_table(index="r", columns="c", values="v", aggfunc="sum" if agg == "sum" else "mean", fill_value=0.0)
    row_keys = list(dict.fromkeys(df["r"]))
    col_keys = list(dict.fromkeys(df["c"]))
    table = table.reindex(index=row_keys, columns=col_keys, fill_value=0.0)
    return {"rows": row_keys, "columns": col_keys, "values": table.astype(float).values.tolist()}


class NumericPipeline:
    """Chainable builder over the operators above, executed in registration order."""

    def __init__(self) -> None:
        self._operations: list[tuple[str, Callable[[list[Row]], list[Row]]]] = []
        self._aggregates: dict[str, float] = {}
        self._groups: dict[str, list[Row]] = {}

    def _add(self, name: str, fn: Callable[[list[Row]], list[Row]]) -> NumericPipeline:
        self._operations.append((name, fn))
        return self

    @property
    def operation_names(self) -> list[str]:
        return [name for name, _ in self._operations]

    def filter(self, conditions: list[FilterCondition]) -> NumericPipeline:
        return self._add(f"filter({len(conditions)} conditions)", lambda rows: filter_rows(rows, conditions))

    def filter_sectors(self, include: list[str], exclude: list[str] | None = None) -> NumericPipeline:
        label = ", ".join(include) or "any"
        if exclude:
            label += "; not " + ", ".join(exclude)
        return self._add(f"sectors({label})", lambda rows: filter_sectors(rows, include, exclude))

    def rank(self, field: str, order: str = "desc", output_field: str = "_rank") -> NumericPipeline:
        return self._add(f"rank({field}, {order})", lambda rows: rank(rows, field, order, output_field))

    def score(self, factors: list[ScoreFactor], output_field: str = "_score") -> NumericPipeline:
        return self._add(f"score({len(factors)} factors)", lambda rows: score(rows, factors, output_field))

    def calculate(self, specs: list[CalculateSpec]) -> NumericPipeline:
        names = ", ".join(s.output_field for s in specs)
        return self._add(f"calculate({names})", lambda rows: calculate(rows, specs))

    def compare(self, field: str, mode: str = "percentile", benchmark: float | None = None) -> NumericPipeline:
        return self._add(f"compare({field}, {mode})", lambda rows: compare(rows, field, mode, benchmark))

    def normalize(self, field: str, mode: str = "minmax", output_field: str | None = None) -> NumericPipeline:
        return self._add(f"normalize({field}, {mode})", lambda rows: normalize(rows, field, mode, output_field))

    def sort(self, sorts: list[SortCondition]) -> NumericPipeline:
        label = ", ".join(f"{s.field} {s.order}" for s in sorts)
        return self._add(f"sort({label})", lambda rows: sort_rows(rows, sorts))

    def limit(self, n: int, offset: int = 0) -> NumericPipeline:
        label = f"limit({n}, offset {offset})" if offset else f"limit({n})"
        return self._add(label, lambda rows: limit_rows(rows, n, offset))

    def transform(self, field: str, transformation: str, output_field: str | None = None) -> NumericPipeline:
        return self._add(
            f"transform({field}, {transformation})",
            lambda rows: transform(rows, field, transformation, output_field),
        )

    def aggregate(self, field: str, functions: list[str]) -> NumericPipeline:
        def run(rows: list[Row]) -> list[Row]:
            self._aggregates.update(aggregate(rows, field, functions))
            return rows

        return self._add(f"aggregate({field})", run)

    def group(self, field: str, aggregations: list[tuple[str, str]] | None = None) -> NumericPipeline:
        def run(rows: list[Row]) -> list[Row]:
            result = group(rows, field, aggregations)
            if isinstance(result, list):
                return result
            self._groups = result
            return rows

        return self._add(f"group({field})", run)

    def execute(self, rows: list[Row]) -> PipelineResult:
        start = time.perf_counter()
        self._aggregates = {}
        self._groups = {}
        data = [dict(r) for r in rows]
        applied = []
        for name, fn in self._operations:
            data = fn(data)
            applied.append(name)
        metadata = PipelineMetadata(
            input_count=len(rows),
            output_count=len(data),
            operations_applied=applied,
            columns=list(data[0].keys()) if data else [],
            execution_time=(time.perf_counter() - start) * 1000.0,
            aggregates=dict(self._aggregates) or None,
            groups=dict(self._groups) or None,
        )
        return PipelineResult(data=data, metadata=metadata)

    def reset(self) -> NumericPipeline:
        self._operations = []
        self._aggregates = {}
        self._groups = {}
        return self


def build_pipeline(steps: list[PipelineStep]) -> NumericPipeline:
    """Turn declarative plan steps into an executable pipeline."""
    pipeline = NumericPipeline()
    for step in steps:
        params = step.params
        op = step.operation
        if op == "load":
            continue
        if op == "filter":
            if params.get("sectors") or params.get("exclude_sectors"):
                pipeline.filter_sectors(list(params.get("sectors", [])), list(params.get("exclude_sectors", [])))
            if params.get("conditions"):
                pipeline.filter(list(params["conditions"]))
        elif op == "score":
            pipeline.score(list(params.get("factors", [])), params.get("output_field", "_score"))
        elif op == "rank":
            pipeline.rank(params["field"], params.get("order", "desc"))
        elif op == "sort":
            pipeline.sort(list(params.get("sorts", [])))
        elif op == "limit":
            pipeline.limit(int(params.get("n", 0)), int(params.get("offset", 0)))
        elif op == "group":
            pipeline.group(params["field"], params.get("aggregations"))
        elif op == "aggregate":
            pipeline.aggregate(params["field"], list(params.get("functions", [])))
        else:
            raise ValueError(f"unknown pipeline operation: {op}")
    return pipeline
