import pytest

from nlscreener.models import FilterCondition, PipelineStep, SortCondition
from nlscreener.numeric import (
    CalculateSpec,
    NumericPipeline,
    ScoreFactor,
    aggregate,
    build_pipeline,
    calculate,
    compare,
    evaluate_condition,
    filter_rows,
    filter_sectors,
    group,
    merge,
    normalize,
    pivot,
    rank,
    score,
    sort_rows,
    transform,
)


def _rows():
    return [
        {"symbol": "AAA", "sector": "Technology", "industry": "Software", "pe": 10.0, "roe": 25.0, "mcap": 100.0},
        {"symbol": "BBB", "sector": "Technology", "industry": "Hardware", "pe": 30.0, "roe": 15.0, "mcap": 300.0},
        {"symbol": "CCC", "sector": "Energy", "industry": "Oil & Gas", "pe": 20.0, "roe": None, "mcap": 200.0},
        {"symbol": "DDD", "sector": "Financial Services", "industry": "Banks", "pe": None, "roe": 18.0, "mcap": 50.0},
    ]


def test_missing_values_never_pass_and_unknown_operator_passes():
    assert not evaluate_condition(None, FilterCondition("pe", "<", 10))
    assert evaluate_condition(5.0, FilterCondition("pe", "~", 10))
    assert not evaluate_condition("abc", FilterCondition("pe", ">", 10))


def test_string_and_set_operators():
    assert evaluate_condition("Energy", FilterCondition("sector", "=", "energy"))
    assert evaluate_condition("Energy", FilterCondition("sector", "!=", "Technology"))
    assert evaluate_condition("Oil & Gas", FilterCondition("industry", "contains", "gas"))
    assert evaluate_condition("AAA", FilterCondition("symbol", "in", ["AAA", "BBB"]))
    assert evaluate_condition("CCC", FilterCondition("symbol", "not_in", ["AAA", "BBB"]))
    assert evaluate_condition(15.0, FilterCondition("pe", "between", 10, 20))
    assert evaluate_condition(15.0, FilterCondition("pe", "between", [10, 20]))


def test_filter_rows_is_monotonic():
    rows = _rows()
    conditions = [FilterCondition("pe", "<", 25), FilterCondition("roe", ">", 20)]
    counts = [len(filter_rows(rows, conditions[:n])) for n in range(len(conditions) + 1)]
    assert counts == sorted(counts, reverse=True)
    assert [r["symbol"] for r in filter_rows(rows, conditions)] == ["AAA"]


def test_filter_sectors_include_and_exclude():
    rows = _rows()
    assert [r["symbol"] for r in filter_sectors(rows, ["Financials"])] == ["DDD"]
    assert [r["symbol"] for r in filter_sectors(rows, [], ["Technology"])] == ["CCC", "DDD"]


def test_sort_puts_missing_last_in_both_directions():
    rows = _rows()
    asc = sort_rows(rows, [SortCondition("pe", "asc")])
    desc = sort_rows(rows, [SortCondition("pe", "desc")])
    assert [r["symbol"] for r in asc] == ["AAA", "CCC", "BBB", "DDD"]
    assert [r["symbol"] for r in desc] == ["BBB", "CCC", "AAA", "DDD"]


def test_rank_assigns_positions():
    ranked = rank(_rows(), "mcap", "desc")
    assert [(r["symbol"], r["_rank"]) for r in ranked] == [("BBB", 1), ("CCC", 2), ("AAA", 3), ("DDD", 4)]


def test_score_is_bounded_and_orders_sensibly():
    factors = [ScoreFactor("pe", higher_is_better=False), ScoreFactor("roe")]
    scored = {r["symbol"]: r for r in score(_rows(), factors)}
    assert all(0 <= r["_score"] <= 100 for r in scored.values())
    assert scored["AAA"]["_score"] == 100
    assert scored["BBB"]["_score"] == 0
    assert scored["CCC"]["_norm_roe"] == 50.0


def test_score_threshold_penalty():
    factors = [ScoreFactor("roe", threshold_min=20)]
    scored = {r["symbol"]: r for r in score(_rows(), factors)}
    assert scored["DDD"]["_score"] == 15


def test_single_row_score_is_neutral():
    assert score([{"pe": 12.0}], [ScoreFactor("pe")])[0]["_score"] == 50


def test_calculate_with_sandboxed_formula():
    out = calculate(_rows(), [CalculateSpec("earnings_yield", "100 / pe", ("pe",))])
    assert out[0]["earnings_yield"] == 10.0
    assert out[3]["earnings_yield"] is None


def test_compare_modes():
    rows = [{"v": 10.0}, {"v": 20.0}, {"v": None}]
    relative = [r["_compare_v"] for r in compare(rows, "v", "relative")]
    assert relative[:2] == pytest.approx([-100 / 3, 100 / 3])
    assert relative[2] is None
    assert [r["_compare_v"] for r in compare(rows, "v", "absolute", benchmark=5)] == [5.0, 15.0, None]
    assert [r["_compare_v"] for r in compare(rows, "v", "percentile")] == [0.0, 50.0, None]
    with pytest.raises(ValueError):
        compare(rows, "v", "bogus")


def test_merge_modes():
    left = [{"symbol": "A", "x": 1}, {"symbol": "B", "x": 2}]
    right = [{"symbol": "B", "y": 3}, {"symbol": "C", "y": 4}]
    assert merge([left, right], mode="inner") == [{"symbol": "B", "x": 2, "y": 3}]
    assert merge([left, right], mode="left")[0] == {"symbol": "A", "x": 1}
    assert [r["symbol"] for r in merge([left, right], mode="outer")] == ["A", "B", "C"]


def test_aggregate_functions():
    out = aggregate(_rows(), "pe", ["sum", "avg", "min", "max", "count", "median", "percentile"])
    assert out["pe_sum"] == 60.0
    assert out["pe_avg"] == 20.0
    assert out["pe_count"] == 3.0
    assert out["pe_median"] == 20.0
    assert out["pe_p50"] == 20.0
    assert aggregate([], "pe", ["avg"]) == {"pe_avg": 0.0}
    with pytest.raises(ValueError):
        aggregate(_rows(), "pe", ["mode"])


def test_group_partitions_and_summarizes():
    groups = group(_rows(), "sector")
    assert list(groups) == ["Technology", "Energy", "Financial Services"]
    summaries = group(_rows(), "sector", [("mcap", "sum")])
    assert summaries[0] == {"sector": "Technology", "_count": 2, "mcap_sum": 400.0}


def test_transform_and_normalize():
    out = transform([{"v": 4.0}, {"v": -1.0}], "v", "sqrt", "root")
    assert [r["root"] for r in out] == [2.0, None]
    norm = normalize(_rows(), "mcap", "minmax")
    assert [r["_norm_mcap"] for r in norm] == pytest.approx([20.0, 100.0, 60.0, 0.0])
    ranked = normalize(_rows(), "mcap", "rank")
    assert [r["symbol"] for r in ranked] == ["AAA", "BBB", "CCC", "DDD"]
    assert ranked[1]["_norm_mcap"] == 100.0


def test_pivot_sums_by_row_and_column():
    out = pivot(_rows(), "sector", "industry", "mcap", "sum")
    assert out["rows"] == ["Technology", "Energy", "Financial Services"]
    assert out["columns"] == ["Software", "Hardware", "Oil & Gas", "Banks"]
    assert out["values"][0] == [100.0, 300.0, 0.0, 0.0]


def test_pipeline_runs_in_order_and_reports_metadata():
    pipeline = (
        NumericPipeline()
        .filter([FilterCondition("mcap", ">", 60)])
        .sort([SortCondition("mcap", "desc")])
        .limit(2)
        .aggregate("pe", ["avg"])
    )
    result = pipeline.execute(_rows())
    assert [r["symbol"] for r in result.data] == ["BBB", "CCC"]
    assert result.metadata.input_count == 4
    assert result.metadata.output_count == 2
    assert result.metadata.aggregates == {"pe_avg": 25.0}
    assert result.metadata.operations_applied[0] == "filter(1 conditions)"


def test_build_pipeline_from_plan_steps():
    steps = [
        PipelineStep(1, "load", "Load"),
        PipelineStep(2, "filter", "Sectors", {"sectors": ["Technology"]}),
        PipelineStep(3, "rank", "Rank", {"field": "roe"}),
        PipelineStep(4, "limit", "Top", {"n": 1}),
    ]
    result = build_pipeline(steps).execute(_rows())
    assert [r["symbol"] for r in result.data] == ["AAA"]
    with pytest.raises(ValueError):
        build_pipeline([PipelineStep(1, "teleport", "nope")])
