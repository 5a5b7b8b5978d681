from nlscreener.insights import COMPOSITE_SCORE, build_follow_ups, build_summary, run_analysis
from nlscreener.intent import analyze_intent
from nlscreener.models import FilterCondition
from nlscreener.query_parser import parse_query
from nlscreener.universe import get_default_universe


def test_sector_overview_produces_heatmap_and_treemap():
    result = run_analysis("energy sector overview", get_default_universe())
    assert result.success
    assert [r["symbol"] for r in result.data] == ["RELIANCE"]
    heatmap = result.visualization_data["heatmap"]
    assert heatmap["rows"] == ["Energy"]
    assert heatmap["columns"] == ["pe", "roe", "return1y"]
    assert heatmap["values"][0][0] == 22.0
    treemap = result.visualization_data["treemap"]
    assert treemap["columns"] == ["Oil & Gas"]
    assert result.output_config.title == "Energy Analysis"


def test_analysis_scores_ranks_and_builds_radar():
    universe = get_default_universe()
    result = run_analysis("analyze TCS", universe)
    assert result.success
    assert result.total == len(universe)
    scores = [r[COMPOSITE_SCORE] for r in result.data]
    assert all(0 <= s <= 100 for s in scores)
    assert scores == sorted(scores, reverse=True)
    assert [r["_rank"] for r in result.data] == list(range(1, len(universe) + 1))

    radar = result.visualization_data["radar"]
    assert len(radar["datasets"]) == 4
    assert all(0.0 <= v <= 100.0 for d in radar["datasets"] for v in d["data"])
    assert result.follow_ups[:2] == ["compare TCS with peers", "technical analysis of TCS"]
    assert result.data[0]["symbol"] in result.summary


def test_filters_and_limit_flow_into_the_pipeline():
    universe = get_default_universe()
    result = run_analysis("show top 3 stocks with pe < 30", universe)
    assert result.success
    assert len(result.data) == 3
    assert all(r["pe"] < 30 for r in result.data)
    assert result.pipeline_steps[-1] == "limit(3)"


def test_follow_ups_and_empty_summary():
    assert build_follow_ups(analyze_intent("good morning")) == [
        "compare TCS vs INFY",
        "energy stocks with pe < 20",
        "top 10 stocks by dividend yield",
    ]
    assert build_summary([], analyze_intent("good morning")) == "No stocks matched the specified criteria."


def test_pipeline_errors_become_unsuccessful_result(monkeypatch):
    def _boom(text, analysis):
        raise RuntimeError("pipeline exploded")

    monkeypatch.setattr("nlscreener.insights.build_smart_pipeline", _boom)
    result = run_analysis("analyze TCS", get_default_universe())
    assert not result.success
    assert result.error == "pipeline exploded"
    assert result.analysis.intent == "analyze"


def test_sector_follow_ups_are_queries_the_parser_acts_on():
    analysis = analyze_intent("analyze energy stocks")
    follow_ups = build_follow_ups(analysis)
    assert follow_ups[:2] == ["top 5 Energy stocks by roe", "+1 pe < 30"]

    prior = parse_query("energy stocks")
    sector_query = parse_query(follow_ups[0])
    assert sector_query.query.include.sectors == ["Energy"]
    assert sector_query.query.limit == 5
    refined = parse_query(follow_ups[1], prior)
    assert refined.query.filters == [FilterCondition("pe", "<", 30.0)]
    assert refined.query.include.sectors == ["Energy"]
