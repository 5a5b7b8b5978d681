import pytest

from nlscreener.intent import OUTPUT_DESCRIPTIONS, analyze_intent, build_output_config, extract_metrics, extract_symbols
from nlscreener.numeric import ScoreFactor


@pytest.mark.parametrize(
    "text, intent",
    [
        ("find stocks with pe < 20", "screen"),
        ("compare TCS vs INFY", "compare"),
        ("analyze RELIANCE", "analyze"),
        ("rank banks by roe", "rank"),
        ("energy sector overview", "sector_analysis"),
        ("rebalance my portfolio", "portfolio"),
        ("price history of TCS", "trend"),
        ("notify me when TCS drops", "alert"),
        ("what is a pe ratio", "explain"),
        ("quick summary of the market", "summarize"),
        ("good morning", "custom"),
    ],
)
def test_first_matching_intent_wins(text, intent):
    assert analyze_intent(text).intent == intent


def test_unmatched_text_defaults_to_custom_list():
    analysis = analyze_intent("good morning")
    assert analysis.output_type == "list"
    assert analysis.confidence == 0.0


def test_symbols_skip_connectives():
    assert extract_symbols("compare TCS AND INFY VS LT") == ["TCS", "INFY", "LT"]


def test_metric_keywords_resolve_to_fields():
    fields, keywords = extract_metrics("high dividend and low debt with good growth")
    assert fields == ["revenueGrowth", "dividendYield", "debtToEquity"]
    assert keywords == ["growth", "dividend", "debt"]
    assert extract_metrics("open interest")[0] == []


def test_metric_visualizations_are_unioned_and_capped():
    analysis = analyze_intent("compare TCS vs INFY on pe and roe")
    assert analysis.visualizations[:3] == ["radar", "bar_chart", "table"]
    assert len(analysis.visualizations) == 4


def test_single_symbol_forces_cards_and_report_words_force_report():
    assert analyze_intent("how is TCS doing").output_type == "cards"
    assert analyze_intent("show stocks with pe < 10").output_type == "list"
    analysis = analyze_intent("detailed report on TCS")
    assert analysis.output_type == "report"
    assert analysis.explanation.endswith(OUTPUT_DESCRIPTIONS["report"])


def test_pipeline_plan_for_scoring_intent():
    analysis = analyze_intent("rank technology by roe where pe under 40, top 5")
    ops = [step.operation for step in analysis.pipeline]
    assert ops == ["load", "filter", "filter", "score", "rank", "limit"]
    assert analysis.pipeline[1].params["sectors"] == ["Technology"]
    assert analysis.pipeline[3].params["factors"][0] == ScoreFactor("pe", higher_is_better=False, name="pe")
    assert analysis.pipeline[5].params["n"] == 5
    assert [step.step for step in analysis.pipeline] == [1, 2, 3, 4, 5, 6]


def test_sector_analysis_plan_groups_by_sector():
    analysis = analyze_intent("energy sector overview")
    assert analysis.pipeline[-1].operation == "group"
    assert analysis.sectors == ["Energy"]


def test_output_config_titles():
    config = build_output_config(analyze_intent("compare TCS vs INFY"))
    assert config.title == "Comparison: TCS vs INFY"
    assert config.columns[:5] == ["symbol", "name", "sector", "price", "changePct"]
    assert build_output_config(analyze_intent("alert me when TCS crosses 4000")).title == "Alert Preview"
