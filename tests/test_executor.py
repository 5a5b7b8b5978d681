from nlscreener.executor import ConversationContext, UNPARSED_INTERPRETATION, describe_filter, execute_query
from nlscreener.models import FilterCondition, ParsedQuery, ScreenerQuery, SortCondition, Stock, SymbolSectorSet
from nlscreener.query_parser import parse_query
from nlscreener.universe import get_default_universe


def test_execute_counts_total_before_paging():
    universe = get_default_universe()
    result = execute_query(ScreenerQuery(limit=5, offset=2), universe)
    assert result.success
    assert result.total == len(universe)
    assert [s.symbol for s in result.data] == [s.symbol for s in universe[2:7]]


def test_execute_respects_explicit_zero_limit():
    universe = get_default_universe()
    result = execute_query(ScreenerQuery(limit=0), universe)
    assert result.data == []
    assert result.total == len(universe)
    assert len(execute_query(ScreenerQuery(), universe).data) == 15


def test_execute_applies_sectors_symbols_and_sort():
    universe = get_default_universe()
    query = ScreenerQuery(
        include=SymbolSectorSet(sectors=["Financials"]),
        exclude=SymbolSectorSet(symbols=["sbin"]),
        sort=SortCondition("mcap", "desc"),
    )
    result = execute_query(query, universe)
    expected = sorted(
        (s for s in universe if s.sector == "Financial Services" and s.symbol != "SBIN"),
        key=lambda s: s.mcap,
        reverse=True,
    )
    assert [s.symbol for s in result.data] == [s.symbol for s in expected]


def test_execute_warns_about_unknown_operators():
    universe = get_default_universe()
    result = execute_query(ScreenerQuery(filters=[FilterCondition("pe", "~", 10)]), universe)
    assert result.total == len(universe)
    assert result.warnings == ["ignored unknown operator '~' on pe"]


def test_execute_failure_becomes_unsuccessful_result():
    class _Broken(Stock):
        def get(self, name):
            raise RuntimeError("boom")

    broken = _Broken(symbol="X", name="X", sector="Energy")
    result = execute_query(ScreenerQuery(filters=[FilterCondition("pe", "<", 10)]), [broken])
    assert not result.success
    assert result.message == "boom"


def test_filters_are_monotonic_on_default_universe():
    universe = get_default_universe()
    filters = [FilterCondition("pe", "<", 40), FilterCondition("roe", ">", 20), FilterCondition("roa", ">", 12)]
    totals = [execute_query(ScreenerQuery(filters=filters[:n]), universe).total for n in range(4)]
    assert totals == sorted(totals, reverse=True)


def test_describe_filter():
    assert describe_filter(FilterCondition("pe", "<", 15.0)) == "pe less than 15"
    assert describe_filter(FilterCondition("pe", "between", 10.0, 20.0)) == "pe between 10 and 20"


def test_context_refinement_narrows_previous_results():
    universe = get_default_universe()
    ctx = ConversationContext()
    first = ctx.process_query(parse_query("stocks with pe < 30"), universe)
    refined = ctx.process_query(parse_query("+1 exclude energy", ctx.last_query), universe)

    first_symbols = {s.symbol for s in first.data}
    assert any(s.sector == "Energy" for s in first.data)
    assert refined.data
    assert {s.symbol for s in refined.data} <= first_symbols
    assert all(s.sector != "Energy" for s in refined.data)
    assert all(s.pe < 30 for s in refined.data)
    assert FilterCondition("pe", "<", 30.0) in ctx.last_query.query.filters
    assert refined.interpretation.startswith("Refining previous results. ")


def test_context_reports_ignored_conditions():
    ctx = ConversationContext()
    result = ctx.process_query(parse_query("stocks with karma > 5"), get_default_universe())
    assert any(w.startswith("ignored condition:") for w in result.warnings)


def test_unparsed_query_is_recorded_and_explained():
    ctx = ConversationContext()
    result = ctx.process_query(ParsedQuery(type="unknown", raw="???"), get_default_universe())
    assert not result.success
    assert result.interpretation == UNPARSED_INTERPRETATION
    assert len(ctx.history) == 1


def test_history_is_bounded_and_clear_resets():
    universe = get_default_universe()
    ctx = ConversationContext(history_limit=3)
    for _ in range(5):
        ctx.process_query(parse_query("stocks with pe < 30"), universe)
    assert len(ctx.history) == 3
    ctx.clear()
    assert ctx.history == []
    assert ctx.last_query is None
    assert ctx.last_results == []
