from nlscreener.config import COMPARISON_COLUMNS, MAX_RESULT_COLUMNS
from nlscreener.models import Stock
from nlscreener.screens import EXAMPLE_QUERIES, Screener, is_help_request
from nlscreener.universe import get_default_universe


def test_help_bypasses_parsing_regardless_of_state():
    screener = Screener()
    screener.query("stocks with pe < 30")
    for text in ["help", "?", "syntax", "how do I filter by sector"]:
        response = screener.query(text)
        assert response.type == "help"
        assert response.data == []
        assert response.total == 0
    assert not is_help_request("stocks with pe < 30")


def test_end_to_end_screen_on_default_universe():
    universe = get_default_universe()
    response = Screener(universe).query("stocks with PE < 15 and ROE > 20%")
    expected = [s.symbol for s in universe if s.pe < 15 and s.roe > 20]
    assert response.success
    assert response.type == "screener"
    assert [s.symbol for s in response.data] == expected
    assert response.total == len(expected)
    assert response.columns[:6] == ["symbol", "name", "sector", "price", "changePct", "mcap"]
    assert "pe" in response.columns and "roe" in response.columns
    assert len(response.columns) <= MAX_RESULT_COLUMNS
    assert response.analysis is not None


def test_refinement_excludes_energy_and_keeps_filters():
    screener = Screener()
    first = screener.query("stocks with pe < 30")
    refined = screener.query("+1 exclude energy")
    assert any(s.sector == "Energy" for s in first.data)
    assert refined.success
    assert all(s.sector != "Energy" for s in screener.last_results)
    assert all(s.pe < 30 for s in screener.last_results)
    assert {s.symbol for s in refined.data} <= {s.symbol for s in first.data}


def test_multi_word_sectors_restrict_results():
    universe = get_default_universe()
    banks = [s.symbol for s in universe if s.sector == "Financial Services"]
    screener = Screener(universe)
    for text in [
        "list stocks in the financial services sector",
        "stocks where sector = financial services",
    ]:
        response = screener.query(text)
        assert response.success
        assert [s.symbol for s in response.data] == banks
        assert response.warnings == []


def test_example_query_keeps_its_sector():
    response = Screener().query(EXAMPLE_QUERIES[1])
    assert [s.symbol for s in response.data] == ["TCS", "INFY", "LTIM"]
    assert {s.sector for s in response.data} == {"Technology"}


def test_single_stock_lookup_is_case_insensitive():
    response = Screener().query("TCS")
    assert response.success
    assert response.type == "single_stock"
    assert response.data[0].symbol == "TCS"
    assert len(response.columns) == 15


def test_missing_symbol_suggests_similar():
    response = Screener().query("TCSX")
    assert not response.success
    assert response.interpretation == 'Stock "TCSX" not found in database.'
    assert 1 <= len(response.suggestions) <= 5
    assert response.suggestions[0] == "Did you mean TCS?"


def test_find_similar_symbols_is_capped():
    universe = [Stock.from_mapping({"symbol": f"AB{i}X"}) for i in range(8)]
    assert len(Screener(universe).find_similar_symbols("AB")) == 5
    assert Screener(universe).find_similar_symbols("") == []


def test_comparison_uses_fixed_columns():
    response = Screener().query("compare TCS vs INFY")
    assert response.type == "comparison"
    assert [s.symbol for s in response.data] == ["TCS", "INFY"]
    assert response.columns == list(COMPARISON_COLUMNS)


def test_comparison_adds_sector_members():
    response = Screener().query("compare all banking stocks")
    assert response.success
    assert {s.symbol for s in response.data} == {"HDFCBANK", "ICICIBANK", "SBIN", "BAJFINANCE"}


def test_watchlist_and_alert_are_screens_with_notes():
    screener = Screener()
    watch = screener.query("add stocks with pe < 20 to watchlist")
    assert watch.type == "watchlist"
    assert "not saved" in watch.interpretation
    alert = screener.query("alert me when pe < 12")
    assert alert.type == "alert"
    assert [s.symbol for s in alert.data] == ["SBIN"]


def test_unknown_query_returns_suggestions():
    response = Screener().query("hello there")
    assert not response.success
    assert response.type == "unknown"
    assert len(response.suggestions) == 4


def test_unexpected_errors_become_error_responses(monkeypatch):
    def _boom(text, prior=None):
        raise RuntimeError("parser down")

    monkeypatch.setattr("nlscreener.screens.parse_query", _boom)
    response = Screener().query("stocks with pe < 10")
    assert not response.success
    assert response.error == "parser down"


def test_screeners_do_not_share_conversation_state():
    first, second = Screener(), Screener()
    first.query("stocks with pe < 20")
    assert second.last_results == []
    assert first.last_results


def test_set_universe_resets_context_and_to_dict():
    screener = Screener()
    screener.query("stocks with pe < 20")
    screener.set_universe(get_default_universe()[:2])
    assert screener.last_results == []
    payload = screener.query("stocks with pe < 100").to_dict()
    assert payload["total"] == 2
    assert "executionTime" in payload
    assert "visualizations" in payload
