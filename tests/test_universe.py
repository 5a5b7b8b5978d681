import pandas as pd
import pytest

from nlscreener.exceptions import UniverseError
from nlscreener.models import Stock
from nlscreener.universe import (
    build_universe,
    get_default_universe,
    load_universe_csv,
    stocks_from_frame,
    stocks_to_frame,
)


def test_default_universe_is_deterministic():
    first = get_default_universe()
    second = get_default_universe()
    assert len(first) == 15
    assert first == second
    assert [s.symbol for s in first][:3] == ["TCS", "INFY", "LTIM"]


def test_default_universe_has_one_cheap_profitable_bank():
    universe = get_default_universe()
    matches = [s.symbol for s in universe if s.pe < 15 and s.roe > 20]
    assert matches == ["SBIN"]


def test_build_universe_rejects_duplicates_and_blank_symbols():
    with pytest.raises(UniverseError):
        build_universe([{"symbol": "AAA"}, {"symbol": "aaa"}])
    with pytest.raises(UniverseError):
        build_universe([{"name": "nameless"}])


def test_from_mapping_cleans_values():
    stock = Stock.from_mapping({"symbol": " tcs ", "pe": float("nan"), "roe": "21.5", "extra": 1})
    assert stock.symbol == "TCS"
    assert stock.name == "TCS"
    assert stock.sector == "Unknown"
    assert stock.pe is None
    assert stock.roe == 21.5


def test_frame_round_trip_keeps_missing_values(tmp_path):
    stocks = get_default_universe()[:3]
    df = stocks_to_frame(stocks)
    df.loc[0, "pe"] = None
    restored = stocks_from_frame(df)
    assert restored[0].pe is None
    assert restored[1] == stocks[1]

    path = tmp_path / "universe.csv"
    df.to_csv(path, index=False)
    loaded = load_universe_csv(path)
    assert [s.symbol for s in loaded] == ["TCS", "INFY", "LTIM"]


def test_frame_without_symbol_column_is_rejected():
    with pytest.raises(UniverseError):
        stocks_from_frame(pd.DataFrame({"name": ["x"]}))


def test_missing_csv_raises(tmp_path):
    with pytest.raises(UniverseError):
        load_universe_csv(tmp_path / "missing.csv")
