from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from nlscreener.market_data import _safe_float, fetch_stocks, history_metrics, record_from_info


def _history(days: int = 300, start: float = 100.0, step: float = 0.5) -> pd.DataFrame:
    index = pd.bdate_range("2023-01-02", periods=days)
    close = start + step * np.arange(days)
    volume = np.full(days, 1_000.0)
    volume[-5:] = 2_000.0
    return pd.DataFrame({"Close": close, "Volume": volume}, index=index)


class _DummyTicker:
    def __init__(self, symbol: str):
        self.symbol = symbol
        self.info = {
            "shortName": f"{symbol} Inc",
            "sector": "Technology",
            "industry": "Software",
            "marketCap": 2.5e12,
            "trailingPE": 31.0,
            "returnOnEquity": 0.42,
            "debtToEquity": 150.0,
            "currentPrice": 250.0,
        }

    def history(self, period: str, interval: str, auto_adjust: bool) -> pd.DataFrame:
        return _history()


def test_safe_float_handles_bad_values():
    assert _safe_float("1.5") == 1.5
    assert _safe_float(None) is None
    assert _safe_float("n/a") is None
    assert _safe_float(float("nan")) is None
    assert _safe_float(float("inf")) is None


def test_record_from_info_scales_ratios():
    record = record_from_info("MSFT", _DummyTicker("MSFT").info)
    assert record["name"] == "MSFT Inc"
    assert record["roe"] == pytest.approx(42.0)
    assert record["debtToEquity"] == pytest.approx(1.5)
    assert record["price"] == 250.0
    assert record["pb"] is None


def test_history_metrics_returns_and_volume_trend():
    out = history_metrics(_history())
    last, prev = 100.0 + 0.5 * 299, 100.0 + 0.5 * 298
    assert out["price"] == last
    assert out["change"] == pytest.approx(last - prev)
    assert out["return1w"] == pytest.approx((last / (100.0 + 0.5 * 294) - 1.0) * 100.0)
    assert out["return3y"] is None
    assert out["rsi"] == 100.0
    assert out["volumeChange5d"] == pytest.approx(100.0)
    assert history_metrics(pd.DataFrame()) == {}


def test_fetch_stocks_maps_info_and_history(monkeypatch):
    monkeypatch.setattr("nlscreener.market_data.yf.Ticker", _DummyTicker)
    stocks = fetch_stocks(["MSFT", "AAPL"])
    assert [s.symbol for s in stocks] == ["MSFT", "AAPL"]
    msft = stocks[0]
    assert msft.price == 250.0
    assert msft.pe == 31.0
    assert msft.return1m is not None


def test_fetch_stocks_skips_failing_symbols(monkeypatch, caplog):
    class _FlakyTicker(_DummyTicker):
        def __init__(self, symbol: str):
            if symbol == "BAD":
                raise RuntimeError("no data")
            super().__init__(symbol)

    monkeypatch.setattr("nlscreener.market_data.yf.Ticker", _FlakyTicker)
    stocks = fetch_stocks(["BAD", "MSFT"])
    assert [s.symbol for s in stocks] == ["MSFT"]
    assert "skipping BAD" in caplog.text
