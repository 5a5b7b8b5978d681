from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import yfinance as yf

from .config import YF_HISTORY_PERIOD
from .models import Stock
from .universe import build_universe

logger = logging.getLogger(__name__)

# Trading-day offsets used for trailing returns.
RETURN_WINDOWS = {
    "return1d": 1,
    "return1w": 5,
    "return1m": 21,
    "return3m": 63,
    "return6m": 126,
    "return1y": 252,
    "return3y": 756,
}

# info key -> (field, multiplier); yfinance reports these as fractions or percents.
INFO_FIELDS = {
    "marketCap": ("mcap", 1.0),
    "trailingPE": ("pe", 1.0),
    "priceToBook": ("pb", 1.0),
    "priceToSalesTrailing12Months": ("ps", 1.0),
    "returnOnEquity": ("roe", 100.0),
    "returnOnAssets": ("roa", 100.0),
    "debtToEquity": ("debtToEquity", 0.01),
    "currentRatio": ("currentRatio", 1.0),
    "dividendYield": ("dividendYield", 1.0),
    "trailingEps": ("eps", 1.0),
    "totalRevenue": ("revenue", 1.0),
    "revenueGrowth": ("revenueGrowth", 100.0),
    "earningsGrowth": ("profitGrowth", 100.0),
    "volume": ("volume", 1.0),
    "fiftyTwoWeekHigh": ("high52w", 1.0),
    "fiftyTwoWeekLow": ("low52w", 1.0),
    "beta": ("beta", 1.0),
}


def _safe_float(value) -> float | None:
    if value is None:
        return None
    try:
        num = float(value)
    except Exception:
        return None
    if pd.isna(num) or np.isinf(num):
        return None
    return num


def _trailing_return(close: pd.Series, days: int) -> float | None:
    if len(close) <= days:
        return None
    past = float(close.iloc[-days - 1])
    if past == 0:
        return None
    return (float(close.iloc[-1]) / past - 1.0) * 100.0


def _rsi(close: pd.Series, window: int = 14) -> float | None:
    if len(close) <= window:
        return None
    delta = close.diff().dropna().iloc[-window:]
    gain = float(delta.clip(lower=0).mean())
    loss = float(-delta.clip(upper=0).mean())
    if loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + gain / loss)


def history_metrics(hist: pd.DataFrame) -> dict[str, float | None]:
    """Returns, RSI and volume trend derived from a daily price history."""
    if hist is None or hist.empty or "Close" not in hist.columns:
        return {}
    close = pd.to_numeric(hist["Close"], errors="coerce").dropna().astype(float)
    if close.empty:
        return {}
    out: dict[str, float | None] = {name: _trailing_return(close, days) for name, days in RETURN_WINDOWS.items()}
    out["price"] = float(close.iloc[-1])
    if len(close) >= 2:
        prev = float(close.iloc[-2])
        out["change"] = out["price"] - prev
        out["changePct"] = out["return1d"]
    out["rsi"] = _rsi(close)

    years = (close.index[-1] - close.index[0]).days / 365.25 if isinstance(close.index, pd.DatetimeIndex) else 0.0
    if years >= 2.5 and float(close.iloc[0]) > 0:
        out["cagr3y"] = ((float(close.iloc[-1]) / float(close.iloc[0])) ** (1.0 / years) - 1.0) * 100.0

    if "Volume" in hist.columns:
        volume = pd.to_numeric(hist["Volume"], errors="coerce").dropna().astype(float)
        if len(volume) >= 20:
            out["avgVolume20d"] = float(volume.iloc[-20:].mean())
        if len(volume) >= 10:
            recent = float(volume.iloc[-5:].mean())
            prior = float(volume.iloc[-10:-5].mean())
            out["volumeChange5d"] = (recent / prior - 1.0) * 100.0 if prior > 0 else None
    return out


def record_from_info(symbol: str, info: dict) -> dict:
    record = {
        "symbol": symbol,
        "name": info.get("shortName") or info.get("longName") or symbol,
        "sector": info.get("sector") or "Unknown",
        "industry": info.get("industry") or "",
    }
    for key, (field, multiplier) in INFO_FIELDS.items():
        value = _safe_float(info.get(key))
        record[field] = value * multiplier if value is not None else None
    price = _safe_float(info.get("currentPrice")) or _safe_float(info.get("regularMarketPrice"))
    if price is not None:
        record["price"] = price
    return record


def fetch_stocks(symbols: list[str]) -> list[Stock]:
    """Load stocks from yfinance; a symbol that fails is skipped with a warning."""
    records = []
    for symbol in symbols:
        try:
            ticker = yf.Ticker(symbol)
            info = ticker.info or {}
            record = record_from_info(symbol, info)
            hist = ticker.history(period=YF_HISTORY_PERIOD, interval="1d", auto_adjust=False)
            for key, value in history_metrics(hist).items():
                # quoted price wins over the last close
                if value is None or (key == "price" and record.get("price") is not None):
                    continue
                record[key] = value
            records.append(record)
        except Exception as exc:
            logger.warning("skipping %s: %s", symbol, exc)
    return build_universe(records)
