from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from .config import UNIVERSE_SEED
from .exceptions import UniverseError
from .models import STOCK_ATTRIBUTES, Stock

logger = logging.getLogger(__name__)

# symbol, name, sector, industry, price, mcap (billions), pe
_SEED_ROWS = [
    ("TCS", "Tata Consultancy Services", "Technology", "IT Services", 3720.0, 1350.0, 28.0),
    ("INFY", "Infosys", "Technology", "IT Services", 1820.0, 620.0, 24.0),
    ("LTIM", "LTIMindtree", "Technology", "IT Services", 5200.0, 180.0, 32.0),
    ("HDFCBANK", "HDFC Bank", "Financial Services", "Private Banks", 1650.0, 920.0, 18.0),
    ("ICICIBANK", "ICICI Bank", "Financial Services", "Private Banks", 1050.0, 740.0, 16.0),
    ("SBIN", "State Bank of India", "Financial Services", "Public Banks", 620.0, 550.0, 10.0),
    ("BAJFINANCE", "Bajaj Finance", "Financial Services", "NBFC", 6800.0, 420.0, 35.0),
    ("HINDUNILVR", "Hindustan Unilever", "Consumer Goods", "FMCG", 2450.0, 580.0, 55.0),
    ("ITC", "ITC Limited", "Consumer Goods", "FMCG", 435.0, 540.0, 25.0),
    ("TITAN", "Titan Company", "Consumer Goods", "Jewellery", 3200.0, 285.0, 85.0),
    ("RELIANCE", "Reliance Industries", "Energy", "Oil & Gas", 2450.0, 1680.0, 22.0),
    ("LT", "Larsen & Toubro", "Industrials", "Infrastructure", 3100.0, 435.0, 30.0),
    ("ADANIENT", "Adani Enterprises", "Industrials", "Diversified", 2850.0, 325.0, 65.0),
    ("SUNPHARMA", "Sun Pharmaceutical", "Healthcare", "Pharmaceuticals", 1180.0, 285.0, 28.0),
    ("DRREDDY", "Dr. Reddy's Laboratories", "Healthcare", "Pharmaceuticals", 1220.0, 102.0, 22.0),
]

# Hand-set values that take precedence over the generated ones.
_OVERRIDES = {
    "SBIN": {"roe": 21.4, "dividendYield": 2.1},
    "ITC": {"dividendYield": 3.4},
    "RELIANCE": {"debtToEquity": 0.45},
    "ADANIENT": {"debtToEquity": 1.6, "beta": 1.8},
}


def _uniform(rng: np.random.Generator, low: float, high: float, digits: int = 2) -> float:
    return round(float(rng.uniform(low, high)), digits)


def _generated_metrics(rng: np.random.Generator, price: float, mcap: float, pe: float) -> dict:
    change_pct = _uniform(rng, -3.0, 3.0)
    return1y = _uniform(rng, -20.0, 60.0)
    avg_volume = float(rng.integers(500_000, 20_000_000))
    return {
        "price": price,
        "mcap": mcap * 1e9,
        "pe": pe,
        "change": round(price * change_pct / 100.0, 2),
        "changePct": change_pct,
        "pb": _uniform(rng, 1.0, 12.0),
        "ps": _uniform(rng, 0.8, 10.0),
        "roe": _uniform(rng, 15.0, 35.0),
        "roa": _uniform(rng, 8.0, 18.0),
        "roce": _uniform(rng, 18.0, 33.0),
        "debtToEquity": _uniform(rng, 0.0, 0.8),
        "currentRatio": _uniform(rng, 0.8, 3.0),
        "dividendYield": _uniform(rng, 0.2, 1.8),
        "eps": round(price / pe, 2),
        "revenue": round(mcap * 1e9 / _uniform(rng, 2.0, 8.0), 0),
        "revenueGrowth": _uniform(rng, -5.0, 30.0),
        "profitGrowth": _uniform(rng, -10.0, 40.0),
        "volume": round(avg_volume * _uniform(rng, 0.5, 2.0), 0),
        "avgVolume20d": avg_volume,
        "volumeChange5d": _uniform(rng, -40.0, 60.0),
        "high52w": round(price * _uniform(rng, 1.02, 1.35), 2),
        "low52w": round(price * _uniform(rng, 0.6, 0.95), 2),
        "return1d": change_pct,
        "return1w": _uniform(rng, -6.0, 6.0),
        "return1m": _uniform(rng, -10.0, 12.0),
        "return3m": _uniform(rng, -15.0, 20.0),
        "return6m": _uniform(rng, -20.0, 35.0),
        "return1y": return1y,
        "return3y": _uniform(rng, -10.0, 120.0),
        "cagr3y": _uniform(rng, -5.0, 30.0),
        "beta": _uniform(rng, 0.6, 1.4),
        "rsi": _uniform(rng, 25.0, 75.0, 1),
        "deliveryPct": _uniform(rng, 30.0, 70.0, 1),
        "deliveryPctAvg": _uniform(rng, 35.0, 65.0, 1),
    }


def build_universe(records: list[dict]) -> list[Stock]:
    """Validate raw records into stocks; symbols must be unique."""
    stocks = [Stock.from_mapping(r) for r in records]
    seen: set[str] = set()
    for stock in stocks:
        if not stock.symbol:
            raise UniverseError("stock record without a symbol")
        if stock.symbol in seen:
            raise UniverseError(f"duplicate symbol in universe: {stock.symbol}")
        seen.add(stock.symbol)
    return stocks


def get_default_universe(seed: int = UNIVERSE_SEED) -> list[Stock]:
    """Demo universe; identical across calls for the same seed."""
    rng = np.random.default_rng(seed)
    records = []
    for symbol, name, sector, industry, price, mcap, pe in _SEED_ROWS:
        record = {"symbol": symbol, "name": name, "sector": sector, "industry": industry}
        record.update(_generated_metrics(rng, price, mcap, pe))
        record.update(_OVERRIDES.get(symbol, {}))
        records.append(record)
    return build_universe(records)


def stocks_to_frame(stocks: list[Stock]) -> pd.DataFrame:
    return pd.DataFrame([s.to_dict() for s in stocks], columns=list(STOCK_ATTRIBUTES))


def stocks_from_frame(df: pd.DataFrame) -> list[Stock]:
    if df is None or df.empty:
        return []
    if "symbol" not in df.columns:
        raise UniverseError("universe frame has no symbol column")
    work = df.astype(object).where(pd.notna(df), None)
    return build_universe(work.to_dict(orient="records"))


def load_universe_csv(path: str | Path) -> list[Stock]:
    csv_path = Path(path)
    if not csv_path.exists():
        raise UniverseError(f"universe file not found: {csv_path}")
    df = pd.read_csv(csv_path, dtype={"symbol": str}, keep_default_na=True)
    stocks = stocks_from_frame(df)
    logger.info("loaded %d stocks from %s", len(stocks), csv_path)
    return stocks
