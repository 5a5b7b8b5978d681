import logging
import os
from pathlib import Path

DEFAULT_LIMIT = 20
MAX_COMPARISON_ROWS = 20
MAX_RESULT_COLUMNS = 12
MAX_SIMILAR_SYMBOLS = 5
MAX_VISUALIZATIONS = 4
MAX_CARDS = 4
MAX_HELP_FIELDS = 20
MAX_HELP_SECTORS = 10

HISTORY_LIMIT = int(os.getenv("NLSCREENER_HISTORY_LIMIT", "50"))

SCORE_THRESHOLD_PENALTY = 0.5
SCORE_NEUTRAL = 50.0
DEFAULT_SCORE_FACTORS = ("pe", "roe", "roa", "debtToEquity")
LOWER_IS_BETTER = frozenset({"pe", "pb", "ps", "debtToEquity", "beta"})

BASE_COLUMNS = ("symbol", "name", "sector", "price", "changePct", "mcap")
SINGLE_STOCK_COLUMN_COUNT = 15
COMPARISON_COLUMNS = (
    "symbol",
    "name",
    "sector",
    "mcap",
    "pe",
    "pb",
    "roe",
    "roa",
    "debtToEquity",
    "dividendYield",
    "return1y",
)

# Fixed 0..100 scaling ranges for radar charts.
RADAR_RANGES = {
    "pe": (0.0, 50.0),
    "roe": (0.0, 40.0),
    "roa": (0.0, 20.0),
    "debtToEquity": (0.0, 2.0),
    "return1y": (-50.0, 100.0),
}
HEATMAP_METRICS = ("pe", "roe", "return1y")

UNIVERSE_SEED = 20240101

CACHE_DIR = Path(os.getenv("NLSCREENER_CACHE_DIR", "data_cache"))
CACHE_VERSION = "v1"
CACHE_DATE_FILE = CACHE_DIR / "cache_meta.json"
CACHE_TTL_SECONDS = 60 * 60 * 24

YF_SYMBOLS = (
    "AAPL",
    "MSFT",
    "NVDA",
    "GOOGL",
    "AMZN",
    "META",
    "JPM",
    "BAC",
    "XOM",
    "CVX",
    "JNJ",
    "PFE",
    "PG",
    "KO",
    "CAT",
    "LIN",
    "NEE",
    "VZ",
)
YF_HISTORY_PERIOD = "3y"

LOG_LEVEL = os.getenv("NLSCREENER_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=level or LOG_LEVEL, format=LOG_FORMAT)
