from __future__ import annotations

import logging
from datetime import datetime, timezone

from nlscreener.cache_store import is_fresh, load_universe, save_meta, save_universe
from nlscreener.config import YF_SYMBOLS, configure_logging
from nlscreener.market_data import fetch_stocks
from nlscreener.models import Stock

logger = logging.getLogger(__name__)

CACHE_NAME = "yf_universe"


def refresh() -> list[Stock]:
    """Fetch the configured symbols and cache them; empty when nothing came back."""
    stocks = fetch_stocks(list(YF_SYMBOLS))
    if not stocks:
        logger.warning("no stocks fetched; cache left untouched")
        return []
    path = save_universe(CACHE_NAME, stocks)
    save_meta({CACHE_NAME: datetime.now(timezone.utc).isoformat()})
    logger.info("cached %d of %d symbols to %s", len(stocks), len(YF_SYMBOLS), path)
    return stocks


def load_or_refresh(force: bool = False) -> list[Stock]:
    """Cached universe while fresh, otherwise a new fetch; a stale cache beats nothing."""
    cached = load_universe(CACHE_NAME)
    if cached and not force and is_fresh(CACHE_NAME):
        return cached
    fresh = refresh()
    return fresh or cached or []


def main() -> None:
    configure_logging()
    refresh()


if __name__ == "__main__":
    main()
