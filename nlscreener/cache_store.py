from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd

from . import config
from .models import Stock
from .universe import stocks_from_frame, stocks_to_frame


def _cache_dir() -> Path:
    path = Path(config.CACHE_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _cache_path(name: str) -> Path:
    return _cache_dir() / f"{name.lower()}_{config.CACHE_VERSION}.pkl"


def _meta_path() -> Path:
    return _cache_dir() / Path(config.CACHE_DATE_FILE).name


def save_universe_frame(name: str, df: pd.DataFrame) -> Path:
    path = _cache_path(name)
    df.to_pickle(path)
    return path


def load_universe_frame(name: str) -> pd.DataFrame | None:
    path = _cache_path(name)
    if not path.exists():
        return None
    return pd.read_pickle(path)


def save_universe(name: str, stocks: list[Stock]) -> Path:
    return save_universe_frame(name, stocks_to_frame(stocks))


def load_universe(name: str) -> list[Stock] | None:
    df = load_universe_frame(name)
    if df is None:
        return None
    return stocks_from_frame(df)


def save_meta(updates: dict[str, str]) -> None:
    meta = load_meta()
    meta.update(updates)
    meta["updated_at_utc"] = datetime.now(timezone.utc).isoformat()
    _meta_path().write_text(json.dumps(meta, ensure_ascii=False, indent=2), encoding="utf-8")


def load_meta() -> dict[str, str]:
    path = _meta_path()
    if not path.exists():
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


def is_fresh(name: str, now: datetime | None = None) -> bool:
    """True when ``name`` was refreshed within the cache TTL."""
    stamp = load_meta().get(name)
    if not stamp:
        return False
    now = now or datetime.now(timezone.utc)
    age = (now - datetime.fromisoformat(stamp)).total_seconds()
    return age <= config.CACHE_TTL_SECONDS
