from datetime import datetime, timedelta, timezone

from nlscreener import cache_store
from nlscreener.universe import get_default_universe


def test_universe_round_trip(monkeypatch, tmp_path):
    monkeypatch.setattr("nlscreener.config.CACHE_DIR", tmp_path)
    stocks = get_default_universe()[:4]
    path = cache_store.save_universe("demo", stocks)
    assert path.parent == tmp_path
    assert cache_store.load_universe("demo") == stocks
    assert cache_store.load_universe("missing") is None


def test_meta_and_freshness(monkeypatch, tmp_path):
    monkeypatch.setattr("nlscreener.config.CACHE_DIR", tmp_path)
    assert cache_store.load_meta() == {}
    now = datetime.now(timezone.utc)
    cache_store.save_meta({"demo": now.isoformat()})
    meta = cache_store.load_meta()
    assert meta["demo"] == now.isoformat()
    assert "updated_at_utc" in meta
    assert cache_store.is_fresh("demo", now + timedelta(hours=1))
    assert not cache_store.is_fresh("demo", now + timedelta(days=2))
    assert not cache_store.is_fresh("other")
