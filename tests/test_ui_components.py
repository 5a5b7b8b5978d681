from nlscreener.ui_components import response_frame
from nlscreener.ui_theme import intent_badges
from nlscreener.universe import get_default_universe


def test_response_frame_keeps_requested_columns_with_labels():
    stocks = get_default_universe()[:3]
    df = response_frame(stocks, ["symbol", "pe", "debtToEquity"])
    assert list(df.columns) == ["Symbol", "P/E", "D/E"]
    assert df["Symbol"].tolist() == ["TCS", "INFY", "LTIM"]


def test_intent_badges_mark_warnings():
    html = intent_badges("screen", ["Energy"], ["ignored condition: karma > 5"])
    assert "badge-intent" in html
    assert "Energy" in html
    assert "1 warning(s)" in html
