from nlscreener.parsers import TimePeriod, parse_magnitude, parse_number, parse_percentage, parse_time_period


def test_parse_magnitude_suffixes():
    assert parse_magnitude("5B") == 5_000_000_000
    assert parse_magnitude("100M") == 100_000_000
    assert parse_magnitude("2.5k") == 2500
    assert parse_magnitude("1T") == 1e12
    assert parse_magnitude("$1,200") == 1200


def test_parse_magnitude_rejects_garbage():
    assert parse_magnitude("abc") is None
    assert parse_magnitude("5X") is None
    assert parse_magnitude(None) is None


def test_parse_percentage():
    assert parse_percentage("20%") == 20.0
    assert parse_percentage("12.5 percent") == 12.5
    assert parse_percentage("-3%") == -3.0
    assert parse_percentage("high") is None


def test_parse_time_period():
    assert parse_time_period("3 years") == TimePeriod(3, "year")
    assert parse_time_period("6mo") == TimePeriod(6, "month")
    assert parse_time_period("2 weeks") == TimePeriod(2, "week")
    assert parse_time_period("soon") is None


def test_parse_number_tries_magnitude_then_percent():
    assert parse_number("10B") == 1e10
    assert parse_number("15%") == 15.0
    assert parse_number("0.5") == 0.5
    assert parse_number("fifteen") is None
