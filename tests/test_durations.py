import pytest

from relaylb.durations import parse_duration, parse_duration_or_default


def test_zero_without_unit():
    assert parse_duration("0") == 0.0


def test_seconds_with_fraction():
    assert parse_duration("1.5s") == 1.5


def test_combined_units_match_sum():
    assert parse_duration("1h30m") == parse_duration("1h") + parse_duration("30m")


def test_units_are_consistent():
    assert parse_duration("1h") == parse_duration("60m") == parse_duration("3600s")
    assert parse_duration("1000ms") == parse_duration("1s")
    assert parse_duration("1000us") == parse_duration("1ms")
    assert parse_duration("1000ns") == parse_duration("1us")


def test_sign():
    assert parse_duration("-2s") == -parse_duration("2s")
    assert parse_duration("+2s") == parse_duration("2s")


@pytest.mark.parametrize("text", ["", "1", "abc", "1x", ".s", "-", "1s2", "s"])
def test_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_or_default_on_empty_and_invalid():
    assert parse_duration_or_default("", 7.0) == 7.0
    assert parse_duration_or_default(None, 7.0) == 7.0
    assert parse_duration_or_default("garbage", 7.0) == 7.0


def test_or_default_parses_valid():
    assert parse_duration_or_default("2s", 7.0) == parse_duration("2s")