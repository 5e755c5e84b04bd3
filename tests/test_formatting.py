import pytest

from utils.formatting import parse_optional_percent, parse_percent, parse_positive


@pytest.mark.parametrize("text", ["inf", "-inf", "Infinity", "1e400", "nan", "", "abc", "0", "-1"])
def test_parse_positive_rejects(text):
    assert parse_positive(text) is None


def test_parse_positive_accepts_comma_decimal():
    assert parse_positive(" 0,5 ") == 0.5


@pytest.mark.parametrize("text", ["inf", "1e400", "101"])
def test_parse_percent_rejects(text):
    assert parse_percent(text) is None


@pytest.mark.parametrize("text", ["inf", "1e400", "nan", "-5"])
def test_parse_optional_percent_rejects_non_finite(text):
    assert parse_optional_percent(text) == (False, None)


def test_parse_optional_percent_zero_disables():
    assert parse_optional_percent("0") == (True, None)
    assert parse_optional_percent("25") == (True, 25.0)
