import math

import pytest

from shellguard.supervisor.durations import parse_duration


@pytest.mark.parametrize("value, expected", [
    (3, 3.0),
    (0.25, 0.25),
    ("2", 2.0),
    ("500ms", 0.5),
    ("2s", 2.0),
    ("1.5m", 90.0),
    ("1h", 3600.0),
    ("1d", 86400.0),
    (" 10S ", 10.0),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == pytest.approx(expected)


def test_infinity_and_none():
    assert parse_duration("infinity") == math.inf
    assert parse_duration("inf") == math.inf
    assert parse_duration(None) is None


@pytest.mark.parametrize("value", ["abc", "5x", "-1", -1, "1.2.3"])
def test_invalid_durations(value):
    with pytest.raises(ValueError):
        parse_duration(value)
