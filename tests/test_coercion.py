import pytest

from core.coercion import (
    as_object,
    clamp,
    epoch_to_ms,
    format_iso_ms,
    parse_timestamp_ms,
    pick_first_string,
    read_number,
    read_string,
    round_half_up,
    to_iso,
    try_parse_json,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (12, 12.0),
        (1.5, 1.5),
        ("  300 ", 300.0),
        ("", None),
        ("abc", None),
        (None, None),
        (True, None),
        (float("nan"), None),
        ("inf", None),
        ("1_000", None),
    ],
)
def test_read_number(value, expected):
    assert read_number(value) == expected


def test_read_string_trims_and_rejects_blank():
    assert read_string("  Plus ") == "Plus"
    assert read_string("   ") is None
    assert read_string(42) is None


def test_pick_first_string_skips_blank_and_non_strings():
    assert pick_first_string([None, "  ", 3, "Max", "Plus"]) == "Max"
    assert pick_first_string([]) is None


def test_round_half_up_matches_arithmetic_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(6.666) == 7
    assert round_half_up(6.4) == 6


def test_clamp():
    assert clamp(-5, 0, 100) == 0
    assert clamp(150, 0, 100) == 100
    assert clamp(42, 0, 100) == 42


def test_epoch_to_ms_treats_small_values_as_seconds():
    assert epoch_to_ms(1_700_018_000) == 1_700_018_000_000
    assert epoch_to_ms(1_700_018_000_000) == 1_700_018_000_000
    assert epoch_to_ms("bad") is None


def test_format_iso_ms():
    assert format_iso_ms(1_700_018_000_000) == "2023-11-15T03:13:20.000Z"


def test_parse_timestamp_ms_accepts_iso_and_dates():
    assert parse_timestamp_ms("2023-11-15T03:13:20Z") == 1_700_018_000_000
    assert parse_timestamp_ms("2023-11-15T03:13:20.000+00:00") == 1_700_018_000_000
    assert to_iso("2024-02-01") == "2024-02-01T00:00:00.000Z"
    assert parse_timestamp_ms("not a date") is None
    assert parse_timestamp_ms(None) is None


def test_try_parse_json_and_as_object():
    assert try_parse_json('{"a": 1}') == {"a": 1}
    assert try_parse_json("not json") is None
    assert try_parse_json("") is None
    assert as_object([1, 2]) is None
    assert as_object({"a": 1}) == {"a": 1}
