import pytest

from batterystory.timefmt import (
    format_sample_time,
    format_window,
    minutes_to_label,
    parse_minutes,
    round_half_up,
    snap_to_step,
)


def test_minutes_to_label():
    assert minutes_to_label(0) == "12:00 AM"
    assert minutes_to_label(725) == "12:05 PM"
    assert minutes_to_label(1020) == "5:00 PM"
    assert minutes_to_label(1435) == "11:55 PM"


def test_minutes_to_label_wraps_out_of_range_minutes():
    """Labels are stable for any integer via modulo-1440."""
    assert minutes_to_label(1440) == "12:00 AM"
    assert minutes_to_label(1445) == "12:05 AM"
    assert minutes_to_label(-5) == "11:55 PM"
    assert minutes_to_label(-1440 * 3 + 60) == "1:00 AM"


def test_format_window_same_meridiem():
    assert format_window(1020, 1140) == "5:00–7:00 PM"


def test_format_window_crossing_noon():
    assert format_window(660, 780) == "11:00 AM–1:00 PM"


def test_snap_to_step_rounds_half_up():
    assert snap_to_step(1022) == 1020
    assert snap_to_step(1023) == 1025
    assert snap_to_step(2.5) == 5
    assert snap_to_step(-3) == -5
    assert snap_to_step(7, step=0) == 7


def test_format_sample_time_snaps_first():
    assert format_sample_time(1022) == "5:00 PM"


def test_round_half_up_matches_fixed_point_formatting():
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(-0.125, 2) == -0.13
    # 2.675 is stored as 2.67499999...
    assert round_half_up(2.675, 2) == 2.67
    assert round_half_up(62.0, 1) == 62.0


def test_parse_minutes():
    assert parse_minutes("17:00") == 1020
    assert parse_minutes("0:05") == 5
    assert parse_minutes("24:00") == 1440
    assert parse_minutes("1020") == 1020
    assert parse_minutes(95) == 95


@pytest.mark.parametrize("value", ["25:00", "17:60", "24:30", "abc", "1:2:3"])
def test_parse_minutes_rejects_bad_input(value):
    with pytest.raises(ValueError):
        parse_minutes(value)
