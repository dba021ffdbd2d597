import math
from dataclasses import replace

import pytest

from batterystory.config import DEFAULT_CONTEXT
from batterystory.generator import (
    SAMPLE_COUNT,
    battery_target_kw,
    clamp_battery_by_soc,
    deterministic_noise,
    generate_day,
    home_kw_at,
    normalize_window,
    samples_in_window,
    solar_kw_at,
)
from batterystory.models import TimeWindow


def test_day_has_288_grid_aligned_samples(day):
    assert len(day) == SAMPLE_COUNT == 288
    assert [s.minute for s in day] == list(range(0, 1440, 5))


def test_power_balance_holds_for_every_sample(day):
    for s in day:
        assert abs(s.grid_kw - (s.home_kw - s.solar_kw + s.battery_kw)) <= 0.01 + 1e-9


def test_soc_stays_between_reserve_and_full(day, context):
    for s in day:
        assert context.backup_reserve_pct <= s.soc_pct <= 100


def test_generation_is_deterministic():
    """Same context, same day: no random source is involved."""
    assert generate_day() == generate_day()


def test_output_is_immutable(day):
    assert isinstance(day, tuple)
    with pytest.raises(AttributeError):
        day[0].soc_pct = 99


def test_deterministic_noise_formula():
    raw = math.sin(7 * 12.9898 + 11 * 78.233) * 43758.5453
    assert deterministic_noise(7, 11) == raw - math.floor(raw) - 0.5
    for index in range(SAMPLE_COUNT):
        assert -0.5 <= deterministic_noise(index, 23) < 0.5


def test_solar_is_zero_outside_daylight():
    assert solar_kw_at(0, 0) == 0
    assert solar_kw_at(6 * 60 + 55, 83) == 0
    assert solar_kw_at(18 * 60 + 35, 223) == 0
    assert solar_kw_at(20 * 60, 240) == 0


def test_solar_and_home_stay_in_range():
    for index in range(SAMPLE_COUNT):
        minute = index * 5
        assert 0 <= solar_kw_at(minute, index) <= 7
        assert 0.55 <= home_kw_at(minute, index) <= 3.6


def test_solar_peaks_around_midday(day):
    peak = max(day, key=lambda s: s.solar_kw)
    assert 11 * 60 <= peak.minute <= 14 * 60
    assert peak.solar_kw > 5


def test_storm_watch_precharge_tiers(context):
    minute = 20 * 60 + 30
    assert battery_target_kw(minute, 60, 0, 1, context) == 2.8
    assert battery_target_kw(minute, 75, 0, 1, context) == 1.9
    assert battery_target_kw(minute, 80, 0, 1, context) == 0.9


def test_peak_discharge_caps_and_reserve_floor(context):
    # At or near reserve (30 + 2) the battery rests
    assert battery_target_kw(18 * 60, 31, 0, 2.0, context) == 0
    assert battery_target_kw(18 * 60, 60, 0, 2.0, context) == pytest.approx(-2.25)
    assert battery_target_kw(18 * 60, 60, 0, 3.5, context) == pytest.approx(-2.9)
    # Lower cap from 19:00
    assert battery_target_kw(19 * 60 + 10, 60, 0, 3.0, context) == pytest.approx(-1.7)
    # Solar covering the home still leaves a small margin discharge
    assert battery_target_kw(17 * 60, 60, 3.0, 1.0, context) == pytest.approx(-0.25)


def test_solar_charging_window(context):
    assert battery_target_kw(600, 50, 4.0, 1.0, context) == pytest.approx(2.7)
    assert battery_target_kw(600, 90, 4.0, 1.0, context) == pytest.approx(1.05)
    assert battery_target_kw(600, 50, 6.0, 1.0, context) == pytest.approx(3.6)
    # Full enough, or surplus too small
    assert battery_target_kw(600, 95, 4.0, 1.0, context) == 0
    assert battery_target_kw(600, 50, 1.1, 1.0, context) == 0
    # Outside 9:00-16:30
    assert battery_target_kw(8 * 60, 50, 4.0, 1.0, context) == 0


def test_trickle_discharge(context):
    assert battery_target_kw(60, 60, 0, 1, context) == -0.2
    assert battery_target_kw(60, 55, 0, 1, context) == 0
    assert battery_target_kw(23 * 60, 60, 0, 1, context) == -0.2
    assert battery_target_kw(5 * 60 + 30, 55, 0, 1, context) == -0.1
    assert battery_target_kw(5 * 60 + 30, 53, 0, 1, context) == 0


def test_clamp_battery_by_soc():
    # 0.1% headroom of 13.5 kWh over 5 minutes
    assert clamp_battery_by_soc(3.0, 99.9, 30) == pytest.approx(0.162)
    assert clamp_battery_by_soc(-3.0, 30.5, 30) == pytest.approx(-0.81)
    assert clamp_battery_by_soc(2.0, 50, 30) == 2.0
    assert clamp_battery_by_soc(-2.0, 50, 30) == -2.0
    assert clamp_battery_by_soc(1.0, 100, 30) == 0
    assert clamp_battery_by_soc(0, 50, 30) == 0


def test_battery_only_charges_from_solar_outside_storm_watch(day, context):
    for s in day:
        if s.battery_kw > 0 and not context.storm_watch_window.contains(s.minute):
            assert s.battery_kw <= s.solar_kw - s.home_kw + 0.01


def test_storm_watch_charges_from_grid(day, context):
    storm = [s for s in day if context.storm_watch_window.contains(s.minute)]
    assert storm
    assert all(s.battery_kw > 0 for s in storm)
    assert all(s.grid_kw > s.home_kw for s in storm)


def test_storm_watch_disabled_context():
    context = replace(DEFAULT_CONTEXT, storm_watch_enabled=False)
    quiet_day = generate_day(context)
    storm = [s for s in quiet_day if DEFAULT_CONTEXT.storm_watch_window.contains(s.minute)]
    assert all(s.battery_kw <= 0 for s in storm)


def test_higher_reserve_is_respected():
    context = replace(DEFAULT_CONTEXT, backup_reserve_pct=50)
    for s in generate_day(context):
        assert 50 <= s.soc_pct <= 100


def test_normalize_window():
    assert normalize_window(1020, 1140) == TimeWindow(1020, 1140)
    assert normalize_window(1140, 1020) == TimeWindow(1020, 1140)
    assert normalize_window(1022, 1138) == TimeWindow(1020, 1140)
    assert normalize_window(-100, 2000) == TimeWindow(0, 1440)


def test_samples_in_window_is_half_open(day):
    samples = samples_in_window(day, 1020, 1140)
    assert samples[0].minute == 1020
    assert samples[-1].minute == 1135
    assert len(samples) == 24


def test_samples_in_window_reversed_and_idempotent(day):
    forward = samples_in_window(day, 1020, 1140)
    assert samples_in_window(day, 1140, 1020) == forward
    assert samples_in_window(forward, 1020, 1140) == forward


def test_samples_in_window_clamps_to_day(day):
    assert [s.minute for s in samples_in_window(day, -100, 60)] == list(range(0, 60, 5))
    assert len(samples_in_window(day, 1400, 2000)) == 8
    assert samples_in_window(day, 600, 600) == []
