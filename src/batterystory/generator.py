"""Synthetic one-day energy flow for a home battery site.

The day is built from closed-form solar and home-load curves plus a fixed
hash-like noise function, then run through the battery control policy one
5-minute step at a time. No random source is involved, so the same context
always produces the same 288 samples.
"""

import logging
import math

from .config import DEFAULT_CONTEXT
from .models import Sample, SiteContext, TimeWindow
from .timefmt import (
    MINUTES_PER_DAY,
    SAMPLE_STEP_MINUTES,
    clamp,
    round_half_up,
    snap_to_step,
)

logger = logging.getLogger(__name__)

SAMPLE_COUNT = MINUTES_PER_DAY // SAMPLE_STEP_MINUTES
STEP_HOURS = SAMPLE_STEP_MINUTES / 60
BATTERY_CAPACITY_KWH = 13.5
SOC_START_PCT = 62

# Solar curve
SUNRISE_MIN = 7 * 60
SUNSET_MIN = 18 * 60 + 30
SOLAR_PEAK_KW = 6.4
SOLAR_MAX_KW = 7.0
CLOUD_DIP_DEPTH = 0.08
CLOUD_DIP_CENTER_MIN = 13 * 60
CLOUD_DIP_WIDTH_MIN = 85
SOLAR_NOISE_SEED = 11
SOLAR_NOISE_KW = 0.2

# Home load: (center minute, width minutes, height kW)
HOME_MIN_KW = 0.55
HOME_MAX_KW = 3.6
HOME_BUMPS = (
    (8 * 60, 70, 0.82),  # morning
    (12 * 60 + 20, 200, 0.32),  # midday
    (19 * 60, 120, 1.55),  # evening
    (22 * 60 + 15, 80, 0.24),  # late night
)
HOME_NOISE_SEED = 23
HOME_NOISE_KW = 0.12

# Battery policy
STORM_CHARGE_TIERS = ((70, 2.8), (77, 1.9))  # (SOC below %, charge kW)
STORM_CHARGE_FLOOR_KW = 0.9
PEAK_RESERVE_MARGIN_PCT = 2
PEAK_EARLY_CAP_KW = 2.9  # before 19:00
PEAK_LATE_CAP_KW = 1.7
PEAK_CAP_SWITCH_MIN = 19 * 60
PEAK_MARGIN_KW = 0.25
SOLAR_CHARGE_WINDOW = TimeWindow(9 * 60, 16 * 60 + 30)
SOLAR_CHARGE_MIN_SURPLUS_KW = 0.2
SOLAR_CHARGE_MAX_SOC = 94
SOLAR_CHARGE_TAPER_SOC = 88
SOLAR_CHARGE_MAX_KW = 3.6
OVERNIGHT_END_MIN = 5 * 60
OVERNIGHT_START_MIN = 22 * 60
OVERNIGHT_MIN_SOC = 56
PREDAWN_MIN_SOC = 54


def deterministic_noise(index: int, seed: int = 1) -> float:
    """Pseudo-noise in [-0.5, 0.5) from a sine hash of the sample index."""
    raw = math.sin(index * 12.9898 + seed * 78.233) * 43758.5453
    return raw - math.floor(raw) - 0.5


def gaussian(minute: float, center: float, width: float) -> float:
    normalized = (minute - center) / width
    return math.exp(-0.5 * normalized * normalized)


def solar_kw_at(minute: int, index: int) -> float:
    """Solar output for a minute of the day (unrounded)."""
    if minute < SUNRISE_MIN or minute > SUNSET_MIN:
        return 0.0

    progress = (minute - SUNRISE_MIN) / (SUNSET_MIN - SUNRISE_MIN)
    arc = math.sin(math.pi * progress)
    base = SOLAR_PEAK_KW * max(0.0, arc) ** 1.5
    cloud_dip = 1 - CLOUD_DIP_DEPTH * gaussian(minute, CLOUD_DIP_CENTER_MIN, CLOUD_DIP_WIDTH_MIN)
    noise = deterministic_noise(index, SOLAR_NOISE_SEED) * SOLAR_NOISE_KW

    return clamp(base * cloud_dip + noise, 0, SOLAR_MAX_KW)


def home_kw_at(minute: int, index: int) -> float:
    """Home load for a minute of the day (unrounded)."""
    baseline = 0.82 + 0.1 * math.sin((minute / MINUTES_PER_DAY) * math.pi * 2 - 1.1)
    load = baseline
    for center, width, height in HOME_BUMPS:
        load += height * gaussian(minute, center, width)
    load += deterministic_noise(index, HOME_NOISE_SEED) * HOME_NOISE_KW

    return clamp(load, HOME_MIN_KW, HOME_MAX_KW)


def battery_target_kw(
    minute: int, soc_pct: float, solar_kw: float, home_kw: float, context: SiteContext
) -> float:
    """Battery power the control policy asks for, before physical limits.

    Rules in priority order: Storm Watch precharge, peak-window discharge,
    mid-day solar charging, then small overnight/pre-dawn trickle discharge.
    """
    in_storm = context.storm_watch_enabled and context.storm_watch_window.contains(minute)
    if in_storm:
        for soc_below, charge_kw in STORM_CHARGE_TIERS:
            if soc_pct < soc_below:
                return charge_kw
        return STORM_CHARGE_FLOOR_KW

    if context.peak_window.contains(minute):
        if soc_pct <= context.backup_reserve_pct + PEAK_RESERVE_MARGIN_PCT:
            return 0.0
        cap = PEAK_EARLY_CAP_KW if minute < PEAK_CAP_SWITCH_MIN else PEAK_LATE_CAP_KW
        net_load_kw = max(PEAK_MARGIN_KW, home_kw - solar_kw + PEAK_MARGIN_KW)
        return -min(cap, net_load_kw)

    surplus = solar_kw - home_kw
    if (
        SOLAR_CHARGE_WINDOW.contains(minute)
        and surplus > SOLAR_CHARGE_MIN_SURPLUS_KW
        and soc_pct < SOLAR_CHARGE_MAX_SOC
    ):
        factor = 0.9 if soc_pct < SOLAR_CHARGE_TAPER_SOC else 0.35
        return min(SOLAR_CHARGE_MAX_KW, surplus * factor)

    if (minute < OVERNIGHT_END_MIN or minute >= OVERNIGHT_START_MIN) and soc_pct > OVERNIGHT_MIN_SOC:
        return -0.2

    if OVERNIGHT_END_MIN <= minute < SUNRISE_MIN and soc_pct > PREDAWN_MIN_SOC:
        return -0.1

    return 0.0


def clamp_battery_by_soc(target_kw: float, soc_pct: float, reserve_pct: float) -> float:
    """Limit battery power to what one step can move between reserve and full."""
    max_charge_kw = ((100 - soc_pct) / 100) * BATTERY_CAPACITY_KWH / STEP_HOURS
    max_discharge_kw = ((soc_pct - reserve_pct) / 100) * BATTERY_CAPACITY_KWH / STEP_HOURS

    if target_kw > 0:
        return min(target_kw, max(0.0, max_charge_kw))
    if target_kw < 0:
        return -min(abs(target_kw), max(0.0, max_discharge_kw))
    return 0.0


def generate_day(context: SiteContext = DEFAULT_CONTEXT) -> tuple[Sample, ...]:
    """Generate the 288-sample story day for a site context."""
    samples = []
    soc_pct = SOC_START_PCT
    reserve_pct = context.backup_reserve_pct

    for index in range(SAMPLE_COUNT):
        minute = index * SAMPLE_STEP_MINUTES
        solar_kw = round_half_up(solar_kw_at(minute, index), 2)
        home_kw = round_half_up(home_kw_at(minute, index), 2)

        target_kw = battery_target_kw(minute, soc_pct, solar_kw, home_kw, context)
        # Only Storm Watch may charge the battery from the grid
        if target_kw > 0 and not context.storm_watch_window.contains(minute):
            target_kw = min(target_kw, max(0.0, solar_kw - home_kw))

        battery_kw = round_half_up(clamp_battery_by_soc(target_kw, soc_pct, reserve_pct), 2)
        grid_kw = round_half_up(home_kw - solar_kw + battery_kw, 2)
        soc_delta = ((battery_kw * STEP_HOURS) / BATTERY_CAPACITY_KWH) * 100
        soc_pct = clamp(soc_pct + soc_delta, reserve_pct, 100)

        samples.append(
            Sample(
                minute=minute,
                solar_kw=solar_kw,
                home_kw=home_kw,
                battery_kw=battery_kw,
                grid_kw=grid_kw,
                soc_pct=round_half_up(soc_pct, 1),
            )
        )

    logger.debug("Generated %d samples, end SOC %.1f%%", len(samples), soc_pct)
    return tuple(samples)


def normalize_window(start_min: int, end_min: int) -> TimeWindow:
    """Snap a window to the sample grid, clamp it to the day and order it."""
    start = clamp(snap_to_step(start_min), 0, MINUTES_PER_DAY)
    end = clamp(snap_to_step(end_min), 0, MINUTES_PER_DAY)
    return TimeWindow(int(min(start, end)), int(max(start, end)))


def samples_in_window(samples: tuple[Sample, ...] | list[Sample], start_min: int, end_min: int) -> list[Sample]:
    """Samples whose minute falls in the normalized [start, end) window."""
    window = normalize_window(start_min, end_min)
    return [sample for sample in samples if window.contains(sample.minute)]
