"""What-if replay of a window under different control settings.

The replay starts from the window's actual starting SOC and steps a
simplified Self-Powered or Time-Based policy over the same solar and home
load, then compares its totals with what actually happened.
"""

import logging
from dataclasses import dataclass

from ..generator import BATTERY_CAPACITY_KWH, STEP_HOURS, normalize_window, samples_in_window
from ..models import (
    MODE_SELF_POWERED,
    MODE_TIME_BASED,
    ReplayDeltas,
    ReplayOverrides,
    ReplayResult,
    ReplaySummary,
    Sample,
    SiteContext,
    TimeWindow,
    WindowSummary,
)
from ..timefmt import clamp, round_half_up
from .explain import overlap
from .summary import summarize_window

logger = logging.getLogger(__name__)

MAX_CHARGE_KW = 5.0
MAX_DISCHARGE_KW = 5.0
STORM_TARGET_SOC_PCT = 85
PEAK_DISCHARGE_MARGIN_KW = 0.35
STORM_CHARGE_MARGIN_KW = 2.2

# Thresholds for the expected-change narrative
GRID_IMPORT_NOTABLE_KWH = 0.15
END_SOC_NOTABLE_PCT = 1
MAX_EXPECTED_CHANGES = 4


@dataclass
class StepResult:
    """One replayed 5-minute step."""

    next_soc_pct: float
    battery_kw: float
    grid_kw: float


@dataclass
class RunningTotals:
    grid_import: float = 0.0
    grid_export: float = 0.0
    battery_charge: float = 0.0
    battery_discharge: float = 0.0

    def add(self, battery_kw: float, grid_kw: float) -> None:
        self.grid_import += max(grid_kw, 0) * STEP_HOURS
        self.grid_export += max(-grid_kw, 0) * STEP_HOURS
        self.battery_charge += max(battery_kw, 0) * STEP_HOURS
        self.battery_discharge += max(-battery_kw, 0) * STEP_HOURS


def energy_bounds(soc_pct: float, reserve_pct: float) -> tuple[float, float]:
    """(max charge kW, max discharge kW) one step can sustain from this SOC."""
    max_charge_kwh = ((100 - soc_pct) / 100) * BATTERY_CAPACITY_KWH
    max_discharge_kwh = ((soc_pct - reserve_pct) / 100) * BATTERY_CAPACITY_KWH
    return max(0.0, max_charge_kwh / STEP_HOURS), max(0.0, max_discharge_kwh / STEP_HOURS)


def apply_step(battery_kw: float, sample: Sample, soc_pct: float, reserve_pct: float) -> StepResult:
    bounded_kw = clamp(battery_kw, -MAX_DISCHARGE_KW, MAX_CHARGE_KW)
    delta_soc = ((bounded_kw * STEP_HOURS) / BATTERY_CAPACITY_KWH) * 100
    return StepResult(
        next_soc_pct=clamp(soc_pct + delta_soc, reserve_pct, 100),
        battery_kw=bounded_kw,
        grid_kw=sample.home_kw - sample.solar_kw + bounded_kw,
    )


def self_powered_step(sample: Sample, soc_pct: float, reserve_pct: float) -> StepResult:
    """Soak up solar surplus, cover any deficit from the battery."""
    net_solar_kw = sample.solar_kw - sample.home_kw
    max_charge_kw, max_discharge_kw = energy_bounds(soc_pct, reserve_pct)
    battery_kw = 0.0

    if net_solar_kw > 0 and soc_pct < 100:
        battery_kw = min(net_solar_kw, MAX_CHARGE_KW, max_charge_kw)
    elif net_solar_kw < 0 and soc_pct > reserve_pct:
        battery_kw = -min(abs(net_solar_kw), MAX_DISCHARGE_KW, max_discharge_kw)

    return apply_step(battery_kw, sample, soc_pct, reserve_pct)


def time_based_step(
    sample: Sample, context: SiteContext, soc_pct: float, reserve_pct: float, peak: TimeWindow
) -> StepResult:
    """Discharge through the peak, precharge for Storm Watch, else self-power."""
    in_storm = context.storm_watch_enabled and context.storm_watch_window.contains(sample.minute)
    max_charge_kw, max_discharge_kw = energy_bounds(soc_pct, reserve_pct)
    deficit_kw = max(0.0, sample.home_kw - sample.solar_kw)

    if peak.contains(sample.minute) and soc_pct > reserve_pct:
        battery_kw = -min(deficit_kw + PEAK_DISCHARGE_MARGIN_KW, MAX_DISCHARGE_KW, max_discharge_kw)
    elif in_storm and soc_pct < max(reserve_pct, STORM_TARGET_SOC_PCT):
        battery_kw = min(deficit_kw + STORM_CHARGE_MARGIN_KW, MAX_CHARGE_KW, max_charge_kw)
    else:
        return self_powered_step(sample, soc_pct, reserve_pct)

    return apply_step(battery_kw, sample, soc_pct, reserve_pct)


def _as_replay_summary(summary: WindowSummary) -> ReplaySummary:
    return ReplaySummary(
        start_soc=summary.start_soc,
        end_soc=summary.end_soc,
        grid_import_kwh=summary.grid_import_kwh,
        grid_export_kwh=summary.grid_export_kwh,
        battery_charge_kwh=summary.battery_charge_kwh,
        battery_discharge_kwh=summary.battery_discharge_kwh,
    )


def replay_window(
    samples: tuple[Sample, ...] | list[Sample],
    context: SiteContext,
    start_min: int,
    end_min: int,
    overrides: ReplayOverrides | None = None,
) -> ReplayResult:
    """Re-run [start_min, end_min) under overridden settings.

    Omitted overrides fall back to the site context. Unknown modes run the
    Time-Based policy. An empty window gives all-zero summaries and deltas.
    """
    overrides = overrides or ReplayOverrides()
    mode = overrides.mode if overrides.mode is not None else context.mode
    reserve_pct = (
        overrides.backup_reserve_pct
        if overrides.backup_reserve_pct is not None
        else context.backup_reserve_pct
    )
    peak_start = (
        overrides.peak_start_min
        if overrides.peak_start_min is not None
        else context.peak_window.start_min
    )
    peak = TimeWindow(peak_start, context.peak_window.end_min)

    window = normalize_window(start_min, end_min)
    window_samples = samples_in_window(samples, window.start_min, window.end_min)
    if not window_samples:
        return ReplayResult(
            actual=ReplaySummary(),
            replay=ReplaySummary(),
            deltas=ReplayDeltas(),
            mode_used=mode,
            reserve_used=reserve_pct,
        )

    logger.debug(
        "Replaying %d samples: mode=%s reserve=%s peak_start=%s",
        len(window_samples),
        mode,
        reserve_pct,
        peak_start,
    )

    actual = _as_replay_summary(summarize_window(window_samples))
    start_soc = window_samples[0].soc_pct
    soc_pct = start_soc
    totals = RunningTotals()

    for sample in window_samples:
        if mode == MODE_SELF_POWERED:
            step = self_powered_step(sample, soc_pct, reserve_pct)
        else:
            step = time_based_step(sample, context, soc_pct, reserve_pct, peak)
        soc_pct = step.next_soc_pct
        totals.add(step.battery_kw, step.grid_kw)

    replayed = ReplaySummary(
        start_soc=round_half_up(start_soc, 1),
        end_soc=round_half_up(soc_pct, 1),
        grid_import_kwh=round_half_up(totals.grid_import, 2),
        grid_export_kwh=round_half_up(totals.grid_export, 2),
        battery_charge_kwh=round_half_up(totals.battery_charge, 2),
        battery_discharge_kwh=round_half_up(totals.battery_discharge, 2),
    )

    return ReplayResult(
        actual=actual,
        replay=replayed,
        deltas=ReplayDeltas(
            end_soc_pct=round_half_up(replayed.end_soc - actual.end_soc, 1),
            grid_import_kwh=round_half_up(replayed.grid_import_kwh - actual.grid_import_kwh, 2),
            battery_discharge_kwh=round_half_up(
                replayed.battery_discharge_kwh - actual.battery_discharge_kwh, 2
            ),
        ),
        mode_used=mode,
        reserve_used=reserve_pct,
    )


def describe_expected_changes(
    context: SiteContext,
    start_min: int,
    end_min: int,
    mode: str,
    reserve_pct: float,
    deltas: ReplayDeltas,
) -> list[str]:
    """Plain-language bullets describing what a replay would change."""
    window = normalize_window(start_min, end_min)
    peak_overlaps = overlap(window, context.peak_window) is not None
    storm_overlaps = overlap(window, context.storm_watch_window) is not None
    bullets = []

    if mode == MODE_SELF_POWERED:
        bullets.append("System would prioritize solar self-consumption over peak arbitrage.")
    elif peak_overlaps:
        bullets.append("Time-Based mode would continue prioritizing peak-rate avoidance in this window.")

    if reserve_pct > context.backup_reserve_pct:
        bullets.append("Higher reserve would reduce allowable discharge depth and preserve backup energy.")
    elif reserve_pct < context.backup_reserve_pct:
        bullets.append("Lower reserve would allow deeper discharge before grid support is needed.")

    if storm_overlaps and context.storm_watch_enabled and mode == MODE_TIME_BASED:
        bullets.append("Storm Watch overlap would bias charging behavior toward backup readiness.")

    if deltas.grid_import_kwh > GRID_IMPORT_NOTABLE_KWH:
        bullets.append("Grid import is expected to increase in this replay.")
    elif deltas.grid_import_kwh < -GRID_IMPORT_NOTABLE_KWH:
        bullets.append("Grid import is expected to decrease in this replay.")

    if deltas.end_soc_pct > END_SOC_NOTABLE_PCT:
        bullets.append("Window is likely to end at a higher SOC.")
    elif deltas.end_soc_pct < -END_SOC_NOTABLE_PCT:
        bullets.append("Window is likely to end at a lower SOC.")

    if len(bullets) < 2:
        bullets.append("Replay is illustrative and uses the same solar/home profile for the selected window.")

    return bullets[:MAX_EXPECTED_CHANGES]
