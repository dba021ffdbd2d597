"""Explanation timeline for a window of the story day.

Each detector looks at the same precomputed window facts and either
proposes one event or nothing. Proposals are merged, moved onto unique
in-window grid slots, sorted and capped:

1. Peak overlap: window touches the peak-rate window.
2. Storm overlap: window touches an enabled Storm Watch window.
3. Net charging: average battery power above +0.4 kW.
4. Net discharging: average battery power below -0.4 kW.
5. Export run: 3+ consecutive samples exporting more than 0.6 kW.
6. Hold steady: battery near idle while solar covers the home.

If nothing fires, a single "stable operation" event is emitted.
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable

from ..generator import normalize_window, samples_in_window
from ..models import (
    CATEGORY_BATTERY,
    CATEGORY_GRID,
    CATEGORY_INFO,
    CATEGORY_RATE,
    CATEGORY_SOLAR,
    CATEGORY_STORM,
    CONFIDENCE_HIGH,
    CONFIDENCE_LOW,
    CONFIDENCE_MEDIUM,
    ExplainEvent,
    Reason,
    Sample,
    SiteContext,
    TimeWindow,
    WindowSummary,
)
from ..timefmt import SAMPLE_STEP_MINUTES, clamp, format_window, minutes_to_label, round_half_up, snap_to_step
from .summary import summarize_window

logger = logging.getLogger(__name__)

MAX_EVENTS = 10
MAX_EVIDENCE = 3

# Detector thresholds
NET_BATTERY_THRESHOLD_KW = 0.4  # average |battery| to call a window charging/discharging
SOLAR_SURPLUS_MARGIN_KW = 0.3  # solar over home for a solar-surplus reason
RESERVE_PROXIMITY_PCT = 2  # min SOC this close to reserve triggers reserve protection
EXPORT_THRESHOLD_KW = -0.6  # grid power below this counts as exporting
EXPORT_MIN_RUN = 3  # consecutive samples, i.e. 15 minutes
EXPORT_HIGH_CONFIDENCE_KWH = 0.5
HOLD_BATTERY_MAX_KW = 0.25
HOLD_SOLAR_MARGIN_KW = 0.25

TBC_PEAK_AVOIDANCE = "TBC_PEAK_AVOIDANCE"
SOLAR_SURPLUS_CHARGE = "SOLAR_SURPLUS_CHARGE"
BACKUP_RESERVE_PROTECTION = "BACKUP_RESERVE_PROTECTION"
STORM_WATCH_PRECHARGE = "STORM_WATCH_PRECHARGE"
EXPORTING_SURPLUS = "EXPORTING_SURPLUS"
HOLDING_CHARGE = "HOLDING_CHARGE"

# code -> (title, default confidence)
REASON_CATALOG = {
    TBC_PEAK_AVOIDANCE: ("Peak avoidance in Time-Based Control", CONFIDENCE_HIGH),
    SOLAR_SURPLUS_CHARGE: ("Charging from solar surplus", CONFIDENCE_HIGH),
    BACKUP_RESERVE_PROTECTION: ("Reserve protection near backup threshold", CONFIDENCE_MEDIUM),
    STORM_WATCH_PRECHARGE: ("Storm Watch pre-charge behavior", CONFIDENCE_HIGH),
    EXPORTING_SURPLUS: ("Exporting excess energy", CONFIDENCE_MEDIUM),
    HOLDING_CHARGE: ("Holding battery level", CONFIDENCE_LOW),
}


@dataclass
class WindowFacts:
    """Everything the detectors need to know about one window."""

    window: TimeWindow
    context: SiteContext
    samples: list[Sample]
    summary: WindowSummary
    avg_battery_kw: float
    avg_solar_kw: float
    avg_home_kw: float
    peak_overlap: TimeWindow | None
    storm_overlap: TimeWindow | None

    @property
    def storm_active(self) -> bool:
        return self.storm_overlap is not None and self.context.storm_watch_enabled


@dataclass
class DetectedEvent:
    """An event proposal before its timestamp is finalized."""

    proposed_min: int
    category: str
    title: str
    description: str
    reasons: list[Reason]


Detector = Callable[[WindowFacts], DetectedEvent | None]


def build_reason(code: str, evidence: list[str], confidence: str | None = None) -> Reason:
    """Create a reason from the catalog; only the confidence can be overridden."""
    title, default_confidence = REASON_CATALOG[code]
    return Reason(
        code=code,
        title=title,
        confidence=confidence or default_confidence,
        evidence=list(evidence[:MAX_EVIDENCE]),
    )


def overlap(window: TimeWindow, other: TimeWindow) -> TimeWindow | None:
    """Intersection of two windows, or None if they don't overlap."""
    start = max(window.start_min, other.start_min)
    end = min(window.end_min, other.end_min)
    if start < end:
        return TimeWindow(start, end)
    return None


def _average(samples: list[Sample], attr: str) -> float:
    if not samples:
        return 0.0
    return sum(getattr(sample, attr) for sample in samples) / len(samples)


def _kw(value: float) -> float:
    return round_half_up(value, 2)


def find_first_minute(samples: list[Sample], predicate: Callable[[Sample], bool], fallback: int) -> int:
    for sample in samples:
        if predicate(sample):
            return sample.minute
    return fallback


def find_export_run(samples: list[Sample], min_run: int = EXPORT_MIN_RUN) -> int | None:
    """Start minute of the first run of min_run consecutive exporting samples."""
    run = 0
    run_start = None

    for sample in samples:
        if sample.grid_kw < EXPORT_THRESHOLD_KW:
            run += 1
            if run_start is None:
                run_start = sample.minute
            if run >= min_run:
                return run_start
        else:
            run = 0
            run_start = None

    return None


def collect_facts(samples: list[Sample], context: SiteContext, window: TimeWindow) -> WindowFacts:
    return WindowFacts(
        window=window,
        context=context,
        samples=samples,
        summary=summarize_window(samples),
        avg_battery_kw=_average(samples, "battery_kw"),
        avg_solar_kw=_average(samples, "solar_kw"),
        avg_home_kw=_average(samples, "home_kw"),
        peak_overlap=overlap(window, context.peak_window),
        storm_overlap=overlap(window, context.storm_watch_window),
    )


def detect_peak_overlap(facts: WindowFacts) -> DetectedEvent | None:
    if facts.peak_overlap is None:
        return None
    peak = facts.context.peak_window
    return DetectedEvent(
        proposed_min=facts.peak_overlap.start_min,
        category=CATEGORY_RATE,
        title="Peak rate period",
        description="Peak period started. System prioritized reducing grid usage.",
        reasons=[
            build_reason(
                TBC_PEAK_AVOIDANCE,
                [
                    f"Mode: {facts.context.mode}.",
                    f"Selected window overlaps peak period ({format_window(peak.start_min, peak.end_min)}).",
                    f"Battery average power was {_kw(facts.avg_battery_kw)} kW in this selection.",
                ],
            )
        ],
    )


def detect_storm_overlap(facts: WindowFacts) -> DetectedEvent | None:
    if not facts.storm_active:
        return None
    storm = facts.context.storm_watch_window
    summary = facts.summary
    return DetectedEvent(
        proposed_min=facts.storm_overlap.start_min,
        category=CATEGORY_STORM,
        title="Storm Watch",
        description="Storm Watch engaged. Battery increased charge to improve backup readiness.",
        reasons=[
            build_reason(
                STORM_WATCH_PRECHARGE,
                [
                    "Storm Watch is enabled in site settings.",
                    f"Window overlaps Storm Watch ({format_window(storm.start_min, storm.end_min)}).",
                    f"SOC moved {summary.start_soc}% → {summary.end_soc}% in selection.",
                ],
            )
        ],
    )


def detect_net_charging(facts: WindowFacts) -> DetectedEvent | None:
    if facts.avg_battery_kw <= NET_BATTERY_THRESHOLD_KW:
        return None

    summary = facts.summary
    reasons = []
    if facts.storm_active:
        reasons.append(
            build_reason(
                STORM_WATCH_PRECHARGE,
                [
                    "Charging occurred while Storm Watch interval was active.",
                    f"Average battery power was +{_kw(facts.avg_battery_kw)} kW.",
                ],
            )
        )
    if facts.avg_solar_kw > facts.avg_home_kw + SOLAR_SURPLUS_MARGIN_KW:
        reasons.append(
            build_reason(
                SOLAR_SURPLUS_CHARGE,
                [
                    f"Average solar {_kw(facts.avg_solar_kw)} kW exceeded home load {_kw(facts.avg_home_kw)} kW.",
                    f"Battery charged about {summary.battery_charge_kwh} kWh in this window.",
                ],
                CONFIDENCE_MEDIUM if facts.storm_overlap else CONFIDENCE_HIGH,
            )
        )
    if not reasons:
        reasons.append(
            build_reason(
                HOLDING_CHARGE,
                [
                    f"Battery stayed net charging at +{_kw(facts.avg_battery_kw)} kW.",
                    f"SOC increased from {summary.start_soc}% to {summary.end_soc}% during the selected period.",
                ],
            )
        )

    return DetectedEvent(
        proposed_min=find_first_minute(
            facts.samples, lambda s: s.battery_kw > NET_BATTERY_THRESHOLD_KW, facts.window.start_min
        ),
        category=CATEGORY_BATTERY,
        title="Battery charging",
        description="Battery was mostly charging during the selected period.",
        reasons=reasons,
    )


def detect_net_discharging(facts: WindowFacts) -> DetectedEvent | None:
    if facts.avg_battery_kw >= -NET_BATTERY_THRESHOLD_KW:
        return None

    summary = facts.summary
    context = facts.context
    reasons = []
    if facts.peak_overlap is not None:
        peak = context.peak_window
        reasons.append(
            build_reason(
                TBC_PEAK_AVOIDANCE,
                [
                    f"Selection overlaps peak period ({format_window(peak.start_min, peak.end_min)}).",
                    f"Battery average power was {_kw(facts.avg_battery_kw)} kW (discharging).",
                ],
            )
        )
    if summary.min_soc <= context.backup_reserve_pct + RESERVE_PROXIMITY_PCT:
        reasons.append(
            build_reason(
                BACKUP_RESERVE_PROTECTION,
                [
                    f"Backup reserve is {context.backup_reserve_pct:g}%.",
                    f"SOC approached reserve. Minimum observed {summary.min_soc}%.",
                ],
                CONFIDENCE_MEDIUM,
            )
        )
    if not reasons:
        reasons.append(
            build_reason(
                HOLDING_CHARGE,
                [
                    f"Battery delivered about {summary.battery_discharge_kwh} kWh in this window.",
                    f"SOC declined {summary.start_soc}% → {summary.end_soc}%.",
                ],
            )
        )

    return DetectedEvent(
        proposed_min=find_first_minute(
            facts.samples, lambda s: s.battery_kw < -NET_BATTERY_THRESHOLD_KW, facts.window.start_min
        ),
        category=CATEGORY_BATTERY,
        title="Battery discharging",
        description="Battery supplied home demand to reduce grid dependence.",
        reasons=reasons,
    )


def detect_export_run(facts: WindowFacts) -> DetectedEvent | None:
    run_start = find_export_run(facts.samples)
    if run_start is None:
        return None

    exported = facts.summary.grid_export_kwh
    return DetectedEvent(
        proposed_min=run_start,
        category=CATEGORY_GRID,
        title="Exporting to grid",
        description="Solar production exceeded site demand and excess energy was exported.",
        reasons=[
            build_reason(
                EXPORTING_SURPLUS,
                [
                    "At least 15 minutes of consecutive grid export was observed.",
                    f"Average solar {_kw(facts.avg_solar_kw)} kW vs home {_kw(facts.avg_home_kw)} kW.",
                    f"Approx export in selection: {exported} kWh.",
                ],
                CONFIDENCE_HIGH if exported > EXPORT_HIGH_CONFIDENCE_KWH else CONFIDENCE_MEDIUM,
            )
        ],
    )


def detect_hold_steady(facts: WindowFacts) -> DetectedEvent | None:
    if abs(facts.avg_battery_kw) >= HOLD_BATTERY_MAX_KW:
        return None
    if facts.avg_solar_kw <= facts.avg_home_kw + HOLD_SOLAR_MARGIN_KW:
        return None

    summary = facts.summary
    return DetectedEvent(
        proposed_min=find_first_minute(facts.samples, lambda s: True, facts.window.start_min),
        category=CATEGORY_SOLAR,
        title="Holding battery level",
        description="Battery power stayed near neutral while solar carried most of the load.",
        reasons=[
            build_reason(
                HOLDING_CHARGE,
                [
                    f"Average battery power stayed near {_kw(facts.avg_battery_kw)} kW.",
                    f"SOC remained within {summary.min_soc}% to {summary.max_soc}% during this selection.",
                    "Solar remained above home load on average "
                    f"({_kw(facts.avg_solar_kw)} vs {_kw(facts.avg_home_kw)} kW).",
                ],
                CONFIDENCE_MEDIUM,
            )
        ],
    )


def stable_operation(facts: WindowFacts) -> DetectedEvent:
    """Fallback event when no detector fired."""
    window = facts.window
    summary = facts.summary
    return DetectedEvent(
        proposed_min=window.start_min,
        category=CATEGORY_INFO,
        title="Stable operation",
        description="No major state transitions were detected in this window.",
        reasons=[
            build_reason(
                HOLDING_CHARGE,
                [
                    f"Window: {format_window(window.start_min, window.end_min)}.",
                    f"SOC changed {summary.start_soc}% → {summary.end_soc}%.",
                    f"Average battery power {_kw(facts.avg_battery_kw)} kW.",
                ],
            )
        ],
    )


DETECTORS: tuple[Detector, ...] = (
    detect_peak_overlap,
    detect_storm_overlap,
    detect_net_charging,
    detect_net_discharging,
    detect_export_run,
    detect_hold_steady,
)


def ensure_unique_minute(proposed_min: int, used: set[int], window: TimeWindow) -> int | None:
    """Move a proposed minute onto a free grid slot inside the window.

    Probes forward first, then backward. Returns None when every slot in
    the window is taken.
    """
    upper = max(window.start_min, window.end_min - SAMPLE_STEP_MINUTES)
    start = int(clamp(snap_to_step(proposed_min), window.start_min, upper))

    minute = start
    while minute in used and minute <= upper:
        minute += SAMPLE_STEP_MINUTES
    if minute <= upper:
        return minute

    minute = start
    while minute in used and minute >= window.start_min:
        minute -= SAMPLE_STEP_MINUTES
    if minute >= window.start_min:
        return minute

    return None


def with_time_label(reason: Reason, minute: int) -> Reason:
    """Copy of a reason with the event time as its last evidence line."""
    evidence = reason.evidence[: MAX_EVIDENCE - 1]
    return replace(reason, evidence=[*evidence, f"Event time: {minutes_to_label(minute)}."])


def finalize_events(proposals: list[DetectedEvent], window: TimeWindow) -> list[ExplainEvent]:
    """Assign unique timestamps, sort, cap and stamp evidence."""
    used: set[int] = set()
    placed = []
    for proposal in proposals:
        minute = ensure_unique_minute(proposal.proposed_min, used, window)
        if minute is None:
            logger.debug("Dropping %r: no free slot in window", proposal.title)
            continue
        used.add(minute)
        placed.append((minute, proposal))

    placed.sort(key=lambda item: item[0])

    return [
        ExplainEvent(
            id=f"{proposal.category}-{minute}-{index}",
            minute=minute,
            category=proposal.category,
            title=proposal.title,
            description=proposal.description,
            reasons=[with_time_label(reason, minute) for reason in proposal.reasons],
        )
        for index, (minute, proposal) in enumerate(placed[:MAX_EVENTS])
    ]


def build_timeline(
    samples: tuple[Sample, ...] | list[Sample],
    context: SiteContext,
    start_min: int,
    end_min: int,
    detectors: tuple[Detector, ...] = DETECTORS,
) -> list[ExplainEvent]:
    """Explain what the battery did in [start_min, end_min).

    Returns at most MAX_EVENTS events in time order, each on a distinct
    5-minute slot inside the window. An empty window gives an empty list.
    """
    window = normalize_window(start_min, end_min)
    window_samples = samples_in_window(samples, window.start_min, window.end_min)
    if not window_samples:
        return []

    facts = collect_facts(window_samples, context, window)
    proposals = [event for event in (detector(facts) for detector in detectors) if event is not None]
    if not proposals:
        proposals = [stable_operation(facts)]

    logger.debug(
        "Window %s: %s", format_window(window.start_min, window.end_min), [p.title for p in proposals]
    )
    return finalize_events(proposals, window)
