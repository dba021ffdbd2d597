"""Energy and SOC summaries over a window of samples."""

from ..generator import STEP_HOURS
from ..models import Sample, WindowSummary
from ..timefmt import format_window, round_half_up


def summarize_window(samples: list[Sample]) -> WindowSummary:
    """Integrate a window's samples into SOC range and energy totals.

    Each total only accumulates one sign of its signed power reading, so
    grid import never nets against export (and charge against discharge).
    An empty window gives an all-zero summary.
    """
    if not samples:
        return WindowSummary()

    grid_import = 0.0
    grid_export = 0.0
    battery_charge = 0.0
    battery_discharge = 0.0

    for sample in samples:
        grid_import += max(sample.grid_kw, 0) * STEP_HOURS
        grid_export += max(-sample.grid_kw, 0) * STEP_HOURS
        battery_charge += max(sample.battery_kw, 0) * STEP_HOURS
        battery_discharge += max(-sample.battery_kw, 0) * STEP_HOURS

    socs = [sample.soc_pct for sample in samples]

    return WindowSummary(
        start_soc=round_half_up(samples[0].soc_pct, 1),
        end_soc=round_half_up(samples[-1].soc_pct, 1),
        min_soc=round_half_up(min(socs), 1),
        max_soc=round_half_up(max(socs), 1),
        grid_import_kwh=round_half_up(grid_import, 2),
        grid_export_kwh=round_half_up(grid_export, 2),
        battery_charge_kwh=round_half_up(battery_charge, 2),
        battery_discharge_kwh=round_half_up(battery_discharge, 2),
    )


def grid_dominance(summary: WindowSummary) -> str:
    """Whether the window leaned on the grid or fed it."""
    if summary.grid_import_kwh >= summary.grid_export_kwh:
        return "Import dominant"
    return "Export dominant"


def format_window_summary_text(summary: WindowSummary, start_min: int, end_min: int) -> str:
    """Format a window summary as human-readable text."""
    lines = [
        f"Window {format_window(start_min, end_min)}",
        f"- SOC: {summary.start_soc}% → {summary.end_soc}% "
        f"(range {summary.min_soc}–{summary.max_soc}%)",
        f"- Grid: {summary.grid_import_kwh} kWh imported, "
        f"{summary.grid_export_kwh} kWh exported ({grid_dominance(summary)})",
        f"- Battery: {summary.battery_charge_kwh} kWh charged, "
        f"{summary.battery_discharge_kwh} kWh discharged",
    ]
    return "\n".join(lines)
