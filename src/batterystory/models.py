"""Data models for the battery story day, explanations and replays."""

from dataclasses import dataclass, field

# Control modes
MODE_TIME_BASED = "Time-Based Control"
MODE_SELF_POWERED = "Self-Powered"
MODES = (MODE_TIME_BASED, MODE_SELF_POWERED)

# Event categories
CATEGORY_MODE = "mode"
CATEGORY_RATE = "rate"
CATEGORY_BATTERY = "battery"
CATEGORY_GRID = "grid"
CATEGORY_STORM = "storm"
CATEGORY_SOLAR = "solar"
CATEGORY_INFO = "info"

CATEGORY_LABELS = {
    CATEGORY_MODE: "Mode",
    CATEGORY_RATE: "Peak",
    CATEGORY_BATTERY: "Battery",
    CATEGORY_GRID: "Grid",
    CATEGORY_STORM: "Storm",
    CATEGORY_SOLAR: "Solar",
    CATEGORY_INFO: "Info",
}

# Reason confidence levels
CONFIDENCE_HIGH = "High"
CONFIDENCE_MEDIUM = "Medium"
CONFIDENCE_LOW = "Low"


@dataclass(frozen=True)
class Sample:
    """One 5-minute instant of the day."""

    minute: int  # minutes since midnight
    solar_kw: float
    home_kw: float
    battery_kw: float  # + charging, - discharging
    grid_kw: float  # + import, - export
    soc_pct: float


@dataclass(frozen=True)
class TimeWindow:
    """A half-open [start, end) range of minutes since midnight."""

    start_min: int
    end_min: int

    def contains(self, minute: int) -> bool:
        return self.start_min <= minute < self.end_min


@dataclass(frozen=True)
class SiteContext:
    """Static site configuration the battery was operating under."""

    mode: str
    backup_reserve_pct: float
    peak_window: TimeWindow
    storm_watch_window: TimeWindow
    storm_watch_enabled: bool


@dataclass
class WindowSummary:
    """Aggregate SOC and energy totals over a window of samples."""

    start_soc: float = 0.0
    end_soc: float = 0.0
    min_soc: float = 0.0
    max_soc: float = 0.0
    grid_import_kwh: float = 0.0
    grid_export_kwh: float = 0.0
    battery_charge_kwh: float = 0.0
    battery_discharge_kwh: float = 0.0


@dataclass
class Reason:
    """Why an event happened, with the facts that support it."""

    code: str
    title: str
    confidence: str
    evidence: list[str] = field(default_factory=list)


@dataclass
class ExplainEvent:
    """A detected behaviour on the explanation timeline."""

    id: str
    minute: int
    category: str
    title: str
    description: str
    reasons: list[Reason]

    @property
    def category_label(self) -> str:
        return CATEGORY_LABELS.get(self.category, self.category.title())


@dataclass
class ReplayOverrides:
    """What-if parameters. None falls back to the site context."""

    mode: str | None = None
    backup_reserve_pct: float | None = None
    peak_start_min: int | None = None


@dataclass
class ReplaySummary:
    """Start/end SOC and energy totals for an actual or replayed window."""

    start_soc: float = 0.0
    end_soc: float = 0.0
    grid_import_kwh: float = 0.0
    grid_export_kwh: float = 0.0
    battery_charge_kwh: float = 0.0
    battery_discharge_kwh: float = 0.0


@dataclass
class ReplayDeltas:
    """Replayed minus actual."""

    end_soc_pct: float = 0.0
    grid_import_kwh: float = 0.0
    battery_discharge_kwh: float = 0.0


@dataclass
class ReplayResult:
    """Counterfactual replay of a window against what actually happened."""

    actual: ReplaySummary
    replay: ReplaySummary
    deltas: ReplayDeltas
    mode_used: str
    reserve_used: float
