"""Site context loading.

The site context describes the settings the battery ran under for the story
day: control mode, backup reserve, peak-rate window and Storm Watch window.
It can be overridden with a YAML file, e.g. config/site.yaml:

    mode: Time-Based Control
    backup_reserve_pct: 30
    peak_window: {start: "17:00", end: "21:00"}
    storm_watch_window: {start: "20:30", end: "21:15"}
    storm_watch_enabled: true
"""

import logging
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .models import MODES, MODE_TIME_BASED, SiteContext, TimeWindow
from .timefmt import MINUTES_PER_DAY, parse_minutes

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BATTERY_STORY_CONFIG"

DEFAULT_CONTEXT = SiteContext(
    mode=MODE_TIME_BASED,
    backup_reserve_pct=30,
    peak_window=TimeWindow(17 * 60, 21 * 60),
    storm_watch_window=TimeWindow(20 * 60 + 30, 21 * 60 + 15),
    storm_watch_enabled=True,
)


class ConfigError(Exception):
    """Raised when a site configuration file is invalid."""
    pass


def find_config_path() -> Path | None:
    """Locate a site.yaml, or None if there isn't one."""
    load_dotenv()
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        path = Path(from_env).expanduser()
        if not path.exists():
            raise ConfigError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path

    candidates = [
        Path.cwd() / "config" / "site.yaml",
        Path.home() / ".config" / "battery-story" / "site.yaml",
    ]
    for path in candidates:
        if path.exists():
            return path
    return None


def _parse_window(data: dict | None, default: TimeWindow, name: str) -> TimeWindow:
    if data is None:
        return default
    if not isinstance(data, dict):
        raise ConfigError(f"{name} must be a mapping with start and end")
    try:
        start = parse_minutes(data.get("start", default.start_min))
        end = parse_minutes(data.get("end", default.end_min))
    except ValueError as e:
        raise ConfigError(f"{name}: {e}") from e

    if not (0 <= start <= MINUTES_PER_DAY and 0 <= end <= MINUTES_PER_DAY):
        raise ConfigError(f"{name} must lie within the day")
    if end < start:
        raise ConfigError(f"{name} ends before it starts")
    return TimeWindow(start, end)


def context_from_dict(data: dict) -> SiteContext:
    """Build a SiteContext from parsed YAML, filling gaps from the default."""
    mode = data.get("mode", DEFAULT_CONTEXT.mode)
    if mode not in MODES:
        raise ConfigError(f"Unknown mode {mode!r}, expected one of {', '.join(MODES)}")

    try:
        reserve = float(data.get("backup_reserve_pct", DEFAULT_CONTEXT.backup_reserve_pct))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"backup_reserve_pct must be a number: {e}") from e
    if not 0 <= reserve <= 100:
        raise ConfigError("backup_reserve_pct must be between 0 and 100")

    storm_watch_enabled = data.get("storm_watch_enabled", DEFAULT_CONTEXT.storm_watch_enabled)
    if not isinstance(storm_watch_enabled, bool):
        raise ConfigError(f"storm_watch_enabled must be true or false, got {storm_watch_enabled!r}")

    return SiteContext(
        mode=mode,
        backup_reserve_pct=reserve,
        peak_window=_parse_window(data.get("peak_window"), DEFAULT_CONTEXT.peak_window, "peak_window"),
        storm_watch_window=_parse_window(
            data.get("storm_watch_window"), DEFAULT_CONTEXT.storm_watch_window, "storm_watch_window"
        ),
        storm_watch_enabled=storm_watch_enabled,
    )


def load_context(config_path: Path | None = None) -> SiteContext:
    """Load the site context from YAML, or return the default context."""
    path = config_path or find_config_path()
    if path is None:
        logger.debug("No site config found, using default context")
        return DEFAULT_CONTEXT

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")

    logger.debug("Loaded site context from %s", path)
    return context_from_dict(data)
