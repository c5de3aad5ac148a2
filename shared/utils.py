"""Shared utility functions."""
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

# Symbolic period labels understood by the tools. None means unbounded.
PERIOD_DAYS = {
    "last7": 7,
    "last30": 30,
    "last60": 60,
    "last90": 90,
    "last180": 180,
    "lastyear": 365,
    "all": None,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def period_to_days(label: Optional[str], default: Optional[int] = 90) -> Optional[int]:
    """Translate a symbolic period like "last30" into a day count.

    Unknown or missing labels fall back to ``default``. ``"all"`` yields None
    (no lower bound).
    """
    if not label:
        return default
    key = str(label).strip().lower().replace(" ", "").replace("_", "")
    if key in PERIOD_DAYS:
        return PERIOD_DAYS[key]
    # Accept "30d" style shorthands as well
    if key.endswith("d") and key[:-1].isdigit():
        return int(key[:-1])
    return default


def cutoff_date(days: Optional[int], today: date) -> Optional[date]:
    """Lower date bound for a window of ``days`` ending today."""
    if days is None:
        return None
    return today - timedelta(days=days)


def comparison_windows(
    recent_days: int,
    baseline_days: int,
    today: date
) -> Tuple[Tuple[date, Optional[date]], Tuple[date, date]]:
    """Return (recent, baseline) windows as (since, until) pairs.

    The recent window covers the last ``recent_days``; the baseline window
    starts ``baseline_days`` ago and stops where the recent window begins.
    """
    recent_since = today - timedelta(days=recent_days)
    baseline_since = today - timedelta(days=baseline_days)
    if baseline_since > recent_since:
        baseline_since = recent_since
    return (recent_since, None), (baseline_since, recent_since)


def today_from(clock: Callable[[], datetime]) -> date:
    return clock().date()
