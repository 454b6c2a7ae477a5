from datetime import datetime, date, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

WEEKDAY_NAMES: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def today_for_tz(tz_name: str | None) -> date:
    """Return today's date in the user's timezone."""
    if tz_name:
        try:
            return datetime.now(ZoneInfo(tz_name)).date()
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return today_utc()


def start_of_week(d: date) -> date:
    """Return Monday of the week containing d."""
    return d - timedelta(days=d.weekday())


def weekday_name(d: date) -> str:
    return WEEKDAY_NAMES[d.weekday()]


def next_weekday_name(d: date) -> str:
    return WEEKDAY_NAMES[(d.weekday() + 1) % 7]


def normalize_day_name(value: str | None) -> str | None:
    """Map 'monday', ' MONDAY ', 'Mon' to the canonical 'Monday'."""
    cleaned = (value or "").strip().lower()
    if not cleaned:
        return None
    for name in WEEKDAY_NAMES:
        lowered = name.lower()
        if cleaned == lowered or (len(cleaned) >= 3 and lowered.startswith(cleaned)):
            return name
    return None


def add_hours_to_clock(clock: str, hours: float) -> str:
    """Add a duration to an HH:MM clock time, wrapping past midnight."""
    hh, mm = clock.split(":", 1)
    total = int(hh) * 60 + int(mm) + int(round(hours * 60))
    total %= 24 * 60
    return f"{total // 60:02d}:{total % 60:02d}"
