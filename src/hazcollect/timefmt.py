"""Duration and timestamp display helpers. All times are epoch milliseconds."""
import time
from datetime import datetime

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR


def now_ms() -> int:
    return int(time.time() * 1000)


def hours_to_ms(hours: float) -> int:
    return int(round(hours * MS_PER_HOUR))


def format_duration(ms: int) -> str:
    """Offline-banner style: '2 hrs 15 min' or '45 min'."""
    ms = max(0, ms)
    hours = ms // MS_PER_HOUR
    minutes = (ms % MS_PER_HOUR) // MS_PER_MINUTE
    if hours > 0:
        return f"{hours} hrs {minutes} min"
    return f"{minutes} min"


def format_elapsed(ms: int) -> str:
    """Compact style used for service timers: '2h 15m', '2h', '45m', '<1m'."""
    minutes = max(0, ms) // MS_PER_MINUTE
    hours = minutes // 60
    if hours > 0:
        remaining = minutes % 60
        return f"{hours}h {remaining}m" if remaining > 0 else f"{hours}h"
    if minutes > 0:
        return f"{minutes}m"
    return "<1m"


def _clock_time(dt: datetime) -> str:
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{hour}:{dt.minute:02d} {suffix}"


def format_last_sync(timestamp: int | None, now: int | None = None) -> str:
    if timestamp is None:
        return "Never"
    if now is None:
        now = now_ms()
    diff = now - timestamp
    sync_dt = datetime.fromtimestamp(timestamp / 1000)
    now_dt = datetime.fromtimestamp(now / 1000)

    if sync_dt.date() == now_dt.date():
        return f"Today {_clock_time(sync_dt)}"
    elif diff < MS_PER_MINUTE:
        return "Just now"
    elif diff < MS_PER_HOUR:
        return f"{diff // MS_PER_MINUTE} min ago"
    elif diff < MS_PER_DAY:
        return f"{diff // MS_PER_HOUR} hrs ago"
    elif diff < 7 * MS_PER_DAY:
        days = diff // MS_PER_DAY
        return f"{days} day{'s' if days != 1 else ''} ago"
    return sync_dt.strftime("%m/%d/%Y %H:%M")
