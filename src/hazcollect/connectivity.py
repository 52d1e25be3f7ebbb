"""Offline-duration tracking and connectivity status notifications."""
import logging
import math
from typing import Callable, Protocol

from hazcollect.models import OfflineStatus, WarningLevel
from hazcollect.storage import KeyValueStore, safe_get, safe_remove, safe_set
from hazcollect.timefmt import MS_PER_HOUR, format_duration, format_last_sync, hours_to_ms, now_ms

logger = logging.getLogger(__name__)

OFFLINE_START_TIME_KEY = "@offline_start_time"
LAST_SYNC_TIME_KEY = "@last_sync_time"
TICK_INTERVAL_MS = 60 * 1000

OFFLINE_DURATION_LIMIT_MS = 10 * MS_PER_HOUR
# Highest matching threshold wins.
WARNING_TIERS = [
    (8 * MS_PER_HOUR, WarningLevel.WARNING),
    (9 * MS_PER_HOUR, WarningLevel.ORANGE),
    (int(9.5 * MS_PER_HOUR), WarningLevel.CRITICAL),
    (OFFLINE_DURATION_LIMIT_MS, WarningLevel.BLOCKED),
]

StatusListener = Callable[[OfflineStatus], None]


class ConnectivitySource(Protocol):
    def fetch(self) -> bool: ...

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]: ...


class ManualConnectivity:
    """Connectivity signal flipped by hand (console app, tests)."""

    def __init__(self, connected: bool = True):
        self.connected = connected
        self._callbacks: list[Callable[[bool], None]] = []

    def fetch(self) -> bool:
        return self.connected

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def set_connected(self, connected: bool) -> None:
        self.connected = connected
        for callback in tuple(self._callbacks):
            callback(connected)


def warning_level_for(duration_ms: int) -> WarningLevel:
    level = WarningLevel.NONE
    for threshold, tier in WARNING_TIERS:
        if duration_ms >= threshold:
            level = tier
    return level


def _parse_timestamp(raw: str | None, key: str) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.error("Ignoring unreadable timestamp %r under %s", raw, key)
        return None


class ConnectivityTracker:
    """Tracks online/offline transitions and how long the device has been offline.

    The offline start time is set when the device drops offline and is only
    cleared by ``on_sync_complete()`` while online, so reconnecting alone
    does not forget the offline stint.
    """

    def __init__(
        self,
        store: KeyValueStore,
        source: ConnectivitySource | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.source = source
        self.clock = clock
        self.is_online = True
        self.offline_start_time: int | None = None
        self.last_sync_time: int | None = None
        self._debug_duration_ms: int | None = None
        self._listeners: list[StatusListener] = []
        self._source_unsubscribe: Callable[[], None] | None = None

    def start(self) -> None:
        self.load()
        # A stored offline start means we shut down while offline or unsynced.
        self.is_online = self.offline_start_time is None
        if self.source is not None:
            self._source_unsubscribe = self.source.subscribe(self.handle_connectivity_change)
        self.handle_connectivity_change(self._fetch_connected())

    def stop(self) -> None:
        if self._source_unsubscribe is not None:
            self._source_unsubscribe()
            self._source_unsubscribe = None

    def load(self) -> None:
        self.offline_start_time = _parse_timestamp(
            safe_get(self.store, OFFLINE_START_TIME_KEY), OFFLINE_START_TIME_KEY
        )
        self.last_sync_time = _parse_timestamp(
            safe_get(self.store, LAST_SYNC_TIME_KEY), LAST_SYNC_TIME_KEY
        )

    def _save(self) -> None:
        if self.offline_start_time is not None:
            safe_set(self.store, OFFLINE_START_TIME_KEY, str(self.offline_start_time))
        else:
            safe_remove(self.store, OFFLINE_START_TIME_KEY)
        if self.last_sync_time is not None:
            safe_set(self.store, LAST_SYNC_TIME_KEY, str(self.last_sync_time))

    def _fetch_connected(self) -> bool:
        if self.source is None:
            return self.is_online
        try:
            return bool(self.source.fetch())
        except Exception:
            logger.exception("Connectivity check failed, assuming offline")
            return False

    def handle_connectivity_change(self, is_connected: bool) -> None:
        is_connected = bool(is_connected)
        was_online = self.is_online
        self.is_online = is_connected
        if not was_online and is_connected:
            logger.info("Device came back online")
        elif was_online and not is_connected:
            self.offline_start_time = self.clock()
            self._save()
            logger.info("Device went offline, timer started")
        self._notify()

    def tick(self) -> None:
        """Periodic refresh; only offline status changes over time."""
        if not self.is_online or self._debug_duration_ms is not None:
            self._notify()

    def on_sync_complete(self) -> None:
        if not self.is_online:
            return
        self.last_sync_time = self.clock()
        self.offline_start_time = None
        self._save()
        logger.info("Sync completed, offline timer reset")
        self._notify()

    def set_debug_override(self, hours: float | None) -> None:
        """Pretend the device has been offline for ``hours``; None clears the override."""
        if hours is None:
            self._debug_duration_ms = None
        else:
            if isinstance(hours, bool) or not isinstance(hours, (int, float)):
                raise ValueError(f"Override hours must be a number, got {hours!r}")
            try:
                duration = float(hours) * MS_PER_HOUR
            except OverflowError:
                duration = math.inf
            # Also rejects values that only overflow once converted to ms.
            if not math.isfinite(duration) or duration < 0:
                raise ValueError(f"Override hours must be a non-negative number, got {hours!r}")
            self._debug_duration_ms = hours_to_ms(hours)
        self._notify()

    def reset_debug_override(self) -> None:
        self.set_debug_override(None)

    def get_debug_override_hours(self) -> float | None:
        if self._debug_duration_ms is None:
            return None
        return self._debug_duration_ms / MS_PER_HOUR

    def get_status(self) -> OfflineStatus:
        now = self.clock()
        if self._debug_duration_ms is not None:
            is_online = False
            duration = self._debug_duration_ms
        else:
            is_online = self.is_online
            duration = 0
            if not is_online and self.offline_start_time is not None:
                duration = max(0, now - self.offline_start_time)

        return OfflineStatus(
            is_online=is_online,
            offline_duration_ms=duration,
            last_sync_time=self.last_sync_time,
            warning_level=warning_level_for(duration),
            is_blocked=duration >= OFFLINE_DURATION_LIMIT_MS,
            offline_duration_formatted=format_duration(duration),
            last_sync_formatted=format_last_sync(self.last_sync_time, now),
            offline_start_time=self.offline_start_time,
        )

    def is_blocked(self) -> bool:
        return self.get_status().is_blocked

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Subscribe to status snapshots. The listener is called once right away."""
        listener(self.get_status())
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        status = self.get_status()
        for listener in tuple(self._listeners):
            # Skip listeners removed by an earlier listener in this round.
            if listener in self._listeners:
                listener(status)
