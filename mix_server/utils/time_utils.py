from datetime import datetime, timedelta, timezone
import threading
from typing import Optional


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (pymongo returns naive UTC by default)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def sort_key(dt: Optional[datetime]) -> datetime:
    """Ordering key for optional timestamps; missing values sort as the epoch."""
    return ensure_utc(dt) or EPOCH


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


class MonotonicClock:
    """Server-side write clock.

    Every call to now() returns a value strictly greater than the previous
    one, even when the wall clock stalls or steps backwards, so documents
    written in sequence always order in sequence.
    """

    # BSON dates only keep milliseconds, so the tick must survive a round trip.
    TICK = timedelta(milliseconds=1)

    def __init__(self, source=utc_now):
        self._source = source
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = ensure_utc(self._source())
            current = current.replace(microsecond=(current.microsecond // 1000) * 1000)
            if self._last is not None and current <= self._last:
                current = self._last + self.TICK
            self._last = current
            return current
