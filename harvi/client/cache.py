from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

MAX_LECTURE_AGE = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyedCache:
    """
    Small process-wide cache with explicit invalidation.

    Entries can expire after `max_age`; listeners registered with
    `on_invalidate` are told about every key that is dropped so dependent
    caches (stats, streaks) can follow.
    """

    def __init__(self, max_age: Optional[timedelta] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.max_age = max_age
        self._clock = clock
        self._entries: Dict[str, Tuple[datetime, Any]] = {}
        self._listeners: List[Callable[[str], None]] = []

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        stored_at, value = entry
        if self.max_age is not None and self._clock() - stored_at > self.max_age:
            self.invalidate(key)
            return default
        return value

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: str) -> bool:
        removed = self._entries.pop(key, None) is not None
        for listener in self._listeners:
            listener(key)
        return removed

    def clear(self) -> None:
        for key in list(self._entries):
            self.invalidate(key)

    def on_invalidate(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)


_MISSING = object()


def is_stale(cached_at: Optional[str], max_age: timedelta = MAX_LECTURE_AGE,
             now: Optional[datetime] = None) -> bool:
    """True when a cachedAt ISO timestamp is missing, unparsable or older than max_age."""
    if not cached_at:
        return True
    try:
        stored = datetime.fromisoformat(cached_at)
    except ValueError:
        return True
    if stored.tzinfo is None:
        stored = stored.replace(tzinfo=timezone.utc)
    return (now or _utcnow()) - stored > max_age
