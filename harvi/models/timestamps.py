from datetime import datetime, timedelta, timezone
from sqlalchemy import Column, DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TimestampMixin:
    """createdAt/updatedAt columns shared by every hierarchy entity.

    created_at is written once at insert. updated_at must move forward on
    every mutating write, so touch() never returns a value <= the previous one.
    """

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def touch(self) -> datetime:
        now = utcnow()
        if self.updated_at is not None:
            previous = _aware(self.updated_at)
            if now <= previous:
                now = previous + timedelta(microseconds=1)
        self.updated_at = now
        return now
