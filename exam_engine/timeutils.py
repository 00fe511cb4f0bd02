# exam_engine/timeutils.py
# 모든 시각은 UTC aware datetime 으로 다룬다.
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """naive 값(SQLite 등에서 읽은 값)은 UTC로 간주한다."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
