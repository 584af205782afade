"""时间工具."""

import time
from datetime import UTC, datetime


def utcnow() -> datetime:
    """当前 UTC 时间（naive，SQLite 存储用）."""
    return datetime.now(UTC).replace(tzinfo=None)


def from_struct_time(value: time.struct_time | None) -> datetime | None:
    """feedparser 的 *_parsed 字段转 datetime（已是 UTC）."""
    if not value:
        return None
    try:
        return datetime(*value[:6])
    except (TypeError, ValueError):
        return None


def from_iso8601(value: str | None) -> datetime | None:
    """RFC 3339 时间字符串转 naive UTC datetime，无法解析返回 None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed
