"""Feed 解析：RSS / Atom / JSON Feed 统一为 ParsedEntry."""

import hashlib
import logging
from datetime import datetime
from typing import Any

import feedparser
from pydantic import BaseModel, ConfigDict, ValidationError

from feedhub.core.errors import FetchError, FetchErrorKind
from feedhub.utils.timeutil import from_iso8601, from_struct_time, utcnow

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPES = ("application/feed+json", "application/json")
UTF8_BOM = b"\xef\xbb\xbf"


class ParsedEntry(BaseModel):
    """标准化后的条目."""

    entry_id: str
    title: str
    link: str | None = None
    published_at: datetime
    summary: str | None = None


class ParsedFeed(BaseModel):
    """解析结果."""

    title: str | None = None
    format: str | None = None
    entries: list[ParsedEntry] = []


class JsonFeedItem(BaseModel):
    """JSON Feed 1.0 / 1.1 条目（只取用到的字段）."""

    model_config = ConfigDict(extra="ignore")

    id: str | int | None = None
    url: str | None = None
    external_url: str | None = None
    title: str | None = None
    content_html: str | None = None
    content_text: str | None = None
    summary: str | None = None
    date_published: str | None = None
    date_modified: str | None = None


class JsonFeed(BaseModel):
    """JSON Feed 文档."""

    model_config = ConfigDict(extra="ignore")

    version: str | None = None
    title: str | None = None
    items: list[JsonFeedItem]


def detect_format(content: bytes, content_type: str | None = None) -> str:
    """
    判断响应体格式.

    Returns:
        "json" | "atom" | "rss" | "unknown"
    """
    media_type = (content_type or "").split(";")[0].strip().lower()
    if media_type in JSON_CONTENT_TYPES:
        return "json"

    head = content.lstrip()[:512]
    if head.startswith(UTF8_BOM):
        head = head[3:].lstrip()
    if head.startswith((b"{", b"[")):
        return "json"
    if b"<feed" in head:
        return "atom"
    if b"<rss" in head or b"<rdf" in head or b"<?xml" in head:
        return "rss"
    return "unknown"


def make_entry_id(title: str, link: str | None, published_raw: str | None) -> str:
    """没有 guid 时用 标题+链接+原始发布时间 生成稳定标识."""
    digest = hashlib.sha256(
        f"{title}|{link or ''}|{published_raw or ''}".encode()
    ).hexdigest()
    return f"sha256:{digest[:32]}"


def _entry_summary(entry: Any) -> str | None:
    """正文优先，没有则用摘要."""
    contents = entry.get("content")
    if contents:
        value = contents[0].get("value")
        if value:
            return value
    return entry.get("summary") or None


def normalize_entry(entry: Any, fetched_at: datetime) -> ParsedEntry:
    """把 feedparser 条目转为 ParsedEntry."""
    title = entry.get("title") or "No title"
    link = entry.get("link") or None
    published_raw = entry.get("published") or entry.get("updated")

    published_at = from_struct_time(
        entry.get("published_parsed") or entry.get("updated_parsed")
    )

    entry_id = entry.get("id") or make_entry_id(title, link, published_raw)

    return ParsedEntry(
        entry_id=str(entry_id),
        title=title,
        link=link,
        published_at=published_at or fetched_at,
        summary=_entry_summary(entry),
    )


def normalize_json_item(item: JsonFeedItem, fetched_at: datetime) -> ParsedEntry:
    """把 JSON Feed 条目转为 ParsedEntry."""
    title = item.title or "No title"
    link = item.url or item.external_url
    published_raw = item.date_published or item.date_modified

    entry_id = item.id if item.id not in (None, "") else None
    if entry_id is None:
        entry_id = make_entry_id(title, link, published_raw)

    return ParsedEntry(
        entry_id=str(entry_id),
        title=title,
        link=link,
        published_at=from_iso8601(published_raw) or fetched_at,
        summary=item.content_html or item.content_text or item.summary,
    )


def _parse_json_feed(
    content: bytes, fetched_at: datetime
) -> tuple[str | None, list[ParsedEntry]]:
    """
    解析 JSON Feed.

    Raises:
        FetchError: 不是合法 JSON，或缺少 items 列表
    """
    try:
        document = JsonFeed.model_validate_json(content.strip().removeprefix(UTF8_BOM))
    except ValidationError as e:
        msg = f"无效的 JSON Feed: {e.errors()[0]['msg']}"
        raise FetchError(FetchErrorKind.PARSE_ERROR, msg) from e

    entries = [normalize_json_item(item, fetched_at) for item in document.items]
    return document.title or None, entries


def _parse_xml_feed(
    content: bytes, content_type: str | None, fetched_at: datetime
) -> tuple[str | None, str | None, list[ParsedEntry]]:
    """
    用 feedparser 解析 RSS / Atom.

    Raises:
        FetchError: 内容不是可识别的 Feed
    """
    headers = {"content-type": content_type} if content_type else {}
    parsed = feedparser.parse(content, response_headers=headers)

    if not parsed.get("version") and not parsed.entries:
        reason = parsed.get("bozo_exception") or "无法识别的 Feed 格式"
        msg = str(reason)
        raise FetchError(FetchErrorKind.PARSE_ERROR, msg)

    if parsed.get("bozo"):
        logger.debug(f"Feed 内容不规范但可解析: {parsed.get('bozo_exception')}")

    entries = [normalize_entry(raw, fetched_at) for raw in parsed.entries]
    return parsed.feed.get("title") or None, parsed.get("version") or None, entries


def parse_feed(
    content: bytes,
    content_type: str | None = None,
    fetched_at: datetime | None = None,
) -> ParsedFeed:
    """
    解析 Feed 内容.

    Args:
        content: 响应体
        content_type: 响应头 Content-Type
        fetched_at: 抓取时间（缺少发布时间的条目使用）

    Raises:
        FetchError: 内容不是可识别的 Feed
    """
    fetched_at = fetched_at or utcnow()
    fmt = detect_format(content, content_type)

    if fmt == "json":
        title, parsed_entries = _parse_json_feed(content, fetched_at)
        version: str | None = "json"
    else:
        title, version, parsed_entries = _parse_xml_feed(content, content_type, fetched_at)

    entries: list[ParsedEntry] = []
    seen: set[str] = set()
    for entry in parsed_entries:
        # 同一份 Feed 里重复的条目只保留第一条
        if entry.entry_id in seen:
            continue
        seen.add(entry.entry_id)
        entries.append(entry)

    return ParsedFeed(
        title=title,
        format=version or fmt,
        entries=entries,
    )
