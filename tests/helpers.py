"""测试辅助：示例 Feed 和假的 Fetcher."""

import asyncio
from datetime import datetime

from feedhub.core.errors import FetchError
from feedhub.fetcher.client import FetchResult, Validators
from feedhub.fetcher.parser import ParsedEntry

FEED_URL = "https://example.com/feed.xml"
OTHER_URL = "https://example.org/atom.xml"

RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example RSS</title>
    <link>https://example.com/</link>
    <description>Example</description>
    <item>
      <guid>a</guid>
      <title>First</title>
      <link>https://example.com/a</link>
      <pubDate>Mon, 06 Sep 2021 16:45:00 GMT</pubDate>
      <description>hello</description>
    </item>
    <item>
      <title>No guid</title>
      <link>https://example.com/b</link>
    </item>
    <item>
      <guid>a</guid>
      <title>First (duplicate)</title>
    </item>
  </channel>
</rss>
"""

ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom</title>
  <id>urn:example:feed</id>
  <updated>2021-09-06T16:45:00Z</updated>
  <entry>
    <id>urn:example:e1</id>
    <title>Atom Entry</title>
    <link href="https://example.com/e1"/>
    <updated>2021-09-06T16:45:00Z</updated>
    <summary>atom summary</summary>
  </entry>
</feed>
"""

JSON_FEED = b"""{
  "version": "https://jsonfeed.org/version/1.1",
  "title": "Example JSON",
  "items": [
    {
      "id": "j1",
      "title": "JSON Entry",
      "url": "https://example.com/j1",
      "date_published": "2021-09-06T16:45:00Z",
      "content_text": "json body"
    }
  ]
}
"""


def make_entry(entry_id: str, title: str | None = None, day: int = 1) -> ParsedEntry:
    """构造测试条目."""
    return ParsedEntry(
        entry_id=entry_id,
        title=title or f"Entry {entry_id}",
        link=f"https://example.com/{entry_id}",
        published_at=datetime(2024, 1, day, 12, 0, 0),
        summary=f"Summary {entry_id}",
    )


class FakeFetcher:
    """测试用 Fetcher：按 URL 返回预设结果并记录调用次数."""

    def __init__(self) -> None:
        self.responses: dict[str, list[ParsedEntry] | FetchError | str] = {}
        self.calls: dict[str, int] = {}
        self.validators_seen: dict[str, Validators | None] = {}
        self.timeouts_seen: dict[str, float] = {}
        self.delay: float = 0

    def set(self, url: str, response: list[ParsedEntry] | FetchError | str) -> None:
        """设置 URL 的返回：条目列表、FetchError 或 "not_modified"."""
        self.responses[url] = response

    def count(self, url: str) -> int:
        return self.calls.get(url, 0)

    async def fetch(
        self, url: str, timeout: float, validators: Validators | None = None
    ) -> FetchResult:
        self.calls[url] = self.calls.get(url, 0) + 1
        self.validators_seen[url] = validators
        self.timeouts_seen[url] = timeout
        if self.delay:
            await asyncio.sleep(self.delay)

        response = self.responses.get(url, [])
        if isinstance(response, FetchError):
            raise response
        if response == "not_modified":
            return FetchResult(url=url, not_modified=True, etag='"v1"')
        return FetchResult(
            url=url,
            title=f"Feed {url}",
            format="rss20",
            entries=list(response),
            etag='"v1"',
        )
