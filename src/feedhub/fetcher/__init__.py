"""Feed 抓取模块."""

from feedhub.fetcher.client import FeedFetcher, FetchResult, Validators
from feedhub.fetcher.parser import ParsedEntry, ParsedFeed, detect_format, parse_feed

__all__ = [
    "FeedFetcher",
    "FetchResult",
    "ParsedEntry",
    "ParsedFeed",
    "Validators",
    "detect_format",
    "parse_feed",
]
