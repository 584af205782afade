"""数据模型."""

from feedhub.models.collection import EntryState, Subscription
from feedhub.models.database import close_db, create_session_factory, create_tables, init_db
from feedhub.models.entry import Entry
from feedhub.models.source import FeedSource

__all__ = [
    "Entry",
    "EntryState",
    "FeedSource",
    "Subscription",
    "close_db",
    "create_session_factory",
    "create_tables",
    "init_db",
]
