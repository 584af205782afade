"""用户订阅集合模型."""

from datetime import datetime

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from feedhub.utils.timeutil import utcnow


class Subscription(SQLModel, table=True):
    """用户订阅的一个 Feed."""

    __tablename__ = "subscriptions"  # type: ignore[assignment]
    __table_args__ = (UniqueConstraint("user_id", "source_url"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, description="用户标识")
    source_url: str = Field(index=True, description="Feed URL")
    position: int = Field(default=0, description="展示顺序（订阅顺序）")
    name: str | None = Field(default=None, description="用户自定义名称")
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    subscribed_at: datetime = Field(default_factory=utcnow)


class EntryState(SQLModel, table=True):
    """用户对某个条目的阅读状态."""

    __tablename__ = "entry_states"  # type: ignore[assignment]

    user_id: str = Field(primary_key=True)
    source_url: str = Field(primary_key=True)
    entry_id: str = Field(primary_key=True)
    read: bool = Field(default=False, description="是否已读")
    first_seen_at: datetime = Field(default_factory=utcnow, description="首次出现时间")
