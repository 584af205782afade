"""Entry 条目模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from feedhub.utils.timeutil import utcnow


class Entry(SQLModel, table=True):
    """订阅源中的一个条目，写入后不可变."""

    __tablename__ = "entries"  # type: ignore[assignment]

    source_url: str = Field(
        primary_key=True, foreign_key="feed_sources.url", description="所属 Feed"
    )
    entry_id: str = Field(primary_key=True, description="稳定标识 (guid 或内容哈希)")
    title: str = Field(description="标题")
    link: str | None = Field(default=None, description="原文链接")
    published_at: datetime = Field(index=True, description="发布时间（缺失时为抓取时间）")
    summary: str | None = Field(default=None, description="摘要/正文（原样保存）")
    fetched_at: datetime = Field(default_factory=utcnow, description="入库时间")
