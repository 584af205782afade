"""FeedSource 订阅源缓存模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from feedhub.utils.timeutil import utcnow


class FeedSource(SQLModel, table=True):
    """共享的订阅源（所有用户共用，按 URL 唯一）."""

    __tablename__ = "feed_sources"  # type: ignore[assignment]

    url: str = Field(primary_key=True, description="Feed URL")
    title: str | None = Field(default=None, description="Feed 标题")
    format: str | None = Field(default=None, description="格式: rss20|atom10|json11 等")
    last_fetched_at: datetime | None = Field(default=None, description="最近一次抓取时间")
    last_success_at: datetime | None = Field(default=None, description="最近一次成功时间")
    last_status: str | None = Field(
        default=None, description="最近一次结果: success|not_modified|failed"
    )
    last_error: str | None = Field(default=None, description="最近一次失败原因")
    last_error_kind: str | None = Field(default=None, description="失败类型")
    etag: str | None = Field(default=None, description="ETag 校验值")
    last_modified: str | None = Field(default=None, description="Last-Modified 校验值")
    created_at: datetime = Field(default_factory=utcnow)
