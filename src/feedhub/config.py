"""应用配置管理."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置（环境变量）."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 存储配置
    database_url: str = "sqlite+aiosqlite:///./feedhub.db"

    # 同步周期配置
    sync_interval_hours: float = Field(default=24, gt=0)
    shutdown_grace_seconds: float = Field(default=10, ge=0)

    # 抓取配置
    fetch_concurrency: int = Field(default=4, ge=1)
    fetch_timeout_seconds: float = Field(default=30, gt=0)  # 后台周期
    interactive_fetch_timeout_seconds: float = Field(default=10, gt=0)  # 用户触发
    user_agent: str = "FeedHub/0.1 (+https://github.com/feedhub/feedhub)"

    # 订阅策略
    read_state_retention: Literal["prune", "retain"] = "prune"
    retain_orphaned_sources: bool = True

    # 身份层传入的用户标识
    user_id_header: str = "X-User-Id"

    log_level: str = "INFO"

    @property
    def prune_read_state(self) -> bool:
        """取消订阅时是否立即清理已读状态."""
        return self.read_state_retention == "prune"


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()
