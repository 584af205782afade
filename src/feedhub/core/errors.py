"""错误类型定义."""

from enum import StrEnum

from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError


class FetchErrorKind(StrEnum):
    """抓取错误类型."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    PARSE_ERROR = "parse_error"


class FetchError(Exception):
    """抓取失败（总是可恢复，下个周期重试）."""

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @property
    def reason(self) -> str:
        """可展示的失败原因."""
        if self.kind == FetchErrorKind.HTTP_STATUS and self.status_code:
            return f"HTTP {self.status_code}: {self.message}"
        return f"{self.kind.value}: {self.message}"


class StoreErrorKind(StrEnum):
    """存储错误类型."""

    IO_FAILURE = "io_failure"
    CORRUPTION = "corruption"


class StoreError(Exception):
    """存储读写失败，按 key 隔离."""

    def __init__(self, kind: StoreErrorKind, key: str, message: str) -> None:
        super().__init__(f"[{kind.value}] {key}: {message}")
        self.kind = kind
        self.key = key
        self.message = message

    @classmethod
    def from_exception(cls, key: str, exc: SQLAlchemyError) -> "StoreError":
        """把 SQLAlchemy 异常映射为 StoreError."""
        if isinstance(exc, IntegrityError | DataError):
            return cls(StoreErrorKind.CORRUPTION, key, str(exc.orig or exc))
        return cls(StoreErrorKind.IO_FAILURE, key, str(exc))


class CollectionError(Exception):
    """用户集合操作的校验错误."""


class NotSubscribed(CollectionError):
    """用户未订阅该 Feed."""

    def __init__(self, user_id: str, url: str) -> None:
        super().__init__(f"用户 {user_id} 未订阅 {url}")
        self.user_id = user_id
        self.url = url


class UnknownEntry(CollectionError):
    """条目从未记录到用户集合中."""

    def __init__(self, user_id: str, url: str, entry_id: str) -> None:
        super().__init__(f"未知条目 {entry_id} ({url})")
        self.user_id = user_id
        self.url = url
        self.entry_id = entry_id
