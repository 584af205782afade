"""核心业务逻辑.

存储和同步器从各自的子模块导入（feedhub.core.source_store 等），
这里只导出错误类型，fetcher 可以依赖它而不形成循环导入。
"""

from feedhub.core.errors import (
    CollectionError,
    FetchError,
    FetchErrorKind,
    NotSubscribed,
    StoreError,
    StoreErrorKind,
    UnknownEntry,
)

__all__ = [
    "CollectionError",
    "FetchError",
    "FetchErrorKind",
    "NotSubscribed",
    "StoreError",
    "StoreErrorKind",
    "UnknownEntry",
]
