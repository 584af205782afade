"""Source Store - 共享的 Feed 缓存与合并."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from feedhub.core.collection_store import CollectionStore
from feedhub.core.errors import StoreError
from feedhub.core.locks import KeyedLock
from feedhub.fetcher.client import Validators
from feedhub.fetcher.parser import ParsedEntry
from feedhub.models.entry import Entry
from feedhub.models.source import FeedSource
from feedhub.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


class FetchStatus:
    """抓取结果状态."""

    SUCCESS = "success"
    NOT_MODIFIED = "not_modified"
    FAILED = "failed"


@dataclass
class FetchOutcome:
    """一次抓取的元数据，合并时写入 FeedSource."""

    status: str
    attempted_at: datetime
    title: str | None = None
    format: str | None = None
    etag: str | None = None
    last_modified: str | None = None
    error: str | None = None
    error_kind: str | None = None


class SourceStore:
    """URL -> FeedSource，所有用户共享.

    同一 URL 的 merge 串行执行，不同 URL 互不阻塞。
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collections: CollectionStore,
    ) -> None:
        self._session_factory = session_factory
        self._collections = collections
        self._locks = KeyedLock()

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    async def get(self, url: str) -> FeedSource | None:
        """获取订阅源，不存在返回 None."""
        try:
            async with self._session_factory() as session:
                return await session.get(FeedSource, url)
        except SQLAlchemyError as e:
            raise StoreError.from_exception(url, e) from e

    async def get_validators(self, url: str) -> Validators | None:
        """获取条件请求校验值."""
        source = await self.get(url)
        if source is None or not (source.etag or source.last_modified):
            return None
        return Validators(etag=source.etag, last_modified=source.last_modified)

    async def get_entries(self, url: str) -> list[Entry]:
        """获取订阅源的全部条目（新的在前）."""
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(Entry)
                    .where(Entry.source_url == url)
                    .order_by(Entry.published_at.desc(), Entry.title.asc())
                )
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError.from_exception(url, e) from e

    async def get_entry_ids(self, url: str) -> set[str]:
        """获取订阅源已存储的条目标识."""
        try:
            async with self._session_factory() as session:
                return await self._entry_ids(session, url)
        except SQLAlchemyError as e:
            raise StoreError.from_exception(url, e) from e

    async def _entry_ids(self, session: AsyncSession, url: str) -> set[str]:
        stmt = select(Entry.entry_id).where(Entry.source_url == url)
        result = await session.execute(stmt)
        return set(result.scalars().all())

    async def merge(
        self,
        url: str,
        fetched_entries: list[ParsedEntry] | None,
        outcome: FetchOutcome,
        require_subscribers: bool = False,
    ) -> set[str] | None:
        """
        合并抓取结果.

        只追加新条目（按稳定标识去重），已有条目保持不变；
        无论是否有新条目都会更新抓取元数据。

        Args:
            url: Feed URL
            fetched_entries: 抓取到的条目，抓取失败或未修改时为 None
            outcome: 抓取元数据
            require_subscribers: 为 True 时无人订阅则不合并

        Returns:
            新增条目的标识集合；因无人订阅而跳过时为 None
        """
        async with self._locks.acquire(url):
            if require_subscribers and not await self._collections.subscribers(url):
                return None

            try:
                async with self._session_factory() as session:
                    source = await session.get(FeedSource, url)
                    if source is None:
                        source = FeedSource(url=url)
                        if outcome.status == FetchStatus.NOT_MODIFIED:
                            # 缓存已被回收，不保留校验值，下次完整抓取
                            outcome = replace(outcome, etag=None, last_modified=None)

                    self._apply_outcome(source, outcome)
                    session.add(source)

                    new_ids: set[str] = set()
                    if fetched_entries:
                        existing = await self._entry_ids(session, url)
                        for item in fetched_entries:
                            if item.entry_id in existing or item.entry_id in new_ids:
                                continue
                            session.add(
                                Entry(
                                    source_url=url,
                                    entry_id=item.entry_id,
                                    title=item.title,
                                    link=item.link,
                                    published_at=item.published_at,
                                    summary=item.summary,
                                    fetched_at=outcome.attempted_at,
                                )
                            )
                            new_ids.add(item.entry_id)

                    await session.commit()
            except SQLAlchemyError as e:
                raise StoreError.from_exception(url, e) from e

        if new_ids:
            logger.info(f"{url}: 新增 {len(new_ids)} 条")
        return new_ids

    def _apply_outcome(self, source: FeedSource, outcome: FetchOutcome) -> None:
        """写入抓取元数据."""
        source.last_fetched_at = outcome.attempted_at
        source.last_status = outcome.status

        if outcome.status == FetchStatus.FAILED:
            # 保留原有条目和校验值
            source.last_error = outcome.error
            source.last_error_kind = outcome.error_kind
            return

        source.last_success_at = outcome.attempted_at
        source.last_error = None
        source.last_error_kind = None
        if outcome.etag or outcome.last_modified:
            source.etag = outcome.etag
            source.last_modified = outcome.last_modified
        if outcome.status == FetchStatus.SUCCESS:
            if outcome.title:
                source.title = outcome.title
            if outcome.format:
                source.format = outcome.format

    async def list_subscribed_users(self, url: str) -> list[str]:
        """订阅该 URL 的用户（以 Collection Store 为准）."""
        return await self._collections.subscribers(url)

    async def delete(self, url: str, only_if_orphaned: bool = False) -> bool:
        """
        删除订阅源及其条目.

        only_if_orphaned 为 True 时在锁内复查订阅者，仍有人订阅则不删除。
        """
        async with self._locks.acquire(url):
            if only_if_orphaned and await self._collections.subscribers(url):
                return False

            try:
                async with self._session_factory() as session:
                    source = await session.get(FeedSource, url)
                    if source is None:
                        return False
                    await session.execute(delete(Entry).where(Entry.source_url == url))
                    await session.delete(source)
                    await session.commit()
            except SQLAlchemyError as e:
                raise StoreError.from_exception(url, e) from e

        logger.info(f"已删除无人订阅的 Feed: {url}")
        return True


def failed_outcome(
    error: str, error_kind: str, attempted_at: datetime | None = None
) -> FetchOutcome:
    """构造失败元数据."""
    return FetchOutcome(
        status=FetchStatus.FAILED,
        attempted_at=attempted_at or utcnow(),
        error=error,
        error_kind=error_kind,
    )
