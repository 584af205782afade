"""Collection Store - 用户订阅列表与阅读状态."""

import logging
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from feedhub.core.errors import NotSubscribed, StoreError, UnknownEntry
from feedhub.models.collection import EntryState, Subscription
from feedhub.models.entry import Entry
from feedhub.models.source import FeedSource
from feedhub.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


class EntryView(BaseModel):
    """带阅读状态的条目."""

    entry_id: str
    title: str
    link: str | None = None
    published_at: datetime
    summary: str | None = None
    read: bool
    first_seen_at: datetime


class FeedView(BaseModel):
    """用户集合中的一个 Feed."""

    url: str
    name: str | None = None
    title: str | None = None
    tags: list[str] = []
    last_status: str | None = None
    last_error: str | None = None
    last_fetched_at: datetime | None = None
    unread_count: int = 0
    entries: list[EntryView] = []


class CollectionStore:
    """user_id -> 订阅列表 + (url, entry_id) 阅读状态.

    按用户分区，不需要跨用户协调。
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        prune_on_unsubscribe: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self.prune_on_unsubscribe = prune_on_unsubscribe

    async def _get_subscription(
        self, session: AsyncSession, user_id: str, url: str
    ) -> Subscription | None:
        stmt = select(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.source_url == url,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def subscribe(
        self,
        user_id: str,
        url: str,
        name: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> Subscription:
        """订阅（幂等），不触发抓取."""
        try:
            async with self._session_factory() as session:
                existing = await self._get_subscription(session, user_id, url)
                if existing:
                    return existing

                stmt = select(func.max(Subscription.position)).where(
                    Subscription.user_id == user_id
                )
                last_position = (await session.execute(stmt)).scalar()

                subscription = Subscription(
                    user_id=user_id,
                    source_url=url,
                    position=(last_position + 1) if last_position is not None else 0,
                    name=name,
                    tags=sorted(set(tags or [])),
                )
                session.add(subscription)
                try:
                    await session.commit()
                except IntegrityError:
                    # 并发订阅同一 URL，以先写入的为准
                    await session.rollback()
                    existing = await self._get_subscription(session, user_id, url)
                    if existing is None:
                        raise
                    return existing
                logger.info(f"用户 {user_id} 订阅了 {url}")
                return subscription
        except SQLAlchemyError as e:
            raise StoreError.from_exception(f"{user_id}:{url}", e) from e

    async def unsubscribe(self, user_id: str, url: str) -> bool:
        """取消订阅，按配置清理阅读状态."""
        try:
            async with self._session_factory() as session:
                subscription = await self._get_subscription(session, user_id, url)
                if subscription is None:
                    return False

                await session.delete(subscription)
                if self.prune_on_unsubscribe:
                    await session.execute(
                        delete(EntryState).where(
                            EntryState.user_id == user_id,
                            EntryState.source_url == url,
                        )
                    )
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError.from_exception(f"{user_id}:{url}", e) from e

        logger.info(f"用户 {user_id} 取消订阅 {url}")
        return True

    async def is_subscribed(self, user_id: str, url: str) -> bool:
        try:
            async with self._session_factory() as session:
                return await self._get_subscription(session, user_id, url) is not None
        except SQLAlchemyError as e:
            raise StoreError.from_exception(f"{user_id}:{url}", e) from e

    async def subscribers(self, url: str) -> list[str]:
        """订阅了该 URL 的用户."""
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(Subscription.user_id)
                    .where(Subscription.source_url == url)
                    .order_by(Subscription.user_id)
                )
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError.from_exception(url, e) from e

    async def distinct_source_urls(self) -> list[str]:
        """所有用户订阅的去重 URL."""
        try:
            async with self._session_factory() as session:
                stmt = select(Subscription.source_url).distinct()
                result = await session.execute(stmt)
                return sorted(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError.from_exception("subscriptions", e) from e

    async def list_subscriptions(self, user_id: str) -> list[Subscription]:
        """用户的订阅（按订阅顺序）."""
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(Subscription)
                    .where(Subscription.user_id == user_id)
                    .order_by(Subscription.position, Subscription.id)
                )
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError.from_exception(user_id, e) from e

    async def record_new_entries(
        self, user_id: str, url: str, entry_ids: Iterable[str]
    ) -> int:
        """
        把新条目记为未读.

        已记录过的条目不做任何修改（不会被重新标为未读）。

        Returns:
            实际新增的条目数
        """
        ids = set(entry_ids)
        if not ids:
            return 0

        try:
            async with self._session_factory() as session:
                stmt = select(EntryState.entry_id).where(
                    EntryState.user_id == user_id,
                    EntryState.source_url == url,
                    EntryState.entry_id.in_(ids),  # type: ignore[attr-defined]
                )
                known = set((await session.execute(stmt)).scalars().all())

                now = utcnow()
                added = 0
                for entry_id in sorted(ids - known):
                    session.add(
                        EntryState(
                            user_id=user_id,
                            source_url=url,
                            entry_id=entry_id,
                            read=False,
                            first_seen_at=now,
                        )
                    )
                    added += 1
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError.from_exception(f"{user_id}:{url}", e) from e

        return added

    async def set_read_state(
        self, user_id: str, url: str, entry_id: str, read: bool
    ) -> EntryState:
        """
        设置条目已读/未读.

        Raises:
            NotSubscribed: 用户当前未订阅该 URL
            UnknownEntry: 条目从未记录
        """
        try:
            async with self._session_factory() as session:
                if await self._get_subscription(session, user_id, url) is None:
                    raise NotSubscribed(user_id, url)

                state = await session.get(EntryState, (user_id, url, entry_id))
                if state is None:
                    raise UnknownEntry(user_id, url, entry_id)

                state.read = read
                await session.commit()
                return state
        except SQLAlchemyError as e:
            raise StoreError.from_exception(f"{user_id}:{url}", e) from e

    async def set_feed_info(
        self,
        user_id: str,
        url: str,
        name: str | None,
        tags: Iterable[str] | None = None,
    ) -> Subscription:
        """设置订阅的显示名称和标签."""
        try:
            async with self._session_factory() as session:
                subscription = await self._get_subscription(session, user_id, url)
                if subscription is None:
                    raise NotSubscribed(user_id, url)

                subscription.name = name
                subscription.tags = sorted(set(tags or []))
                await session.commit()
                return subscription
        except SQLAlchemyError as e:
            raise StoreError.from_exception(f"{user_id}:{url}", e) from e

    async def list_for_user(self, user_id: str) -> list[FeedView]:
        """用户集合视图：按订阅顺序的 Feed 列表，附带条目和阅读状态."""
        subscriptions = await self.list_subscriptions(user_id)

        try:
            async with self._session_factory() as session:
                feeds: list[FeedView] = []
                for subscription in subscriptions:
                    url = subscription.source_url
                    source = await session.get(FeedSource, url)

                    stmt = (
                        select(Entry, EntryState)
                        .join(
                            EntryState,
                            (EntryState.source_url == Entry.source_url)
                            & (EntryState.entry_id == Entry.entry_id),
                        )
                        .where(
                            EntryState.user_id == user_id,
                            EntryState.source_url == url,
                        )
                        .order_by(Entry.published_at.desc(), Entry.title.asc())
                    )
                    rows = (await session.execute(stmt)).all()

                    entries = [
                        EntryView(
                            entry_id=entry.entry_id,
                            title=entry.title,
                            link=entry.link,
                            published_at=entry.published_at,
                            summary=entry.summary,
                            read=state.read,
                            first_seen_at=state.first_seen_at,
                        )
                        for entry, state in rows
                    ]

                    feeds.append(
                        FeedView(
                            url=url,
                            name=subscription.name,
                            title=source.title if source else None,
                            tags=list(subscription.tags or []),
                            last_status=source.last_status if source else None,
                            last_error=source.last_error if source else None,
                            last_fetched_at=source.last_fetched_at if source else None,
                            unread_count=sum(1 for e in entries if not e.read),
                            entries=entries,
                        )
                    )
                return feeds
        except SQLAlchemyError as e:
            raise StoreError.from_exception(user_id, e) from e
