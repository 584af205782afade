"""同步器 - 抓取、合并、分发新条目."""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from feedhub.config import Settings
from feedhub.core.collection_store import CollectionStore
from feedhub.core.errors import FetchError, StoreError
from feedhub.core.source_store import FetchOutcome, FetchStatus, SourceStore, failed_outcome
from feedhub.fetcher.client import FetchResult, Validators
from feedhub.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    """Feed 抓取接口."""

    async def fetch(
        self, url: str, timeout: float, validators: Validators | None = None
    ) -> FetchResult: ...


class SyncStatus:
    """单个 Feed 同步结果."""

    SUCCESS = "success"
    NOT_MODIFIED = "not_modified"
    FAILED = "failed"
    SKIPPED = "skipped"  # 无人订阅或已放弃


@dataclass
class SyncOutcome:
    """单个 Feed 的同步结果."""

    url: str
    status: str
    new_entries: int = 0
    total_entries: int = 0
    title: str | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.SUCCESS, SyncStatus.NOT_MODIFIED)


@dataclass
class SyncFailure:
    """周期中的一次失败."""

    url: str
    kind: str
    reason: str


@dataclass
class CycleReport:
    """一次同步周期的汇总."""

    trigger: str
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    unchanged: int = 0
    skipped: int = 0
    new_entries: int = 0
    failures: list[SyncFailure] = field(default_factory=list)
    outcomes: dict[str, SyncOutcome] = field(default_factory=dict)

    def record(self, outcome: SyncOutcome) -> None:
        """记录一个 Feed 的结果."""
        self.outcomes[outcome.url] = outcome
        self.new_entries += outcome.new_entries
        if outcome.status == SyncStatus.SUCCESS:
            self.succeeded += 1
        elif outcome.status == SyncStatus.NOT_MODIFIED:
            self.unchanged += 1
        elif outcome.status == SyncStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.failures.append(
                SyncFailure(
                    url=outcome.url,
                    kind=outcome.error_kind or "unknown",
                    reason=outcome.error or "未知错误",
                )
            )


class Synchronizer:
    """编排抓取周期.

    每个 URL 每个周期只抓取一次；单个 Feed 的失败只记录在它自己的结果里。
    """

    def __init__(
        self,
        fetcher: Fetcher,
        sources: SourceStore,
        collections: CollectionStore,
        settings: Settings,
    ) -> None:
        self.fetcher = fetcher
        self.sources = sources
        self.collections = collections
        self.settings = settings
        self._abandoned = False

    def abandon(self) -> None:
        """关闭时调用：之后返回的抓取结果全部丢弃，不再合并."""
        self._abandoned = True

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def _timeout(self, interactive: bool) -> float:
        if interactive:
            return self.settings.interactive_fetch_timeout_seconds
        return self.settings.fetch_timeout_seconds

    async def sync_one(self, url: str, interactive: bool = False) -> SyncOutcome:
        """
        同步单个 Feed.

        抓取 -> 合并到 Source Store -> 新条目分发给所有订阅者。
        抓取失败只更新元数据，已有条目保持不变。
        """
        try:
            validators = await self.sources.get_validators(url)
        except StoreError as e:
            logger.warning(f"读取 Feed 元数据失败: {url} - {e}")
            return self._store_failure(url, e)

        attempted_at = utcnow()
        result: FetchResult | FetchError
        try:
            result = await self.fetcher.fetch(url, self._timeout(interactive), validators)
        except FetchError as e:
            result = e

        if self._abandoned:
            logger.info(f"正在关闭，丢弃抓取结果: {url}")
            return SyncOutcome(url=url, status=SyncStatus.SKIPPED, error="abandoned")

        if isinstance(result, FetchError):
            return await self._merge_failure(url, attempted_at, result)
        return await self._merge_result(url, attempted_at, result)

    async def _merge_failure(
        self, url: str, attempted_at: datetime, error: FetchError
    ) -> SyncOutcome:
        """记录抓取失败，已有条目不变."""
        outcome = failed_outcome(error.reason, error.kind.value, attempted_at)
        try:
            merged = await self.sources.merge(url, None, outcome, require_subscribers=True)
        except StoreError as e:
            logger.error(f"存储失败: {url} - {e}")
            return self._store_failure(url, e)

        if merged is None:
            return self._orphaned(url)

        logger.warning(f"抓取失败: {url} - {error.reason}")
        return SyncOutcome(
            url=url,
            status=SyncStatus.FAILED,
            error=error.reason,
            error_kind=error.kind.value,
        )

    async def _merge_result(
        self, url: str, attempted_at: datetime, result: FetchResult
    ) -> SyncOutcome:
        """合并抓取结果并分发新条目."""
        outcome = FetchOutcome(
            status=FetchStatus.NOT_MODIFIED if result.not_modified else FetchStatus.SUCCESS,
            attempted_at=attempted_at,
            title=result.title,
            format=result.format,
            etag=result.etag,
            last_modified=result.last_modified,
        )
        try:
            # 订阅者检查在合并的锁内完成，无人订阅的 Feed 不做合并
            new_ids = await self.sources.merge(
                url,
                None if result.not_modified else result.entries,
                outcome,
                require_subscribers=True,
            )
            if new_ids is None:
                return self._orphaned(url)

            # 合并提交后再查询订阅者，保证并发新增的订阅者不会漏掉
            if new_ids:
                await self._fan_out(url, new_ids)
        except StoreError as e:
            logger.error(f"存储失败: {url} - {e}")
            return self._store_failure(url, e)

        return SyncOutcome(
            url=url,
            status=SyncStatus.NOT_MODIFIED if result.not_modified else SyncStatus.SUCCESS,
            new_entries=len(new_ids),
            total_entries=len(result.entries),
            title=result.title,
        )

    def _orphaned(self, url: str) -> SyncOutcome:
        logger.info(f"Feed 已无人订阅，跳过合并: {url}")
        return SyncOutcome(url=url, status=SyncStatus.SKIPPED, error="orphaned")

    def _store_failure(self, url: str, error: StoreError) -> SyncOutcome:
        return SyncOutcome(
            url=url, status=SyncStatus.FAILED, error=str(error), error_kind=error.kind
        )

    async def _sync_contained(self, url: str, interactive: bool) -> SyncOutcome:
        """sync_one，单个 Feed 的意外异常记为失败而不向上抛出."""
        try:
            return await self.sync_one(url, interactive=interactive)
        except Exception as e:
            logger.exception(f"同步异常: {url} - {e}")
            return SyncOutcome(
                url=url, status=SyncStatus.FAILED, error=str(e), error_kind="internal"
            )

    async def _fan_out(self, url: str, new_ids: set[str]) -> None:
        """把新条目记为每个订阅者的未读，单个用户失败不影响其他用户."""
        for user_id in await self.sources.list_subscribed_users(url):
            try:
                await self.collections.record_new_entries(user_id, url, new_ids)
            except StoreError as e:
                logger.error(f"记录新条目失败: user={user_id}, {url} - {e}")

    async def sync_all(self, trigger: str = "manual") -> CycleReport:
        """
        同步所有被订阅的 Feed.

        按 URL 去重后并发抓取，并发数由 fetch_concurrency 限制。
        """
        report = CycleReport(trigger=trigger)

        try:
            urls = await self.collections.distinct_source_urls()
        except StoreError as e:
            logger.error(f"无法读取订阅列表，本周期跳过: {e}")
            report.failures.append(SyncFailure(url="*", kind=e.kind, reason=str(e)))
            report.completed_at = utcnow()
            return report

        report.total = len(urls)
        logger.info(f"开始同步周期 ({trigger})，共 {len(urls)} 个 Feed")

        # 使用信号量控制并发
        semaphore = asyncio.Semaphore(self.settings.fetch_concurrency)

        async def sync_with_semaphore(url: str) -> None:
            async with semaphore:
                outcome = await self._sync_contained(url, interactive=False)
            report.record(outcome)

        await asyncio.gather(*(sync_with_semaphore(url) for url in urls))

        report.completed_at = utcnow()
        logger.info(
            f"同步周期完成 ({trigger}): 成功={report.succeeded}, 未修改={report.unchanged}, "
            f"失败={report.failed}, 跳过={report.skipped}, 新条目={report.new_entries}"
        )
        return report

    async def sync_add(
        self,
        user_id: str,
        url: str,
        name: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> SyncOutcome:
        """
        订阅并立即抓取.

        初次抓取失败时订阅仍然保留，等待后续周期重试。
        """
        await self.collections.subscribe(user_id, url, name=name, tags=tags)
        outcome = await self.sync_one(url, interactive=True)

        # 新订阅者看到订阅时已存储的全部条目
        entry_ids = await self.sources.get_entry_ids(url)
        outcome.new_entries += await self.collections.record_new_entries(
            user_id, url, entry_ids
        )
        return outcome

    async def sync_user(self, user_id: str) -> list[SyncOutcome]:
        """刷新单个用户的所有订阅（交互超时）."""
        subscriptions = await self.collections.list_subscriptions(user_id)
        semaphore = asyncio.Semaphore(self.settings.fetch_concurrency)

        async def sync_with_semaphore(url: str) -> SyncOutcome:
            async with semaphore:
                return await self._sync_contained(url, interactive=True)

        return list(
            await asyncio.gather(*(sync_with_semaphore(s.source_url) for s in subscriptions))
        )

    async def unsubscribe(self, user_id: str, url: str) -> bool:
        """取消订阅；按配置回收无人订阅的 Feed."""
        removed = await self.collections.unsubscribe(user_id, url)
        if removed and not self.settings.retain_orphaned_sources:
            # 在 URL 锁内复查订阅者，并发新增的订阅不会被回收
            await self.sources.delete(url, only_if_orphaned=True)
        return removed

    async def probe(self, url: str) -> FetchResult:
        """抓取一次但不订阅、不合并（检查 URL 是否为 Feed）."""
        return await self.fetcher.fetch(url, self._timeout(interactive=True))


# 全局实例
_synchronizer: Synchronizer | None = None


def set_synchronizer(synchronizer: Synchronizer | None) -> None:
    """设置全局同步器（应用启动时调用）."""
    global _synchronizer
    _synchronizer = synchronizer


def get_synchronizer() -> Synchronizer:
    """获取同步器（用于依赖注入）."""
    if _synchronizer is None:
        msg = "同步器未初始化"
        raise RuntimeError(msg)
    return _synchronizer
