"""同步周期调度器：同一时间只运行一个周期."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from feedhub.core.synchronizer import CycleReport
from feedhub.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


class SchedulerState(StrEnum):
    """调度器状态."""

    IDLE = "idle"
    CYCLE_RUNNING = "cycle_running"
    SHUTTING_DOWN = "shutting_down"


class CycleRunner(Protocol):
    """能执行同步周期的对象（Synchronizer）."""

    async def sync_all(self, trigger: str = "manual") -> CycleReport: ...

    def abandon(self) -> None: ...


class CycleScheduler:
    """
    单任务调度循环.

    触发来源（启动、定时、手动）都写入同一个待运行标记，
    周期运行期间到达的触发合并为一次"结束后再跑一次"。
    """

    def __init__(
        self,
        runner: CycleRunner,
        grace_seconds: float = 10,
        on_cycle_start: Callable[[], None] | None = None,
    ) -> None:
        self.runner = runner
        self.grace_seconds = grace_seconds
        self.on_cycle_start = on_cycle_start
        self.state = SchedulerState.IDLE
        self.last_report: CycleReport | None = None
        self.last_cycle_started_at: datetime | None = None
        self.cycles_run = 0
        self._pending: str | None = None
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def start(self, run_now: bool = True) -> None:
        """启动调度循环；默认立即运行一次（启动触发）."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run(), name="feedhub-cycle-scheduler")
        if run_now:
            self.request_cycle("startup")

    def request_cycle(self, trigger: str = "manual") -> bool:
        """
        请求运行一个周期.

        Returns:
            False 表示被合并到已有的待运行请求或调度器正在关闭
        """
        if self.state == SchedulerState.SHUTTING_DOWN:
            logger.info(f"调度器正在关闭，忽略触发: {trigger}")
            return False

        coalesced = self._pending is not None or self.state == SchedulerState.CYCLE_RUNNING
        if self._pending is None:
            self._pending = trigger
        self._idle.clear()
        self._wakeup.set()

        if coalesced:
            logger.info(f"周期运行中，触发 {trigger} 已合并")
        return not coalesced

    async def _run(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()

            if self.state == SchedulerState.SHUTTING_DOWN:
                return

            trigger = self._pending
            self._pending = None
            if trigger is None:
                continue

            await self._run_cycle(trigger)

            if self._pending is None:
                self._idle.set()

    async def _run_cycle(self, trigger: str) -> None:
        self.state = SchedulerState.CYCLE_RUNNING
        self.last_cycle_started_at = utcnow()
        self.cycles_run += 1

        if self.on_cycle_start is not None:
            try:
                self.on_cycle_start()
            except Exception as e:
                logger.warning(f"周期开始回调失败: {e}")

        try:
            self.last_report = await self.runner.sync_all(trigger)
        except Exception as e:
            logger.exception(f"同步周期失败 ({trigger}): {e}")
        finally:
            if self.state != SchedulerState.SHUTTING_DOWN:
                self.state = SchedulerState.IDLE

    async def wait_idle(self) -> None:
        """等待所有已请求的周期运行完."""
        await self._idle.wait()

    async def shutdown(self) -> None:
        """
        关闭调度器.

        正在运行的周期有 grace_seconds 的时间完成，超时后放弃（结果不合并）。
        """
        self.state = SchedulerState.SHUTTING_DOWN
        self._pending = None
        self._wakeup.set()

        task = self._task
        self._task = None
        if task is None or task.done():
            return

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.grace_seconds)
        except TimeoutError:
            logger.warning(f"同步周期未在 {self.grace_seconds}s 内结束，放弃剩余抓取")
            self.runner.abandon()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        finally:
            self._idle.set()

    def status(self) -> dict:
        """状态查询."""
        return {
            "state": self.state.value,
            "pending": self.pending,
            "cycles_run": self.cycles_run,
            "last_cycle_started_at": (
                self.last_cycle_started_at.isoformat() if self.last_cycle_started_at else None
            ),
            "last_report": report_to_dict(self.last_report) if self.last_report else None,
        }


def report_to_dict(report: CycleReport) -> dict:
    """CycleReport 转为 JSON 友好的 dict."""
    return {
        "trigger": report.trigger,
        "started_at": report.started_at.isoformat(),
        "completed_at": report.completed_at.isoformat() if report.completed_at else None,
        "total": report.total,
        "succeeded": report.succeeded,
        "failed": report.failed,
        "unchanged": report.unchanged,
        "skipped": report.skipped,
        "new_entries": report.new_entries,
        "failures": [
            {"url": f.url, "kind": f.kind, "reason": f.reason} for f in report.failures
        ],
    }
