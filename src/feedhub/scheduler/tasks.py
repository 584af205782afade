"""定时任务定义."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from feedhub.config import Settings
from feedhub.scheduler.cycle import CycleRunner, CycleScheduler

logger = logging.getLogger(__name__)

DAILY_JOB_ID = "daily_sync_cycle"

_scheduler: AsyncIOScheduler | None = None
_cycle_scheduler: CycleScheduler | None = None


async def scheduled_sync_task() -> None:
    """定时触发：请求一次同步周期."""
    if _cycle_scheduler is None:
        logger.warning("调度器未初始化，跳过定时同步")
        return
    _cycle_scheduler.request_cycle("scheduled")


def _reset_interval_timer(settings: Settings) -> None:
    """每个周期开始时重置定时器，下一次定时触发距本次周期开始满一个间隔."""
    if _scheduler is None or not _scheduler.running:
        return
    _scheduler.reschedule_job(
        DAILY_JOB_ID,
        trigger="interval",
        hours=settings.sync_interval_hours,
    )


def create_scheduler(settings: Settings, runner: CycleRunner) -> CycleScheduler:
    """创建并启动调度器（启动时立即运行一次同步）."""
    global _scheduler, _cycle_scheduler

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        scheduled_sync_task,
        "interval",
        hours=settings.sync_interval_hours,
        id=DAILY_JOB_ID,
        name="Feed 定时同步",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    _scheduler.start()

    _cycle_scheduler = CycleScheduler(
        runner,
        grace_seconds=settings.shutdown_grace_seconds,
        on_cycle_start=lambda: _reset_interval_timer(settings),
    )
    _cycle_scheduler.start(run_now=True)

    logger.info(f"定时任务调度器已启动，同步间隔: {settings.sync_interval_hours} 小时")
    return _cycle_scheduler


def get_cycle_scheduler() -> CycleScheduler:
    """获取周期调度器（用于依赖注入）."""
    if _cycle_scheduler is None:
        msg = "调度器未初始化"
        raise RuntimeError(msg)
    return _cycle_scheduler


async def shutdown_scheduler() -> None:
    """关闭定时任务调度器，等待正在运行的周期（有宽限时间）."""
    global _scheduler, _cycle_scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
    if _cycle_scheduler:
        await _cycle_scheduler.shutdown()
        _cycle_scheduler = None
    logger.info("定时任务调度器已关闭")
