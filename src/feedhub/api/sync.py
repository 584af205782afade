"""同步 API."""

from fastapi import APIRouter, Depends

from feedhub.scheduler import CycleScheduler, get_cycle_scheduler

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("/refresh-all")
async def refresh_all(
    scheduler: CycleScheduler = Depends(get_cycle_scheduler),
) -> dict:
    """触发一次全量同步（异步执行，立即返回）."""
    accepted = scheduler.request_cycle("manual")
    return {
        "accepted": accepted,
        "coalesced": not accepted,
        **scheduler.status(),
    }


@router.get("/status")
async def get_sync_status(
    scheduler: CycleScheduler = Depends(get_cycle_scheduler),
) -> dict:
    """获取调度器状态和最近一次周期报告."""
    return scheduler.status()
