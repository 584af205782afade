"""用户集合 API."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from feedhub.api.deps import get_current_user
from feedhub.core.errors import FetchError, NotSubscribed, UnknownEntry
from feedhub.core.synchronizer import Synchronizer, SyncStatus, get_synchronizer

router = APIRouter(prefix="/api/collection", tags=["collection"])


class FeedUrlRequest(BaseModel):
    """只包含 URL 的请求."""

    url: str = Field(min_length=1)


class SubscribeRequest(BaseModel):
    """订阅请求."""

    url: str = Field(min_length=1)
    name: str | None = None
    tags: list[str] = []


class FeedInfoRequest(BaseModel):
    """设置订阅显示信息."""

    url: str = Field(min_length=1)
    name: str | None = None
    tags: list[str] = []


class MarkReadRequest(BaseModel):
    """设置阅读状态."""

    url: str = Field(min_length=1)
    entry_id: str = Field(min_length=1)
    read: bool = True


@router.get("")
async def get_collection(
    refresh: bool = Query(False, description="返回前先刷新所有订阅"),
    user_id: str = Depends(get_current_user),
    synchronizer: Synchronizer = Depends(get_synchronizer),
) -> dict:
    """获取用户的订阅列表（含条目和阅读状态）."""
    if refresh:
        await synchronizer.sync_user(user_id)

    feeds = await synchronizer.collections.list_for_user(user_id)
    return {
        "total": len(feeds),
        "unread": sum(feed.unread_count for feed in feeds),
        "feeds": [feed.model_dump(mode="json") for feed in feeds],
    }


@router.get("/feeds")
async def list_feeds(
    user_id: str = Depends(get_current_user),
    synchronizer: Synchronizer = Depends(get_synchronizer),
) -> dict:
    """获取订阅 URL 列表（按订阅顺序）."""
    subscriptions = await synchronizer.collections.list_subscriptions(user_id)
    return {
        "feeds": [
            {"url": s.source_url, "name": s.name, "tags": list(s.tags or [])}
            for s in subscriptions
        ]
    }


@router.post("/subscribe")
async def subscribe(
    request: SubscribeRequest,
    user_id: str = Depends(get_current_user),
    synchronizer: Synchronizer = Depends(get_synchronizer),
) -> dict:
    """订阅并立即抓取；抓取失败时订阅仍保留."""
    outcome = await synchronizer.sync_add(
        user_id, request.url, name=request.name, tags=request.tags
    )
    return {
        "url": outcome.url,
        "subscribed": True,
        "success": outcome.ok,
        "status": outcome.status,
        "title": outcome.title,
        "fetched_entries": outcome.total_entries,
        "new_entries": outcome.new_entries,
        "error": outcome.error if outcome.status == SyncStatus.FAILED else None,
        "error_kind": outcome.error_kind,
    }


@router.post("/unsubscribe")
async def unsubscribe(
    request: FeedUrlRequest,
    user_id: str = Depends(get_current_user),
    synchronizer: Synchronizer = Depends(get_synchronizer),
) -> dict:
    """取消订阅."""
    removed = await synchronizer.unsubscribe(user_id, request.url)
    if not removed:
        raise HTTPException(status_code=404, detail="未订阅该 Feed")
    return {"url": request.url, "subscribed": False}


@router.post("/mark-read")
async def mark_read(
    request: MarkReadRequest,
    user_id: str = Depends(get_current_user),
    synchronizer: Synchronizer = Depends(get_synchronizer),
) -> dict:
    """设置条目已读/未读，原样返回请求内容."""
    try:
        await synchronizer.collections.set_read_state(
            user_id, request.url, request.entry_id, request.read
        )
    except NotSubscribed:
        raise HTTPException(status_code=404, detail="未订阅该 Feed") from None
    except UnknownEntry:
        raise HTTPException(status_code=404, detail="条目不存在") from None

    return request.model_dump()


@router.post("/feed-info")
async def set_feed_info(
    request: FeedInfoRequest,
    user_id: str = Depends(get_current_user),
    synchronizer: Synchronizer = Depends(get_synchronizer),
) -> dict:
    """设置订阅的显示名称和标签."""
    try:
        subscription = await synchronizer.collections.set_feed_info(
            user_id, request.url, request.name, request.tags
        )
    except NotSubscribed:
        raise HTTPException(status_code=404, detail="未订阅该 Feed") from None

    return {
        "url": subscription.source_url,
        "name": subscription.name,
        "tags": list(subscription.tags or []),
    }


@router.post("/probe", dependencies=[Depends(get_current_user)])
async def probe_feed(
    request: FeedUrlRequest,
    synchronizer: Synchronizer = Depends(get_synchronizer),
) -> dict:
    """检查 URL 是否为可用的 Feed（不订阅）."""
    try:
        result = await synchronizer.probe(request.url)
    except FetchError as e:
        return {
            "url": request.url,
            "is_feed": False,
            "error": e.reason,
            "error_kind": e.kind.value,
        }

    return {
        "url": request.url,
        "is_feed": True,
        "title": result.title,
        "format": result.format,
        "entries": len(result.entries),
    }
