"""FeedHub 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from feedhub import __version__
from feedhub.api import collection, sync
from feedhub.config import get_settings
from feedhub.core.collection_store import CollectionStore
from feedhub.core.errors import StoreError
from feedhub.core.source_store import SourceStore
from feedhub.core.synchronizer import Synchronizer, set_synchronizer
from feedhub.fetcher.client import FeedFetcher
from feedhub.models.database import close_db, init_db
from feedhub.scheduler import create_scheduler, shutdown_scheduler

# 配置日志
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()

    # 启动时初始化
    logger.info("正在初始化数据库...")
    try:
        session_factory = await init_db(app_settings.database_url)
    except Exception:
        # 存储不可用时不对外服务
        logger.critical("无法加载或创建存储，停止启动", exc_info=True)
        raise

    fetcher = FeedFetcher(user_agent=app_settings.user_agent)
    collections = CollectionStore(
        session_factory,
        prune_on_unsubscribe=app_settings.prune_read_state,
    )
    sources = SourceStore(session_factory, collections)
    synchronizer = Synchronizer(fetcher, sources, collections, app_settings)
    set_synchronizer(synchronizer)

    logger.info("正在启动定时任务...")
    create_scheduler(app_settings, synchronizer)

    logger.info("FeedHub 启动完成！")
    yield

    # 关闭时清理
    logger.info("正在关闭...")
    await shutdown_scheduler()
    set_synchronizer(None)
    await fetcher.close()
    await close_db()
    logger.info("FeedHub 已关闭")


app = FastAPI(
    title="FeedHub",
    description="多用户 RSS 聚合 - Feed 同步引擎",
    version=__version__,
    lifespan=lifespan,
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(collection.router)
app.include_router(sync.router)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """存储错误返回 503."""
    logger.error(f"存储错误: {request.url.path} - {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "存储暂不可用", "kind": exc.kind.value},
    )


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "FeedHub",
        "version": __version__,
        "description": "多用户 RSS 聚合",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "feedhub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
