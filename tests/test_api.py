"""测试 HTTP API 端点."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from feedhub.core.collection_store import CollectionStore
from feedhub.core.errors import FetchError, FetchErrorKind, StoreError, StoreErrorKind
from feedhub.core.synchronizer import Synchronizer, get_synchronizer
from feedhub.main import app
from feedhub.scheduler import CycleScheduler, get_cycle_scheduler
from tests.helpers import FEED_URL, OTHER_URL, FakeFetcher, make_entry

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest_asyncio.fixture
async def cycle_scheduler(synchronizer: Synchronizer) -> AsyncGenerator[CycleScheduler, None]:
    """不自动运行的周期调度器."""
    scheduler = CycleScheduler(synchronizer, grace_seconds=0.5)
    scheduler.start(run_now=False)
    yield scheduler
    await scheduler.shutdown()


@pytest_asyncio.fixture
async def client(
    synchronizer: Synchronizer, cycle_scheduler: CycleScheduler
) -> AsyncGenerator[AsyncClient, None]:
    """创建测试客户端（不经过应用生命周期）."""
    app.dependency_overrides[get_synchronizer] = lambda: synchronizer
    app.dependency_overrides[get_cycle_scheduler] = lambda: cycle_scheduler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


class TestAuth:
    """测试用户标识."""

    async def test_missing_user_header(self, client: AsyncClient) -> None:
        response = await client.get("/api/collection")
        assert response.status_code == 401

    async def test_probe_requires_user(self, client: AsyncClient) -> None:
        response = await client.post("/api/collection/probe", json={"url": FEED_URL})
        assert response.status_code == 401

    async def test_health_is_public(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestSubscribeEndpoint:
    """测试 /api/collection/subscribe."""

    async def test_subscribe_and_list(self, client: AsyncClient, fetcher: FakeFetcher) -> None:
        """订阅后集合中有一条未读条目."""
        fetcher.set(FEED_URL, [make_entry("a", title="First")])

        response = await client.post(
            "/api/collection/subscribe",
            json={"url": FEED_URL, "name": "Example", "tags": ["news"]},
            headers=ALICE,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["subscribed"] is True
        assert data["success"] is True
        assert data["status"] == "success"
        assert data["new_entries"] == 1
        assert data["error"] is None

        response = await client.get("/api/collection", headers=ALICE)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["unread"] == 1
        feed = data["feeds"][0]
        assert feed["url"] == FEED_URL
        assert feed["name"] == "Example"
        assert feed["tags"] == ["news"]
        assert feed["entries"][0]["title"] == "First"
        assert feed["entries"][0]["read"] is False

    async def test_failed_fetch_still_subscribes(
        self, client: AsyncClient, fetcher: FakeFetcher
    ) -> None:
        fetcher.set(FEED_URL, FetchError(FetchErrorKind.HTTP_STATUS, "Not Found", 404))

        response = await client.post(
            "/api/collection/subscribe", json={"url": FEED_URL}, headers=ALICE
        )
        assert response.status_code == 200
        data = response.json()
        assert data["subscribed"] is True
        assert data["success"] is False
        assert data["error_kind"] == "http_status"
        assert "404" in data["error"]

        response = await client.get("/api/collection/feeds", headers=ALICE)
        assert response.json()["feeds"][0]["url"] == FEED_URL

    async def test_empty_url_is_rejected(self, client: AsyncClient) -> None:
        response = await client.post("/api/collection/subscribe", json={"url": ""}, headers=ALICE)
        assert response.status_code == 422


class TestCollectionEndpoints:
    """测试集合读取和修改."""

    async def test_feeds_in_subscription_order(
        self, client: AsyncClient, collections: CollectionStore
    ) -> None:
        await collections.subscribe("alice", OTHER_URL)
        await collections.subscribe("alice", FEED_URL)

        response = await client.get("/api/collection/feeds", headers=ALICE)
        assert [f["url"] for f in response.json()["feeds"]] == [OTHER_URL, FEED_URL]

    async def test_refresh_before_listing(
        self, client: AsyncClient, fetcher: FakeFetcher, collections: CollectionStore
    ) -> None:
        """refresh=true 时先同步该用户的订阅."""
        await collections.subscribe("alice", FEED_URL)
        fetcher.set(FEED_URL, [make_entry("a")])

        response = await client.get("/api/collection?refresh=true", headers=ALICE)
        assert response.status_code == 200
        assert response.json()["unread"] == 1
        assert fetcher.count(FEED_URL) == 1

    async def test_mark_read(self, client: AsyncClient, fetcher: FakeFetcher) -> None:
        fetcher.set(FEED_URL, [make_entry("a")])
        await client.post("/api/collection/subscribe", json={"url": FEED_URL}, headers=ALICE)

        body = {"url": FEED_URL, "entry_id": "a", "read": True}
        response = await client.post("/api/collection/mark-read", json=body, headers=ALICE)
        assert response.status_code == 200
        assert response.json() == body

        response = await client.get("/api/collection", headers=ALICE)
        assert response.json()["unread"] == 0

    async def test_mark_read_not_subscribed(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/collection/mark-read",
            json={"url": FEED_URL, "entry_id": "a"},
            headers=ALICE,
        )
        assert response.status_code == 404

    async def test_mark_read_unknown_entry(
        self, client: AsyncClient, collections: CollectionStore
    ) -> None:
        await collections.subscribe("alice", FEED_URL)
        response = await client.post(
            "/api/collection/mark-read",
            json={"url": FEED_URL, "entry_id": "missing"},
            headers=ALICE,
        )
        assert response.status_code == 404

    async def test_read_state_is_per_user(self, client: AsyncClient, fetcher: FakeFetcher) -> None:
        fetcher.set(FEED_URL, [make_entry("a")])
        await client.post("/api/collection/subscribe", json={"url": FEED_URL}, headers=ALICE)
        await client.post("/api/collection/subscribe", json={"url": FEED_URL}, headers=BOB)
        await client.post(
            "/api/collection/mark-read",
            json={"url": FEED_URL, "entry_id": "a"},
            headers=ALICE,
        )

        response = await client.get("/api/collection", headers=BOB)
        assert response.json()["unread"] == 1

    async def test_unsubscribe(self, client: AsyncClient, collections: CollectionStore) -> None:
        await collections.subscribe("alice", FEED_URL)

        response = await client.post(
            "/api/collection/unsubscribe", json={"url": FEED_URL}, headers=ALICE
        )
        assert response.status_code == 200
        assert response.json()["subscribed"] is False

        response = await client.post(
            "/api/collection/unsubscribe", json={"url": FEED_URL}, headers=ALICE
        )
        assert response.status_code == 404

    async def test_feed_info(self, client: AsyncClient, collections: CollectionStore) -> None:
        await collections.subscribe("alice", FEED_URL)

        response = await client.post(
            "/api/collection/feed-info",
            json={"url": FEED_URL, "name": "Renamed", "tags": ["tech", "news"]},
            headers=ALICE,
        )
        assert response.status_code == 200
        assert response.json() == {"url": FEED_URL, "name": "Renamed", "tags": ["news", "tech"]}

        response = await client.post(
            "/api/collection/feed-info", json={"url": OTHER_URL, "name": "x"}, headers=ALICE
        )
        assert response.status_code == 404

    async def test_store_error_returns_503(
        self, client: AsyncClient, collections: CollectionStore, monkeypatch
    ) -> None:
        async def broken(user_id: str):
            raise StoreError(StoreErrorKind.IO_FAILURE, user_id, "disk unavailable")

        monkeypatch.setattr(collections, "list_for_user", broken)

        response = await client.get("/api/collection", headers=ALICE)
        assert response.status_code == 503
        assert response.json()["kind"] == "io_failure"


class TestProbeEndpoint:
    """测试 /api/collection/probe."""

    async def test_valid_feed(self, client: AsyncClient, fetcher: FakeFetcher) -> None:
        fetcher.set(FEED_URL, [make_entry("a"), make_entry("b", day=2)])

        response = await client.post("/api/collection/probe", json={"url": FEED_URL}, headers=ALICE)
        data = response.json()
        assert data["is_feed"] is True
        assert data["entries"] == 2

        # 探测不会订阅
        response = await client.get("/api/collection/feeds", headers=ALICE)
        assert response.json()["feeds"] == []

    async def test_not_a_feed(self, client: AsyncClient, fetcher: FakeFetcher) -> None:
        fetcher.set(FEED_URL, FetchError(FetchErrorKind.PARSE_ERROR, "not a feed"))

        response = await client.post("/api/collection/probe", json={"url": FEED_URL}, headers=ALICE)
        data = response.json()
        assert data["is_feed"] is False
        assert data["error_kind"] == "parse_error"


class TestSyncEndpoints:
    """测试 /api/sync 端点."""

    async def test_refresh_all(
        self,
        client: AsyncClient,
        fetcher: FakeFetcher,
        collections: CollectionStore,
        cycle_scheduler: CycleScheduler,
    ) -> None:
        await collections.subscribe("alice", FEED_URL)
        fetcher.set(FEED_URL, [make_entry("a")])

        response = await client.post("/api/sync/refresh-all")
        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is True
        assert data["coalesced"] is False

        await cycle_scheduler.wait_idle()

        response = await client.get("/api/sync/status")
        data = response.json()
        assert data["state"] == "idle"
        assert data["cycles_run"] == 1
        assert data["last_report"]["trigger"] == "manual"
        assert data["last_report"]["succeeded"] == 1

        response = await client.get("/api/collection", headers=ALICE)
        assert response.json()["unread"] == 1

    async def test_status_before_any_cycle(self, client: AsyncClient) -> None:
        response = await client.get("/api/sync/status")
        assert response.status_code == 200
        data = response.json()
        assert data["cycles_run"] == 0
        assert data["last_report"] is None
