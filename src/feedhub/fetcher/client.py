"""Feed 抓取客户端."""

import asyncio
import logging

import httpx
from pydantic import BaseModel

from feedhub.core.errors import FetchError, FetchErrorKind
from feedhub.fetcher.parser import ParsedEntry, parse_feed
from feedhub.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


class Validators(BaseModel):
    """条件请求校验值."""

    etag: str | None = None
    last_modified: str | None = None

    def headers(self) -> dict[str, str]:
        """转为条件请求头."""
        headers: dict[str, str] = {}
        if self.etag:
            headers["If-None-Match"] = self.etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers


class FetchResult(BaseModel):
    """一次抓取的结果."""

    url: str
    not_modified: bool = False  # 304，与"返回 0 条"区分
    title: str | None = None
    format: str | None = None
    entries: list[ParsedEntry] = []
    etag: str | None = None
    last_modified: str | None = None


class FeedFetcher:
    """抓取并解析单个 Feed，不持有任何状态."""

    def __init__(
        self,
        user_agent: str = "FeedHub/0.1",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def fetch(
        self,
        url: str,
        timeout: float,
        validators: Validators | None = None,
    ) -> FetchResult:
        """
        抓取一个 Feed.

        Args:
            url: Feed URL
            timeout: 总超时（秒）
            validators: 上次的 etag / last-modified

        Raises:
            FetchError: 网络错误、超时、HTTP 状态错误或解析失败
        """
        headers = validators.headers() if validators else {}

        try:
            async with asyncio.timeout(timeout):
                response = await self._client.get(url, headers=headers, timeout=timeout)
        except (TimeoutError, httpx.TimeoutException) as e:
            msg = f"请求超时 ({timeout}s)"
            raise FetchError(FetchErrorKind.TIMEOUT, msg) from e
        except (httpx.HTTPError, httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            # InvalidURL 不是 HTTPError 的子类
            msg = str(e) or e.__class__.__name__
            raise FetchError(FetchErrorKind.NETWORK, msg) from e

        if response.status_code == httpx.codes.NOT_MODIFIED:
            logger.debug(f"Feed 未修改: {url}")
            return FetchResult(
                url=url,
                not_modified=True,
                etag=response.headers.get("etag") or (validators and validators.etag),
                last_modified=response.headers.get("last-modified")
                or (validators and validators.last_modified),
            )

        if response.status_code >= 400:
            raise FetchError(
                FetchErrorKind.HTTP_STATUS,
                response.reason_phrase or "请求失败",
                status_code=response.status_code,
            )

        loop = asyncio.get_running_loop()
        parsed = await loop.run_in_executor(
            None,
            parse_feed,
            response.content,
            response.headers.get("content-type"),
            utcnow(),
        )

        return FetchResult(
            url=url,
            title=parsed.title,
            format=parsed.format,
            entries=parsed.entries,
            etag=response.headers.get("etag"),
            last_modified=response.headers.get("last-modified"),
        )
