"""HTTP fetching with redirect, timeout, TLS and client identity policy."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

import httpx
import structlog

from ..config import GlobalConfig
from ..errors import FetchError
from ..infra import UserAgentPool

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass(slots=True)
class FetchOutcome:
    """Standardised result of one GET attempt."""

    url: str
    status: int = 0
    body: str = field(default="", repr=False)
    error: str = ""
    final_url: str | None = None
    user_agent: str | None = None


class Fetcher:
    """Issue single GET requests through one shared, thread-safe HTTPX client.

    The HTTPX timeout bounds each connect and read step. ``total_timeout`` is
    also enforced as a deadline measured from the first request, so redirects
    count against it; the body is streamed and ``clock`` is checked between chunks.
    """

    def __init__(
        self,
        global_config: GlobalConfig,
        ua_pool: UserAgentPool | None = None,
        logger: structlog.BoundLogger | None = None,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.global_config = global_config
        self._clock = clock
        self.ua_pool = ua_pool
        self.logger = logger or structlog.get_logger("link_extractor.fetcher")
        client_kwargs: dict = {
            "follow_redirects": True,
            "max_redirects": global_config.max_redirects,
            "timeout": httpx.Timeout(
                global_config.total_timeout, connect=global_config.connect_timeout
            ),
            "verify": global_config.verify_tls,
            "headers": DEFAULT_HEADERS,
        }
        if global_config.proxy:
            client_kwargs["proxy"] = global_config.proxy
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.Client(**client_kwargs)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fetch(self, url: str, user_agent: str | None = None) -> FetchOutcome:
        """GET ``url``; transport failures come back as ``status=0`` plus an error kind."""

        agent = user_agent or (self.ua_pool.get() if self.ua_pool else None)
        headers = {"User-Agent": agent} if agent else None
        deadline = self._clock() + self.global_config.total_timeout
        try:
            with self._client.stream("GET", url, headers=headers) as response:
                body = self._read_body(response, deadline)
                return FetchOutcome(
                    url=url,
                    status=response.status_code,
                    body=body,
                    final_url=str(response.url),
                    user_agent=agent,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            error = FetchError.describe(exc)
            self.logger.warning("fetch_error", url=url, error=error)
            return FetchOutcome(url=url, error=error, user_agent=agent)

    def _read_body(self, response: httpx.Response, deadline: float) -> str:
        chunks: list[bytes] = []
        self._check_deadline(response, deadline)
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            self._check_deadline(response, deadline)
        return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")

    def _check_deadline(self, response: httpx.Response, deadline: float) -> None:
        if self._clock() > deadline:
            raise httpx.TimeoutException("total timeout exceeded", request=response.request)


__all__ = ["DEFAULT_HEADERS", "FetchOutcome", "Fetcher"]
