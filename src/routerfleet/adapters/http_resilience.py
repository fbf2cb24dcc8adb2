"""Retrying, rate-limited async HTTP client shared by device adapters.

Responses are never cached: every read must observe current device state.
"""

from __future__ import annotations

import ssl
from logging import getLogger
from typing import TYPE_CHECKING, TypedDict, Unpack

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import Retry, RetryTransport

if TYPE_CHECKING:
    from types import TracebackType

    from httpx._client import UseClientDefault
    from httpx._types import AuthTypes, QueryParamTypes, TimeoutTypes, URLTypes

    from routerfleet.config.http_resilience import RateLimit, ResilienceConfig, RetryPolicy

log = getLogger(__name__)


class RequestOptions(TypedDict, total=False):
    json: object
    params: QueryParamTypes | None
    auth: AuthTypes | UseClientDefault | None
    timeout: TimeoutTypes | UseClientDefault


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=tuple(policy.allowed_methods),
        status_forcelist=tuple(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
        backoff_jitter=policy.backoff_jitter,
    )


def build_limiter(ratelimit: RateLimit | None) -> AsyncLimiter | None:
    if ratelimit is None:
        return None
    return AsyncLimiter(ratelimit.max_calls, ratelimit.per_seconds)


def tls_verify(config: ResilienceConfig) -> ssl.SSLContext | bool:
    """The ``verify`` argument for httpx: off, system trust, or a custom CA bundle."""

    if not config.verify:
        return False
    if config.ca_bundle is None:
        return True
    return ssl.create_default_context(cafile=config.ca_bundle)


class ResilientClient:
    """``httpx.AsyncClient`` with transport retries and optional rate limiting.

    ``limiter`` shares one rate limit between clients; without it the client
    builds its own from ``config.ratelimit``. ``transport`` replaces the network
    transport underneath the retry layer, which lets tests drive the full stack
    with ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        limiter: AsyncLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._limiter = limiter if limiter is not None else build_limiter(config.ratelimit)
        inner = transport or httpx.AsyncHTTPTransport(verify=tls_verify(config))
        self._client = httpx.AsyncClient(
            timeout=config.timeout,
            transport=RetryTransport(transport=inner, retry=build_retry(config.retry)),
            headers=dict(config.default_headers) if config.default_headers else None,
        )

    @property
    def limiter(self) -> AsyncLimiter | None:
        return self._limiter

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: URLTypes,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        if self._limiter is None:
            return await self._client.request(method, url, **kwargs)
        if not self._limiter.has_capacity():
            log.debug("%s: waiting for rate limit before %s", self.config.name, method)
        async with self._limiter:
            return await self._client.request(method, url, **kwargs)
