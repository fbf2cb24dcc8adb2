from __future__ import annotations

import asyncio
import ssl

import httpx
import pytest
from aiolimiter import AsyncLimiter

from routerfleet.adapters.http_resilience import ResilientClient, build_retry, tls_verify
from routerfleet.config import RateLimit, ResilienceConfig, RetryPolicy


def _count_attempts(method: str, status: int) -> int:
    attempts = 0

    def handler(_request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(status)

    config = ResilienceConfig(
        name="routeros:test",
        retry=RetryPolicy(backoff_factor=0.0, backoff_jitter=0.0),
    )

    async def send() -> None:
        async with ResilientClient(config, transport=httpx.MockTransport(handler)) as client:
            await client.request(method, "http://10.0.0.1/rest/interface")

    asyncio.run(send())
    return attempts


def test_idempotent_reads_are_retried_on_unavailable() -> None:
    assert _count_attempts("GET", 503) == 3


def test_creates_are_never_retried() -> None:
    assert _count_attempts("PUT", 503) == 1
    assert _count_attempts("POST", 503) == 1


def test_client_errors_are_not_retried() -> None:
    assert _count_attempts("GET", 400) == 1


def test_resilient_client_sends_through_rate_limiter() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    config = ResilienceConfig(
        name="routeros:test",
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
    )

    async def run() -> list[int]:
        client = ResilientClient(config, transport=httpx.MockTransport(handler))
        assert client.limiter is not None
        async with client:
            responses = [await client.request("GET", "http://10.0.0.1/rest/ip/address")]
            responses.append(await client.request("GET", "http://10.0.0.1/rest/ip/address"))
        return [response.status_code for response in responses]

    assert asyncio.run(run()) == [200, 200]
    assert len(seen) == 2


def test_resilience_config_timeout_splits_connect_and_read() -> None:
    timeout = ResilienceConfig(name="x", timeout_seconds=15.0, connect_timeout_seconds=5.0).timeout

    assert timeout.connect == 5.0
    assert timeout.read == 15.0


def test_build_retry_copies_policy() -> None:
    retry = build_retry(RetryPolicy(total=5, status_forcelist=frozenset({503})))

    assert retry.total == 5
    assert retry.is_retryable_method("GET")
    assert not retry.is_retryable_method("PUT")
    assert retry.is_retryable_status_code(503)
    assert not retry.is_retryable_status_code(502)


def test_tls_verify_modes(monkeypatch: pytest.MonkeyPatch) -> None:
    cafiles: list[str | None] = []
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

    def fake_create_default_context(*, cafile: str | None = None) -> ssl.SSLContext:
        cafiles.append(cafile)
        return context

    monkeypatch.setattr(ssl, "create_default_context", fake_create_default_context)

    assert tls_verify(ResilienceConfig(name="x")) is True
    assert tls_verify(ResilienceConfig(name="x", verify=False, ca_bundle="ca.pem")) is False
    assert tls_verify(ResilienceConfig(name="x", ca_bundle="ca.pem")) is context
    assert cafiles == ["ca.pem"]


def test_shared_limiter_is_used_as_given() -> None:
    limiter = AsyncLimiter(5, 1.0)

    client = ResilientClient(
        ResilienceConfig(name="x", ratelimit=RateLimit(max_calls=1, per_seconds=1.0)),
        limiter=limiter,
        transport=httpx.MockTransport(lambda _r: httpx.Response(200)),
    )

    assert client.limiter is limiter
