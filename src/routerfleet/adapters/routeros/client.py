"""RouterOS REST transport.

Implements :class:`routerfleet.domain.ports.DeviceTransport` over the RouterOS
v7 REST API (``{scheme}://{host}:{port}/rest{path}``) with HTTP basic auth.
Credentials, timeouts, TLS verification and retries come from one
:class:`DeviceAuth`; the device address comes from each call's target.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final, Protocol

import httpx
from aiolimiter import AsyncLimiter

from routerfleet.adapters.http_resilience import RequestOptions, ResilientClient
from routerfleet.config.device import DeviceAuth, get_device_auth
from routerfleet.domain.errors import (
    DecodeError,
    DeviceHTTPError,
    InvalidArgumentError,
    TransportError,
    truncate_details,
)

from .schema import parse_error_payload

if TYPE_CHECKING:
    from routerfleet.config.http_resilience import ResilienceConfig
    from routerfleet.domain.ports import DeviceTransport
    from routerfleet.domain.types import DeviceTarget

log = getLogger(__name__)

REST_BASE_PATH: Final[str] = "/rest"
DEFAULT_PORTS: Final[Mapping[str, int]] = {"http": 80, "https": 443}
_BODY_METHODS: Final[frozenset[str]] = frozenset({"POST", "PUT", "PATCH"})
_MAX_SUMMARY_CHARS: Final[int] = 200


class ClientFactory(Protocol):
    def __call__(
        self, config: ResilienceConfig, *, limiter: AsyncLimiter | None = None
    ) -> ResilientClient: ...


def _default_client_factory(
    config: ResilienceConfig, *, limiter: AsyncLimiter | None = None
) -> ResilientClient:
    return ResilientClient(config, limiter=limiter)


def build_url(target: DeviceTarget, path: str, *, default_scheme: str) -> str:
    """Absolute REST URL for ``path`` on ``target``; IPv6 literals are bracketed."""

    scheme = (target.scheme or default_scheme).lower()
    if scheme not in DEFAULT_PORTS:
        raise InvalidArgumentError(f"Unsupported scheme {scheme!r} for {target}")
    host = target.host.strip()
    if not host:
        raise InvalidArgumentError("Device host must not be empty")
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    port = target.port or DEFAULT_PORTS[scheme]
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{scheme}://{host}:{port}{REST_BASE_PATH}{path}"


def drop_empty_params(params: Mapping[str, str | None] | None) -> dict[str, str] | None:
    if not params:
        return None
    kept = {name: value for name, value in params.items() if value is not None}
    return kept or None


def decode_response(response: httpx.Response, *, method: str, path: str) -> object:
    """Map a device response to decoded JSON or a typed error.

    Empty 2xx bodies (and 204) decode to ``None``.
    """

    if not response.is_success:
        payload = parse_error_payload(response.content)
        summary = payload.summary() if payload is not None else None
        message = f"{method} {path} returned HTTP {response.status_code}"
        if summary:
            message = f"{message}: {summary[:_MAX_SUMMARY_CHARS]}"
        raise DeviceHTTPError(
            message,
            status=response.status_code,
            details=truncate_details(response.content),
        )

    if response.status_code == httpx.codes.NO_CONTENT or not response.content.strip():
        return None
    try:
        return response.json()
    except ValueError as exc:
        # Body omitted: listings may contain secret fields.
        raise DecodeError(
            f"{method} {path} returned a body that is not JSON "
            f"({response.headers.get('content-type', 'no content-type')}, "
            f"{len(response.content)} bytes)",
            status=response.status_code,
            cause=exc,
        ) from exc


@dataclass(slots=True)
class RouterOSTransport:
    """Device transport over the RouterOS REST API.

    Each request opens its own client; the rate limit from ``auth.ratelimit`` is
    kept per device host for the lifetime of the transport.
    """

    auth: DeviceAuth = field(default_factory=get_device_auth)
    client_factory: ClientFactory = field(default=_default_client_factory)
    _limiters: dict[str, AsyncLimiter] = field(default_factory=dict, init=False, repr=False)

    def limiter_for(self, target: DeviceTarget) -> AsyncLimiter | None:
        ratelimit = self.auth.ratelimit
        if ratelimit is None:
            return None
        host = target.host.strip().strip("[]").lower()
        limiter = self._limiters.get(host)
        if limiter is None:
            limiter = AsyncLimiter(ratelimit.max_calls, ratelimit.per_seconds)
            self._limiters[host] = limiter
        return limiter

    async def request(
        self,
        target: DeviceTarget,
        method: str,
        path: str,
        *,
        body: Mapping[str, str] | None = None,
        params: Mapping[str, str | None] | None = None,
    ) -> object:
        verb = method.upper()
        url = build_url(target, path, default_scheme=self.auth.scheme)
        options: RequestOptions = {
            "auth": httpx.BasicAuth(self.auth.username, self.auth.password),
        }
        query = drop_empty_params(params)
        if query is not None:
            options["params"] = query
        if verb in _BODY_METHODS:
            options["json"] = dict(body) if body is not None else {}

        resilience = self.auth.resilience(name=f"routeros:{target}")
        started = time.perf_counter()
        try:
            async with self.client_factory(
                resilience, limiter=self.limiter_for(target)
            ) as client:
                response = await client.request(verb, url, **options)
        except httpx.TransportError as exc:
            duration_ms = (time.perf_counter() - started) * 1000.0
            log.error(
                "RouterOS %s %s on %s failed after %.1fms: %s",
                verb,
                path,
                target,
                duration_ms,
                type(exc).__name__,
            )
            raise TransportError(
                f"{verb} {path} on {target} failed: {type(exc).__name__}",
                details=str(exc) or None,
                cause=exc,
            ) from exc

        duration_ms = (time.perf_counter() - started) * 1000.0
        log.debug(
            "RouterOS %s %s on %s -> %d in %.1fms",
            verb,
            path,
            target,
            response.status_code,
            duration_ms,
        )
        return decode_response(response, method=verb, path=path)


if TYPE_CHECKING:
    _transport_check: DeviceTransport = RouterOSTransport(auth=DeviceAuth("u", "p"))
