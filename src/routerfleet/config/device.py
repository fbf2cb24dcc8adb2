"""Device credential and request policy configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal, cast

from .env import env_bool, env_float, optional_env_var, require_env_vars
from .errors import InvalidConfigurationValueError
from .http_resilience import (
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_RECEIVE_TIMEOUT_SECONDS,
    RateLimit,
    ResilienceConfig,
    RetryPolicy,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

type Scheme = Literal["http", "https"]

DEFAULT_SCHEME: Scheme = "https"
_SCHEMES: frozenset[str] = frozenset({"http", "https"})


@dataclass(frozen=True, slots=True)
class DeviceAuth:
    """Credentials and request policy shared by every call to a device.

    Built once and handed, together with a target, to each request. The same
    instance is safely shared between concurrent operations. ``ca_bundle``
    trusts a private CA (e.g. the one that signed a router's self-signed
    certificate) while keeping verification on.
    """

    username: str
    password: str = field(repr=False)
    scheme: Scheme = DEFAULT_SCHEME
    verify: bool = True
    ca_bundle: str | None = None
    connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS
    receive_timeout_seconds: float = DEFAULT_RECEIVE_TIMEOUT_SECONDS
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    default_headers: Mapping[str, str] | None = None

    def resilience(self, *, name: str) -> ResilienceConfig:
        return ResilienceConfig(
            name=name,
            timeout_seconds=self.receive_timeout_seconds,
            connect_timeout_seconds=self.connect_timeout_seconds,
            verify=self.verify,
            ca_bundle=self.ca_bundle,
            retry=self.retry,
            ratelimit=self.ratelimit,
            default_headers=self.default_headers,
        )


def parse_scheme(value: str, *, name: str = "scheme") -> Scheme:
    lowered = value.strip().lower()
    if lowered not in _SCHEMES:
        raise InvalidConfigurationValueError(name, value, "'http' or 'https'")
    return cast("Scheme", lowered)


def get_device_auth() -> DeviceAuth:
    values = require_env_vars(("ROUTERFLEET_USERNAME", "ROUTERFLEET_PASSWORD"))
    scheme_value = optional_env_var("ROUTERFLEET_SCHEME")
    scheme = (
        parse_scheme(scheme_value, name="ROUTERFLEET_SCHEME") if scheme_value else DEFAULT_SCHEME
    )
    return DeviceAuth(
        username=values["ROUTERFLEET_USERNAME"],
        password=values["ROUTERFLEET_PASSWORD"],
        scheme=scheme,
        verify=env_bool("ROUTERFLEET_VERIFY_TLS", default=True),
        ca_bundle=_ca_bundle_from_env("ROUTERFLEET_CA_BUNDLE"),
        connect_timeout_seconds=env_float(
            "ROUTERFLEET_CONNECT_TIMEOUT", default=DEFAULT_CONNECT_TIMEOUT_SECONDS
        ),
        receive_timeout_seconds=env_float(
            "ROUTERFLEET_RECEIVE_TIMEOUT", default=DEFAULT_RECEIVE_TIMEOUT_SECONDS
        ),
    )


def _ca_bundle_from_env(name: str) -> str | None:
    value = optional_env_var(name)
    if value is None:
        return None
    if not Path(value).is_file():
        raise InvalidConfigurationValueError(name, value, "a path to a PEM CA bundle file")
    return value
