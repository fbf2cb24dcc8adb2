"""Application configuration helpers."""

from __future__ import annotations

from routerfleet.common.logging import configure_logging

from .device import DEFAULT_SCHEME, DeviceAuth, Scheme, get_device_auth, parse_scheme
from .env import env_bool, env_float, env_int, optional_env_var, require_env_vars
from .errors import (
    ConfigurationError,
    InvalidConfigurationValueError,
    MissingConfigurationError,
)
from .fanout import (
    DEFAULT_TASK_TIMEOUT_SECONDS,
    FanoutConfig,
    default_max_concurrency,
    get_fanout_config,
)
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

__all__ = [
    "DEFAULT_SCHEME",
    "DEFAULT_TASK_TIMEOUT_SECONDS",
    "ConfigurationError",
    "DeviceAuth",
    "FanoutConfig",
    "InvalidConfigurationValueError",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "Scheme",
    "configure_logging",
    "default_max_concurrency",
    "env_bool",
    "env_float",
    "env_int",
    "get_device_auth",
    "get_fanout_config",
    "optional_env_var",
    "parse_scheme",
    "require_env_vars",
]
