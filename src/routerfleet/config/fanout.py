"""Fan-out defaults for cluster-wide operations."""

from __future__ import annotations

from dataclasses import dataclass, field

from routerfleet.domain.fanout import DEFAULT_TASK_TIMEOUT_SECONDS, default_max_concurrency

from .env import env_float, env_int
from .errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class FanoutConfig:
    max_concurrency: int = field(default_factory=default_max_concurrency)
    task_timeout_seconds: float = DEFAULT_TASK_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")
        if self.task_timeout_seconds <= 0:
            raise ConfigurationError("task_timeout_seconds must be positive")


def get_fanout_config() -> FanoutConfig:
    return FanoutConfig(
        max_concurrency=env_int("ROUTERFLEET_MAX_CONCURRENCY", default=default_max_concurrency()),
        task_timeout_seconds=env_float(
            "ROUTERFLEET_TASK_TIMEOUT", default=DEFAULT_TASK_TIMEOUT_SECONDS
        ),
    )
