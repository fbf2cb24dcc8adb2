from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from routerfleet.domain.events import RecordingEventSink

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture(autouse=True)
def _quiet_http_loggers() -> Iterator[None]:
    # httpx request lines stay out of caplog.
    loggers = [logging.getLogger(name) for name in ("httpx", "httpcore")]
    previous = [logger.level for logger in loggers]
    for logger in loggers:
        logger.setLevel(logging.WARNING)
    try:
        yield
    finally:
        for logger, level in zip(loggers, previous, strict=True):
            logger.setLevel(level)
