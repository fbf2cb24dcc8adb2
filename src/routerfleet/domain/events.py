"""Structured operation events and the sinks that receive them.

Events describe *what happened* (operation kind, target, duration, outcome
class) and carry attribute names only. Attribute values never enter an event,
which keeps secret-bearing fields out of every log sink by construction.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

log = logging.getLogger(__name__)


class Operation(StrEnum):
    RECONCILE = "reconcile"
    LOOKUP = "lookup"
    FAN_OUT = "fan-out"
    FAN_OUT_TASK = "fan-out-task"
    SECRET_RETRIEVAL = "secret-retrieval"
    SECRET_PROPAGATION = "secret-propagation"


class OutcomeClass(StrEnum):
    NOOP = "noop"
    CREATED = "created"
    UPDATED = "updated"
    FOUND = "found"
    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class OperationEvent:
    operation: Operation
    outcome: OutcomeClass
    duration_ms: float
    target: str | None = None
    resource: str | None = None
    error_kind: str | None = None
    attributes: tuple[str, ...] = ()


class EventSink(Protocol):
    def __call__(self, event: OperationEvent) -> None: ...


class LoggingEventSink:
    """Default sink: one log record per event on the given logger."""

    def __init__(self, logger: logging.Logger | None = None, *, level: int = logging.INFO) -> None:
        self._logger = logger or log
        self._level = level

    def __call__(self, event: OperationEvent) -> None:
        level = logging.WARNING if event.outcome is OutcomeClass.FAILED else self._level
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(
            level,
            "%s target=%s resource=%s outcome=%s duration_ms=%.1f%s%s",
            event.operation,
            event.target or "-",
            event.resource or "-",
            event.outcome,
            event.duration_ms,
            f" error={event.error_kind}" if event.error_kind else "",
            f" attributes={','.join(sorted(event.attributes))}" if event.attributes else "",
            extra={"routerfleet_event": event},
        )


class RecordingEventSink:
    """Keeps events in memory; useful for callers that report on a whole run."""

    def __init__(self) -> None:
        self.events: list[OperationEvent] = []

    def __call__(self, event: OperationEvent) -> None:
        self.events.append(event)


_default_sink = LoggingEventSink()


def default_sink() -> EventSink:
    return _default_sink


def started_at() -> float:
    return time.perf_counter()


def elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
