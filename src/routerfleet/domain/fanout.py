"""Run one per-device operation across many devices concurrently.

A fixed number of worker coroutines pull target indexes from a queue, so at
most ``max_concurrency`` operations are in flight. Each worker writes exactly
one result slot per target index, which keeps output order equal
to input order whatever the completion order.

Failure isolation: a raised error or a timeout is recorded in that target's
slot and never touches another slot. Timed-out operations are abandoned rather
than cancelled: the request may still complete on the wire, its result is
discarded. Abandoned tasks are cancelled only when their event loop shuts down.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from .errors import FleetError, InvalidArgumentError, TaskAbortedError, TaskTimeoutError
from .events import (
    Operation,
    OperationEvent,
    OutcomeClass,
    default_sink,
    elapsed_ms,
    started_at,
)
from .types import ClusterOutcome, DeviceTarget, TargetResult

if TYPE_CHECKING:
    from .events import EventSink

log = getLogger(__name__)

# One device round trip: connect budget plus receive budget.
DEFAULT_TASK_TIMEOUT_SECONDS = 20.0

type TargetOperation[T] = Callable[[DeviceTarget], Awaitable[T]]


def default_max_concurrency() -> int:
    return os.cpu_count() or 1


@dataclass(slots=True)
class FanoutExecutor:
    """Bounded, order-preserving, failure-isolating fan-out."""

    max_concurrency: int = field(default_factory=default_max_concurrency)
    task_timeout_seconds: float = DEFAULT_TASK_TIMEOUT_SECONDS
    events: EventSink = field(default_factory=default_sink)
    _abandoned: set[asyncio.Future[object]] = field(
        default_factory=set["asyncio.Future[object]"], init=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise InvalidArgumentError("max_concurrency must be at least 1")
        if self.task_timeout_seconds <= 0:
            raise InvalidArgumentError("task_timeout_seconds must be positive")

    @property
    def abandoned_count(self) -> int:
        return len(self._abandoned)

    async def run[T](
        self,
        targets: Sequence[DeviceTarget],
        operation: TargetOperation[T],
    ) -> ClusterOutcome[T]:
        """Apply ``operation`` to every target and collect results in input order."""

        if targets is None or isinstance(targets, (str, bytes)):
            raise InvalidArgumentError("targets must be a sequence of device targets")
        ordered = tuple(targets)
        if not ordered:
            raise InvalidArgumentError("targets must not be empty")

        started = started_at()
        slots: dict[int, TargetResult[T]] = {}
        queue: asyncio.Queue[int] = asyncio.Queue()
        for index in range(len(ordered)):
            queue.put_nowait(index)

        async def worker() -> None:
            while True:
                try:
                    index = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                slots[index] = await self._run_one(ordered[index], operation)

        worker_count = min(self.max_concurrency, len(ordered))
        log.debug(
            "Fan-out over %d targets with %d workers, timeout=%.1fs",
            len(ordered),
            worker_count,
            self.task_timeout_seconds,
        )
        await asyncio.gather(*(worker() for _ in range(worker_count)))

        outcome = ClusterOutcome(results=tuple(slots[index] for index in range(len(ordered))))

        if outcome.all_ok:
            summary = OutcomeClass.OK
        elif outcome.succeeded:
            summary = OutcomeClass.PARTIAL
        else:
            summary = OutcomeClass.FAILED
        self.events(
            OperationEvent(
                operation=Operation.FAN_OUT,
                outcome=summary,
                duration_ms=elapsed_ms(started),
                target=f"{len(ordered)} targets",
            )
        )
        return outcome

    async def _run_one[T](
        self,
        target: DeviceTarget,
        operation: TargetOperation[T],
    ) -> TargetResult[T]:
        started = started_at()
        error: FleetError | None = None
        value: T | None = None

        try:
            task: asyncio.Future[T] = asyncio.ensure_future(operation(target))
        except Exception as exc:  # noqa: BLE001
            error = _as_fleet_error(target, exc)
        else:
            done, _pending = await asyncio.wait({task}, timeout=self.task_timeout_seconds)
            if not done:
                self._abandon(task)
                error = TaskTimeoutError(
                    f"Operation on {target} did not complete within "
                    f"{self.task_timeout_seconds:.1f}s"
                )
            elif task.cancelled():
                error = TaskAbortedError(f"Operation on {target} was cancelled")
            else:
                exc = task.exception()
                if exc is None:
                    value = task.result()
                elif isinstance(exc, Exception):
                    error = _as_fleet_error(target, exc)
                else:
                    raise exc

        duration = elapsed_ms(started)
        self.events(
            OperationEvent(
                operation=Operation.FAN_OUT_TASK,
                outcome=OutcomeClass.OK if error is None else OutcomeClass.FAILED,
                duration_ms=duration,
                target=str(target),
                error_kind=error.kind.value if error is not None else None,
            )
        )
        return TargetResult(target=target, value=value, error=error, duration_ms=duration)

    def _abandon(self, task: asyncio.Future[object]) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._forget)

    def _forget(self, task: asyncio.Future[object]) -> None:
        self._abandoned.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.debug("Abandoned operation finished with %s", type(task.exception()).__name__)


def _as_fleet_error(target: DeviceTarget, exc: Exception) -> FleetError:
    if isinstance(exc, FleetError):
        return exc
    error = TaskAbortedError(
        f"Operation on {target} raised {type(exc).__name__}",
        details=str(exc) or None,
        cause=exc,
    )
    error.__cause__ = exc
    return error


async def fan_out[T](
    targets: Sequence[DeviceTarget],
    operation: TargetOperation[T],
    *,
    max_concurrency: int | None = None,
    task_timeout_seconds: float = DEFAULT_TASK_TIMEOUT_SECONDS,
    events: EventSink | None = None,
) -> ClusterOutcome[T]:
    """Convenience wrapper around :class:`FanoutExecutor`."""

    executor = FanoutExecutor(
        max_concurrency=max_concurrency or default_max_concurrency(),
        task_timeout_seconds=task_timeout_seconds,
        events=events or default_sink(),
    )
    return await executor.run(targets, operation)
