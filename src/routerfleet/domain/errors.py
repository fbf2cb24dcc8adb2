"""Error taxonomy shared by the reconciler, the fan-out executor and adapters.

Every error carries a ``kind`` so callers can decide whether to retry, alert or
surface the failure to an operator without parsing messages. The underlying
cause, when there is one, travels through normal exception chaining
(``raise ... from exc``) and is also exposed as ``cause``.

No error in this module ever receives secret material: messages and details are
built from paths, statuses and device response bodies only, and the secret
propagation workflow redacts peer response bodies before returning them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar

MAX_DETAIL_BYTES = 4096


class ErrorKind(StrEnum):
    INVALID_ARGUMENT = "invalid-argument"
    NOT_FOUND = "not-found"
    TRANSPORT = "transport-error"
    HTTP = "http-error"
    DECODE = "decode-error"
    SECRET_UNREADABLE = "secret-unreadable"
    TASK_TIMEOUT = "task-timeout"
    TASK_ABORTED = "task-aborted"


class FleetError(RuntimeError):
    """Base class for every failure reported by routerfleet."""

    kind: ClassVar[ErrorKind]

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        details: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return False

    def __repr__(self) -> str:
        parts = [f"kind={self.kind.value!r}", f"message={self.message!r}"]
        if self.status is not None:
            parts.append(f"status={self.status}")
        return f"{type(self).__name__}({', '.join(parts)})"


class InvalidArgumentError(FleetError, ValueError):
    """Malformed identity or desired-state input, detected before any I/O."""

    kind = ErrorKind.INVALID_ARGUMENT


class ResourceNotFoundError(FleetError):
    """A lookup-only request found no resource for the given identity."""

    kind = ErrorKind.NOT_FOUND


class TransportError(FleetError):
    """The request could not be completed (connection, TLS, request timeout)."""

    kind = ErrorKind.TRANSPORT

    @property
    def retryable(self) -> bool:
        return True


class DeviceHTTPError(FleetError):
    """The device answered with a non-success status."""

    kind = ErrorKind.HTTP

    @property
    def retryable(self) -> bool:
        return self.status is not None and self.status >= 500


class DecodeError(FleetError):
    """The device answered successfully but the body could not be decoded."""

    kind = ErrorKind.DECODE


class SecretUnreadableError(FleetError):
    """The device accepted secret-bearing configuration but will not disclose the secret.

    Remediation differs from transport or HTTP failures: supply a pre-generated
    secret instead of relying on the device to generate one.
    """

    kind = ErrorKind.SECRET_UNREADABLE


class TaskTimeoutError(FleetError):
    """A fan-out slot did not finish within its per-task timeout."""

    kind = ErrorKind.TASK_TIMEOUT

    @property
    def retryable(self) -> bool:
        return True


class TaskAbortedError(FleetError):
    """A fan-out slot raised an unexpected exception."""

    kind = ErrorKind.TASK_ABORTED


def truncate_details(body: str | bytes | None, *, limit: int = MAX_DETAIL_BYTES) -> str | None:
    if body is None:
        return None
    raw = body if isinstance(body, bytes) else body.encode("utf-8", errors="replace")
    if len(raw) > limit:
        raw = raw[:limit]
    return raw.decode("utf-8", errors="replace")
