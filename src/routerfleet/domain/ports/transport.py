"""Port for the single-device request/response collaborator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from routerfleet.domain.types import DeviceTarget


@runtime_checkable
class DeviceTransport(Protocol):
    """Issue one request against one device.

    Implementations return the decoded response (a list of mappings for
    collection listings, a mapping or ``None`` otherwise) and raise
    :class:`~routerfleet.domain.errors.FleetError` subclasses on failure:
    ``TransportError`` when the request could not be completed,
    ``DeviceHTTPError`` for non-success statuses, ``DecodeError`` for bodies
    that are not JSON. Retrying, if any, happens inside the implementation.
    """

    async def request(
        self,
        target: DeviceTarget,
        method: str,
        path: str,
        *,
        body: Mapping[str, str] | None = None,
        params: Mapping[str, str | None] | None = None,
    ) -> object: ...


__all__ = ["DeviceTransport"]
