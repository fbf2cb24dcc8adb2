"""Synchronous entry points over the async reconciliation core.

Each function runs one event loop via ``asyncio.run`` and defaults its
collaborators from the environment (:func:`get_device_auth`,
:func:`get_fanout_config`). Pass ``transport`` to talk to something other than
the RouterOS REST API, e.g. an in-memory fake in tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from logging import getLogger
from typing import TYPE_CHECKING

from routerfleet.adapters.routeros import RouterOSTransport
from routerfleet.config import get_device_auth, get_fanout_config
from routerfleet.domain.errors import InvalidArgumentError
from routerfleet.domain.events import default_sink
from routerfleet.domain.fanout import FanoutExecutor
from routerfleet.domain.reconciliation import Reconciler
from routerfleet.domain.secret_propagation import (
    DEFAULT_PUBLIC_FIELD,
    DEFAULT_SECRET_FIELD,
    SecretPropagation,
)
from routerfleet.domain.types import DeviceTarget

if TYPE_CHECKING:
    from routerfleet.config import FanoutConfig
    from routerfleet.domain.events import EventSink
    from routerfleet.domain.ports import DeviceTransport
    from routerfleet.domain.types import (
        AttributeSet,
        ClusterOutcome,
        ExistingResource,
        PropagationOutcome,
        ReconcileOutcome,
        ResourceDescriptor,
    )

type TargetLike = DeviceTarget | str

log = getLogger(__name__)


def as_target(value: TargetLike) -> DeviceTarget:
    """Accept a bare host (``"10.0.0.1"``, ``"fd00::1"``) wherever a target is expected."""

    if isinstance(value, DeviceTarget):
        return value
    return DeviceTarget(host=value)


def ensure_resource(
    target: TargetLike,
    descriptor: ResourceDescriptor,
    desired: AttributeSet,
    *,
    identity: Mapping[str, str] | None = None,
    transport: DeviceTransport | None = None,
    events: EventSink | None = None,
    strict_identity: bool = False,
) -> ReconcileOutcome:
    """Bring one resource on one device to ``desired``; errors propagate."""

    reconciler = _reconciler(transport, events, strict_identity=strict_identity)
    return asyncio.run(
        reconciler.ensure(as_target(target), descriptor, desired, identity=identity)
    )


def find_resource(
    target: TargetLike,
    descriptor: ResourceDescriptor,
    identity: Mapping[str, str] | str,
    *,
    transport: DeviceTransport | None = None,
    events: EventSink | None = None,
    strict_identity: bool = False,
) -> ExistingResource:
    reconciler = _reconciler(transport, events, strict_identity=strict_identity)
    return asyncio.run(reconciler.find(as_target(target), descriptor, identity))


def ensure_cluster(
    targets: Sequence[TargetLike],
    descriptor: ResourceDescriptor,
    desired: AttributeSet,
    *,
    identity: Mapping[str, str] | None = None,
    transport: DeviceTransport | None = None,
    fanout: FanoutConfig | None = None,
    events: EventSink | None = None,
    strict_identity: bool = False,
) -> ClusterOutcome[ReconcileOutcome]:
    """Ensure the same resource on every target; failures are reported per target."""

    reconciler = _reconciler(transport, events, strict_identity=strict_identity)
    executor = _executor(fanout, events)
    resolved = _as_targets(targets)

    async def reconcile(target: DeviceTarget) -> ReconcileOutcome:
        return await reconciler.ensure(target, descriptor, desired, identity=identity)

    log.info(
        "Ensuring %s on %d devices (max_concurrency=%d)",
        descriptor.path,
        len(resolved),
        executor.max_concurrency,
    )
    outcome = asyncio.run(executor.run(resolved, reconcile))
    log.info(
        "Finished %s: ok=%d, failed=%d",
        descriptor.path,
        len(outcome.succeeded),
        len(outcome.failed),
    )
    return outcome


def propagate_secret(
    primary: TargetLike,
    peers: Sequence[TargetLike],
    descriptor: ResourceDescriptor,
    desired: AttributeSet,
    *,
    identity: Mapping[str, str] | None = None,
    peer_identities: Mapping[TargetLike, Mapping[str, str]] | None = None,
    secret_field: str = DEFAULT_SECRET_FIELD,
    public_field: str | None = DEFAULT_PUBLIC_FIELD,
    transport: DeviceTransport | None = None,
    fanout: FanoutConfig | None = None,
    events: EventSink | None = None,
) -> PropagationOutcome:
    """Let ``primary`` generate the secret, then replicate it to ``peers``.

    Raises when the primary cannot be reconciled or will not disclose the
    secret; peer failures are reported in the returned outcome.
    """

    workflow = SecretPropagation(
        reconciler=_reconciler(transport, events),
        executor=_executor(fanout, events),
        descriptor=descriptor,
        secret_field=secret_field,
        public_field=public_field,
        events=events or default_sink(),
    )
    return asyncio.run(
        workflow.run(
            as_target(primary),
            _as_targets(peers),
            desired,
            identity=identity,
            peer_identities=(
                {as_target(peer): values for peer, values in peer_identities.items()}
                if peer_identities
                else None
            ),
        )
    )


def fan_out_request(
    targets: Sequence[TargetLike],
    method: str,
    path: str,
    *,
    body: Mapping[str, str] | None = None,
    params: Mapping[str, str | None] | None = None,
    transport: DeviceTransport | None = None,
    fanout: FanoutConfig | None = None,
    events: EventSink | None = None,
) -> ClusterOutcome[object]:
    """Issue one raw request against every target, e.g. ``GET /system/resource``."""

    effective_transport = _transport(transport)
    executor = _executor(fanout, events)

    async def send(target: DeviceTarget) -> object:
        return await effective_transport.request(target, method, path, body=body, params=params)

    return asyncio.run(executor.run(_as_targets(targets), send))


def _as_targets(values: Sequence[TargetLike]) -> tuple[DeviceTarget, ...]:
    if values is None or isinstance(values, (str, bytes)):
        raise InvalidArgumentError("targets must be a sequence of hosts or device targets")
    return tuple(as_target(value) for value in values)


def _transport(transport: DeviceTransport | None) -> DeviceTransport:
    if transport is not None:
        return transport
    return RouterOSTransport(auth=get_device_auth())


def _reconciler(
    transport: DeviceTransport | None,
    events: EventSink | None,
    *,
    strict_identity: bool = False,
) -> Reconciler:
    return Reconciler(
        transport=_transport(transport),
        events=events or default_sink(),
        strict_identity=strict_identity,
    )


def _executor(fanout: FanoutConfig | None, events: EventSink | None) -> FanoutExecutor:
    config = fanout or get_fanout_config()
    return FanoutExecutor(
        max_concurrency=config.max_concurrency,
        task_timeout_seconds=config.task_timeout_seconds,
        events=events or default_sink(),
    )
