"""Generate a secret on one device and replicate it to its peers.

The workflow is a small state machine: START, AWAIT_SECRET, HAVE_SECRET and
DONE in that order, with FAILED reachable from every non-terminal state.

Phase 1 reconciles the primary with the desired set minus the secret field, so
the device generates the secret itself. The secret is then read back from the
listing; when the listing omits it the workflow takes the retry path, an
extended-field query naming the secret field explicitly. A device that still
withholds it ends the workflow with :class:`SecretUnreadableError` and no peer
is touched.

Phase 2 fans the reconciler out across the peers with the secret merged into
the desired set. Peer failures are isolated per peer and never fail the
workflow. Device error bodies may echo request bodies, so every peer failure
is scrubbed of the secret before it is returned.

The secret lives in a :class:`pydantic.SecretStr` and is only unwrapped while
building the peer request body. It never reaches an event, a log record or the
returned outcome.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import SecretStr

from .errors import FleetError, InvalidArgumentError, SecretUnreadableError
from .events import (
    Operation,
    OperationEvent,
    OutcomeClass,
    default_sink,
    elapsed_ms,
    started_at,
)
from .fanout import FanoutExecutor
from .reconciliation import resolve_desired
from .types import ClusterOutcome, PropagationOutcome, TargetResult

if TYPE_CHECKING:
    from .events import EventSink
    from .reconciliation import Reconciler
    from .types import (
        AttributeSet,
        DeviceTarget,
        ExistingResource,
        ReconcileOutcome,
        ResourceDescriptor,
    )

log = getLogger(__name__)

DEFAULT_SECRET_FIELD = "private-key"
DEFAULT_PUBLIC_FIELD = "public-key"
PROPLIST_PARAM = ".proplist"
REDACTED = "***"


class PropagationState(StrEnum):
    START = "start"
    AWAIT_SECRET = "await-secret"
    HAVE_SECRET = "have-secret"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[PropagationState, frozenset[PropagationState]] = {
    PropagationState.START: frozenset({PropagationState.AWAIT_SECRET, PropagationState.FAILED}),
    PropagationState.AWAIT_SECRET: frozenset(
        {PropagationState.HAVE_SECRET, PropagationState.FAILED}
    ),
    PropagationState.HAVE_SECRET: frozenset({PropagationState.DONE, PropagationState.FAILED}),
    PropagationState.DONE: frozenset(),
    PropagationState.FAILED: frozenset(),
}


@dataclass(slots=True)
class SecretPropagation:
    """One run of the propagation workflow for one resource type.

    An instance is single-use: it records the state it reached and whether the
    retrieval needed the extended-field query (``used_extended_query``).
    """

    reconciler: Reconciler
    executor: FanoutExecutor
    descriptor: ResourceDescriptor
    secret_field: str = DEFAULT_SECRET_FIELD
    public_field: str | None = DEFAULT_PUBLIC_FIELD
    events: EventSink = field(default_factory=default_sink)
    state: PropagationState = field(default=PropagationState.START, init=False)
    used_extended_query: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        if not self.secret_field:
            raise InvalidArgumentError("secret_field must not be empty")
        if self.secret_field in self.descriptor.identity:
            raise InvalidArgumentError(
                f"Secret field {self.secret_field!r} cannot be an identity field"
            )

    async def run(
        self,
        primary: DeviceTarget,
        peers: Sequence[DeviceTarget],
        desired: AttributeSet,
        *,
        identity: Mapping[str, str] | None = None,
        peer_identities: Mapping[DeviceTarget, Mapping[str, str]] | None = None,
    ) -> PropagationOutcome:
        """Create the resource on ``primary`` and replicate its secret to ``peers``.

        ``peer_identities`` overrides ``identity`` per peer, e.g. when each
        node names its tunnel interface differently.
        """

        if self.state is not PropagationState.START:
            raise InvalidArgumentError(f"Propagation already ran (state: {self.state})")

        stripped = self._strip_secret(desired)
        primary_desired = resolve_desired(self.descriptor, stripped, identity)
        peer_list = self._validate_peers(primary, peers)
        overrides = dict(peer_identities or {})
        for target in peer_list:
            resolve_desired(self.descriptor, stripped, overrides.get(target, identity))

        started = started_at()
        try:
            primary_outcome = await self.reconciler.ensure(
                primary, self.descriptor, primary_desired
            )
            self._transition(PropagationState.AWAIT_SECRET)

            identity_values = {name: primary_desired[name] for name in self.descriptor.identity}
            secret, public_identifier = await self._retrieve_secret(primary, identity_values)
            self._transition(PropagationState.HAVE_SECRET)
        except FleetError as exc:
            self._fail(started, primary, exc)
            raise

        try:
            peers_outcome = await self._replicate(
                peer_list, stripped, secret, identity, overrides
            )
        except FleetError as exc:
            self._fail(started, primary, exc)
            raise
        finally:
            del secret

        self._transition(PropagationState.DONE)
        self._emit(
            Operation.SECRET_PROPAGATION,
            OutcomeClass.OK if peers_outcome.all_ok else OutcomeClass.PARTIAL,
            started,
            primary,
        )
        return PropagationOutcome(
            primary=primary_outcome,
            public_identifier=public_identifier,
            peers=peers_outcome,
        )

    async def _retrieve_secret(
        self,
        primary: DeviceTarget,
        identity_values: Mapping[str, str],
    ) -> tuple[SecretStr, str | None]:
        started = started_at()
        try:
            resource = await self._read_back(primary, identity_values, params=None)
            secret = _secret_of(resource, self.secret_field)
            if secret is None:
                self.used_extended_query = True
                log.debug(
                    "%s not in listing of %s on %s; issuing extended query",
                    self.secret_field,
                    self.descriptor.path,
                    primary,
                )
                resource = await self._read_back(
                    primary, identity_values, params={PROPLIST_PARAM: self._proplist()}
                )
                secret = _secret_of(resource, self.secret_field)
            if secret is None:
                raise SecretUnreadableError(
                    f"Device {primary} did not disclose {self.secret_field} of "
                    f"{self.descriptor.path} via listing or extended query"
                )
        except FleetError as exc:
            self._emit(Operation.SECRET_RETRIEVAL, OutcomeClass.FAILED, started, primary, exc)
            raise

        public_identifier = None
        if self.public_field is not None and resource is not None:
            public_identifier = resource.get(self.public_field) or None
        self._emit(
            Operation.SECRET_RETRIEVAL,
            OutcomeClass.FOUND,
            started,
            primary,
            attributes=(self.secret_field,),
        )
        return secret, public_identifier

    async def _read_back(
        self,
        primary: DeviceTarget,
        identity_values: Mapping[str, str],
        *,
        params: Mapping[str, str | None] | None,
    ) -> ExistingResource | None:
        listing = await self.reconciler.list_resources(primary, self.descriptor, params=params)
        return self.reconciler.match(listing, self.descriptor, identity_values).resource

    async def _replicate(
        self,
        peers: tuple[DeviceTarget, ...],
        stripped: dict[str, str],
        secret: SecretStr,
        identity: Mapping[str, str] | None,
        overrides: Mapping[DeviceTarget, Mapping[str, str]],
    ) -> ClusterOutcome[ReconcileOutcome]:
        async def replicate(target: DeviceTarget) -> ReconcileOutcome:
            body = {**stripped, self.secret_field: secret.get_secret_value()}
            return await self.reconciler.ensure(
                target,
                self.descriptor,
                body,
                identity=overrides.get(target, identity),
            )

        outcome = await self.executor.run(peers, replicate)
        return _redact_outcome(outcome, secret)

    def _strip_secret(self, desired: AttributeSet) -> dict[str, str]:
        if not isinstance(desired, Mapping):
            raise InvalidArgumentError("Desired attributes must be a mapping")
        if self.secret_field in desired:
            log.debug(
                "Dropping %s from desired attributes; the primary generates it",
                self.secret_field,
            )
        return {name: value for name, value in desired.items() if name != self.secret_field}

    def _validate_peers(
        self, primary: DeviceTarget, peers: Sequence[DeviceTarget]
    ) -> tuple[DeviceTarget, ...]:
        if peers is None or isinstance(peers, (str, bytes)):
            raise InvalidArgumentError("peers must be a sequence of device targets")
        peer_list = tuple(peers)
        if not peer_list:
            raise InvalidArgumentError("peers must not be empty")
        if primary in peer_list:
            raise InvalidArgumentError(f"Primary {primary} must not also be listed as a peer")
        return peer_list

    def _proplist(self) -> str:
        names = [
            *self.descriptor.identity,
            self.descriptor.id_field,
            self.secret_field,
        ]
        if self.public_field is not None:
            names.append(self.public_field)
        return ",".join(dict.fromkeys(names))

    def _transition(self, new_state: PropagationState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal propagation transition {self.state} -> {new_state}")
        log.debug("Secret propagation %s -> %s", self.state, new_state)
        self.state = new_state

    def _fail(self, started: float, primary: DeviceTarget, error: FleetError) -> None:
        self._transition(PropagationState.FAILED)
        self._emit(Operation.SECRET_PROPAGATION, OutcomeClass.FAILED, started, primary, error)

    def _emit(
        self,
        operation: Operation,
        outcome: OutcomeClass,
        started: float,
        target: DeviceTarget,
        error: FleetError | None = None,
        *,
        attributes: tuple[str, ...] = (),
    ) -> None:
        self.events(
            OperationEvent(
                operation=operation,
                outcome=outcome,
                duration_ms=elapsed_ms(started),
                target=str(target),
                resource=self.descriptor.path,
                error_kind=error.kind.value if error is not None else None,
                attributes=attributes,
            )
        )


def _secret_of(resource: ExistingResource | None, secret_field: str) -> SecretStr | None:
    if resource is None:
        return None
    value = resource.get(secret_field)
    if not value:
        return None
    return SecretStr(value)


def _redact_outcome(
    outcome: ClusterOutcome[ReconcileOutcome],
    secret: SecretStr,
) -> ClusterOutcome[ReconcileOutcome]:
    plain = secret.get_secret_value()
    results: list[TargetResult[ReconcileOutcome]] = []
    for result in outcome:
        if result.error is None:
            results.append(result)
            continue
        results.append(
            TargetResult(
                target=result.target,
                value=None,
                error=redact_error(result.error, plain),
                duration_ms=result.duration_ms,
            )
        )
    return ClusterOutcome(results=tuple(results))


def redact_error(error: FleetError, secret: str) -> FleetError:
    """Return ``error`` unchanged, or a copy of it with ``secret`` masked out.

    The copy drops the original cause; a third-party exception may hold the
    secret in attributes this module cannot inspect.
    """

    cause_text = str(error.cause) if error.cause is not None else ""
    leaked = (
        secret in error.message
        or secret in (error.details or "")
        or secret in cause_text
    )
    if not leaked:
        return error
    scrubbed = type(error)(
        error.message.replace(secret, REDACTED),
        status=error.status,
        details=error.details.replace(secret, REDACTED) if error.details else None,
    )
    return scrubbed


async def propagate_secret(
    reconciler: Reconciler,
    descriptor: ResourceDescriptor,
    primary: DeviceTarget,
    peers: Sequence[DeviceTarget],
    desired: AttributeSet,
    *,
    identity: Mapping[str, str] | None = None,
    peer_identities: Mapping[DeviceTarget, Mapping[str, str]] | None = None,
    secret_field: str = DEFAULT_SECRET_FIELD,
    public_field: str | None = DEFAULT_PUBLIC_FIELD,
    executor: FanoutExecutor | None = None,
    events: EventSink | None = None,
) -> PropagationOutcome:
    workflow = SecretPropagation(
        reconciler=reconciler,
        executor=executor or FanoutExecutor(events=events or default_sink()),
        descriptor=descriptor,
        secret_field=secret_field,
        public_field=public_field,
        events=events or default_sink(),
    )
    return await workflow.run(
        primary,
        peers,
        desired,
        identity=identity,
        peer_identities=peer_identities,
    )
