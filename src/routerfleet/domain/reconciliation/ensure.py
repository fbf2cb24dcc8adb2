"""Make one named resource on one device match a desired attribute set.

The reconciler does the minimum I/O: one listing read, then at most one write
(a create when the resource is missing, a partial update carrying only the
changed attributes when it differs, nothing when it already matches). Steps are
strictly sequential; there is no concurrency inside one reconciliation.

Failures are never retried here. A failing listing read is fatal because no
diff is possible without current state; create and update failures surface
unchanged. Retrying, if any, is the transport's business.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from routerfleet.domain.errors import (
    DecodeError,
    DeviceHTTPError,
    FleetError,
    InvalidArgumentError,
    ResourceNotFoundError,
)
from routerfleet.domain.events import (
    Operation,
    OperationEvent,
    OutcomeClass,
    default_sink,
    elapsed_ms,
    started_at,
)
from routerfleet.domain.types import ReconcileOutcome

from .diff import diff_attributes
from .matcher import MatchResult, coerce_listing, match_by_fields, match_by_identifier

if TYPE_CHECKING:
    from routerfleet.domain.events import EventSink
    from routerfleet.domain.ports import DeviceTransport
    from routerfleet.domain.types import (
        AttributeSet,
        DeviceTarget,
        ExistingResource,
        ResourceDescriptor,
    )

log = getLogger(__name__)

_NO_SUCH_COMMAND = "no such command"


@dataclass(slots=True)
class Reconciler:
    """Idempotent ``ensure`` over a device transport."""

    transport: DeviceTransport
    events: EventSink = field(default_factory=default_sink)
    strict_identity: bool = False

    async def list_resources(
        self,
        target: DeviceTarget,
        descriptor: ResourceDescriptor,
        *,
        params: Mapping[str, str | None] | None = None,
    ) -> tuple[dict[str, str], ...]:
        payload = await self.transport.request(target, "GET", descriptor.path, params=params)
        return coerce_listing(payload)

    async def find(
        self,
        target: DeviceTarget,
        descriptor: ResourceDescriptor,
        identity: Mapping[str, str] | str,
    ) -> ExistingResource:
        """Look up a resource without implicit create; raise when it does not exist."""

        if isinstance(identity, str):
            if not identity.strip():
                raise InvalidArgumentError("Identifier must not be blank")
        else:
            _require_identity_values(tuple(identity), identity)

        started = started_at()
        try:
            listing = await self.list_resources(target, descriptor)
            if isinstance(identity, str):
                match = match_by_identifier(
                    listing,
                    identity,
                    id_field=descriptor.id_field,
                    name_field=descriptor.name_field,
                    strict=self.strict_identity,
                )
            else:
                match = match_by_fields(
                    listing,
                    identity,
                    id_field=descriptor.id_field,
                    strict=self.strict_identity,
                )
            if match.resource is None:
                raise ResourceNotFoundError(
                    f"No resource in {descriptor.path} matches {_describe_identity(identity)}"
                )
        except FleetError as exc:
            self._emit(Operation.LOOKUP, OutcomeClass.FAILED, started, target, descriptor, exc)
            raise

        self._emit(Operation.LOOKUP, OutcomeClass.FOUND, started, target, descriptor)
        return match.resource

    async def ensure(
        self,
        target: DeviceTarget,
        descriptor: ResourceDescriptor,
        desired: AttributeSet,
        *,
        identity: Mapping[str, str] | None = None,
    ) -> ReconcileOutcome:
        """Create or patch the resource so that it carries ``desired``.

        ``identity`` supplies identity values that are not part of ``desired``
        (e.g. the interface name); they are merged into the desired set.
        """

        effective = resolve_desired(descriptor, desired, identity)
        identity_values = {name: effective[name] for name in descriptor.identity}

        started = started_at()
        try:
            listing = await self.list_resources(target, descriptor)
            match = self.match(listing, descriptor, identity_values)
            existing = match.resource
            if existing is None:
                outcome = await self._create(
                    target, descriptor, effective, identity_values, reported=frozenset(desired)
                )
            else:
                outcome = await self._update(
                    target,
                    descriptor,
                    effective,
                    identity_values,
                    existing,
                    by_identifier=match.by_identifier,
                )
        except FleetError as exc:
            self._emit(Operation.RECONCILE, OutcomeClass.FAILED, started, target, descriptor, exc)
            raise

        if outcome.created:
            outcome_class = OutcomeClass.CREATED
        elif outcome.changed:
            outcome_class = OutcomeClass.UPDATED
        else:
            outcome_class = OutcomeClass.NOOP
        self._emit(
            Operation.RECONCILE,
            outcome_class,
            started,
            target,
            descriptor,
            attributes=tuple(outcome.changed_attributes),
        )
        return outcome

    def match(
        self,
        listing: tuple[dict[str, str], ...],
        descriptor: ResourceDescriptor,
        identity_values: Mapping[str, str],
    ) -> MatchResult:
        match = match_by_fields(
            listing,
            identity_values,
            id_field=descriptor.id_field,
            strict=self.strict_identity,
        )
        if match.found or len(identity_values) != 1:
            return match
        # A lone identity value may also be the device identifier (``*1``), never
        # another field: a name match here would address an unrelated resource.
        (value,) = identity_values.values()
        return match_by_identifier(
            listing,
            value,
            id_field=descriptor.id_field,
            name_field=None,
            strict=self.strict_identity,
        )

    async def _create(
        self,
        target: DeviceTarget,
        descriptor: ResourceDescriptor,
        effective: dict[str, str],
        identity_values: Mapping[str, str],
        *,
        reported: frozenset[str],
    ) -> ReconcileOutcome:
        method = descriptor.create_method.upper()
        try:
            response = await self.transport.request(
                target, method, descriptor.path, body=effective
            )
        except DeviceHTTPError as exc:
            if not _is_command_path_rejection(method, exc):
                raise
            log.debug("Create on %s rejected; retrying via %s/add", descriptor.path, descriptor.path)
            response = await self.transport.request(
                target, "POST", f"{descriptor.path.rstrip('/')}/add", body=effective
            )

        identifier = _echoed_identifier(response, descriptor.id_field)
        if identifier is None:
            identifier = ",".join(identity_values.values())
        return ReconcileOutcome(
            identifier=identifier,
            identity=dict(identity_values),
            changed_attributes=reported,
            created=True,
        )

    async def _update(
        self,
        target: DeviceTarget,
        descriptor: ResourceDescriptor,
        effective: dict[str, str],
        identity_values: Mapping[str, str],
        existing: ExistingResource,
        *,
        by_identifier: bool,
    ) -> ReconcileOutcome:
        if by_identifier:
            # The identity value addressed the resource; it is not an attribute to write.
            comparable = {k: v for k, v in effective.items() if k not in identity_values}
            reported_identity = {
                name: existing.get(name) or value for name, value in identity_values.items()
            }
        else:
            comparable = effective
            reported_identity = dict(identity_values)

        diff = diff_attributes(comparable, existing)
        if diff.empty:
            return ReconcileOutcome(
                identifier=existing.identifier or ",".join(reported_identity.values()),
                identity=reported_identity,
            )

        if existing.identifier is None:
            raise DecodeError(
                f"Resource in {descriptor.path} has no {descriptor.id_field} field; "
                "cannot address it for update"
            )
        await self.transport.request(
            target,
            "PATCH",
            descriptor.item_path(existing.identifier),
            body=diff.changes,
        )
        return ReconcileOutcome(
            identifier=existing.identifier,
            identity=reported_identity,
            changed_attributes=diff.names,
        )

    def _emit(
        self,
        operation: Operation,
        outcome: OutcomeClass,
        started: float,
        target: DeviceTarget,
        descriptor: ResourceDescriptor,
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
                resource=descriptor.path,
                error_kind=error.kind.value if error is not None else None,
                attributes=attributes,
            )
        )


def resolve_desired(
    descriptor: ResourceDescriptor,
    desired: AttributeSet,
    identity: Mapping[str, str] | None,
) -> dict[str, str]:
    if not descriptor.identity:
        raise InvalidArgumentError(
            f"Resource descriptor for {descriptor.path} has no identity fields"
        )
    if not isinstance(desired, Mapping):
        raise InvalidArgumentError("Desired attributes must be a mapping")
    for name, value in desired.items():
        if not isinstance(name, str) or not isinstance(value, str):
            raise InvalidArgumentError(
                f"Desired attributes must map strings to strings (offending key: {name!r})"
            )

    effective = dict(desired)
    if identity:
        unknown = set(identity) - set(descriptor.identity)
        if unknown:
            raise InvalidArgumentError(
                f"Identity values for unknown fields: {', '.join(sorted(unknown))}"
            )
        effective.update(identity)
    _require_identity_values(descriptor.identity, effective)
    return effective


def _require_identity_values(fields: tuple[str, ...], values: Mapping[str, str]) -> None:
    if not fields:
        raise InvalidArgumentError("Identity must name at least one field")
    missing = [name for name in fields if not (values.get(name) or "").strip()]
    if missing:
        raise InvalidArgumentError(f"Missing identity value for: {', '.join(missing)}")


def _is_command_path_rejection(method: str, exc: DeviceHTTPError) -> bool:
    return (
        method == "POST"
        and exc.status == 400
        and _NO_SUCH_COMMAND in (exc.details or "").lower()
    )


def _echoed_identifier(response: object, id_field: str) -> str | None:
    if isinstance(response, Mapping):
        value = response.get(id_field)
        if isinstance(value, str) and value:
            return value
    return None


def _describe_identity(identity: Mapping[str, str] | str) -> str:
    if isinstance(identity, str):
        return repr(identity)
    return ", ".join(f"{name}={value!r}" for name, value in identity.items())
