"""Value types exchanged between the reconciler, the fan-out executor and callers."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from .errors import FleetError

type AttributeSet = Mapping[str, str]

DEFAULT_ID_FIELD: Final[str] = ".id"
DEFAULT_NAME_FIELD: Final[str] = "name"
DEFAULT_CREATE_METHOD: Final[str] = "PUT"


@dataclass(frozen=True, slots=True)
class DeviceTarget:
    """Handle for one device. The core never looks inside; the transport does."""

    host: str
    scheme: str | None = None
    port: int | None = None
    label: str | None = None

    def __str__(self) -> str:
        return self.label or self.host


@dataclass(frozen=True, slots=True)
class ResourceDescriptor:
    """A resource collection plus the attribute names that identify one instance in it."""

    path: str
    identity: tuple[str, ...]
    id_field: str = DEFAULT_ID_FIELD
    name_field: str = DEFAULT_NAME_FIELD
    create_method: str = DEFAULT_CREATE_METHOD

    def item_path(self, identifier: str) -> str:
        return f"{self.path.rstrip('/')}/{identifier}"

    def with_identity(self, *fields: str) -> ResourceDescriptor:
        return ResourceDescriptor(
            path=self.path,
            identity=tuple(fields),
            id_field=self.id_field,
            name_field=self.name_field,
            create_method=self.create_method,
        )


@dataclass(frozen=True, slots=True)
class ExistingResource:
    """One resource as returned by the device, looked up by the matcher."""

    attributes: Mapping[str, str]
    identifier: str | None = None
    position: int = 0

    def get(self, name: str) -> str | None:
        return self.attributes.get(name)


@dataclass(frozen=True, slots=True)
class ReconcileOutcome:
    """Result of one reconciliation.

    ``changed_attributes`` holds the attribute names sent to the device and is
    always a subset of the keys the caller passed as desired attributes.
    Identity values supplied separately are written on create but not listed.
    An empty set on an existing resource means nothing was written.
    """

    identifier: str
    identity: Mapping[str, str]
    changed_attributes: frozenset[str] = frozenset()
    created: bool = False

    @property
    def identity_value(self) -> str | tuple[str, ...]:
        values = tuple(self.identity.values())
        if len(values) == 1:
            return values[0]
        return values

    @property
    def changed(self) -> bool:
        return bool(self.changed_attributes)


@dataclass(frozen=True, slots=True)
class TargetResult[T]:
    """One slot of a cluster outcome: the target and either a value or a failure."""

    target: DeviceTarget
    value: T | None = None
    error: FleetError | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass(frozen=True, slots=True)
class ClusterOutcome[T]:
    """Per-target results, one per input target, in input order."""

    results: tuple[TargetResult[T], ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[TargetResult[T]]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, index: int) -> TargetResult[T]:
        return self.results[index]

    @property
    def targets(self) -> tuple[DeviceTarget, ...]:
        return tuple(result.target for result in self.results)

    @property
    def succeeded(self) -> tuple[TargetResult[T], ...]:
        return tuple(result for result in self.results if result.ok)

    @property
    def failed(self) -> tuple[TargetResult[T], ...]:
        return tuple(result for result in self.results if not result.ok)

    @property
    def all_ok(self) -> bool:
        return all(result.ok for result in self.results)


@dataclass(frozen=True, slots=True)
class PropagationOutcome:
    """Terminal value of the secret propagation workflow.

    Carries the public counterpart of the secret when the device exposes one,
    never the secret itself.
    """

    primary: ReconcileOutcome
    public_identifier: str | None
    peers: ClusterOutcome[ReconcileOutcome]


def to_wire_value(value: object) -> str:
    """Render a decoded JSON scalar the way the device API spells it."""

    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)
