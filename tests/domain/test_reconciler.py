from __future__ import annotations

import asyncio

import pytest

from routerfleet.domain.errors import (
    DecodeError,
    ErrorKind,
    InvalidArgumentError,
    ResourceNotFoundError,
    TransportError,
)
from routerfleet.domain.events import Operation, OutcomeClass, RecordingEventSink
from routerfleet.domain.reconciliation import Reconciler
from routerfleet.domain.types import DeviceTarget, ResourceDescriptor
from tests.support.fake_transport import FakeDevice, FakeTransport

WIREGUARD = ResourceDescriptor(path="/interface/wireguard", identity=("name",))
GRE = ResourceDescriptor(path="/interface/gre", identity=("name",), create_method="POST")
TARGET = DeviceTarget(host="10.0.0.1")


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def transport(device: FakeDevice) -> FakeTransport:
    return FakeTransport({"10.0.0.1": device})


@pytest.fixture
def reconciler(transport: FakeTransport, events: RecordingEventSink) -> Reconciler:
    return Reconciler(transport=transport, events=events)


def test_ensure_creates_missing_resource(
    reconciler: Reconciler,
    transport: FakeTransport,
    device: FakeDevice,
    events: RecordingEventSink,
) -> None:
    desired = {"name": "wg0", "listen-port": "13231", "mtu": "1420"}

    outcome = asyncio.run(reconciler.ensure(TARGET, WIREGUARD, desired))

    assert outcome.created
    assert outcome.identifier == "*1"
    assert outcome.identity == {"name": "wg0"}
    assert outcome.identity_value == "wg0"
    assert outcome.changed_attributes == frozenset(desired)
    assert [(c.method, c.path) for c in transport.calls] == [
        ("GET", "/interface/wireguard"),
        ("PUT", "/interface/wireguard"),
    ]
    assert transport.calls[1].body == desired
    assert device.entries("/interface/wireguard")[0]["mtu"] == "1420"
    assert events.events[-1].operation is Operation.RECONCILE
    assert events.events[-1].outcome is OutcomeClass.CREATED


def test_ensure_patches_only_changed_attributes(
    reconciler: Reconciler,
    transport: FakeTransport,
    device: FakeDevice,
) -> None:
    device.add("/interface/wireguard", name="wg0", **{"listen-port": "13231", "mtu": "1500"})

    outcome = asyncio.run(
        reconciler.ensure(
            TARGET, WIREGUARD, {"name": "wg0", "listen-port": "13231", "mtu": "1420"}
        )
    )

    assert not outcome.created
    assert outcome.changed_attributes == frozenset({"mtu"})
    patch = transport.writes_to("10.0.0.1")
    assert len(patch) == 1
    assert patch[0].method == "PATCH"
    assert patch[0].path == "/interface/wireguard/*1"
    assert patch[0].body == {"mtu": "1420"}


def test_ensure_is_idempotent(
    reconciler: Reconciler,
    transport: FakeTransport,
    events: RecordingEventSink,
) -> None:
    desired = {"name": "wg0", "mtu": "1420"}

    first = asyncio.run(reconciler.ensure(TARGET, WIREGUARD, desired))
    second = asyncio.run(reconciler.ensure(TARGET, WIREGUARD, desired))

    assert first.changed
    assert not second.changed
    assert second.changed_attributes == frozenset()
    assert second.identifier == first.identifier
    assert [c.method for c in transport.calls] == ["GET", "PUT", "GET"]
    assert events.events[-1].outcome is OutcomeClass.NOOP


def test_ensure_merges_identity_argument(
    reconciler: Reconciler, transport: FakeTransport
) -> None:
    asyncio.run(reconciler.ensure(TARGET, WIREGUARD, {"mtu": "1420"}, identity={"name": "wg1"}))

    assert transport.calls[-1].body == {"mtu": "1420", "name": "wg1"}


def test_ensure_addresses_resource_by_identifier(
    reconciler: Reconciler,
    transport: FakeTransport,
    device: FakeDevice,
) -> None:
    device.add("/interface/wireguard", name="wg0", mtu="1500")

    outcome = asyncio.run(
        reconciler.ensure(TARGET, WIREGUARD, {"mtu": "1420"}, identity={"name": "*1"})
    )

    assert not outcome.created
    assert outcome.identifier == "*1"
    assert outcome.identity == {"name": "wg0"}
    assert transport.calls[-1].method == "PATCH"
    assert transport.calls[-1].body == {"mtu": "1420"}


@pytest.mark.parametrize(
    "desired",
    [
        {"mtu": "1420"},
        {"name": "   ", "mtu": "1420"},
        {"name": "wg0", "mtu": 1420},
    ],
)
def test_invalid_input_fails_before_any_io(
    reconciler: Reconciler,
    transport: FakeTransport,
    desired: dict[str, object],
) -> None:
    with pytest.raises(InvalidArgumentError) as exc:
        asyncio.run(reconciler.ensure(TARGET, WIREGUARD, desired))  # type: ignore[arg-type]

    assert exc.value.kind is ErrorKind.INVALID_ARGUMENT
    assert transport.calls == []


def test_descriptor_without_identity_is_rejected(
    reconciler: Reconciler, transport: FakeTransport
) -> None:
    descriptor = ResourceDescriptor(path="/interface/wireguard", identity=())

    with pytest.raises(InvalidArgumentError):
        asyncio.run(reconciler.ensure(TARGET, descriptor, {"name": "wg0"}))

    assert transport.calls == []


def test_unknown_identity_field_is_rejected(
    reconciler: Reconciler, transport: FakeTransport
) -> None:
    with pytest.raises(InvalidArgumentError):
        asyncio.run(
            reconciler.ensure(TARGET, WIREGUARD, {"name": "wg0"}, identity={"comment": "x"})
        )

    assert transport.calls == []


def test_listing_failure_is_fatal_and_nothing_is_written(
    reconciler: Reconciler,
    transport: FakeTransport,
    device: FakeDevice,
    events: RecordingEventSink,
) -> None:
    device.failure = TransportError("GET /interface/wireguard on 10.0.0.1 failed: ConnectError")

    with pytest.raises(TransportError):
        asyncio.run(reconciler.ensure(TARGET, WIREGUARD, {"name": "wg0"}))

    assert [c.method for c in transport.calls] == ["GET"]
    assert events.events[-1].outcome is OutcomeClass.FAILED
    assert events.events[-1].error_kind == "transport-error"


def test_create_falls_back_to_add_command(
    reconciler: Reconciler,
    transport: FakeTransport,
    device: FakeDevice,
) -> None:
    device.rejects_collection_post = frozenset({"/interface/gre"})
    desired = {"name": "gre1", "remote-address": "192.0.2.2"}

    outcome = asyncio.run(reconciler.ensure(TARGET, GRE, desired))

    assert outcome.created
    assert [(c.method, c.path) for c in transport.calls] == [
        ("GET", "/interface/gre"),
        ("POST", "/interface/gre"),
        ("POST", "/interface/gre/add"),
    ]
    assert device.entries("/interface/gre")[0]["remote-address"] == "192.0.2.2"


def test_update_without_identifier_is_a_decode_error(
    reconciler: Reconciler, device: FakeDevice
) -> None:
    device.collections["/interface/wireguard"] = [{"name": "wg0", "mtu": "1500"}]

    with pytest.raises(DecodeError):
        asyncio.run(reconciler.ensure(TARGET, WIREGUARD, {"name": "wg0", "mtu": "1420"}))


def test_find_returns_existing_resource(reconciler: Reconciler, device: FakeDevice) -> None:
    device.add("/interface/wireguard", name="wg0", mtu="1420")

    by_fields = asyncio.run(reconciler.find(TARGET, WIREGUARD, {"name": "wg0"}))
    by_identifier = asyncio.run(reconciler.find(TARGET, WIREGUARD, "*1"))

    assert by_fields.identifier == "*1"
    assert by_identifier.get("name") == "wg0"


def test_find_raises_not_found_without_creating(
    reconciler: Reconciler,
    transport: FakeTransport,
    events: RecordingEventSink,
) -> None:
    with pytest.raises(ResourceNotFoundError) as exc:
        asyncio.run(reconciler.find(TARGET, WIREGUARD, "wg9"))

    assert exc.value.kind is ErrorKind.NOT_FOUND
    assert [c.method for c in transport.calls] == ["GET"]
    assert events.events[-1].operation is Operation.LOOKUP
    assert events.events[-1].outcome is OutcomeClass.FAILED


def test_events_carry_attribute_names_only(
    reconciler: Reconciler, events: RecordingEventSink
) -> None:
    asyncio.run(reconciler.ensure(TARGET, WIREGUARD, {"name": "wg0", "comment": "s3cr3t-value"}))

    event = events.events[-1]
    assert set(event.attributes) == {"name", "comment"}
    assert "s3cr3t-value" not in repr(event)


def test_single_field_identity_never_matches_an_unrelated_name(
    reconciler: Reconciler,
    transport: FakeTransport,
    device: FakeDevice,
) -> None:
    by_address = ResourceDescriptor(path="/ip/dns/static", identity=("address",))
    device.add("/ip/dns/static", name="10.0.0.5", address="192.0.2.9")

    outcome = asyncio.run(
        reconciler.ensure(TARGET, by_address, {"address": "10.0.0.5", "name": "nas.lan"})
    )

    assert outcome.created
    assert [c.method for c in transport.calls] == ["GET", "PUT"]
    assert device.entries("/ip/dns/static")[0] == {
        ".id": "*1",
        "name": "10.0.0.5",
        "address": "192.0.2.9",
    }


def test_identity_argument_is_not_reported_as_changed(reconciler: Reconciler) -> None:
    outcome = asyncio.run(
        reconciler.ensure(TARGET, WIREGUARD, {"mtu": "1420"}, identity={"name": "wg1"})
    )

    assert outcome.created
    assert outcome.changed_attributes == frozenset({"mtu"})
    assert outcome.identity == {"name": "wg1"}
