"""Descriptors for the RouterOS resource collections routerfleet reconciles most.

Identity fields follow what uniquely names an instance on a device. Rules
(firewall, NAT, provisioning) have no natural key; their default identity is a
reasonable guess and callers narrow or widen it with ``with_identity``.
"""

from __future__ import annotations

from routerfleet.domain.errors import InvalidArgumentError
from routerfleet.domain.types import ResourceDescriptor

INTERFACE = ResourceDescriptor(path="/interface", identity=("name",))
WIREGUARD_INTERFACE = ResourceDescriptor(path="/interface/wireguard", identity=("name",))
WIREGUARD_PEER = ResourceDescriptor(
    path="/interface/wireguard/peers", identity=("interface", "public-key")
)
GRE_INTERFACE = ResourceDescriptor(path="/interface/gre", identity=("name",), create_method="POST")
BRIDGE_PORT = ResourceDescriptor(
    path="/interface/bridge/port", identity=("bridge", "interface"), create_method="POST"
)
BRIDGE_VLAN = ResourceDescriptor(
    path="/interface/bridge/vlan", identity=("bridge", "vlan-ids"), create_method="POST"
)
IP_ADDRESS = ResourceDescriptor(
    path="/ip/address", identity=("address", "interface"), create_method="POST"
)
FIREWALL_FILTER = ResourceDescriptor(
    path="/ip/firewall/filter", identity=("chain", "action"), create_method="POST"
)
FIREWALL_NAT = ResourceDescriptor(
    path="/ip/firewall/nat", identity=("chain", "action"), create_method="POST"
)
DNS_STATIC = ResourceDescriptor(path="/ip/dns/static", identity=("name",), create_method="POST")
CAPSMAN_SECURITY = ResourceDescriptor(
    path="/caps-man/security", identity=("name",), create_method="POST"
)
CAPSMAN_PROVISIONING = ResourceDescriptor(
    path="/caps-man/provisioning",
    identity=("action", "master-configuration"),
    create_method="POST",
)
WIFI_SECURITY = ResourceDescriptor(
    path="/interface/wifi/security", identity=("name",), create_method="POST"
)

CATALOGUE: dict[str, ResourceDescriptor] = {
    "interface": INTERFACE,
    "wireguard": WIREGUARD_INTERFACE,
    "wireguard-peer": WIREGUARD_PEER,
    "gre": GRE_INTERFACE,
    "bridge-port": BRIDGE_PORT,
    "bridge-vlan": BRIDGE_VLAN,
    "ip-address": IP_ADDRESS,
    "firewall-filter": FIREWALL_FILTER,
    "firewall-nat": FIREWALL_NAT,
    "dns-static": DNS_STATIC,
    "capsman-security": CAPSMAN_SECURITY,
    "capsman-provisioning": CAPSMAN_PROVISIONING,
    "wifi-security": WIFI_SECURITY,
}


def descriptor_for(kind: str) -> ResourceDescriptor:
    try:
        return CATALOGUE[kind]
    except KeyError:
        known = ", ".join(sorted(CATALOGUE))
        raise InvalidArgumentError(
            f"Unknown resource kind {kind!r}; expected one of: {known}"
        ) from None
