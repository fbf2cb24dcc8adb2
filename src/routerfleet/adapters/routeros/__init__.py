"""Public interface for the RouterOS adapter."""

from __future__ import annotations

from .client import ClientFactory, RouterOSTransport, build_url, decode_response
from .normalize import normalize_bool, parse_rate_mbps, to_float, to_int
from .resources import (
    BRIDGE_PORT,
    BRIDGE_VLAN,
    CAPSMAN_PROVISIONING,
    CAPSMAN_SECURITY,
    CATALOGUE,
    DNS_STATIC,
    FIREWALL_FILTER,
    FIREWALL_NAT,
    GRE_INTERFACE,
    INTERFACE,
    IP_ADDRESS,
    WIFI_SECURITY,
    WIREGUARD_INTERFACE,
    WIREGUARD_PEER,
    descriptor_for,
)
from .schema import ErrorPayload

__all__ = [
    "BRIDGE_PORT",
    "BRIDGE_VLAN",
    "CAPSMAN_PROVISIONING",
    "CAPSMAN_SECURITY",
    "CATALOGUE",
    "DNS_STATIC",
    "FIREWALL_FILTER",
    "FIREWALL_NAT",
    "GRE_INTERFACE",
    "INTERFACE",
    "IP_ADDRESS",
    "WIFI_SECURITY",
    "WIREGUARD_INTERFACE",
    "WIREGUARD_PEER",
    "ClientFactory",
    "ErrorPayload",
    "RouterOSTransport",
    "build_url",
    "decode_response",
    "descriptor_for",
    "normalize_bool",
    "parse_rate_mbps",
    "to_float",
    "to_int",
]
