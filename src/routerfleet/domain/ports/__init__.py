"""Domain port definitions for adapters."""

from __future__ import annotations

from .transport import DeviceTransport

__all__ = ["DeviceTransport"]
