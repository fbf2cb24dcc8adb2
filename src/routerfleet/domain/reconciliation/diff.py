"""Minimal attribute diff between a desired set and an existing resource.

This is a patch, never a replace: attributes present on the device but absent
from the desired set are neither reported nor removed. Comparison is exact
string equality on the wire representation; ``"true"`` and ``"yes"`` differ
here. Normalisation, if wanted, happens before values reach this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from routerfleet.domain.types import ExistingResource

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True)
class AttributeDiff:
    changes: dict[str, str] = field(default_factory=dict[str, str])

    @property
    def empty(self) -> bool:
        return not self.changes

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self.changes)


def diff_attributes(
    desired: Mapping[str, str],
    existing: ExistingResource | Mapping[str, str],
) -> AttributeDiff:
    """Return desired attributes whose value differs from, or is missing in, ``existing``."""

    current = existing.attributes if isinstance(existing, ExistingResource) else existing
    changes = {
        name: value
        for name, value in desired.items()
        if name not in current or current[name] != value
    }
    return AttributeDiff(changes=changes)
