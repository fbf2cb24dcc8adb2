"""Locate an existing resource in a device listing.

Matching is explicit: the caller names the identity fields per resource type
and supplies their values. A resource matches when every identity field is
present with exactly the supplied value. Alternatively a single identity value
may be a device identifier (``*1``) or a name, which matches the identifier
field or the name field.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from logging import getLogger

from routerfleet.domain.errors import DecodeError, InvalidArgumentError
from routerfleet.domain.types import (
    DEFAULT_ID_FIELD,
    DEFAULT_NAME_FIELD,
    ExistingResource,
    to_wire_value,
)

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Outcome of a lookup: the chosen resource (if any) and how many entries matched."""

    resource: ExistingResource | None
    match_count: int = 0
    by_identifier: bool = False

    @property
    def found(self) -> bool:
        return self.resource is not None

    @property
    def ambiguous(self) -> bool:
        return self.match_count > 1


NOT_FOUND = MatchResult(resource=None)


def coerce_listing(payload: object) -> tuple[dict[str, str], ...]:
    """Turn a decoded listing into string-to-string attribute sets.

    ``None`` (an empty 2xx body) is an empty listing.
    """

    if payload is None:
        return ()
    if isinstance(payload, Mapping):
        payload = [payload]
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
        raise DecodeError(f"Expected a resource listing, got {type(payload).__name__}")
    entries: list[dict[str, str]] = []
    for entry in payload:
        if not isinstance(entry, Mapping):
            raise DecodeError(f"Expected listing entries to be objects, got {type(entry).__name__}")
        entries.append({str(key): to_wire_value(value) for key, value in entry.items()})
    return tuple(entries)


def match_by_fields(
    listing: Sequence[Mapping[str, str]],
    identity: Mapping[str, str],
    *,
    id_field: str = DEFAULT_ID_FIELD,
    strict: bool = False,
) -> MatchResult:
    """Return the entry whose identity fields all equal ``identity``."""

    if not identity:
        raise InvalidArgumentError("Identity must name at least one field")

    matches = [
        (position, entry)
        for position, entry in enumerate(listing)
        if all(entry.get(name) == value for name, value in identity.items())
    ]
    return _select(matches, identity=identity, id_field=id_field, strict=strict)


def match_by_identifier(
    listing: Sequence[Mapping[str, str]],
    identifier: str,
    *,
    id_field: str = DEFAULT_ID_FIELD,
    name_field: str | None = DEFAULT_NAME_FIELD,
    strict: bool = False,
) -> MatchResult:
    """Return the entry whose identifier field or name field equals ``identifier``.

    An identifier match wins over a name match. ``name_field=None`` restricts the
    lookup to the identifier field.
    """

    if not identifier:
        raise InvalidArgumentError("Identifier must not be empty")

    by_id = [
        (position, entry)
        for position, entry in enumerate(listing)
        if entry.get(id_field) == identifier
    ]
    if by_id:
        result = _select(
            by_id, identity={id_field: identifier}, id_field=id_field, strict=strict
        )
        return MatchResult(
            resource=result.resource, match_count=result.match_count, by_identifier=True
        )

    if name_field is None:
        return NOT_FOUND
    by_name = [
        (position, entry)
        for position, entry in enumerate(listing)
        if entry.get(name_field) == identifier
    ]
    return _select(by_name, identity={name_field: identifier}, id_field=id_field, strict=strict)


def _select(
    matches: list[tuple[int, Mapping[str, str]]],
    *,
    identity: Mapping[str, str],
    id_field: str,
    strict: bool,
) -> MatchResult:
    if not matches:
        return NOT_FOUND
    if len(matches) > 1:
        fields = ", ".join(sorted(identity))
        if strict:
            raise InvalidArgumentError(
                f"Identity ({fields}) matched {len(matches)} resources; it does not identify "
                "a single instance"
            )
        log.warning(
            "Identity (%s) matched %d resources; using the first in listing order",
            fields,
            len(matches),
        )
    position, entry = matches[0]
    resource = ExistingResource(
        attributes=dict(entry),
        identifier=entry.get(id_field),
        position=position,
    )
    return MatchResult(resource=resource, match_count=len(matches))
