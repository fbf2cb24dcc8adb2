"""Single-device reconciliation: match, diff, then create, patch or do nothing.

Layered flow:
1) list the resource collection on the device
2) match the desired identity against the listing
3) diff desired attributes against the matched resource
4) issue at most one write (create or partial update)
"""

from __future__ import annotations

from .diff import AttributeDiff, diff_attributes
from .ensure import Reconciler, resolve_desired
from .matcher import MatchResult, coerce_listing, match_by_fields, match_by_identifier

__all__ = [
    "AttributeDiff",
    "MatchResult",
    "Reconciler",
    "coerce_listing",
    "diff_attributes",
    "match_by_fields",
    "match_by_identifier",
    "resolve_desired",
]
