"""Resolution of loosely typed product aliases to canonical product ids.

Users refer to products the way they are printed on documents: ``SDTM-IG
3.2``, ``adamig1.1``, ``ADaM CT 2014-09-26``. The CDISC Library identifies
the same products as ``sdtmig-3-2``, ``adamig-1-1`` and
``adamct-2014-09-26``. :func:`resolve_alias` bridges the two using three
tiers, the first tier producing a hit wins:

1. Case-insensitive equality with a candidate id.
2. Equality after removing ``-``, ``.`` and spaces from both sides.
3. The normalised candidate id contains the normalised alias.

Candidates are tried in the order given, so for tier 3 the first containing
candidate is returned.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

_SEPARATORS_RE = re.compile(r"[-. ]")


@dataclass(frozen=True)
class ProductPath:
    """Full path of ids locating a product in the catalog."""

    product_class_id: str
    product_group_id: str
    product_id: str


def normalize_alias(value: str) -> str:
    """Lower-case ``value`` and strip dashes, dots and spaces.

    Example:
        >>> normalize_alias("SDTM-IG 3.2")
        'sdtmig32'
    """
    return _SEPARATORS_RE.sub("", value.lower())


def resolve_alias(alias: str, candidate_ids: Iterable[str]) -> Optional[str]:
    """Return the candidate id best matching ``alias``.

    Args:
        alias: Free-form product reference.
        candidate_ids: Canonical ids known at one level of the hierarchy.

    Returns:
        The matching id, or None when no tier matches.

    Example:
        >>> resolve_alias("adamig1.1", ["adamig-1-0", "adamig-1-1"])
        'adamig-1-1'
    """
    candidates: List[str] = list(candidate_ids)
    if not alias or not candidates:
        return None

    lowered = alias.lower()
    for candidate in candidates:
        if candidate.lower() == lowered:
            return candidate

    normalized = normalize_alias(alias)
    if not normalized:
        return None
    for candidate in candidates:
        if normalize_alias(candidate) == normalized:
            return candidate

    for candidate in candidates:
        if normalized in normalize_alias(candidate):
            return candidate
    return None
