"""Template-aware matching of standard variable and field names.

Standard names published in CDISC implementation guides frequently carry
positional placeholders. ``TRxxPGy`` for instance stands for any name of the
form ``TR01PG1`` .. ``TR99PG99``. This module compares a concrete candidate
name against such a template.

Placeholder letters (lower case only, the rest of a template is upper case):
        * ``w``, ``x``, ``z``: exactly one digit.
        * ``y``: one or two digits, a two digit value cannot start with ``0``.
        * ``*``: one or more word characters.
        * ``-``: exactly one word character.

Two modes are supported:

``full``
    The template is compiled to an anchored, case-insensitive regular
    expression and must match the whole candidate.

``partial``
    Substring semantics. The *template* has to contain the candidate, so
    ``match_item("AVAL", "AVALC", "partial")`` is true while the reverse is
    not. Templates holding ``*`` or ``-`` have no meaningful literal form and
    fall back to ``full``. Digits in the candidate are normalised against
    digit placeholders in the template before a second containment test.

Example::

        from cdisc_library_client.matching import match_item

        match_item("TR01PG12", "TRxxPGy")            # True
        match_item("TR1PG12", "TRxxPGy")             # False
        match_item("AETRT", "AETRTyy", "partial")    # True
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Dict, Union

DIGIT_PLACEHOLDER_RE = re.compile(r"[wxz]")
ANY_PLACEHOLDER_RE = re.compile(r"[wxyz]")

_PLACEHOLDER_PATTERNS: Dict[str, str] = {
    "w": r"\d",
    "x": r"\d",
    "z": r"\d",
    "y": r"[1-9]?\d",
    "*": r"\w+",
    "-": r"\w",
}


class MatchMode(str, Enum):
    """Supported comparison modes for :func:`match_item`."""

    FULL = "full"
    PARTIAL = "partial"


def coerce_mode(mode: Union[str, MatchMode]) -> MatchMode:
    """Return ``mode`` as a :class:`MatchMode`.

    Raises:
        ValueError: If the value is not a known mode.
    """
    try:
        return MatchMode(mode)
    except ValueError:
        raise ValueError(f"Unknown matching mode: {mode!r}") from None


def template_to_pattern(template: str) -> str:
    """Compile a template name into an anchored regular expression string.

    Characters that are not placeholders are escaped, so a template such as
    ``DSTERM.DECOD`` only matches a literal dot.

    Example:
        >>> bool(re.match(template_to_pattern("TRxxPGy"), "TR01PG12"))
        True
    """
    parts = [_PLACEHOLDER_PATTERNS.get(char, re.escape(char)) for char in template]
    return "^" + "".join(parts) + "$"


def _full_match(name: str, template: str) -> bool:
    return re.match(template_to_pattern(template), name, re.IGNORECASE) is not None


def _partial_match(name: str, template: str) -> bool:
    if "*" in template or "-" in template:
        return _full_match(name, template)
    if name in template:
        return True
    if not ANY_PLACEHOLDER_RE.search(template):
        return False

    has_digit = re.search(r"\d", name) is not None
    if has_digit and DIGIT_PLACEHOLDER_RE.search(template):
        normalised_name = re.sub(r"\d", "1", name)
        normalised_template = re.sub(r"[wxzy]", "1", template)
        return normalised_name in normalised_template
    if has_digit and "y" in template and not re.search(r"0\d", name):
        normalised_name = re.sub(r"\d{1,2}", "1", name)
        normalised_template = template.replace("y", "1")
        return normalised_name in normalised_template
    return False


def match_item(
    name: str, template: str, mode: Union[str, MatchMode] = MatchMode.FULL
) -> bool:
    """Check whether ``name`` matches the (possibly templated) ``template``.

    Args:
        name: Concrete candidate name, e.g. ``TR01PG12``.
        template: Standard name as published, e.g. ``TRxxPGy``.
        mode: ``"full"`` or ``"partial"`` (see module docstring).

    Returns:
        bool: True when the candidate matches.

    Raises:
        ValueError: For an unknown mode. This is a usage error and is never
            swallowed by the traversal helpers.
    """
    if coerce_mode(mode) is MatchMode.FULL:
        return _full_match(name, template)
    return _partial_match(name, template)
