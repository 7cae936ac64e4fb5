"""Shared sanitization utilities used by configuration loading."""

from __future__ import annotations

import re

# C0 controls (\x00-\x1f), DEL (\x7f), C1 controls (\x80-\x9f),
# Unicode line/paragraph separators (\u2028-\u2029),
# bidi overrides (\u200b-\u200f, \u202a-\u202e, \u2066-\u2069),
# zero-width no-break space / BOM (\ufeff).
CONTROL_CHARS_RE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u2028\u2029\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)


def strip_control_chars(value: str) -> str:
    """Strip all control characters from a string."""
    return CONTROL_CHARS_RE.sub("", value)


def clean_optional(value: str | None) -> str | None:
    """Strip control characters and surrounding whitespace.

    Blank values collapse to None so "absent" has a single representation.
    """
    if value is None:
        return None
    cleaned = strip_control_chars(value).strip()
    return cleaned or None


def clean_source(value: str | None) -> str | None:
    """Like clean_optional, also dropping '<' and '>'.

    Neither character is legal in a CSP source list or URI, and keeping them
    out guarantees configured text never contains a hash-list placeholder.
    """
    if value is None:
        return None
    return clean_optional(value.replace("<", "").replace(">", ""))
