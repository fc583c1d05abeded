"""
autopv.privacy._core.patterns.pii
=================================
Regex patterns for personal identifiers.

Covers:
  EMAIL                      → category "email"
  PHONE (NANP + E.164)       → category "phone"
  SSN                        → category "government_id"
"""

from __future__ import annotations

import regex
from typing import List, Optional, Tuple


# ── Pattern Registry ──────────────────────────────────────────────────────────
# Each entry: (TYPE_NAME, compiled_regex, value_group)
# value_group None → the whole match is replaced;
# otherwise only that named group is, and the surrounding label is kept.

EMAIL_PATTERNS:         List[Tuple[str, regex.Pattern, Optional[str]]] = []
PHONE_PATTERNS:         List[Tuple[str, regex.Pattern, Optional[str]]] = []
GOVERNMENT_ID_PATTERNS: List[Tuple[str, regex.Pattern, Optional[str]]] = []


def _reg(pattern: str, flags=0) -> regex.Pattern:
    return regex.compile(pattern, flags)


# ── Email ─────────────────────────────────────────────────────────────────────
EMAIL_RE = _reg(r"\b[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}\b")
EMAIL_PATTERNS.append(("EMAIL", EMAIL_RE, None))


# ── Phone ─────────────────────────────────────────────────────────────────────
# North American: 555-123-4567, (555) 123-4567, 555.123.4567, +1 555 123 4567
# Digit look-arounds keep it from biting into longer numbers (card numbers, ids).
PHONE_NANP_RE = _reg(
    r"(?<![\w+])(?:\+?1[\-.\s]?)?(?:\(\d{3}\)|\d{3})[\-.\s]?\d{3}[\-.\s]?\d{4}(?!\d)"
)
# International E.164, compact form: +447911123456
PHONE_INTL_RE = _reg(r"(?<![\w+])\+[2-9]\d{7,14}(?!\d)")
PHONE_PATTERNS.append(("PHONE", PHONE_NANP_RE, None))
PHONE_PATTERNS.append(("PHONE", PHONE_INTL_RE, None))


# ── US Social Security Number ─────────────────────────────────────────────────
SSN_RE = _reg(r"(?<![\w\-])\d{3}-?\d{2}-?\d{4}(?![\w\-])")
GOVERNMENT_ID_PATTERNS.append(("SSN", SSN_RE, None))
