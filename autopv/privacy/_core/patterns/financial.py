"""
autopv.privacy._core.patterns.financial
=======================================
Regex patterns for payment card numbers (category "payment_card").

No Luhn check here: a redaction pass must remove every match of an
active pattern, so a number that merely looks like a card is still
masked.
"""

from __future__ import annotations

import regex
from typing import List, Optional, Tuple


PAYMENT_CARD_PATTERNS: List[Tuple[str, regex.Pattern, Optional[str]]] = []


def _reg(pattern: str, flags=0) -> regex.Pattern:
    return regex.compile(pattern, flags)


# ── 16-digit cards (Visa, Mastercard, Discover, generic) ──────────────────────
CARD_16_RE = _reg(
    r"""
    (?<![\d\-])
    (?:[0-9]{4}[\s\-]?){3}[0-9]{4}
    (?!\d)
    """,
    flags=regex.VERBOSE,
)
PAYMENT_CARD_PATTERNS.append(("CREDIT_CARD", CARD_16_RE, None))


# ── Amex (15 digits, 4-6-5) ───────────────────────────────────────────────────
AMEX_RE = _reg(
    r"""
    (?<![\d\-])
    3[47][0-9]{2}[\s\-]?[0-9]{6}[\s\-]?[0-9]{5}
    (?!\d)
    """,
    flags=regex.VERBOSE,
)
PAYMENT_CARD_PATTERNS.append(("CREDIT_CARD", AMEX_RE, None))
