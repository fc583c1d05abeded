"""
autopv.privacy._core.patterns.infra
===================================
Regex patterns for network addresses (category "network_address").
Disabled by default: audit logs usually need source IPs for context.
"""

from __future__ import annotations

import regex
from typing import List, Optional, Tuple


NETWORK_ADDRESS_PATTERNS: List[Tuple[str, regex.Pattern, Optional[str]]] = []


def _reg(pattern: str, flags=0) -> regex.Pattern:
    return regex.compile(pattern, flags)


_OCTET = r"(?:25[0-5]|2[0-4][0-9]|1[0-9]{2}|[1-9]?[0-9])"

# ── IPv4 Address ──────────────────────────────────────────────────────────────
IPV4_RE = _reg(
    rf"(?<![\d.]){_OCTET}\.{_OCTET}\.{_OCTET}\.{_OCTET}(?!\.?\d)"
)
NETWORK_ADDRESS_PATTERNS.append(("IP_ADDRESS", IPV4_RE, None))


# ── IPv6 Address (full, uncompressed form) ────────────────────────────────────
IPV6_RE = _reg(
    r"(?<![:\w])(?:[A-Fa-f0-9]{1,4}:){7}[A-Fa-f0-9]{1,4}(?![:\w])"
)
NETWORK_ADDRESS_PATTERNS.append(("IPV6_ADDRESS", IPV6_RE, None))
