import re
from typing import Optional

_NON_HEX = re.compile(r"[^a-f0-9]")


def normalize_address(address: Optional[str]) -> Optional[str]:
    """Canonical comparison form of an EVM address: trimmed and lowercased."""
    if not address:
        return None
    normalized = address.strip().lower()
    return normalized or None


def strip_non_hex(address: Optional[str]) -> Optional[str]:
    normalized = normalize_address(address)
    if normalized is None:
        return None
    return _NON_HEX.sub("", normalized.removeprefix("0x")) or None


def toggle_prefix(address: Optional[str]) -> Optional[str]:
    """The normalized address with "0x" removed if present, added if not."""
    normalized = normalize_address(address)
    if normalized is None:
        return None
    if normalized.startswith("0x"):
        return normalized[2:] or None
    return "0x" + normalized


def addresses_match(a: Optional[str], b: Optional[str], fuzzy: bool = False) -> bool:
    """Compare two addresses; empty input never matches.

    fuzzy strips every non-hex character from both sides first, which
    tolerates inconsistent prefixes and stray separators.
    """
    if fuzzy:
        left, right = strip_non_hex(a), strip_non_hex(b)
    else:
        left, right = normalize_address(a), normalize_address(b)
    if left is None or right is None:
        return False
    return left == right
