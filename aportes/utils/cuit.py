"""Helpers for Argentine tax identifiers (CUIT/CUIL)."""

import re
from typing import Optional

CUIT_LENGTH = 11
CHECKSUM_WEIGHTS = (5, 4, 3, 2, 7, 6, 5, 4, 3, 2)
EMPLOYER_PREFIXES = ("30", "33", "34")

_NON_DIGIT_RE = re.compile(r"\D")
_FORMATTED_RE = re.compile(r"^\d{2}-?\d{8}-?\d$")


def normalize_cuit(value: Optional[str]) -> str:
    """Strip separators and whitespace, keeping digits only."""
    if not value:
        return ""
    return _NON_DIGIT_RE.sub("", value)


def format_cuit(value: Optional[str]) -> str:
    """Render an 11-digit CUIT as ``XX-XXXXXXXX-X``.

    Anything that does not normalize to 11 digits is returned unchanged.
    """
    digits = normalize_cuit(value)
    if len(digits) != CUIT_LENGTH:
        return value or ""
    return f"{digits[:2]}-{digits[2:10]}-{digits[10]}"


def is_valid_cuit_format(value: Optional[str]) -> bool:
    if not value:
        return False
    return bool(_FORMATTED_RE.match(value.strip().replace(" ", "")))


def is_valid_cuit_checksum(value: Optional[str]) -> bool:
    """Validate the mod-11 verifier digit.

    Informational only: rosters in the wild carry CUITs with bad verifiers
    and those still have to resolve to their institution.
    """
    digits = normalize_cuit(value)
    if len(digits) != CUIT_LENGTH:
        return False

    total = sum(int(d) * w for d, w in zip(digits[:10], CHECKSUM_WEIGHTS))
    expected = 11 - (total % 11)
    if expected == 11:
        expected = 0
    elif expected == 10:
        expected = 9
    return expected == int(digits[10])


def compare_cuits(a: Optional[str], b: Optional[str]) -> bool:
    na, nb = normalize_cuit(a), normalize_cuit(b)
    return bool(na) and na == nb


def is_employer_cuit(value: Optional[str]) -> bool:
    """Companies and institutions use the 30/33/34 prefixes."""
    return normalize_cuit(value).startswith(EMPLOYER_PREFIXES)
