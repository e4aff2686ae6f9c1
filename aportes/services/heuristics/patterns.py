"""Patterns and helpers shared by the roster and transfer grammars."""

import re
from decimal import Decimal
from typing import List, Optional, Tuple

from aportes.utils.cuit import is_employer_cuit, normalize_cuit
from aportes.utils.money import round_amount

DATE_RE = re.compile(r"(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})")
CUIT_RE = re.compile(r"(?<!\d)(\d{2}[- ]?\d{8}[- ]?\d)(?!\d)")
AR_AMOUNT_RE = re.compile(r"(\d{1,3}(?:\.\d{3})*(?:,\d+)?)")
AMOUNT_TOKEN = r"\d[\d.,]*\d|\d"
TRAILING_AMOUNT_RE = re.compile(r"(?<![\d.,])(\d{1,3}(?:\.\d{3})+(?:,\d+)?|\d+(?:,\d+)?)$")

NAME_CHARS = "A-ZÑÁÉÍÓÚÜ"

# Lines scanned when looking for the institution's own CUIT
HEADER_SCAN_LINES = 150

_LABELED_CUIT_LINE_RE = re.compile(
    r"c\.?u\.?i\.?t\.?\s*(?:del\s+)?(?:empleador|beneficiario|agente|instituci[oó]n|escuela)|c\.?u\.?i\.?t\.?\s*:",
    re.IGNORECASE,
)
_ANY_CUIT_LINE_RE = re.compile(r"cuit|cuil", re.IGNORECASE)
_HYPHEN_CUIT_RE = re.compile(r"(?<!\d)(\d{1,3})-(\d{6,10})-(\d{1,3})(?!\d)")
_PLAIN_CUIT_RE = re.compile(r"(?<!\d)(\d{11})(?!\d)")
_ADDRESS_RE = re.compile(
    r"\b(km|kil[oó]metro|ruta|rn|av\.?|avenida|calle|bv\.?|boulevard|n[°º]|\d{2,})\b",
    re.IGNORECASE,
)
_DIGITS_RUN_RE = re.compile(r"\d[\d\-.,/ ]*")
_LETTER_RE = re.compile(r"[a-záéíóúñ]", re.IGNORECASE)


def parse_amount_token(token: str) -> Decimal:
    """Parse an amount whose separator convention is not known up front.

    Rosters print ``54.755,35``; the bank prints ``74,067.44``. When both
    separators appear, the last one is the decimal mark. A lone separator
    followed by exactly three digits groups thousands; otherwise it is the
    decimal mark.

    Raises:
        ValueError: If the token holds no digits
    """
    cleaned = re.sub(r"[\s$]", "", token or "")
    if not re.search(r"\d", cleaned):
        raise ValueError(f"Not an amount: {token!r}")

    if "." in cleaned and "," in cleaned:
        decimal_mark = "." if cleaned.rfind(".") > cleaned.rfind(",") else ","
        thousands = "," if decimal_mark == "." else "."
        cleaned = cleaned.replace(thousands, "").replace(decimal_mark, ".")
    elif "," in cleaned or "." in cleaned:
        sep = "," if "," in cleaned else "."
        head, _, tail = cleaned.rpartition(sep)
        if cleaned.count(sep) > 1 or len(tail) == 3:
            cleaned = cleaned.replace(sep, "")
        else:
            cleaned = f"{head.replace(sep, '')}.{tail}"

    return round_amount(cleaned)


def strip_digits(text: str) -> str:
    """Drop digit runs (amounts, ids, dates) and tidy the remaining text."""
    return re.sub(r"\s{2,}", " ", _DIGITS_RUN_RE.sub(" ", text)).strip()


def _cuits_in_line(line: str) -> List[str]:
    found = []
    for match in _HYPHEN_CUIT_RE.finditer(line):
        digits = "".join(match.groups())
        if len(digits) == 11:
            found.append(digits)
    found.extend(m.group(1) for m in _PLAIN_CUIT_RE.finditer(line))
    return found


def find_institution_cuit(lines: List[str]) -> Optional[str]:
    """Pick the institution's CUIT among all the ones a roster prints.

    Preference order: a line labeled as the institution's CUIT, any
    ``cuit``/``cuil`` line near the top, then employer-prefixed (30/33/34)
    candidates anywhere, then the first candidate.
    """
    head = lines[:HEADER_SCAN_LINES]

    for line in head:
        if _LABELED_CUIT_LINE_RE.search(line):
            found = _cuits_in_line(line)
            if found:
                return found[0]

    for line in head:
        if _ANY_CUIT_LINE_RE.search(line):
            found = _cuits_in_line(line)
            if found:
                return found[0]

    candidates: List[str] = []
    for line in lines:
        for digits in _cuits_in_line(line):
            if digits not in candidates:
                candidates.append(digits)
    if not candidates:
        return None
    for digits in candidates:
        if is_employer_cuit(digits):
            return digits
    return candidates[0]


def looks_like_address(line: Optional[str]) -> bool:
    return bool(line) and bool(_ADDRESS_RE.search(line))


def guess_name_and_address(lines: List[str], cuit: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Infer institution name and address from the lines around its CUIT.

    The line right above the CUIT line is the address when it looks like
    one (route, street, kilometre marker) and the line above that is the
    name; otherwise the line above is taken as the name.
    """
    digits = normalize_cuit(cuit)
    if not digits:
        return None, None

    index = next(
        (i for i, line in enumerate(lines) if digits in normalize_cuit(line)),
        None,
    )
    if index is None:
        return None, None

    same_line = strip_digits(lines[index].replace("CUIT", "").replace("C.U.I.T.", ""))
    above = lines[index - 1].strip() if index > 0 else None
    two_above = lines[index - 2].strip() if index > 1 else None

    name: Optional[str] = None
    address: Optional[str] = None
    if looks_like_address(above):
        address = re.sub(r"\s{2,}", " ", above)
        name = two_above
    elif above and _LETTER_RE.search(above):
        name = above
    if same_line and _LETTER_RE.search(same_line) and not name:
        name = same_line.strip(" :-")

    if address and _HYPHEN_CUIT_RE.search(address):
        address = None
    if name:
        name = re.sub(r"\s{2,}", " ", name).strip() or None
    return name, address
