"""Period detection for rosters and transfer receipts.

A period is a (month, year) pair. Three sources compete for it, in order of
precedence: the caller-supplied hint (``YYYY-MM``), a period printed in the
document, and, for transfer receipts only, the month of the transfer date.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from aportes.core.exceptions import ValidationError

MONTHS_ES = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

_HINT_RE = re.compile(r"^(\d{4})-(\d{2})$")
# MM/YYYY not preceded by a day component, so 15/11/2024 is not read as 11/2024
_NUMERIC_RE = re.compile(r"(?<!\d[/-])\b(0?[1-9]|1[0-2])[/-](\d{4})\b")
_MONTH_NAME_RE = re.compile(
    r"(?<![a-záéíóúñ])(" + "|".join(MONTHS_ES) + r")\s*(?:de\s+)?[-–—/]?\s*(\d{4})(?!\d)",
    re.IGNORECASE,
)
_LABELED_RE = re.compile(r"per[ií]odo\s*:?\s*(.{0,40})", re.IGNORECASE)
_FOPID_RE = re.compile(r"\bFOPID\b", re.IGNORECASE)


@dataclass(frozen=True)
class PeriodKey:
    month: int
    year: int
    source: str = "document"

    def as_hint(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class DetectedPeriod:
    month: Optional[int] = None
    year: Optional[int] = None
    is_fopid: bool = False

    @property
    def is_complete(self) -> bool:
        return self.month is not None and self.year is not None


def parse_period_hint(hint: Optional[str]) -> Optional[PeriodKey]:
    """Parse a ``YYYY-MM`` hint.

    Raises:
        ValidationError: If the hint is present but malformed
    """
    if not hint:
        return None
    match = _HINT_RE.match(hint.strip())
    if not match:
        raise ValidationError(f"Invalid period hint {hint!r}, expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month in period hint {hint!r}")
    return PeriodKey(month=month, year=year, source="hint")


def _match_month_year(text: str) -> Optional[tuple]:
    match = _MONTH_NAME_RE.search(text)
    if match:
        return MONTHS_ES[match.group(1).lower()], int(match.group(2))
    match = _NUMERIC_RE.search(text)
    if match:
        return int(match.group(1)), int(match.group(2))
    return None


def detect_period(text: str) -> DetectedPeriod:
    """Find the period printed in a document.

    A ``Periodo:`` label is searched first; failing that, the first month
    name followed by a year, then the first ``MM/YYYY``. FOPID rosters are
    flagged even when they print no month.
    """
    if not text:
        return DetectedPeriod()

    is_fopid = bool(_FOPID_RE.search(text))

    for labeled in _LABELED_RE.finditer(text):
        found = _match_month_year(labeled.group(1))
        if found:
            return DetectedPeriod(month=found[0], year=found[1], is_fopid=is_fopid)

    found = _match_month_year(text)
    if found:
        return DetectedPeriod(month=found[0], year=found[1], is_fopid=is_fopid)
    return DetectedPeriod(is_fopid=is_fopid)


def period_from_label(label: Optional[str]) -> DetectedPeriod:
    """Read a ``MM/YYYY`` or ``FOPID`` label produced by an extractor."""
    if not label:
        return DetectedPeriod()
    if _FOPID_RE.search(label):
        return DetectedPeriod(is_fopid=True)
    return detect_period(label)


def resolve_period(
    hint: Optional[PeriodKey],
    detected: Optional[DetectedPeriod],
    fallback_date: Optional[date] = None,
) -> Optional[PeriodKey]:
    """Pick the period for a document: hint, then document, then date."""
    if hint is not None:
        return hint
    if detected is not None and detected.is_complete:
        return PeriodKey(month=detected.month, year=detected.year, source="document")
    if fallback_date is not None:
        return PeriodKey(month=fallback_date.month, year=fallback_date.year, source="date")
    return None


# Argentina does not observe DST
ART = timezone(timedelta(hours=-3))

_DATE_RE = re.compile(r"(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})")
_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)?", re.IGNORECASE)


def parse_document_date(value: Optional[str]) -> Optional[date]:
    """Parse a ``DD/MM/YYYY`` date as printed in Argentine documents."""
    if not value:
        return None
    match = _DATE_RE.search(value)
    if not match:
        return None
    day, month, year = (int(g) for g in match.groups())
    if year < 100:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def combine_date_time(date_text: Optional[str], time_text: Optional[str]) -> Optional[datetime]:
    """Build an aware datetime from a printed date and an optional ``HH:MM AM/PM``."""
    day = parse_document_date(date_text)
    if day is None:
        return None

    hour = minute = second = 0
    match = _TIME_RE.search(time_text or "")
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        second = int(match.group(3) or 0)
        meridiem = (match.group(4) or "").upper()
        if meridiem == "PM" and hour < 12:
            hour += 12
        elif meridiem == "AM" and hour == 12:
            hour = 0
        if hour > 23 or minute > 59 or second > 59:
            hour = minute = second = 0

    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=ART)
