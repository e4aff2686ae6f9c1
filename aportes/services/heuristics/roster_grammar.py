"""Pattern-based extraction of contribution rosters.

Works on the layout text produced by the content extractor: one visual line
per text line, with double spaces kept where the PDF leaves a wide gap.
Row rules are tried in order on every line:

1. ``NAME  QTY  FEE  GROSS``: the union roster layout, where names use a
   double space between surname and given names
2. ``NAME GROSS QTY FEE``: the generic payroll table layout
3. a data line carrying a CUIT and a trailing amount, where the name sits
   between the two

Header lines (column titles, labels) and footer lines (page numbers,
totals) never produce rows.
"""

import re
from enum import Enum
from typing import List, Optional

from aportes.schemas.extraction import InstitutionBlock, RosterExtraction, RosterPerson, RosterTotals
from aportes.services.heuristics.patterns import (
    AMOUNT_TOKEN,
    AR_AMOUNT_RE,
    CUIT_RE,
    DATE_RE,
    NAME_CHARS,
    TRAILING_AMOUNT_RE,
    find_institution_cuit,
    guess_name_and_address,
    parse_amount_token,
)
from aportes.utils.cuit import format_cuit
from aportes.utils.logging import get_logger
from aportes.utils.money import add_amounts, parse_ars_amount
from aportes.utils.periods import MONTHS_ES, detect_period

LOGGER = get_logger(__name__)


class LineType(str, Enum):
    HEADER = "header"
    FOOTER = "footer"
    DATA = "data"
    UNKNOWN = "unknown"


_HEADER_RE = re.compile(
    r"\b(cuit|cuil|dni|nombre|apellido|importe|monto|per[ií]odo|mes/año|concepto|legajos?|remunerativo)\b",
    re.IGNORECASE,
)
_FOOTER_RE = re.compile(r"\b(p[aá]g(?:\.|ina)|totale?s?|cantidad)\b", re.IGNORECASE)

_NAME = rf"[{NAME_CHARS}][{NAME_CHARS}'.]*(?:\s{{1,3}}[{NAME_CHARS}][{NAME_CHARS}'.]*)+"
_ROSTER_ROW_RE = re.compile(
    rf"^(?P<name>{_NAME})\s+(?P<qty>\d{{1,3}})\s+(?P<fee>{AMOUNT_TOKEN})\s+(?P<gross>{AMOUNT_TOKEN})$"
)
_TABLE_ROW_RE = re.compile(
    rf"^(?P<name>{_NAME})\s+(?P<gross>{AMOUNT_TOKEN})\s+(?P<qty>\d+)\s+(?P<fee>{AMOUNT_TOKEN})$"
)
_SKIP_NAME_RE = re.compile(r"PERSONAS|CANTIDAD|CONCEPTO|REMUNERATIVO|PERIODO|TOTAL", re.IGNORECASE)

_FECHA_RE = re.compile(r"Fecha:\s*(\d{1,2}/\d{1,2}/\d{4})", re.IGNORECASE)
_SCHOOL_RE = re.compile(
    r"P[áa]gina:\s*\d+\s+(?P<name>.+?)\s+(?P<address>(?:Ruta|RN|Av\.|Avenida|Calle).+?)\s+(?P<cuit>\d{2}-\d{8}-\d)"
)
_CONCEPT_RE = re.compile(
    r"Concepto:\s+(.+?)(?=\s+(?:Per[ií]odo:|FOPID|" + "|".join(MONTHS_ES) + r")|$)",
    re.IGNORECASE,
)
_PEOPLE_RE = re.compile(r"Cantidad\s+de\s+Personas\s*:?\s*(?:Totales\s*:\s*)?(\d+)", re.IGNORECASE)
_TOTALS_AMOUNT_RE = re.compile(rf"Totales\s*:\s*\d+\s+({AMOUNT_TOKEN})", re.IGNORECASE)
_TOTAL_LINE_RE = re.compile(rf"^totale?s?\b.*?({AMOUNT_TOKEN})\s*$", re.IGNORECASE)


def detect_line_type(line: str) -> LineType:
    """Classify a line by keywords, then by the presence of CUIT and amount."""
    if _HEADER_RE.search(line):
        return LineType.HEADER
    if _FOOTER_RE.search(line):
        return LineType.FOOTER
    if CUIT_RE.search(line) and AR_AMOUNT_RE.search(CUIT_RE.sub(" ", line)):
        return LineType.DATA
    return LineType.UNKNOWN


def extract_line_data(line: str) -> dict:
    """Pull CUIT, date, fee and name out of a data line.

    The fee is the last amount on the line and the name is whatever sits
    between the CUIT and that amount. Lines missing either yield no name.
    """
    out: dict = {}

    cuit_match = CUIT_RE.search(line)
    if cuit_match:
        out["cuit"] = re.sub(r"\D", "", cuit_match.group(1))

    date_match = DATE_RE.search(line)
    if date_match:
        out["date"] = date_match.group(1)

    amount_match = TRAILING_AMOUNT_RE.search(line.rstrip())
    if amount_match and cuit_match and amount_match.start() < cuit_match.end():
        amount_match = None
    if amount_match:
        out["amount"] = parse_ars_amount(amount_match.group(1))

    if cuit_match and amount_match:
        name = line[cuit_match.end():amount_match.start()]
        if date_match and cuit_match.end() <= date_match.start() < amount_match.start():
            name = name.replace(date_match.group(1), " ")
        name = name.strip(" -:")
        if name:
            out["name"] = name

    return out


def _valid_name(name: str) -> bool:
    return len(name.split()) >= 2 and not _SKIP_NAME_RE.search(name)


def _person_from_match(match: re.Match) -> Optional[RosterPerson]:
    name = match.group("name").strip()
    if not _valid_name(name):
        return None
    try:
        return RosterPerson(
            name=name,
            quantity=int(match.group("qty")),
            fee_amount=parse_amount_token(match.group("fee")),
            gross_amount=parse_amount_token(match.group("gross")),
        )
    except ValueError as e:
        LOGGER.debug(f"Discarding row {name!r}: {e}")
        return None


def parse_rows(lines: List[str]) -> List[RosterPerson]:
    persons: List[RosterPerson] = []
    for line in lines:
        match = _ROSTER_ROW_RE.match(line) or _TABLE_ROW_RE.match(line)
        if match:
            person = _person_from_match(match)
            if person is not None:
                persons.append(person)
            continue

        if detect_line_type(line) != LineType.DATA:
            continue
        data = extract_line_data(line)
        name = data.get("name")
        if name and "amount" in data and _valid_name(name):
            persons.append(RosterPerson(name=name, fee_amount=data["amount"]))
    return persons


def parse_declared_totals(lines: List[str], joined: str) -> tuple:
    """Return ``(people_count, total_amount)`` as printed, either may be None."""
    people = None
    people_match = _PEOPLE_RE.search(joined)
    if people_match:
        people = int(people_match.group(1))

    amount = None
    amount_match = _TOTALS_AMOUNT_RE.search(joined)
    if amount_match:
        amount = parse_amount_token(amount_match.group(1))
    else:
        for line in lines:
            total_match = _TOTAL_LINE_RE.match(line)
            if total_match:
                amount = parse_amount_token(total_match.group(1))
    return people, amount


def parse_roster(layout_text: str) -> RosterExtraction:
    """Extract a roster from layout text.

    Args:
        layout_text: Line-structured text with double spaces preserved

    Returns:
        RosterExtraction; ``persons`` is empty when no row rule matched
    """
    lines = [line.strip() for line in (layout_text or "").splitlines() if line.strip()]
    joined = " ".join(lines)

    institution = InstitutionBlock()
    school = _SCHOOL_RE.search(joined)
    if school:
        institution = InstitutionBlock(
            name=re.sub(r"\s{2,}", " ", school.group("name")).strip().upper(),
            address=re.sub(r"\s{2,}", " ", school.group("address")).strip(),
            cuit=school.group("cuit"),
        )
    else:
        cuit = find_institution_cuit(lines)
        if cuit:
            name, address = guess_name_and_address(lines, cuit)
            institution = InstitutionBlock(
                name=name.upper() if name else None,
                address=address,
                cuit=format_cuit(cuit),
            )

    date_match = _FECHA_RE.search(joined) or DATE_RE.search(joined)
    concept_match = _CONCEPT_RE.search(joined)

    detected = detect_period(joined)
    if detected.is_fopid:
        period = "FOPID"
    elif detected.is_complete:
        period = f"{detected.month:02d}/{detected.year}"
    else:
        period = None

    persons = parse_rows(lines)

    people, amount = parse_declared_totals(lines, joined)
    totals = None
    if persons or people is not None or amount is not None:
        totals = RosterTotals(
            people_count=people if people is not None else len(persons),
            total_amount=amount if amount is not None else add_amounts(p.fee_amount for p in persons),
        )

    LOGGER.info(
        "Roster parsed by pattern rules",
        extra={
            "persons": len(persons),
            "institution_cuit": institution.cuit,
            "period": period,
            "declared_total": str(amount) if amount is not None else None,
        }
    )

    return RosterExtraction(
        institution=institution,
        date=date_match.group(1) if date_match else None,
        period=period,
        concept=re.sub(r"\s{2,}", " ", concept_match.group(1)).strip() if concept_match else None,
        persons=persons,
        totals=totals,
    )
