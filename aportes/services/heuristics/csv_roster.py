"""Contribution rosters exported as CSV.

Some institutions send the roster as a spreadsheet export instead of a PDF.
The file starts with a header row and carries five columns in this order::

    cuil_cuit,nombre,tot_remunerativo,cant_legajos,monto_concepto

The export has no institution, period or date. The caller supplies the
institution CUIT and the period comes from the upload hint.
"""

import csv
import io
import re
from decimal import Decimal
from typing import List, Optional, Tuple

from aportes.core.exceptions import InvalidDocumentError
from aportes.schemas.extraction import InstitutionBlock, RosterExtraction, RosterPerson, RosterTotals
from aportes.schemas.outcome import Finding, Severity
from aportes.utils.cuit import format_cuit
from aportes.utils.logging import get_logger
from aportes.utils.money import add_amounts, round_amount

LOGGER = get_logger(__name__)

COLUMNS = ("cuil_cuit", "nombre", "tot_remunerativo", "cant_legajos", "monto_concepto")
# Row errors quoted in the message when no row is usable
MAX_QUOTED_ERRORS = 5

_PLAIN_AMOUNT_RE = re.compile(r"-?\d+(\.\d+)?")


def parse_csv_amount(text: str) -> Decimal:
    """Parse an amount the way spreadsheets export it.

    Accepts ``2285254.37``, ``2285254,37``, ``2.285.254,37`` and
    ``2,285,254.37``. With both separators present the last one is the
    decimal mark. A lone comma followed by one or two digits is a decimal
    comma; any other comma groups thousands.

    Raises:
        ValueError: If the text is not an amount
    """
    cleaned = re.sub(r"[\s$]", "", text or "")
    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        head, _, tail = cleaned.rpartition(",")
        if cleaned.count(",") == 1 and len(tail) <= 2:
            cleaned = f"{head}.{tail}"
        else:
            cleaned = cleaned.replace(",", "")

    if not _PLAIN_AMOUNT_RE.fullmatch(cleaned):
        raise ValueError(f"Not an amount: {text!r}")
    return round_amount(cleaned)


def decode_csv(data: bytes) -> str:
    """UTF-8 (with or without BOM), falling back to Latin-1 for legacy exports."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _person_from_row(row: List[str]) -> RosterPerson:
    if len(row) < len(COLUMNS):
        raise ValueError(f"expected {len(COLUMNS)} columns, found {len(row)}")

    name = row[1].strip().upper()
    if not name:
        raise ValueError("empty name")

    quantity_text = row[3].strip()
    quantity = int(quantity_text) if quantity_text else None
    if quantity is not None and quantity < 0:
        raise ValueError(f"negative cant_legajos {quantity}")

    gross_text = row[2].strip()
    return RosterPerson(
        name=name,
        gross_amount=parse_csv_amount(gross_text) if gross_text else None,
        quantity=quantity,
        fee_amount=parse_csv_amount(row[4]),
    )


def parse_roster_csv(
    data: bytes, institution_cuit: Optional[str] = None
) -> Tuple[RosterExtraction, List[Finding]]:
    """Read a roster CSV export.

    Rows that cannot be read are skipped and reported as warnings. The
    ``cuil_cuit`` column is not kept: members are identified by name.

    Args:
        data: Raw CSV bytes
        institution_cuit: CUIT of the institution the roster belongs to

    Returns:
        ``(roster, skipped_rows)``; totals are computed from the rows

    Raises:
        InvalidDocumentError: If the header is short or no row is usable
    """
    rows = list(csv.reader(io.StringIO(decode_csv(data))))
    if not rows or len(rows[0]) < len(COLUMNS):
        raise InvalidDocumentError(f"CSV header must have the columns {','.join(COLUMNS)}")

    persons: List[RosterPerson] = []
    skipped: List[Finding] = []
    for line_number, row in enumerate(rows[1:], start=2):
        if not any(cell.strip() for cell in row):
            continue
        try:
            persons.append(_person_from_row(row))
        except ValueError as e:
            skipped.append(Finding(
                severity=Severity.WARNING,
                message=f"CSV row {line_number} skipped: {e}",
                field="csv.row",
                value=line_number,
            ))

    if not persons:
        quoted = "; ".join(f.message for f in skipped[:MAX_QUOTED_ERRORS])
        raise InvalidDocumentError(f"No valid rows in CSV roster{': ' + quoted if quoted else ''}")

    roster = RosterExtraction(
        institution=InstitutionBlock(cuit=format_cuit(institution_cuit) if institution_cuit else None),
        persons=persons,
        totals=RosterTotals(
            people_count=len(persons),
            total_amount=add_amounts(p.fee_amount for p in persons),
        ),
    )

    LOGGER.info(
        "Roster parsed from CSV",
        extra={
            "persons": len(persons),
            "skipped_rows": len(skipped),
            "institution_cuit": roster.institution.cuit,
            "total_amount": str(roster.totals.total_amount),
        }
    )
    return roster, skipped
