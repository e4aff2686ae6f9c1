"""Pattern-based extraction of bank transfer receipts.

Receipts are short and laid out as label/value pairs, so every field is
searched on the whole text joined into one line. The bank prints amounts
with a comma grouping thousands (``74,067.44``).

The ordering party's letterhead comes right after the bank's own
boilerplate (its name followed by ``S.A.`` and an ``IIBB`` number), which
is why the ordering-party rules anchor on ``Ordenante`` and ``IIBB``.
"""

import re
from typing import Optional, Tuple

from aportes.schemas.extraction import OrderingParty, TransferExtraction, TransferOperation
from aportes.services.heuristics.patterns import AMOUNT_TOKEN, parse_amount_token
from aportes.utils.cuit import format_cuit
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)

_TITLE_RE = re.compile(r"(Transferencia\s+a\s+terceros|Comprobante\s+de\s+transferencia)", re.IGNORECASE)
_CBU_RE = re.compile(r"(?<!\d)(\d{22})(?!\d)")
_DATETIME_RE = re.compile(r"(\d{1,2}:\d{2}\s+(?:AM|PM))\s+(\d{2}/\d{2}/\d{4})", re.IGNORECASE)
_LABELED_DATE_RE = re.compile(r"Fecha[:\s]+(\d{2}/\d{2}/\d{4})(?:\s+Hora[:\s]+(\d{1,2}:\d{2}(?:\s*(?:AM|PM))?))?", re.IGNORECASE)
_OPERATION_NUMBER_RE = re.compile(r"(?<!\d)(\d{9})(?!\d)")
# Characters after the date/time searched for the operation number
OPERATION_NUMBER_WINDOW = 50

_AMOUNT_RE = re.compile(rf"Importe\s+[^$]*\$\s*({AMOUNT_TOKEN})", re.IGNORECASE)
_AMOUNT_TO_TRANSFER_RE = re.compile(rf"IMPORTE\s+A\s+TRANSFERIR\s+\$?\s*({AMOUNT_TOKEN})", re.IGNORECASE)
_TOTAL_AMOUNT_RE = re.compile(rf"Importe\s+Total\s+\$?\s*({AMOUNT_TOKEN})", re.IGNORECASE)

_ORIGIN_ACCOUNT_RE = re.compile(r"CC\s+\$\s*(\d+)")
_DESTINATION_BANK_RE = re.compile(r"CBU\s+Destino[^B]*?Banco\s+(\w+)", re.IGNORECASE)
_ANY_BANK_RE = re.compile(r"Banco\s+(\w+)\b(?!\s+S\.A\.)")
_OPERATION_TYPE_RE = re.compile(r"Tipo\s+de\s+operaci[oó]n[|\s]+(\w+)", re.IGNORECASE)
_REFERENCE_RE = re.compile(r"Nro\.\s+de\s+Referencia[|\s]+(\d+)", re.IGNORECASE)

_BENEFICIARY_CUIT_RE = re.compile(r"CUIT\s*/\s*CUIL\s+(\d{2}-\d{8}-\d|\d{11})")
_HOLDER_RE = re.compile(r"Titular\s+([A-ZÑÁÉÍÓÚ\s]+?)(?=\s+CUIT\s*/\s*CUIL)")

_ADDRESS_STOP = r"(?=\s+(?:RN|Av\.|Calle|[A-Z]+\s+\d+|EXEN|CUIT))"
_ORDERING_NAME_RE = re.compile(
    r"Ordenante\s+(?:Banco[^I]+?IIBB:[^A-Z]*?)?([A-Z][A-Z\s\d]+?)" + _ADDRESS_STOP
)
_IIBB_NAME_RE = re.compile(r"IIBB:[^\n]*?\s+([A-Z][A-Z\s\d]+?)(?=\s+(?:RN|Av\.|Calle|CP:|EXEN))")
_ADDRESS_PATTERNS = (
    re.compile(r"(RN\s+\d+[^E]+?(?:VALLE|[A-Z\s]+?))\s+(?:EXEN|CUIT)"),
    re.compile(r"((?:Av\.|Avenida)[^C]+?(?:Ciudad|Buenos Aires|CABA)[^E]*?)\s+(?:EXEN|CUIT)", re.IGNORECASE),
    re.compile(r"((?:Calle|C\.)\s+[A-Z\s]+?\d+[^E]*?(?:CP[:\s]*\d+)?)\s+(?:EXEN|CUIT)", re.IGNORECASE),
)
_ADDRESS_AFTER_NAME_RE = re.compile(r"^\s*([A-Z][A-Z\s\d:.-]+?)(?=\s+(?:EXEN|CUIT))")
_ORDERING_CUIT_PATTERNS = (
    re.compile(r"RN\s+\d+[^C]*?CUIT[/\s]*CUIL\s+(\d{11})"),
    re.compile(r"EXEN\s*-\s*EXENTO\s+CUIT[/\s]*CUIL\s+(\d{11})"),
)


def _search(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1).strip() if match else None


def _amount(pattern: re.Pattern, text: str):
    token = _search(pattern, text)
    if token is None:
        return None
    try:
        return parse_amount_token(token)
    except ValueError:
        return None


def extract_datetime(text: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Return ``(date, time, operation_number)``.

    The receipt prints ``11:06 AM 05/12/2024`` followed by the operation
    number; a labeled ``Fecha: ... Hora: ...`` pair is the fallback.
    """
    match = _DATETIME_RE.search(text)
    if match:
        window = text[match.end():match.end() + OPERATION_NUMBER_WINDOW]
        return match.group(2), match.group(1), _search(_OPERATION_NUMBER_RE, window)

    labeled = _LABELED_DATE_RE.search(text)
    if labeled:
        return labeled.group(1), labeled.group(2), None
    return None, None, None


def extract_ordering_party(text: str) -> OrderingParty:
    name = _search(_ORDERING_NAME_RE, text) or _search(_IIBB_NAME_RE, text)

    address = None
    for pattern in _ADDRESS_PATTERNS:
        address = _search(pattern, text)
        if address:
            break
    if not address and name:
        index = text.find(name)
        if index >= 0:
            after = text[index + len(name):index + len(name) + 200]
            address = _search(_ADDRESS_AFTER_NAME_RE, after)

    cuit = None
    for pattern in _ORDERING_CUIT_PATTERNS:
        cuit = _search(pattern, text)
        if cuit:
            break

    return OrderingParty(cuit=cuit, name=name, address=address)


def parse_transfer(layout_text: str) -> TransferExtraction:
    """Extract a transfer receipt from layout text.

    Args:
        layout_text: Line-structured text of the receipt

    Returns:
        TransferExtraction; ``operation.amount`` is None when no amount was found
    """
    lines = [line.strip() for line in (layout_text or "").splitlines() if line.strip()]
    text = re.sub(r"\s{2,}", " ", " ".join(lines))

    date, time, operation_number = extract_datetime(text)

    amount = _amount(_AMOUNT_RE, text)
    amount_to_transfer = _amount(_AMOUNT_TO_TRANSFER_RE, text) or amount
    total_amount = _amount(_TOTAL_AMOUNT_RE, text) or amount

    origin = _search(_ORIGIN_ACCOUNT_RE, text)
    bank = _search(_DESTINATION_BANK_RE, text) or _search(_ANY_BANK_RE, text)
    beneficiary_cuit = _search(_BENEFICIARY_CUIT_RE, text)

    operation = TransferOperation(
        origin_account=f"CC ${origin}" if origin else None,
        amount=amount,
        destination_cbu=_search(_CBU_RE, text),
        bank=bank,
        holder=_search(_HOLDER_RE, text),
        cuit=format_cuit(beneficiary_cuit) if beneficiary_cuit else None,
        operation_type=_search(_OPERATION_TYPE_RE, text),
        amount_to_transfer=amount_to_transfer,
        total_amount=total_amount,
    )

    result = TransferExtraction(
        title=_search(_TITLE_RE, text),
        reference=_search(_REFERENCE_RE, text),
        operation_number=operation_number,
        date=date,
        time=time,
        ordering_party=extract_ordering_party(text),
        operation=operation,
    )

    LOGGER.info(
        "Transfer parsed by pattern rules",
        extra={
            "amount": str(amount) if amount is not None else None,
            "date": date,
            "operation_number": operation_number,
            "ordering_cuit": result.ordering_party.cuit,
        }
    )
    return result
