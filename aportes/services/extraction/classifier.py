"""Document kind detection from content and file names."""

import re
from typing import Optional

from aportes.schemas.extraction import DocumentKind, PdfType
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)

_ROSTER_TEXT_RE = re.compile(
    r"TOTALES\s+POR\s+CONCEPTO|LISTADO\s+DE\s+APORTES|TOT\.?\s*REMUNERATIVO|CANTIDAD\s+DE\s+PERSONAS",
    re.IGNORECASE,
)
_TRANSFER_TEXT_RE = re.compile(
    r"TRANSFERENCIA\s+A\s+TERCEROS|COMPROBANTE\s+DE\s+TRANSFERENCIA|CBU\s+DESTINO",
    re.IGNORECASE,
)
_CBU_RE = re.compile(r"(?<!\d)\d{22}(?!\d)")
_FOPID_RE = re.compile(r"\bFOPID\b", re.IGNORECASE)

_ROSTER_NAME_RE = re.compile(
    r"listado|liquidacion|aportes|sueldo|fopid|"
    r"\b(?:ene|feb|mar|abr|may|jun|jul|ago|sep|set|oct|nov|dic)[a-z]*[\s_-]*\d{4}\b",
    re.IGNORECASE,
)
_TRANSFER_NAME_RE = re.compile(
    r"transferencia|pago|comprobante|banco|\d{2}[-./]\d{2}[-./]\d{4}",
    re.IGNORECASE,
)


def detect_kind_from_text(text: str) -> Optional[DocumentKind]:
    """Detect the kind from document content; None when undecided."""
    if not text:
        return None
    if _TRANSFER_TEXT_RE.search(text) and (_CBU_RE.search(text) or "importe" in text.lower()):
        return DocumentKind.TRANSFER
    if _ROSTER_TEXT_RE.search(text):
        return DocumentKind.ROSTER
    return None


def classify_file_name(file_name: Optional[str]) -> Optional[DocumentKind]:
    """Guess the kind from the upload's file name; None when undecided."""
    if not file_name:
        return None
    if _ROSTER_NAME_RE.search(file_name):
        return DocumentKind.ROSTER
    if _TRANSFER_NAME_RE.search(file_name):
        return DocumentKind.TRANSFER
    return None


def detect_kind(text: str, file_name: Optional[str]) -> Optional[DocumentKind]:
    """Content wins over the file name."""
    kind = detect_kind_from_text(text) or classify_file_name(file_name)
    LOGGER.debug("Detected document kind", extra={"kind": kind, "file_name": file_name})
    return kind


def detect_pdf_type(kind: DocumentKind, text: str = "", period_label: Optional[str] = None) -> PdfType:
    if kind == DocumentKind.TRANSFER:
        return PdfType.COMPROBANTE
    if _FOPID_RE.search(period_label or "") or _FOPID_RE.search(text or ""):
        return PdfType.FOPID
    return PdfType.SUELDO
