import pytest

from aportes.schemas.extraction import DocumentKind, PdfType
from aportes.services.extraction.classifier import (
    classify_file_name,
    detect_kind,
    detect_kind_from_text,
    detect_pdf_type,
)


def test_transfer_text(transfer_text):
    assert detect_kind_from_text(transfer_text) == DocumentKind.TRANSFER


def test_roster_text(roster_text):
    assert detect_kind_from_text(roster_text) == DocumentKind.ROSTER
    assert detect_kind_from_text("TOTALES POR CONCEPTO 1.234,56") == DocumentKind.ROSTER


def test_transfer_heading_without_cbu_or_amount_is_undecided():
    assert detect_kind_from_text("Transferencia a terceros") is None


@pytest.mark.parametrize("file_name,expected", [
    ("listado-mayo-2024.pdf", DocumentKind.ROSTER),
    ("FOPID.pdf", DocumentKind.ROSTER),
    ("Nov 2024.pdf", DocumentKind.ROSTER),
    ("comprobante.pdf", DocumentKind.TRANSFER),
    ("pago 05-12-2024.pdf", DocumentKind.TRANSFER),
    ("scan.pdf", None),
    (None, None),
])
def test_classify_file_name(file_name, expected):
    assert classify_file_name(file_name) == expected


def test_content_wins_over_file_name(transfer_text):
    assert detect_kind(transfer_text, "listado.pdf") == DocumentKind.TRANSFER
    assert detect_kind("", "aportes.pdf") == DocumentKind.ROSTER


def test_detect_pdf_type():
    assert detect_pdf_type(DocumentKind.TRANSFER) == PdfType.COMPROBANTE
    assert detect_pdf_type(DocumentKind.ROSTER, "", "FOPID") == PdfType.FOPID
    assert detect_pdf_type(DocumentKind.ROSTER, "APORTES FOPID 2024") == PdfType.FOPID
    assert detect_pdf_type(DocumentKind.ROSTER, "LISTADO", "05/2024") == PdfType.SUELDO
