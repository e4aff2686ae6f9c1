"""Tests for pattern-based transfer receipt extraction."""

from decimal import Decimal

from aportes.services.heuristics.transfer_grammar import (
    extract_datetime,
    extract_ordering_party,
    parse_transfer,
)


class TestParseTransfer:
    def test_operation_fields(self, transfer_text):
        operation = parse_transfer(transfer_text).operation

        assert operation.amount == Decimal("74067.44")
        assert operation.amount_to_transfer == Decimal("74067.44")
        assert operation.total_amount == Decimal("74067.44")
        assert operation.origin_account == "CC $1234567"
        assert operation.destination_cbu == "0110599520000001234567"
        assert operation.bank == "Nacion"
        assert operation.holder == "SINDICATO DOCENTE"
        assert operation.cuit == "30-99887766-5"
        assert operation.operation_type == "Varios"

    def test_header_fields(self, transfer_text):
        transfer = parse_transfer(transfer_text)

        assert transfer.title == "Transferencia a terceros"
        assert transfer.date == "05/12/2024"
        assert transfer.time == "11:06 AM"
        assert transfer.operation_number == "123456789"
        assert transfer.reference == "98765"

    def test_ordering_party(self, transfer_text):
        party = parse_transfer(transfer_text).ordering_party

        assert party.name == "ESCUELA SAN MARTIN"
        assert party.address == "RN 22 KM 1000 VILLA REGINA"
        assert party.cuit == "30712345678"

    def test_missing_amount(self):
        transfer = parse_transfer("Transferencia a terceros\n11:06 AM 05/12/2024 123456789")

        assert transfer.operation.amount is None
        assert transfer.operation.total_amount is None

    def test_empty_text(self):
        transfer = parse_transfer("")
        assert transfer.operation.amount is None
        assert transfer.date is None


class TestHelpers:
    def test_labeled_date_fallback(self):
        assert extract_datetime("Fecha: 05/12/2024 Hora: 10:30") == ("05/12/2024", "10:30", None)

    def test_no_date(self):
        assert extract_datetime("sin fecha") == (None, None, None)

    def test_exempt_ordering_cuit(self):
        party = extract_ordering_party("Ordenante COLEGIO NORTE EXEN - EXENTO CUIT/CUIL 30712345678")

        assert party.name == "COLEGIO NORTE"
        assert party.cuit == "30712345678"


class TestBankFallback:
    def test_bank_followed_by_sa_is_not_taken(self):
        transfer = parse_transfer(
            "Transferencia a terceros\n"
            "Ordenante Banco Macro S.A. sucursal 22\n"
            "Importe $ 1,500.00"
        )

        assert transfer.operation.bank is None

    def test_later_bank_mention_is_used(self):
        transfer = parse_transfer(
            "Ordenante Banco Macro S.A. IIBB: 901\n"
            "Cuenta destino en Banco Galicia\n"
            "Importe $ 1,500.00"
        )

        assert transfer.operation.bank == "Galicia"

    def test_destination_line_wins(self, transfer_text):
        assert parse_transfer(transfer_text).operation.bank == "Nacion"
