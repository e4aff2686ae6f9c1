"""Tests for roster and transfer reconciliation rules."""

from decimal import Decimal

import pytest

from aportes.core.exceptions import ReconciliationError
from aportes.schemas.extraction import (
    CandidateResult,
    DocumentKind,
    RosterExtraction,
    RosterPerson,
    RosterTotals,
    TransferExtraction,
    TransferOperation,
)
from aportes.schemas.outcome import Severity
from aportes.services.validation.reconciler import (
    ensure_reconciled,
    get_errors,
    get_warnings,
    reconcile,
    validate_fee_amount,
    validate_fee_ratio,
    validate_period_reconciliation,
    validate_roster_totals,
    validate_transfer_amount,
    validate_transfer_consistency,
)


def _person(name="PEREZ  JUAN", fee=100, gross=None):
    return RosterPerson(name=name, fee_amount=fee, gross_amount=gross)


class TestRosterTotals:
    def test_matching_total_has_no_findings(self):
        persons = [_person(fee=100), _person(name="GOMEZ  ANA", fee=200)]
        assert validate_roster_totals(persons, Decimal("300"), "listado.pdf") == []

    def test_mismatch_is_a_single_warning(self):
        persons = [_person(fee=100), _person(name="GOMEZ  ANA", fee=200)]
        findings = validate_roster_totals(persons, Decimal("500"), "listado.pdf")

        assert len(findings) == 1
        assert findings[0].severity == Severity.WARNING
        assert "mismatch" in findings[0].message

    def test_difference_within_one_peso_is_accepted(self):
        persons = [_person(fee=Decimal("100.40"))]
        assert validate_roster_totals(persons, Decimal("101.00"), "listado.pdf") == []

    def test_no_persons_is_an_error(self):
        findings = validate_roster_totals([], Decimal("300"), "listado.pdf")
        assert get_errors(findings)

    def test_missing_declared_total_is_not_checked(self):
        assert validate_roster_totals([_person()], None, "listado.pdf") == []


class TestPeriodReconciliation:
    def test_matching_period(self):
        assert validate_period_reconciliation(Decimal("300.00"), Decimal("300.00"), "period 05/2024") == []

    def test_fifty_cents_is_tolerated(self):
        assert validate_period_reconciliation(Decimal("300.00"), Decimal("300.50"), "period 05/2024") == []

    def test_gap_is_a_warning_with_percentage(self):
        findings = validate_period_reconciliation(Decimal("300.00"), Decimal("74067.44"), "period 05/2024")

        assert len(findings) == 1
        assert findings[0].severity == Severity.WARNING
        assert findings[0].value == Decimal("73767.44")
        assert "$ 73.767,44" in findings[0].message
        assert "(99.59%)" in findings[0].message

    def test_just_over_tolerance(self):
        assert validate_period_reconciliation(Decimal("300.00"), Decimal("300.51"), "period 05/2024")

    def test_missing_side_is_not_checked(self):
        assert validate_period_reconciliation(None, Decimal("300.00"), "period 05/2024") == []
        assert validate_period_reconciliation(Decimal("300.00"), None, "period 05/2024") == []


class TestFeeRatio:
    def test_one_percent_is_expected(self):
        assert validate_fee_ratio(_person(fee=1000, gross=100000), "listado.pdf") == []

    def test_ratio_too_low(self):
        findings = validate_fee_ratio(_person(fee=100, gross=100000), "listado.pdf")
        assert len(findings) == 1
        assert "too low" in findings[0].message

    def test_ratio_too_high(self):
        findings = validate_fee_ratio(_person(fee=5000, gross=100000), "listado.pdf")
        assert len(findings) == 1
        assert "too high" in findings[0].message

    def test_without_gross_base(self):
        assert validate_fee_ratio(_person(fee=5000), "listado.pdf") == []


class TestAmounts:
    def test_negative_fee_is_an_error(self):
        findings = validate_fee_amount(Decimal("-5"), "fee_amount", "listado.pdf")
        assert get_errors(findings)

    def test_tiny_fee_is_a_warning(self):
        findings = validate_fee_amount(Decimal("5"), "fee_amount", "listado.pdf")
        assert len(get_warnings(findings)) == 1

    def test_transfer_amount_missing(self):
        assert get_errors(validate_transfer_amount(None, "pago.pdf"))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_transfer_amount_not_positive(self, amount):
        assert get_errors(validate_transfer_amount(amount, "pago.pdf"))

    def test_transfer_amount_low(self):
        findings = validate_transfer_amount(Decimal("50"), "pago.pdf")
        assert not get_errors(findings)
        assert len(get_warnings(findings)) == 1

    def test_transfer_amount_over_limit(self):
        assert get_errors(validate_transfer_amount(Decimal("200000000"), "pago.pdf"))

    def test_redundant_amounts_agree(self):
        assert validate_transfer_consistency(
            Decimal("100"), Decimal("100.50"), Decimal("100"), "pago.pdf"
        ) == []

    def test_redundant_amounts_disagree(self):
        findings = validate_transfer_consistency(
            Decimal("100"), Decimal("150"), Decimal("100"), "pago.pdf"
        )
        assert len(get_warnings(findings)) == 1


class TestReconcile:
    def test_clean_roster(self):
        roster = RosterExtraction(
            persons=[_person(fee=100, gross=10000), _person(name="GOMEZ  ANA", fee=200, gross=20000)],
            totals=RosterTotals(people_count=2, total_amount=300),
        )
        candidate = CandidateResult(kind=DocumentKind.ROSTER, source="heuristic", data=roster)

        findings = reconcile(candidate, "listado.pdf")

        assert findings == []
        assert ensure_reconciled(findings, "listado.pdf") == []

    def test_empty_roster_raises(self):
        candidate = CandidateResult(kind=DocumentKind.ROSTER, source="ai", data=RosterExtraction())

        findings = reconcile(candidate, "listado.pdf")

        with pytest.raises(ReconciliationError) as exc_info:
            ensure_reconciled(findings, "listado.pdf")
        assert get_errors(exc_info.value.findings)

    def test_warnings_do_not_block(self):
        transfer = TransferExtraction(operation=TransferOperation(amount=50))
        candidate = CandidateResult(kind=DocumentKind.TRANSFER, source="heuristic", data=transfer)

        warnings = ensure_reconciled(reconcile(candidate, "pago.pdf"), "pago.pdf")

        assert len(warnings) == 1
        assert warnings[0].field == "operation.amount"
