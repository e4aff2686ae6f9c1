"""Business-rule checks on extracted rosters and transfer receipts.

Every check is a pure function returning a list of findings. Callers abort
on any error and log warnings without blocking persistence.
"""

from decimal import Decimal
from typing import Iterable, List, Optional

from aportes.core.exceptions import ReconciliationError
from aportes.schemas.extraction import CandidateResult, RosterExtraction, RosterPerson, TransferExtraction
from aportes.schemas.outcome import Finding, Severity
from aportes.utils.logging import get_logger
from aportes.utils.money import add_amounts, amount_difference, format_ars, percentage, within_tolerance

LOGGER = get_logger(__name__)

TRANSFER_MIN_AMOUNT = Decimal("100")
TRANSFER_MAX_AMOUNT = Decimal("100000000")
FEE_MIN_AMOUNT = Decimal("10")
FEE_MAX_AMOUNT = Decimal("10000000")
TOTALS_TOLERANCE = Decimal("1")
REDUNDANT_AMOUNT_TOLERANCE = Decimal("1")
# A period's contributions against the transfer that paid them
PERIOD_TRANSFER_TOLERANCE = Decimal("0.50")

# Expected fee / gross-base band around the nominal 1% union due
FEE_RATIO_MIN = Decimal("0.005")
FEE_RATIO_MAX = Decimal("0.03")


def _error(message: str, field: str, value=None) -> Finding:
    return Finding(severity=Severity.ERROR, message=message, field=field, value=value)


def _warning(message: str, field: str, value=None) -> Finding:
    return Finding(severity=Severity.WARNING, message=message, field=field, value=value)


def validate_transfer_amount(amount: Optional[Decimal], context: str) -> List[Finding]:
    """Principal amount: present, positive and within sanity bounds."""
    if amount is None:
        return [_error(f"Transfer amount not found in {context}", "operation.amount")]

    if amount <= 0:
        return [_error(f"Transfer amount must be positive in {context}: {format_ars(amount)}", "operation.amount", amount)]

    findings = []
    if amount < TRANSFER_MIN_AMOUNT:
        findings.append(_warning(
            f"Transfer amount suspiciously low in {context}: {format_ars(amount)} "
            f"(expected at least {format_ars(TRANSFER_MIN_AMOUNT)})",
            "operation.amount",
            amount,
        ))
    if amount > TRANSFER_MAX_AMOUNT:
        findings.append(_error(
            f"Transfer amount exceeds sane limit in {context}: {format_ars(amount)} "
            f"(maximum {format_ars(TRANSFER_MAX_AMOUNT)})",
            "operation.amount",
            amount,
        ))
    return findings


def validate_transfer_consistency(
    amount: Optional[Decimal],
    amount_to_transfer: Optional[Decimal],
    total_amount: Optional[Decimal],
    context: str,
) -> List[Finding]:
    """Redundant amount fields should agree within one currency unit."""
    values = [v for v in (amount, amount_to_transfer, total_amount) if v is not None]
    if len(values) < 2:
        return []

    spread = amount_difference(max(values), min(values))
    if spread > REDUNDANT_AMOUNT_TOLERANCE:
        return [_warning(
            f"Transfer amounts mismatch in {context}: amount={amount}, "
            f"amount_to_transfer={amount_to_transfer}, total_amount={total_amount}",
            "operation.amount",
            spread,
        )]
    return []


def validate_roster_totals(
    persons: List[RosterPerson], declared_total: Optional[Decimal], context: str
) -> List[Finding]:
    """Rows must exist and their fees must add up to the declared total."""
    if not persons:
        return [_error(f"No persons found in roster ({context})", "persons")]

    if declared_total is None:
        return []

    computed = add_amounts(p.fee_amount or 0 for p in persons)
    difference = amount_difference(computed, declared_total)
    if difference > TOTALS_TOLERANCE:
        return [_warning(
            f"Totals mismatch ({context}): computed sum {format_ars(computed)} does not match "
            f"declared total {format_ars(declared_total)}. Difference: {format_ars(difference)}",
            "totals.total_amount",
            difference,
        )]
    return []


def validate_fee_amount(amount: Optional[Decimal], field: str, context: str) -> List[Finding]:
    """A single roster amount must be non-negative and not absurdly large."""
    if amount is None:
        return []
    if amount < 0:
        return [_error(f"{field} cannot be negative in {context}: {format_ars(amount)}", field, amount)]

    findings = []
    if field == "fee_amount" and 0 < amount < FEE_MIN_AMOUNT:
        findings.append(_warning(f"{field} suspiciously low in {context}: {format_ars(amount)}", field, amount))
    if amount > FEE_MAX_AMOUNT:
        findings.append(_warning(f"{field} exceeds expected limit in {context}: {format_ars(amount)}", field, amount))
    return findings


def validate_fee_ratio(person: RosterPerson, context: str) -> List[Finding]:
    """Fee over gross base should sit near 1%.

    A ratio outside the band usually means the fee and gross-base columns
    were transposed.
    """
    gross = person.gross_amount
    if gross is None or gross <= 0:
        return []

    fee = person.fee_amount
    if fee is None or fee <= 0:
        return [_warning(f"Invalid fee for {person.name} in {context}: {fee}", "fee_amount", fee)]

    ratio = fee / gross
    shown = f"{(ratio * 100).quantize(Decimal('0.01'))}%"
    if ratio < FEE_RATIO_MIN:
        return [_warning(
            f"Fee percentage too low for {person.name} in {context}: {shown} (expected ~1%)",
            "fee_amount",
            ratio,
        )]
    if ratio > FEE_RATIO_MAX:
        return [_warning(
            f"Fee percentage too high for {person.name} in {context}: {shown} (expected ~1%)",
            "fee_amount",
            ratio,
        )]
    return []


def validate_roster(roster: RosterExtraction, context: str) -> List[Finding]:
    declared = roster.totals.total_amount if roster.totals else None
    findings = validate_roster_totals(roster.persons, declared, context)

    for person in roster.persons:
        row_context = f"{context}, {person.name}"
        findings.extend(validate_fee_amount(person.fee_amount, "fee_amount", row_context))
        findings.extend(validate_fee_amount(person.gross_amount, "gross_amount", row_context))
        findings.extend(validate_fee_ratio(person, context))
    return findings


def validate_transfer(transfer: TransferExtraction, context: str) -> List[Finding]:
    op = transfer.operation
    findings = validate_transfer_amount(op.amount, context)
    findings.extend(validate_transfer_consistency(op.amount, op.amount_to_transfer, op.total_amount, context))
    return findings


def validate_period_reconciliation(
    period_total: Optional[Decimal],
    transfer_amount: Optional[Decimal],
    context: str,
    tolerance: Decimal = PERIOD_TRANSFER_TOLERANCE,
) -> List[Finding]:
    """The contributions recorded for a period should add up to its transfer.

    Runs once both sides exist, whichever document arrived first. A gap is
    a warning: the roster may still be incomplete when the transfer lands.
    """
    if period_total is None or transfer_amount is None:
        return []
    if within_tolerance(period_total, transfer_amount, tolerance):
        return []

    difference = amount_difference(period_total, transfer_amount)
    return [_warning(
        f"Period totals do not match the transfer ({context}): contributions "
        f"{format_ars(period_total)}, transfer {format_ars(transfer_amount)}. "
        f"Difference: {format_ars(difference)} ({percentage(difference, transfer_amount)}%)",
        "period.total_amount",
        difference,
    )]


def reconcile(candidate: CandidateResult, context: str) -> List[Finding]:
    """Run every check that applies to the candidate's document kind."""
    if candidate.roster is not None:
        findings = validate_roster(candidate.roster, context)
    else:
        findings = validate_transfer(candidate.transfer, context)

    if findings:
        LOGGER.info(
            f"Reconciliation for {context}:\n{format_findings(findings)}",
            extra={"errors": len(get_errors(findings)), "warnings": len(get_warnings(findings))}
        )
    return findings


def ensure_reconciled(findings: List[Finding], context: str) -> List[Finding]:
    """Raise on errors; return the warnings otherwise.

    Raises:
        ReconciliationError: If any finding is an error
    """
    errors = get_errors(findings)
    if errors:
        raise ReconciliationError(
            f"Reconciliation failed for {context}: " + "; ".join(e.message for e in errors),
            findings=findings,
        )
    warnings = get_warnings(findings)
    for warning in warnings:
        LOGGER.warning(warning.message, extra={"field": warning.field})
    return warnings


def get_errors(findings: Iterable[Finding]) -> List[Finding]:
    return [f for f in findings if f.severity == Severity.ERROR]


def get_warnings(findings: Iterable[Finding]) -> List[Finding]:
    return [f for f in findings if f.severity == Severity.WARNING]


def has_errors(findings: Iterable[Finding]) -> bool:
    return any(f.severity == Severity.ERROR for f in findings)


def format_findings(findings: List[Finding]) -> str:
    if not findings:
        return "No validation issues"
    return "\n".join(str(f) for f in findings)
