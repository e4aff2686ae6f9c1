"""Tests for period hints, period detection and document dates."""

from datetime import date

import pytest

from aportes.core.exceptions import ValidationError
from aportes.utils.periods import (
    ART,
    DetectedPeriod,
    PeriodKey,
    combine_date_time,
    detect_period,
    parse_document_date,
    parse_period_hint,
    period_from_label,
    resolve_period,
)


class TestPeriodHint:
    def test_valid_hint(self):
        key = parse_period_hint("2024-05")
        assert (key.month, key.year, key.source) == (5, 2024, "hint")
        assert key.as_hint() == "2024-05"

    def test_missing_hint(self):
        assert parse_period_hint(None) is None
        assert parse_period_hint("") is None

    @pytest.mark.parametrize("hint", ["2024-13", "2024-00", "05/2024", "2024-5"])
    def test_malformed_hint(self, hint):
        with pytest.raises(ValidationError):
            parse_period_hint(hint)


class TestDetectPeriod:
    def test_labeled_month_name(self):
        found = detect_period("Concepto: Aporte Periodo: Mayo 2024")
        assert (found.month, found.year) == (5, 2024)

    def test_month_name_with_de(self):
        found = detect_period("Liquidación correspondiente a septiembre de 2023")
        assert (found.month, found.year) == (9, 2023)

    def test_numeric_period_skips_full_dates(self):
        found = detect_period("Fecha 15/11/2024 listado 03/2024")
        assert (found.month, found.year) == (3, 2024)

    def test_fopid_without_month(self):
        found = detect_period("FOPID 2024")
        assert found.is_fopid
        assert not found.is_complete

    def test_nothing_found(self):
        assert detect_period("") == DetectedPeriod()
        assert not detect_period("sin datos").is_complete

    def test_label_from_extractor(self):
        assert period_from_label("05/2024").month == 5
        assert period_from_label("FOPID").is_fopid
        assert period_from_label(None) == DetectedPeriod()


class TestResolvePeriod:
    def test_hint_wins(self):
        hint = PeriodKey(month=6, year=2024, source="hint")
        detected = DetectedPeriod(month=5, year=2024)
        assert resolve_period(hint, detected, date(2024, 7, 1)) is hint

    def test_document_before_date(self):
        period = resolve_period(None, DetectedPeriod(month=5, year=2024), date(2024, 7, 1))
        assert (period.month, period.year, period.source) == (5, 2024, "document")

    def test_date_fallback(self):
        period = resolve_period(None, DetectedPeriod(is_fopid=True), date(2024, 12, 5))
        assert (period.month, period.year, period.source) == (12, 2024, "date")

    def test_unresolved(self):
        assert resolve_period(None, None) is None


class TestDocumentDates:
    def test_argentine_date(self):
        assert parse_document_date("05/12/2024") == date(2024, 12, 5)

    def test_two_digit_year(self):
        assert parse_document_date("5/1/24") == date(2024, 1, 5)

    def test_invalid_date(self):
        assert parse_document_date("31/02/2024") is None
        assert parse_document_date("sin fecha") is None

    def test_combine_pm(self):
        value = combine_date_time("05/12/2024", "11:06 PM")
        assert (value.hour, value.minute) == (23, 6)
        assert value.tzinfo == ART

    def test_combine_midnight_am(self):
        assert combine_date_time("05/12/2024", "12:30 AM").hour == 0

    def test_combine_without_time(self):
        value = combine_date_time("05/12/2024", None)
        assert (value.hour, value.minute) == (0, 0)
        assert combine_date_time(None, "10:00") is None
