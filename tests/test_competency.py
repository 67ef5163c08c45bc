"""Tests for competency resolution."""

from datetime import date

import pytest

from commission_sync.errors import ValidationError
from commission_sync.models import CommissionEntry
from commission_sync.sync.competency import (
    CompetencyResolver,
    last_day,
    next_month,
    payment_day,
    validate_month,
)

TODAY = date(2026, 3, 15)


def entries(*records):
    return [CommissionEntry.from_record(r) for r in records]


class TestMonthHelpers:
    """Tests for month string helpers."""

    def test_validate_month_accepts_year_month(self):
        """Test that YYYY-MM is accepted."""
        assert validate_month("2026-02") == "2026-02"

    @pytest.mark.parametrize("value", ["2026-13", "2026-2", "02-2026", "", "2026-02-01"])
    def test_validate_month_rejects_malformed(self, value):
        """Test that malformed months raise ValidationError."""
        with pytest.raises(ValidationError):
            validate_month(value)

    def test_next_month_wraps_year(self):
        """Test December rolls into January of the next year."""
        assert next_month("2025-12") == "2026-01"
        assert next_month("2026-02") == "2026-03"

    def test_last_day_handles_leap_year(self):
        """Test last day of February in a leap year."""
        assert last_day("2024-02") == "2024-02-29"
        assert last_day("2026-04") == "2026-04-30"


class TestPaymentDay:
    """Tests for payment date normalization."""

    def test_missing_means_today(self):
        """Test that an absent payment date is today."""
        assert payment_day(None, TODAY) == "2026-03-15"
        assert payment_day("", TODAY) == "2026-03-15"

    def test_timestamp_is_truncated(self):
        """Test that a full timestamp is reduced to its date."""
        assert payment_day("2026-02-10T14:30:00Z", TODAY) == "2026-02-10"

    def test_malformed_raises(self):
        """Test that garbage raises ValueError."""
        with pytest.raises(ValueError):
            payment_day("not-a-date", TODAY)


class TestCompetencyResolver:
    """Tests for closed-month detection and roll-forward."""

    def test_month_without_entries_is_open(self):
        """Test that a month with zero entries is never closed."""
        resolver = CompetencyResolver([], TODAY)

        assert resolver.is_month_closed("2026-01") is False

    def test_month_with_only_closed_entries_is_closed(self, make_entry):
        """Test that a fully closed month is detected."""
        resolver = CompetencyResolver(
            entries(make_entry(status="fechado"), make_entry(status="fechado")),
            TODAY,
        )

        assert resolver.is_month_closed("2026-01") is True

    def test_month_with_one_open_entry_is_open(self, make_entry):
        """Test that a single open entry keeps the month open."""
        resolver = CompetencyResolver(
            entries(make_entry(status="fechado"), make_entry(status="aberto")),
            TODAY,
        )

        assert resolver.is_month_closed("2026-01") is False

    def test_open_month_resolves_to_first_day(self):
        """Test resolution into an open month."""
        competency = CompetencyResolver([], TODAY).resolve("2026-02-10")

        assert competency.competency_month == "2026-02"
        assert competency.competency_date == "2026-02-01"
        assert competency.rolled is False
        assert competency.origin_month == "2026-02"

    def test_closed_month_rolls_to_current_month(self, make_entry):
        """Test roll-forward out of a closed month."""
        resolver = CompetencyResolver(entries(make_entry(status="fechado")), TODAY)

        competency = resolver.resolve("2026-01-20")

        assert competency.competency_month == "2026-03"
        assert competency.competency_date == "2026-03-01"
        assert competency.rolled is True
        assert competency.origin_month == "2026-01"

    def test_answers_are_memoized_per_resolver(self, make_entry):
        """Test that the closed answer is cached for the resolver's lifetime."""
        resolver = CompetencyResolver(entries(make_entry(status="fechado")), TODAY)

        resolver.resolve("2026-01-05")
        resolver.resolve("2026-01-28")

        assert resolver._closed_cache == {"2026-01": True}

    def test_resolvers_do_not_share_cache(self, make_entry):
        """Test that a new resolver sees a new view of the entries."""
        closed = CompetencyResolver(entries(make_entry(status="fechado")), TODAY)
        reopened = CompetencyResolver(entries(make_entry(status="aberto")), TODAY)

        assert closed.is_month_closed("2026-01") is True
        assert reopened.is_month_closed("2026-01") is False
