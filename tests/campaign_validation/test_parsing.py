"""Tests for campaign_validation.parsing module."""

from datetime import date, datetime

import pytest

from campaign_validation.parsing import (
    as_text,
    extract_year,
    is_blank,
    normalize,
    parse_date,
    parse_number,
)


class TestBlank:
    """Tests for is_blank, as_text and normalize."""

    @pytest.mark.parametrize("value", [None, "", "   ", "\t\n", float("nan")])
    def test_blank_values(self, value):
        """Test None, NaN and whitespace are blank."""
        assert is_blank(value)

    @pytest.mark.parametrize("value", [0, 0.0, "0", "x", False])
    def test_non_blank_values(self, value):
        """Test zero and text are not blank."""
        assert not is_blank(value)

    def test_as_text_trims(self):
        """Test as_text trims and maps blanks to empty string."""
        assert as_text("  Lip ") == "Lip"
        assert as_text(None) == ""
        assert as_text(2025) == "2025"

    def test_normalize_casefolds(self):
        """Test normalize is case-insensitive and trimmed."""
        assert normalize("  NIVEA Lip ") == normalize("nivea lip")


class TestParseNumber:
    """Tests for parse_number."""

    def test_plain_numbers(self):
        """Test ints and floats pass through as floats."""
        assert parse_number(7) == 7.0
        assert parse_number(2.5) == 2.5

    def test_thousands_separator(self):
        """Test commas are removed."""
        assert parse_number("1,250.50") == 1250.5

    def test_percentage(self):
        """Test a trailing percent sign is removed."""
        assert parse_number("45%") == 45.0
        assert parse_number(" 45 % ") == 45.0

    @pytest.mark.parametrize("value", [None, "", "abc", True, "nan", "inf"])
    def test_unparseable(self, value):
        """Test blanks, booleans, text and non-finite values give None."""
        assert parse_number(value) is None


class TestParseDate:
    """Tests for parse_date."""

    def test_iso_date(self):
        """Test YYYY-MM-DD."""
        assert parse_date("2025-01-31") == date(2025, 1, 31)

    def test_day_month_abbreviation(self):
        """Test DD-Mon-YY maps two-digit years to 20YY."""
        assert parse_date("05-Jan-25") == date(2025, 1, 5)
        assert parse_date("05-Jan-2025") == date(2025, 1, 5)
        assert parse_date("15 Mar 2025") == date(2025, 3, 15)

    def test_slash_dates_month_first(self):
        """Test slash dates are read month-first."""
        assert parse_date("01/05/2025") == date(2025, 1, 5)

    def test_slash_dates_day_first_fallback(self):
        """Test day-first is used when the first part cannot be a month."""
        assert parse_date("31/12/2025") == date(2025, 12, 31)

    def test_dotted_date(self):
        """Test DD.MM.YYYY."""
        assert parse_date("31.12.2025") == date(2025, 12, 31)

    def test_iso_timestamp(self):
        """Test ISO timestamps with a Z suffix."""
        assert parse_date("2025-01-31T10:00:00Z") == date(2025, 1, 31)

    def test_date_objects(self):
        """Test date and datetime objects."""
        assert parse_date(date(2025, 2, 1)) == date(2025, 2, 1)
        assert parse_date(datetime(2025, 2, 1, 13, 30)) == date(2025, 2, 1)

    @pytest.mark.parametrize("value", [None, "", "not a date", "31/31/2025"])
    def test_unparseable(self, value):
        """Test unparseable values give None."""
        assert parse_date(value) is None


class TestExtractYear:
    """Tests for extract_year."""

    def test_last_token_wins(self):
        """Test the last four-digit token is returned."""
        assert extract_year("ABP 2024/2025") == 2025

    def test_single_token(self):
        """Test a cycle identifier with one year."""
        assert extract_year("ABP 2025") == 2025

    def test_numbers(self):
        """Test ints and integral floats."""
        assert extract_year(2026) == 2026
        assert extract_year(2025.0) == 2025

    @pytest.mark.parametrize("value", [None, "", "ABP", "25", True, 12345])
    def test_no_year(self, value):
        """Test values without a year."""
        assert extract_year(value) is None
