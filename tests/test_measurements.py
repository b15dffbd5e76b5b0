"""
Tests for the Measurement Normalizer

Verifies:
- Dual-unit area strings are read by unit marker, not position
- Single-unit strings are converted at 10.764 ft² per m²
- Display strings re-parse to the same canonical value
- Free text without numbers degrades to 0 / N/A
- Bathroom, parking and date parsing
"""

import pytest
from datetime import date
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.adjustment_engine import MeasurementSystem, to_canonical, to_display
from core.adjustment_engine.measurements import (
    is_corner_unit,
    months_between,
    parse_bathrooms,
    parse_count,
    parse_currency,
    parse_date,
    parse_number,
    text_label,
)


IMPERIAL = MeasurementSystem.IMPERIAL
METRIC = MeasurementSystem.METRIC


# =============================================================================
# Test: Area Normalization
# =============================================================================

class TestToCanonical:
    """Tests for area normalization."""

    @pytest.mark.parametrize("raw", [
        "6,013 pi² / 558.65 m²",
        "558.65 m² / 6,013 pi²",
        "6013 sq ft / 558.65 sqm",
    ])
    def test_dual_unit_string_read_by_marker(self, raw):
        """Either side order gives the same values."""
        assert to_canonical(raw, IMPERIAL) == 6013.0
        assert to_canonical(raw, METRIC) == 558.65

    def test_metric_only_converted_to_imperial(self):
        """A metric-only value is converted for imperial requests."""
        assert to_canonical("167.23 m²", IMPERIAL) == pytest.approx(1800.06)

    def test_imperial_only_converted_to_metric(self):
        assert to_canonical("2,000 ft²", METRIC) == pytest.approx(185.8)

    def test_plain_number_read_as_square_feet(self):
        """Untagged values are square feet, converted for metric requests."""
        assert to_canonical(1800, IMPERIAL) == 1800.0
        assert to_canonical("1800", METRIC) == pytest.approx(167.22)
        assert to_canonical(1800, METRIC) == pytest.approx(167.22)

    @pytest.mark.parametrize("raw", [None, "", "   ", "N/A", "grand terrain", True])
    def test_no_numeric_content_is_zero(self, raw):
        """Malformed input never raises."""
        assert to_canonical(raw, IMPERIAL) == 0.0

    def test_result_rounded_to_hundredths(self):
        assert to_canonical("100.123 m²", IMPERIAL) == round(100.123 * 10.764, 2)


class TestToDisplay:
    """Tests for area display strings."""

    def test_imperial_display(self):
        assert to_display(1800, IMPERIAL) == "1,800 ft²"

    def test_metric_display_from_dual_string(self):
        assert to_display("6,013 pi² / 558.65 m²", METRIC) == "558.65 m²"

    def test_plain_number_shown_in_metric(self):
        assert to_display(1800, METRIC) == "167.22 m²"
        assert to_display("1,800", METRIC) == "167.22 m²"

    def test_missing_value_is_not_available(self):
        assert to_display(None, IMPERIAL) == "N/A"
        assert to_display("inconnu", METRIC) == "N/A"

    @pytest.mark.parametrize("raw", [
        1800,
        "167.23 m²",
        "6,013 pi² / 558.65 m²",
        "558.65 m² / 6,013 pi²",
        "2,000.5 sq ft",
        "1234.567",
    ])
    @pytest.mark.parametrize("system", [IMPERIAL, METRIC])
    def test_display_reparses_to_same_value(self, raw, system):
        """Rendering then re-normalizing is stable."""
        canonical = to_canonical(raw, system)
        assert to_canonical(to_display(raw, system), system) == canonical


# =============================================================================
# Test: Other Parsers
# =============================================================================

class TestCountParsing:
    """Tests for bathroom and parking parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("2:1", (2.0, 1.0)),
        ("1:0", (1.0, 0.0)),
        ("3", (3.0, 0.0)),
        (2, (2.0, 0.0)),
        ("x:y", (0.0, 0.0)),
        (None, (0.0, 0.0)),
    ])
    def test_parse_bathrooms(self, raw, expected):
        assert parse_bathrooms(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("Oui (2 places)", 2.0),
        ("Garage double", 2.0),
        ("Garage simple", 1.0),
        ("Non", 0.0),
        ("", 0.0),
        (3, 3.0),
        (None, 0.0),
    ])
    def test_parse_count(self, raw, expected):
        assert parse_count(raw) == expected

    def test_parse_number_tolerates_text(self):
        assert parse_number("12 ans") == 12.0
        assert parse_number("$15,000") == 15000.0
        assert parse_number("aucun") == 0.0

    @pytest.mark.parametrize("raw,expected", [
        ("Piscine 20 000 $", 20000.0),
        ("Spa $4,500", 4500.0),
        ("15000", 15000.0),
        (7500, 7500.0),
        ("Piscine 2015", 0.0),
        ("Cabanon", 0.0),
        (None, 0.0),
    ])
    def test_parse_currency_needs_dollar_mark_in_text(self, raw, expected):
        assert parse_currency(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("Corner unit", True),
        ("Unité de coin", True),
        ("Interior", False),
        (None, False),
    ])
    def test_corner_unit_detection(self, raw, expected):
        assert is_corner_unit(raw) is expected


class TestDates:
    """Tests for date parsing and month arithmetic."""

    def test_parse_iso_date(self):
        assert parse_date("2024-07-15") == date(2024, 7, 15)
        assert parse_date("2024-07-15T10:30:00") == date(2024, 7, 15)

    def test_parse_bad_date_is_none(self):
        assert parse_date("last spring") is None
        assert parse_date(None) is None

    def test_six_calendar_months(self):
        assert months_between(date(2024, 1, 15), date(2024, 7, 15)) == 6.0

    def test_negative_when_reversed(self):
        assert months_between(date(2024, 7, 15), date(2024, 1, 15)) == -6.0

    def test_leftover_days_count_as_thirtieths(self):
        assert months_between(date(2024, 1, 1), date(2024, 2, 16)) == pytest.approx(1.5)

    def test_text_label(self):
        assert text_label(None) == "N/A"
        assert text_label(12, " years") == "12 years"
        assert text_label(date(2024, 1, 15)) == "2024-01-15"
