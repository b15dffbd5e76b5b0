"""
Tests for the Adjustment Calculator

Verifies:
- Each category formula, including per-side rate and size overrides
- Living area sign convention (larger comparable -> negative adjustment)
- Timing over six calendar months
- Depreciation follows the rate table unless the operator pinned it
- Manual overrides never alter the calculated amount
- Stored values are reused when refresh is not requested
"""

import pytest
from dataclasses import replace
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.adjustment_engine import (
    AdjustmentCalculator,
    AgeMethod,
    DefaultRates,
    MeasurementSystem,
    PropertySnapshot,
    QualityMethod,
    get_category,
)
from core.adjustment_engine.calculator import FORMULAS
from core.adjustment_engine.categories import CATEGORIES_BY_ID


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def calculator():
    return AdjustmentCalculator(MeasurementSystem.IMPERIAL)


@pytest.fixture
def rates():
    """Single-family style rates with round numbers."""
    return DefaultRates(
        market_appreciation_rate=6.0,
        living_area_rate=30.0,
        land_rate=15.0,
        land_depreciation_rate=10.0,
        basement_finish_rate=25.0,
        basement_depreciation_rate=15.0,
        quality_adjustment_value=10.0,
        age_adjustment_rate=1000.0,
        bathroom_rate=5000.0,
        powder_room_rate=2500.0,
        bathroom_depreciation_rate=10.0,
        garage_value=10000.0,
        floor_value=2000.0,
        landscaping_depreciation_rate=15.0,
        extras_depreciation_rate=20.0,
        corner_unit_premium=5000.0,
    )


@pytest.fixture
def compute(calculator, rates):
    """Calculate one category for a subject/comparable field pair."""
    def _compute(category_id, subject=None, comparable=None, rates_override=None, existing=None):
        return calculator.calculate(
            get_category(category_id),
            PropertySnapshot(**(subject or {})),
            PropertySnapshot(**{"sale_price": 450000.0, **(comparable or {})}),
            rates_override or rates,
            existing_detail=existing,
        )
    return _compute


# =============================================================================
# Test: Registry
# =============================================================================

class TestFormulaRegistry:
    """Every category has exactly one formula."""

    def test_every_category_has_formula(self):
        assert set(FORMULAS) == set(CATEGORIES_BY_ID)


# =============================================================================
# Test: Living Area and Timing
# =============================================================================

class TestLivingArea:
    """Tests for the living area formula."""

    def test_larger_comparable_example(self, compute):
        """1800 ft² subject, 2000 ft² comparable at $30/ft² -> -6000."""
        detail = compute("livingArea", {"living_area": 1800}, {"living_area": 2000})

        assert detail.calculated_amount == pytest.approx(-6000.0)
        assert detail.difference == pytest.approx(200.0)
        assert detail.subject_label == "1,800 ft²"
        assert detail.comparable_label == "2,000 ft²"
        assert detail.calculation_formula

    def test_dual_unit_strings(self, compute):
        detail = compute(
            "livingArea",
            {"living_area": "1,800 pi² / 167.23 m²"},
            {"living_area": "185.81 m² / 2,000 pi²"},
        )
        assert detail.calculated_amount == pytest.approx(-6000.0)

    @pytest.mark.parametrize("subject_area,comparable_area,expected_sign", [
        (1800, 2000, -1),
        (2000, 1800, 1),
        (1800, 1800, 0),
    ])
    def test_sign_convention(self, compute, subject_area, comparable_area, expected_sign):
        detail = compute("livingArea", {"living_area": subject_area}, {"living_area": comparable_area})
        amount = detail.calculated_amount
        assert (amount > 0) - (amount < 0) == expected_sign

    def test_missing_rate_is_zero_not_error(self, compute):
        detail = compute(
            "livingArea",
            {"living_area": 1800},
            {"living_area": 2000},
            rates_override=DefaultRates(),
        )
        assert detail.calculated_amount == 0

    def test_metric_labels(self, rates):
        calculator = AdjustmentCalculator(MeasurementSystem.METRIC)
        detail = calculator.calculate(
            get_category("livingArea"),
            PropertySnapshot(living_area="1,800 pi² / 167.23 m²"),
            PropertySnapshot(living_area="2,000 pi² / 185.81 m²", sale_price=450000.0),
            rates,
        )
        assert detail.subject_label == "167.23 m²"
        assert detail.calculated_amount == pytest.approx(-6000.0)


class TestTiming:
    """Tests for the market timing formula."""

    def test_six_months_at_six_percent(self, compute):
        detail = compute(
            "timing",
            {"effective_date": "2024-07-15"},
            {"sale_date": "2024-01-15", "sale_price": 300000.0},
        )
        assert detail.difference == pytest.approx(6.0)
        assert detail.calculated_amount == pytest.approx(9000.0)

    def test_missing_date_gives_zero(self, compute):
        detail = compute("timing", {}, {"sale_date": "2024-01-15"})
        assert detail.calculated_amount == 0


# =============================================================================
# Test: Two-Sided Categories
# =============================================================================

class TestTwoSided:
    """Tests for lot size, basement and bathrooms."""

    def test_lot_size_depreciated(self, compute):
        """(5000 × 15 - 6000 × 15) × 0.9."""
        detail = compute("lotSize", {"lot_size": 5000}, {"lot_size": 6000})
        assert detail.depreciation_rate == 10.0
        assert detail.calculated_amount == pytest.approx(-13500.0)

    def test_lot_size_comparable_rate_override(self, compute):
        first = compute("lotSize", {"lot_size": 5000}, {"lot_size": 6000})
        detail = compute(
            "lotSize",
            {"lot_size": 5000},
            {"lot_size": 6000},
            existing=replace(first, comparable_rate=12.0),
        )
        assert detail.calculated_amount == pytest.approx((75000 - 72000) * 0.9)

    def test_basement_sizes_are_operator_entered(self, compute):
        detail = compute("basement", {"basement": "Finished 800"}, {"basement": "Finished 600"})
        assert detail.calculated_amount == 0

        detail = compute(
            "basement",
            existing=replace(detail, subject_size=800.0, comparable_size=600.0),
        )
        assert detail.calculated_amount == pytest.approx((800 * 25 - 600 * 25) * 0.85)

    def test_bathrooms_full_and_powder(self, compute):
        """(2 × 5000 + 1 × 2500 - 1 × 5000) × 0.9."""
        detail = compute("bathrooms", {"bathrooms": "2:1"}, {"bathrooms": "1:0"})
        assert detail.calculated_amount == pytest.approx(6750.0)

    def test_pinned_depreciation_kept(self, compute):
        first = compute("lotSize", {"lot_size": 5000}, {"lot_size": 6000})
        detail = compute(
            "lotSize",
            {"lot_size": 5000},
            {"lot_size": 6000},
            existing=replace(first, depreciation_rate=0.0, depreciation_locked=True),
        )
        assert detail.depreciation_rate == 0.0
        assert detail.calculated_amount == pytest.approx(-15000.0)


# =============================================================================
# Test: Remaining Categories
# =============================================================================

class TestOtherCategories:
    """Tests for quality, age and per-unit categories."""

    def test_quality_percentage(self, compute):
        detail = compute("quality")
        assert detail.calculated_amount == pytest.approx(45000.0)

    def test_quality_fixed(self, compute, rates):
        fixed = replace(
            rates,
            quality_adjustment_method=QualityMethod.FIXED,
            quality_adjustment_value=-5000.0,
        )
        assert compute("quality", rates_override=fixed).calculated_amount == -5000.0

    def test_effective_age_per_year(self, compute):
        detail = compute("effectiveAge", {"age": 10}, {"age": 20})
        assert detail.calculated_amount == pytest.approx(-10000.0)
        assert detail.subject_label == "10 years"

    def test_effective_age_percentage(self, compute, rates):
        pct = replace(rates, age_adjustment_method=AgeMethod.PERCENTAGE, age_adjustment_rate=0.5)
        detail = compute("effectiveAge", {"age": 10}, {"age": 20, "sale_price": 400000.0}, rates_override=pct)
        assert detail.calculated_amount == pytest.approx(-20000.0)

    def test_garage_counts_from_text(self, compute):
        detail = compute("garage", {"parking": "Garage double"}, {"parking": "Non"})
        assert detail.calculated_amount == pytest.approx(20000.0)

    def test_floor(self, compute):
        detail = compute("floor", {"floor": 5}, {"floor": 2})
        assert detail.calculated_amount == pytest.approx(6000.0)

    def test_landscaping_contributory_value(self, compute):
        detail = compute("landscaping", {"landscaping": "15000"}, {"landscaping": "5000"})
        assert detail.calculated_amount == pytest.approx(8500.0)

    def test_extras_contributory_value(self, compute):
        detail = compute("extras", {"extras": None}, {"extras": "Piscine 20 000 $"})
        assert detail.calculated_amount == pytest.approx(-16000.0)

    def test_extras_year_in_description_not_a_value(self, compute):
        """Only "$"-marked amounts in free text are dollar values."""
        detail = compute("extras", {"extras": None}, {"extras": "Piscine 2015"})
        assert detail.calculated_amount == 0

    def test_extras_operator_value_wins_over_text(self, compute):
        first = compute("extras", {"extras": None}, {"extras": "Piscine 2015"})
        detail = compute(
            "extras",
            {"extras": None},
            {"extras": "Piscine 2015"},
            existing=replace(first, comparable_size=10000.0),
        )
        assert detail.calculated_amount == pytest.approx(-8000.0)

    def test_corner_unit(self, compute):
        detail = compute("unitLocation", {"unit_location": "Corner"}, {"unit_location": "Interior"})
        assert detail.calculated_amount == pytest.approx(5000.0)


# =============================================================================
# Test: Overrides and Refresh
# =============================================================================

class TestOverrides:
    """Tests for operator overrides across recalculation."""

    def test_manual_override_kept_and_calculated_unchanged(self, compute):
        first = compute("livingArea", {"living_area": 1800}, {"living_area": 2000})
        detail = compute(
            "livingArea",
            {"living_area": 1800},
            {"living_area": 2000},
            existing=replace(first, manual_override=-5000.0),
        )
        assert detail.manual_override == -5000.0
        assert detail.calculated_amount == pytest.approx(-6000.0)
        assert detail.effective_amount == -5000.0

    def test_stored_values_reused_without_refresh(self, calculator, rates):
        category = get_category("livingArea")
        subject = PropertySnapshot(living_area=1800)
        first = calculator.calculate(category, subject, PropertySnapshot(living_area=2000), rates)

        detail = calculator.calculate(
            category,
            subject,
            PropertySnapshot(living_area=2500),
            rates,
            existing_detail=first,
            refresh_values=False,
        )
        assert detail.comparable_value == 2000
        assert detail.calculated_amount == pytest.approx(-6000.0)

    def test_operator_owned_values_not_refreshed(self, calculator, rates):
        """Floor values are seeded once and then belong to the operator."""
        category = get_category("floor")
        first = calculator.calculate(category, PropertySnapshot(floor=5), PropertySnapshot(floor=2), rates)

        detail = calculator.calculate(
            category,
            PropertySnapshot(floor=5),
            PropertySnapshot(floor=8),
            rates,
            existing_detail=first,
        )
        assert detail.comparable_value == 2
