"""
Adjustment Calculator for the Comparable Adjustment Engine

Each category has a pure formula with the same signature:

    (subject, comparable, rates, detail) -> FormulaResult

Formulas read side quantities from the detail (values refreshed from the
grid, or per-side operator overrides) and sale price from the comparable
snapshot. Differences are comparable minus subject. Nothing is rounded
here; rounding happens once, at aggregation.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Final, Optional

from utils.formatting import format_currency, format_quantity

from .categories import CATEGORIES_BY_ID, AdjustmentCategory
from .measurements import (
    CALCULATION_SYSTEM,
    is_corner_unit,
    months_between,
    parse_bathrooms,
    parse_count,
    parse_currency,
    parse_date,
    parse_number,
    text_label,
    to_canonical,
    to_display,
)
from .models import (
    AdjustmentDetail,
    AgeMethod,
    DefaultRates,
    MeasurementSystem,
    PropertySnapshot,
    QualityMethod,
)


@dataclass(frozen=True)
class FormulaResult:
    """Output of one category formula."""
    amount: float
    difference: float
    rate: float
    formula: str


Formula = Callable[[PropertySnapshot, PropertySnapshot, DefaultRates, AdjustmentDetail], FormulaResult]


# =============================================================================
# Helpers
# =============================================================================


def _depreciation_factor(detail: AdjustmentDetail) -> float:
    """Scale factor applied only when a nonzero depreciation is set."""
    if not detail.depreciation_rate:
        return 1.0
    return 1 - detail.depreciation_rate / 100


def _side_quantity(
    detail: AdjustmentDetail,
    side: str,
    parser: Callable[[Any], float],
) -> float:
    """Per-side size override if present, otherwise the parsed grid value."""
    override = getattr(detail, f"{side}_size")
    if override is not None:
        return override
    return parser(getattr(detail, f"{side}_value"))


def _side_rate(detail: AdjustmentDetail, side: str, default: float, powder: bool = False) -> float:
    """Per-side rate override if present, otherwise the rate-table value."""
    name = f"{side}_powder_rate" if powder else f"{side}_rate"
    override = getattr(detail, name)
    return default if override is None else override


def _area(value: Any) -> float:
    return to_canonical(value, CALCULATION_SYSTEM)


def _operator_entered(value: Any) -> float:
    """Basement sizes are entered by the operator, never read from text."""
    return 0.0


def _depreciation_note(detail: AdjustmentDetail) -> str:
    if not detail.depreciation_rate:
        return ""
    return f" × (1 - {format_quantity(detail.depreciation_rate)}%)"


# =============================================================================
# Formulas
# =============================================================================


def timing_formula(subject, comparable, rates, detail) -> FormulaResult:
    """((appreciation% / 100) / 12) × months since sale × sale price."""
    rate = rates.market_appreciation_rate
    sale_date = parse_date(detail.comparable_value)
    effective_date = parse_date(detail.subject_value)
    if sale_date is None or effective_date is None:
        return FormulaResult(0.0, 0.0, rate, "Sale date or effective date missing")

    months = months_between(sale_date, effective_date)
    amount = ((rate / 100) / 12) * months * comparable.sale_price
    formula = (
        f"({format_quantity(rate)}% / 12) × {months:.2f} months"
        f" × {format_currency(comparable.sale_price)}"
    )
    return FormulaResult(amount, months, rate, formula)


def living_area_formula(subject, comparable, rates, detail) -> FormulaResult:
    """-(comparable area - subject area) × living area rate."""
    rate = rates.living_area_rate
    subject_area = _side_quantity(detail, "subject", _area)
    comparable_area = _side_quantity(detail, "comparable", _area)
    difference = comparable_area - subject_area
    formula = (
        f"-({format_quantity(comparable_area)} - {format_quantity(subject_area)})"
        f" × {format_currency(rate)}"
    )
    return FormulaResult(-difference * rate, difference, rate, formula)


def _two_sided(
    detail: AdjustmentDetail,
    default_rate: float,
    parser: Callable[[Any], float],
) -> FormulaResult:
    """(subject size × subject rate) - (comparable size × comparable rate)."""
    subject_size = _side_quantity(detail, "subject", parser)
    comparable_size = _side_quantity(detail, "comparable", parser)
    subject_rate = _side_rate(detail, "subject", default_rate)
    comparable_rate = _side_rate(detail, "comparable", default_rate)

    amount = (subject_size * subject_rate) - (comparable_size * comparable_rate)
    amount *= _depreciation_factor(detail)
    formula = (
        f"({format_quantity(subject_size)} × {format_currency(subject_rate)})"
        f" - ({format_quantity(comparable_size)} × {format_currency(comparable_rate)})"
        f"{_depreciation_note(detail)}"
    )
    return FormulaResult(amount, comparable_size - subject_size, subject_rate, formula)


def lot_size_formula(subject, comparable, rates, detail) -> FormulaResult:
    """Two-sided land value at the land rate, depreciated."""
    return _two_sided(detail, rates.land_rate, _area)


def basement_formula(subject, comparable, rates, detail) -> FormulaResult:
    """Two-sided finished basement value, depreciated."""
    return _two_sided(detail, rates.basement_finish_rate, _operator_entered)


def bathrooms_formula(subject, comparable, rates, detail) -> FormulaResult:
    """Full baths and powder rooms valued per side, depreciated."""
    subject_full, subject_half = parse_bathrooms(detail.subject_value)
    comparable_full, comparable_half = parse_bathrooms(detail.comparable_value)

    subject_rate = _side_rate(detail, "subject", rates.bathroom_rate)
    comparable_rate = _side_rate(detail, "comparable", rates.bathroom_rate)
    subject_powder = _side_rate(detail, "subject", rates.powder_room_rate, powder=True)
    comparable_powder = _side_rate(detail, "comparable", rates.powder_room_rate, powder=True)

    subject_value = subject_full * subject_rate + subject_half * subject_powder
    comparable_value = comparable_full * comparable_rate + comparable_half * comparable_powder
    amount = (subject_value - comparable_value) * _depreciation_factor(detail)

    difference = (comparable_full - subject_full) + (comparable_half - subject_half) * 0.5
    formula = (
        f"({format_currency(subject_value)} - {format_currency(comparable_value)})"
        f"{_depreciation_note(detail)}"
    )
    return FormulaResult(amount, difference, subject_rate, formula)


def quality_formula(subject, comparable, rates, detail) -> FormulaResult:
    """Percentage of sale price, or a flat amount, as configured."""
    value = rates.quality_adjustment_value
    if rates.quality_adjustment_method == QualityMethod.PERCENTAGE:
        amount = comparable.sale_price * (value / 100)
        formula = f"{format_currency(comparable.sale_price)} × {format_quantity(value)}%"
    else:
        amount = value
        formula = f"Fixed {format_currency(value)}"
    return FormulaResult(amount, 0.0, value, formula)


def effective_age_formula(subject, comparable, rates, detail) -> FormulaResult:
    """-(comparable age - subject age) × rate, per year or as % of price."""
    rate = rates.age_adjustment_rate
    subject_age = _side_quantity(detail, "subject", parse_number)
    comparable_age = _side_quantity(detail, "comparable", parse_number)
    difference = comparable_age - subject_age

    if rates.age_adjustment_method == AgeMethod.PER_YEAR:
        amount = -difference * rate
        formula = f"-({format_quantity(difference)} years) × {format_currency(rate)}"
    else:
        amount = -difference * comparable.sale_price * (rate / 100)
        formula = (
            f"-({format_quantity(difference)} years)"
            f" × {format_currency(comparable.sale_price)} × {format_quantity(rate)}%"
        )
    return FormulaResult(amount, difference, rate, formula)


def _per_unit(detail: AdjustmentDetail, rate: float, parser: Callable[[Any], float], unit: str) -> FormulaResult:
    """-(comparable count - subject count) × value per unit."""
    subject_count = _side_quantity(detail, "subject", parser)
    comparable_count = _side_quantity(detail, "comparable", parser)
    difference = comparable_count - subject_count
    formula = f"-({format_quantity(difference)} {unit}) × {format_currency(rate)}"
    return FormulaResult(-difference * rate, difference, rate, formula)


def garage_formula(subject, comparable, rates, detail) -> FormulaResult:
    """Parking spaces valued at the garage value."""
    return _per_unit(detail, rates.garage_value, parse_count, "spaces")


def floor_formula(subject, comparable, rates, detail) -> FormulaResult:
    """Floor level difference valued at the floor value."""
    return _per_unit(detail, rates.floor_value, parse_number, "floors")


def _contributory(detail: AdjustmentDetail) -> FormulaResult:
    """Difference in contributory value, depreciated. Text counts only when marked "$"."""
    subject_value = _side_quantity(detail, "subject", parse_currency)
    comparable_value = _side_quantity(detail, "comparable", parse_currency)
    difference = comparable_value - subject_value
    amount = -difference * _depreciation_factor(detail)
    formula = (
        f"({format_currency(subject_value)} - {format_currency(comparable_value)})"
        f"{_depreciation_note(detail)}"
    )
    return FormulaResult(amount, difference, 0.0, formula)


def landscaping_formula(subject, comparable, rates, detail) -> FormulaResult:
    """Landscaping contributory value difference."""
    return _contributory(detail)


def extras_formula(subject, comparable, rates, detail) -> FormulaResult:
    """Extras contributory value difference."""
    return _contributory(detail)


def unit_location_formula(subject, comparable, rates, detail) -> FormulaResult:
    """Corner-unit premium for whichever side is a corner unit."""
    premium = rates.corner_unit_premium
    subject_corner = 1.0 if is_corner_unit(detail.subject_value) else 0.0
    comparable_corner = 1.0 if is_corner_unit(detail.comparable_value) else 0.0
    difference = comparable_corner - subject_corner
    formula = f"({format_quantity(subject_corner)} - {format_quantity(comparable_corner)}) × {format_currency(premium)}"
    return FormulaResult(-difference * premium, difference, premium, formula)


FORMULAS: Final[dict[str, Formula]] = {
    "timing": timing_formula,
    "livingArea": living_area_formula,
    "lotSize": lot_size_formula,
    "quality": quality_formula,
    "effectiveAge": effective_age_formula,
    "basement": basement_formula,
    "bathrooms": bathrooms_formula,
    "garage": garage_formula,
    "floor": floor_formula,
    "landscaping": landscaping_formula,
    "extras": extras_formula,
    "unitLocation": unit_location_formula,
}

_missing = set(CATEGORIES_BY_ID) - set(FORMULAS)
if _missing:
    raise RuntimeError(f"No formula registered for categories: {sorted(_missing)}")


# =============================================================================
# Calculator
# =============================================================================


class AdjustmentCalculator:
    """
    Builds and recalculates AdjustmentDetail records.

    Every method returns a new detail; inputs are never mutated.
    """

    def __init__(self, measurement_system: MeasurementSystem = MeasurementSystem.IMPERIAL):
        """
        Initialize calculator.

        Args:
            measurement_system: Unit system for area labels only; area
                arithmetic always runs in the calculation system
        """
        self.measurement_system = measurement_system

    def seed(self, category: AdjustmentCategory, rates: DefaultRates) -> AdjustmentDetail:
        """Fresh detail with zeroed difference and rates copied from the table."""
        return AdjustmentDetail(
            category=category.id,
            adjustment_rate=_rate_value(rates, category.rate_key),
            depreciation_rate=_rate_value(rates, category.depreciation_key, default=None),
        )

    def calculate(
        self,
        category: AdjustmentCategory,
        subject: PropertySnapshot,
        comparable: PropertySnapshot,
        rates: DefaultRates,
        existing_detail: Optional[AdjustmentDetail] = None,
        refresh_values: bool = True,
    ) -> AdjustmentDetail:
        """
        Compute the adjustment for one category of one comparable.

        Args:
            category: Category to compute
            subject: Subject snapshot
            comparable: Comparable snapshot
            rates: Active rates
            existing_detail: Previous record; its overrides are kept
            refresh_values: Re-read subject/comparable values and labels
                from the snapshots (always done for a new record)

        Returns:
            New AdjustmentDetail. A manual override is carried over but the
            calculated amount is always recomputed.
        """
        detail = existing_detail or self.seed(category, rates)

        if existing_detail is None or (refresh_values and category.reads_upstream):
            detail = self.with_values(category, detail, subject, comparable)

        if not detail.depreciation_locked:
            detail = replace(
                detail,
                depreciation_rate=_rate_value(rates, category.depreciation_key, default=None),
            )

        result = FORMULAS[category.id](subject, comparable, rates, detail)
        return replace(
            detail,
            difference=result.difference,
            adjustment_rate=result.rate,
            calculated_amount=result.amount,
            calculation_formula=result.formula,
        )

    def with_values(
        self,
        category: AdjustmentCategory,
        detail: AdjustmentDetail,
        subject: PropertySnapshot,
        comparable: PropertySnapshot,
    ) -> AdjustmentDetail:
        """Copy raw values from the snapshots and rebuild labels."""
        detail = replace(
            detail,
            subject_value=getattr(subject, category.subject_field),
            comparable_value=getattr(comparable, category.comparable_field),
        )
        return self.relabel(category, detail)

    def relabel(self, category: AdjustmentCategory, detail: AdjustmentDetail) -> AdjustmentDetail:
        """Regenerate display labels from the stored raw values."""
        if category.is_area:
            return replace(
                detail,
                subject_label=to_display(detail.subject_value, self.measurement_system),
                comparable_label=to_display(detail.comparable_value, self.measurement_system),
            )

        suffix = " years" if category.id == "effectiveAge" else ""
        return replace(
            detail,
            subject_label=text_label(detail.subject_value, suffix),
            comparable_label=text_label(detail.comparable_value, suffix),
        )


def _rate_value(rates: DefaultRates, key: Optional[str], default: Optional[float] = 0.0) -> Optional[float]:
    """Read a numeric rate by attribute name; missing rates resolve to the default."""
    if key is None:
        return default
    value = getattr(rates, key, None)
    return value if isinstance(value, (int, float)) else default
