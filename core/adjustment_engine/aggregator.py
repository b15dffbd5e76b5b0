"""
Comparable Aggregator for the Comparable Adjustment Engine

Sums category adjustments into totals:
- total adjustment = sum of rounded effective amounts over enabled categories
- adjusted value = sale price + total adjustment
- gross / net adjustment % of sale price (0 when there is no price)
"""

from __future__ import annotations

import math
from dataclasses import replace

from .categories import CATEGORIES_BY_ID
from .models import AggregateResult, ComparableAdjustments


def round_currency(amount: float) -> int:
    """
    Round to the nearest whole currency unit, halves rounding up.

    Matches the grid's whole-dollar display (-2.5 -> -2, 2.5 -> 3).
    """
    return int(math.floor(amount + 0.5))


def aggregate(comparable: ComparableAdjustments) -> AggregateResult:
    """
    Derive totals for one comparable.

    Args:
        comparable: Adjustment record with its sale price

    Returns:
        AggregateResult with total, adjusted value and percentages
    """
    total = sum(
        round_currency(detail.effective_amount)
        for detail in comparable.adjustments.values()
        if detail.enabled
    )

    sale_price = comparable.sale_price
    if sale_price:
        gross_percent = abs(total) / sale_price * 100
        net_percent = total / sale_price * 100
    else:
        gross_percent = 0.0
        net_percent = 0.0

    return AggregateResult(
        total_adjustment=total,
        adjusted_value=sale_price + total,
        gross_adjustment_percent=gross_percent,
        net_adjustment_percent=net_percent,
    )


def with_totals(comparable: ComparableAdjustments) -> ComparableAdjustments:
    """Return the record with aggregator totals filled in."""
    result = aggregate(comparable)
    return replace(
        comparable,
        total_adjustment=result.total_adjustment,
        adjusted_value=result.adjusted_value,
        gross_adjustment_percent=result.gross_adjustment_percent,
        net_adjustment_percent=result.net_adjustment_percent,
    )


def to_direct_comparison_fields(comparable: ComparableAdjustments) -> dict[str, int]:
    """
    Map adjustments onto the direct-comparison grid columns.

    Categories sharing a column are summed. Disabled categories write 0 so
    the grid column is cleared rather than left stale.
    """
    fields: dict[str, int] = {}
    for category_id, detail in comparable.adjustments.items():
        category = CATEGORIES_BY_ID.get(category_id)
        if category is None:
            continue
        amount = round_currency(detail.effective_amount) if detail.enabled else 0
        column = category.direct_comparison_field
        fields[column] = fields.get(column, 0) + amount
    return fields
