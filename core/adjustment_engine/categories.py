"""
Category Registry for the Comparable Adjustment Engine

Fixed, ordered list of adjustment categories. Each category declares the
property types it applies to, the rates it reads, and the direct-comparison
grid column it feeds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Optional

from .models import PropertyType


_RESIDENTIAL: Final[frozenset[PropertyType]] = frozenset({
    PropertyType.SINGLE_FAMILY,
    PropertyType.DUPLEX,
    PropertyType.TRIPLEX,
    PropertyType.QUADRUPLEX_PLUS,
})


@dataclass(frozen=True)
class AdjustmentCategory:
    """Static description of one adjustment category."""
    id: str
    label: str
    direct_comparison_field: str
    subject_field: str  # PropertySnapshot attribute read for the subject
    comparable_field: str  # PropertySnapshot attribute read for comparables
    unit: str  # percentage, per_sqft, per_year, fixed
    applicable_property_types: frozenset[PropertyType]
    requires_rate: bool = True
    requires_depreciation: bool = False
    rate_key: Optional[str] = None
    depreciation_key: Optional[str] = None

    # Whether the category reads subject/comparable fields from the grid
    reads_upstream: bool = True

    # Whether the labels are area strings (re-rendered on unit toggle)
    is_area: bool = False

    def applies_to(self, property_type: PropertyType) -> bool:
        """Whether this category is used for a property type."""
        return property_type in self.applicable_property_types


ADJUSTMENT_CATEGORIES: Final[tuple[AdjustmentCategory, ...]] = (
    AdjustmentCategory(
        id="timing",
        label="Timing",
        direct_comparison_field="adjustmentDataSource",
        subject_field="effective_date",
        comparable_field="sale_date",
        unit="percentage",
        applicable_property_types=_RESIDENTIAL | {
            PropertyType.CONDO, PropertyType.COMMERCIAL, PropertyType.LAND,
        },
        rate_key="market_appreciation_rate",
    ),
    AdjustmentCategory(
        id="livingArea",
        label="Living area",
        direct_comparison_field="adjustmentLivingArea",
        subject_field="living_area",
        comparable_field="living_area",
        unit="per_sqft",
        applicable_property_types=_RESIDENTIAL | {PropertyType.CONDO, PropertyType.COMMERCIAL},
        rate_key="living_area_rate",
        is_area=True,
    ),
    AdjustmentCategory(
        id="lotSize",
        label="Lot size",
        direct_comparison_field="adjustmentLotSize",
        subject_field="lot_size",
        comparable_field="lot_size",
        unit="per_sqft",
        applicable_property_types=_RESIDENTIAL | {PropertyType.COMMERCIAL, PropertyType.LAND},
        requires_depreciation=True,
        rate_key="land_rate",
        depreciation_key="land_depreciation_rate",
        is_area=True,
    ),
    AdjustmentCategory(
        id="quality",
        label="Quality",
        direct_comparison_field="adjustmentQuality",
        subject_field="quality",
        comparable_field="quality",
        unit="percentage",
        applicable_property_types=_RESIDENTIAL | {PropertyType.CONDO, PropertyType.COMMERCIAL},
        rate_key="quality_adjustment_value",
    ),
    AdjustmentCategory(
        id="effectiveAge",
        label="Effective age",
        direct_comparison_field="adjustmentAge",
        subject_field="age",
        comparable_field="age",
        unit="per_year",
        applicable_property_types=_RESIDENTIAL | {PropertyType.CONDO, PropertyType.COMMERCIAL},
        rate_key="age_adjustment_rate",
    ),
    AdjustmentCategory(
        id="basement",
        label="Basement",
        direct_comparison_field="adjustmentBasement",
        subject_field="basement",
        comparable_field="basement",
        unit="per_sqft",
        applicable_property_types=_RESIDENTIAL,
        requires_depreciation=True,
        rate_key="basement_finish_rate",
        depreciation_key="basement_depreciation_rate",
    ),
    AdjustmentCategory(
        id="bathrooms",
        label="Bathrooms",
        direct_comparison_field="adjustmentRooms",
        subject_field="bathrooms",
        comparable_field="bathrooms",
        unit="fixed",
        applicable_property_types=_RESIDENTIAL | {PropertyType.CONDO},
        requires_depreciation=True,
        rate_key="bathroom_rate",
        depreciation_key="bathroom_depreciation_rate",
    ),
    AdjustmentCategory(
        id="garage",
        label="Garage / parking",
        direct_comparison_field="adjustmentParking",
        subject_field="parking",
        comparable_field="parking",
        unit="fixed",
        applicable_property_types=_RESIDENTIAL | {PropertyType.CONDO},
        rate_key="garage_value",
    ),
    AdjustmentCategory(
        id="floor",
        label="Floor",
        direct_comparison_field="adjustmentFloor",
        subject_field="floor",
        comparable_field="floor",
        unit="fixed",
        applicable_property_types=frozenset({PropertyType.CONDO, PropertyType.APARTMENT}),
        rate_key="floor_value",
        reads_upstream=False,
    ),
    AdjustmentCategory(
        id="landscaping",
        label="Landscaping",
        direct_comparison_field="adjustmentLandscaping",
        subject_field="landscaping",
        comparable_field="landscaping",
        unit="fixed",
        applicable_property_types=_RESIDENTIAL | {PropertyType.LAND},
        requires_rate=False,
        requires_depreciation=True,
        depreciation_key="landscaping_depreciation_rate",
        reads_upstream=False,
    ),
    AdjustmentCategory(
        id="extras",
        label="Extras",
        direct_comparison_field="adjustmentExtras",
        subject_field="extras",
        comparable_field="extras",
        unit="fixed",
        applicable_property_types=_RESIDENTIAL | {PropertyType.CONDO, PropertyType.COMMERCIAL},
        requires_rate=False,
        requires_depreciation=True,
        depreciation_key="extras_depreciation_rate",
    ),
    AdjustmentCategory(
        id="unitLocation",
        label="Unit location",
        direct_comparison_field="adjustmentUnitLocation",
        subject_field="unit_location",
        comparable_field="unit_location",
        unit="fixed",
        applicable_property_types=frozenset({PropertyType.CONDO, PropertyType.APARTMENT}),
        rate_key="corner_unit_premium",
    ),
)

CATEGORIES_BY_ID: Final[dict[str, AdjustmentCategory]] = {
    category.id: category for category in ADJUSTMENT_CATEGORIES
}


def get_category(category_id: str) -> AdjustmentCategory:
    """
    Look up a category by id.

    Raises:
        KeyError: If the id is not registered
    """
    try:
        return CATEGORIES_BY_ID[category_id]
    except KeyError:
        raise KeyError(f"Unknown adjustment category: {category_id}") from None


def applicable_categories(property_type: PropertyType) -> list[AdjustmentCategory]:
    """Categories used for a property type, in registry order."""
    return [c for c in ADJUSTMENT_CATEGORIES if c.applies_to(property_type)]
