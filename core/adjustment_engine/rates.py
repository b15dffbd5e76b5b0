"""
Rate Table for the Comparable Adjustment Engine

Resolves the active rate set for a property type through three layers:
1. Session overrides (operator edits during this report session)
2. Organization presets (saved by the organization)
3. Built-in defaults (per property type, single-family as last resort)

Edits only ever land in the session layer. Persisting them is the job of
the outbound port attached to the table.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Final, Mapping, Optional

from .models import AgeMethod, DefaultRates, PropertyType, QualityMethod


logger = logging.getLogger(__name__)


# Outbound persistence port: called after every rate mutation
RateChangeCallback = Callable[[PropertyType, DefaultRates], None]


# =============================================================================
# Built-in Defaults
# =============================================================================

DEFAULT_RATES_BY_PROPERTY_TYPE: Final[dict[PropertyType, DefaultRates]] = {
    PropertyType.SINGLE_FAMILY: DefaultRates(
        market_appreciation_rate=5.0,
        living_area_rate=30.0,
        land_rate=15.0,
        land_depreciation_rate=10.0,
        basement_finish_rate=25.0,
        basement_depreciation_rate=15.0,
        quality_adjustment_method=QualityMethod.PERCENTAGE,
        quality_adjustment_value=10.0,
        age_adjustment_method=AgeMethod.PER_YEAR,
        age_adjustment_rate=1000.0,
        bathroom_rate=5000.0,
        powder_room_rate=2500.0,
        bathroom_depreciation_rate=10.0,
        garage_value=10000.0,
        landscaping_depreciation_rate=15.0,
        extras_depreciation_rate=20.0,
    ),
    PropertyType.DUPLEX: DefaultRates(
        market_appreciation_rate=5.0,
        living_area_rate=28.0,
        land_rate=12.0,
        land_depreciation_rate=10.0,
        basement_finish_rate=22.0,
        basement_depreciation_rate=15.0,
        quality_adjustment_value=10.0,
        age_adjustment_rate=800.0,
        bathroom_rate=4500.0,
        powder_room_rate=2250.0,
        bathroom_depreciation_rate=10.0,
        garage_value=8000.0,
        landscaping_depreciation_rate=15.0,
        extras_depreciation_rate=20.0,
    ),
    PropertyType.TRIPLEX: DefaultRates(
        market_appreciation_rate=5.0,
        living_area_rate=26.0,
        land_rate=10.0,
        land_depreciation_rate=10.0,
        basement_finish_rate=20.0,
        basement_depreciation_rate=15.0,
        quality_adjustment_value=10.0,
        age_adjustment_rate=700.0,
        bathroom_rate=4000.0,
        powder_room_rate=2000.0,
        bathroom_depreciation_rate=10.0,
        garage_value=7000.0,
        landscaping_depreciation_rate=15.0,
        extras_depreciation_rate=20.0,
    ),
    PropertyType.QUADRUPLEX_PLUS: DefaultRates(
        market_appreciation_rate=5.0,
        living_area_rate=24.0,
        land_rate=8.0,
        land_depreciation_rate=10.0,
        basement_finish_rate=18.0,
        basement_depreciation_rate=15.0,
        quality_adjustment_value=10.0,
        age_adjustment_rate=600.0,
        bathroom_rate=3500.0,
        powder_room_rate=1750.0,
        bathroom_depreciation_rate=10.0,
        garage_value=6000.0,
        landscaping_depreciation_rate=15.0,
        extras_depreciation_rate=20.0,
    ),
    PropertyType.CONDO: DefaultRates(
        market_appreciation_rate=5.0,
        living_area_rate=35.0,
        quality_adjustment_value=10.0,
        age_adjustment_rate=500.0,
        bathroom_rate=5000.0,
        powder_room_rate=2500.0,
        bathroom_depreciation_rate=10.0,
        garage_value=15000.0,
        floor_value=2000.0,
        extras_depreciation_rate=20.0,
        corner_unit_premium=5000.0,
    ),
    PropertyType.COMMERCIAL: DefaultRates(
        market_appreciation_rate=5.0,
        living_area_rate=50.0,
        land_rate=20.0,
        land_depreciation_rate=10.0,
        basement_finish_rate=30.0,
        basement_depreciation_rate=15.0,
        quality_adjustment_value=15.0,
        age_adjustment_rate=2000.0,
        bathroom_rate=3000.0,
        powder_room_rate=1500.0,
        bathroom_depreciation_rate=10.0,
        garage_value=5000.0,
        landscaping_depreciation_rate=15.0,
        extras_depreciation_rate=20.0,
    ),
    PropertyType.LAND: DefaultRates(
        market_appreciation_rate=5.0,
        land_rate=10.0,
        quality_adjustment_value=10.0,
        landscaping_depreciation_rate=10.0,
        extras_depreciation_rate=10.0,
    ),
}

FALLBACK_PROPERTY_TYPE: Final[PropertyType] = PropertyType.SINGLE_FAMILY


def builtin_rates(property_type: PropertyType) -> DefaultRates:
    """Hardcoded defaults for a property type, single-family if none."""
    return DEFAULT_RATES_BY_PROPERTY_TYPE.get(
        property_type,
        DEFAULT_RATES_BY_PROPERTY_TYPE[FALLBACK_PROPERTY_TYPE],
    )


# =============================================================================
# Rate Table
# =============================================================================


class RateTable:
    """
    Layered rate resolution for one report session.

    The in-memory table is the source of truth for every calculation,
    whether or not a persistence write has completed.
    """

    def __init__(
        self,
        organization_presets: Optional[Mapping[PropertyType, DefaultRates]] = None,
        on_change: Optional[RateChangeCallback] = None,
    ):
        """
        Initialize rate table.

        Args:
            organization_presets: Organization-saved rates per property type
            on_change: Outbound port called after each rate mutation
        """
        self._presets: dict[PropertyType, DefaultRates] = dict(organization_presets or {})
        self._overrides: dict[PropertyType, DefaultRates] = {}
        self._on_change = on_change

    # =========================================================================
    # Resolution
    # =========================================================================

    def get_rates(self, property_type: PropertyType) -> DefaultRates:
        """
        Resolve the active rates for a property type.

        Session override -> organization preset -> built-in default for the
        type -> built-in single-family default.
        """
        if property_type in self._overrides:
            return self._overrides[property_type]
        if property_type in self._presets:
            return self._presets[property_type]
        return builtin_rates(property_type)

    def has_override(self, property_type: PropertyType) -> bool:
        """Whether the session has edited rates for this type."""
        return property_type in self._overrides

    def overridden_types(self) -> list[PropertyType]:
        """Property types with session edits."""
        return list(self._overrides)

    # =========================================================================
    # Mutation
    # =========================================================================

    def set_rate(self, property_type: PropertyType, key: str, value: Any) -> DefaultRates:
        """
        Change one rate in the session override layer.

        Args:
            property_type: Bucket to write
            key: Rate name (camelCase or snake_case)
            value: New value

        Returns:
            The updated rate set

        Raises:
            ValueError: If the key is unknown or the value invalid
        """
        updated = self.get_rates(property_type).with_rate(key, value)
        self._overrides[property_type] = updated
        self._notify(property_type, updated)
        return updated

    def replace_rates(self, property_type: PropertyType, rates: DefaultRates) -> DefaultRates:
        """Replace the whole session rate set for a property type."""
        self._overrides[property_type] = rates
        self._notify(property_type, rates)
        return rates

    def reset_to_default(self, property_type: PropertyType) -> DefaultRates:
        """
        Drop session edits for a property type.

        Returns:
            The rates now in effect (organization preset or built-in)
        """
        self._overrides.pop(property_type, None)
        return self.get_rates(property_type)

    # =========================================================================
    # Organization Presets
    # =========================================================================

    def set_organization_preset(self, property_type: PropertyType, rates: DefaultRates) -> None:
        """Install an organization preset (read at initialization)."""
        self._presets[property_type] = rates

    def load_organization_presets(self, presets: Mapping[PropertyType, DefaultRates]) -> None:
        """Install several organization presets."""
        self._presets.update(presets)

    def _notify(self, property_type: PropertyType, rates: DefaultRates) -> None:
        """Hand the edit to the persistence port without letting it fail the edit."""
        if self._on_change is None:
            return
        try:
            self._on_change(property_type, rates)
        except Exception:
            logger.exception(
                "Rate persistence port failed for %s; in-memory rates kept",
                property_type.value,
            )
