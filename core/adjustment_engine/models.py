"""
Data models for the Comparable Adjustment Engine

Defines property snapshots delivered by the direct-comparison grid,
per-property-type rate sets, and the per-comparable adjustment records
the engine derives from them.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, fields, replace
from datetime import date
from enum import Enum
from typing import Any, Optional, Union


class PropertyType(Enum):
    """
    Property type classification.

    Determines which adjustment categories apply and which default
    rates are used.
    """
    SINGLE_FAMILY = "single_family"
    DUPLEX = "duplex"
    TRIPLEX = "triplex"
    QUADRUPLEX_PLUS = "quadruplex_plus"
    CONDO = "condo"
    APARTMENT = "apartment"
    SEMI_COMMERCIAL = "semi_commercial"
    COMMERCIAL = "commercial"
    LAND = "land"
    OTHER = "other"

    @classmethod
    def from_string(cls, value: str) -> Optional["PropertyType"]:
        """Convert string to PropertyType, case-insensitive."""
        if not value:
            return None
        normalised = value.lower().strip().replace("-", "_").replace(" ", "_")
        if normalised == "quadruplex":
            return cls.QUADRUPLEX_PLUS
        for member in cls:
            if member.value == normalised:
                return member
        return None


class MeasurementSystem(Enum):
    """Unit system used for area values."""
    IMPERIAL = "imperial"
    METRIC = "metric"

    @classmethod
    def from_string(cls, value: str) -> Optional["MeasurementSystem"]:
        """Convert string to MeasurementSystem, case-insensitive."""
        normalised = (value or "").lower().strip()
        for member in cls:
            if member.value == normalised:
                return member
        return None


class QualityMethod(Enum):
    """How the quality adjustment value is applied."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class AgeMethod(Enum):
    """How the effective age rate is applied."""
    PER_YEAR = "per_year"
    PERCENTAGE = "percentage"


class SyncState(Enum):
    """
    Synchronization state of a comparable set.

    Uninitialized -> Seeded -> Synced -> Stale -> Synced (loop)
    """
    UNINITIALIZED = "uninitialized"
    SEEDED = "seeded"
    SYNCED = "synced"
    STALE = "stale"


# Raw values as they arrive from the grid: plain numbers or free text
RawValue = Union[str, int, float, None]


# =============================================================================
# Upstream Snapshots
# =============================================================================

# Thousands separators and currency marks tolerated in prices ("450 000 $")
_PRICE_NOISE = re.compile(r"[\s,$\u00a0\u202f]")

# Host grid keys (camelCase) -> snapshot attribute
_SNAPSHOT_KEY_MAP = {
    "id": "id",
    "address": "address",
    "saleDate": "sale_date",
    "salePrice": "sale_price",
    "effectiveDate": "effective_date",
    "livingArea": "living_area",
    "lotSize": "lot_size",
    "age": "age",
    "condition": "condition",
    "roomsTotal": "rooms_total",
    "roomsBedrooms": "rooms_bedrooms",
    "roomsBathrooms": "bathrooms",
    "bathrooms": "bathrooms",
    "basement": "basement",
    "parking": "parking",
    "garage": "parking",
    "quality": "quality",
    "extras": "extras",
    "floor": "floor",
    "landscaping": "landscaping",
    "unitLocation": "unit_location",
}


@dataclass(frozen=True)
class PropertySnapshot:
    """
    Immutable view of one property row from the direct-comparison grid.

    The subject carries an effective date and no sale data; comparables
    carry a sale date and sale price. Area fields may be plain numbers or
    combined "metric / imperial" strings.
    """
    id: str = ""
    address: str = ""

    # Sale (comparables only)
    sale_date: Union[str, date, None] = None
    sale_price: float = 0.0

    # Valuation date (subject only)
    effective_date: Union[str, date, None] = None

    # Physical characteristics
    living_area: RawValue = None
    lot_size: RawValue = None
    age: RawValue = None
    condition: Optional[str] = None
    rooms_total: RawValue = None
    rooms_bedrooms: RawValue = None
    bathrooms: Optional[str] = None  # "full:half"
    basement: Optional[str] = None
    parking: RawValue = None
    quality: Optional[str] = None
    extras: Optional[str] = None
    floor: RawValue = None
    landscaping: RawValue = None
    unit_location: Optional[str] = None  # condos only

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "PropertySnapshot":
        """
        Build a snapshot from a grid row.

        Accepts camelCase grid keys or snake_case attribute names.
        Unknown keys are ignored; a malformed sale price becomes 0.
        """
        if not data:
            return cls()

        names = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _SNAPSHOT_KEY_MAP.get(key, key)
            if name in names:
                values[name] = value

        values["id"] = str(values.get("id") or "")
        values["address"] = str(values.get("address") or "")
        values["sale_price"] = _to_float(values.get("sale_price"))
        return cls(**values)


def _to_float(value: Any) -> float:
    """Coerce a price-like value to float, 0 when unparseable or not finite."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(_PRICE_NOISE.sub("", str(value)))
        except ValueError:
            return 0.0
    return number if math.isfinite(number) else 0.0


@dataclass(frozen=True)
class ComparisonPayload:
    """
    Subject plus comparables as delivered by the comparison-data collaborator.

    Compared structurally (dataclass equality), never by identity.
    """
    subject: PropertySnapshot
    comparables: tuple[PropertySnapshot, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ComparisonPayload":
        """
        Build a payload from ``{"subject": {...}, "comparables": [...]}``.

        Comparables without an id are numbered by position.
        """
        data = data or {}
        subject = PropertySnapshot.from_dict(data.get("subject"))

        comparables = []
        for index, row in enumerate(data.get("comparables") or []):
            snapshot = PropertySnapshot.from_dict(row)
            if not snapshot.id:
                snapshot = replace(snapshot, id=str(index + 1))
            comparables.append(snapshot)

        return cls(subject=subject, comparables=tuple(comparables))

    def comparable_by_id(self, comparable_id: str) -> Optional[PropertySnapshot]:
        """Look up an upstream comparable by id."""
        for comparable in self.comparables:
            if comparable.id == comparable_id:
                return comparable
        return None


# =============================================================================
# Rates
# =============================================================================

# camelCase preset keys (organization preset format) -> attribute
_RATE_KEY_MAP = {
    "marketAppreciationRate": "market_appreciation_rate",
    "livingAreaRate": "living_area_rate",
    "landRate": "land_rate",
    "landDepreciationRate": "land_depreciation_rate",
    "basementFinishRate": "basement_finish_rate",
    "basementDepreciationRate": "basement_depreciation_rate",
    "qualityAdjustmentMethod": "quality_adjustment_method",
    "qualityAdjustmentValue": "quality_adjustment_value",
    "ageAdjustmentMethod": "age_adjustment_method",
    "ageAdjustmentRate": "age_adjustment_rate",
    "bathroomRate": "bathroom_rate",
    "bathroomValue": "bathroom_rate",
    "powderRoomRate": "powder_room_rate",
    "bathroomDepreciationRate": "bathroom_depreciation_rate",
    "garageValue": "garage_value",
    "floorValue": "floor_value",
    "landscapingDepreciationRate": "landscaping_depreciation_rate",
    "extrasDepreciationRate": "extras_depreciation_rate",
    "cornerUnitPremium": "corner_unit_premium",
}

_RATE_ATTR_TO_KEY = {
    attr: key for key, attr in _RATE_KEY_MAP.items() if key != "bathroomValue"
}


@dataclass(frozen=True)
class DefaultRates:
    """
    One named set of adjustment rates for a property type.

    Every numeric rate defaults to 0. Quality defaults to the percentage
    method and age to the per-year method.
    """
    # Market & timing
    market_appreciation_rate: float = 0.0  # % per year

    # Living area
    living_area_rate: float = 0.0  # $ per ft²

    # Land
    land_rate: float = 0.0  # $ per ft²
    land_depreciation_rate: float = 0.0  # %

    # Basement
    basement_finish_rate: float = 0.0  # $ per ft²
    basement_depreciation_rate: float = 0.0  # %

    # Quality
    quality_adjustment_method: QualityMethod = QualityMethod.PERCENTAGE
    quality_adjustment_value: float = 0.0  # % or $

    # Age
    age_adjustment_method: AgeMethod = AgeMethod.PER_YEAR
    age_adjustment_rate: float = 0.0  # $ per year or %

    # Bathrooms
    bathroom_rate: float = 0.0  # $ per full bathroom
    powder_room_rate: float = 0.0  # $ per powder room
    bathroom_depreciation_rate: float = 0.0  # %

    # Features
    garage_value: float = 0.0  # $ per parking space
    floor_value: float = 0.0  # $ per floor (condo/apartment)
    landscaping_depreciation_rate: float = 0.0  # %
    extras_depreciation_rate: float = 0.0  # %
    corner_unit_premium: float = 0.0  # $

    @classmethod
    def keys(cls) -> list[str]:
        """Attribute names of every rate."""
        return [f.name for f in fields(cls)]

    @classmethod
    def normalise_key(cls, key: str) -> Optional[str]:
        """Map a camelCase or snake_case key to an attribute name."""
        if key in _RATE_KEY_MAP:
            return _RATE_KEY_MAP[key]
        if key in cls.keys():
            return key
        return None

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "DefaultRates":
        """Build rates from a preset dict; missing or bad values fall back."""
        values: dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = cls.normalise_key(key)
            if name is None:
                continue
            coerced = _coerce_rate(name, value)
            if coerced is not None:
                values[name] = coerced
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase preset format."""
        result: dict[str, Any] = {}
        for name in self.keys():
            value = getattr(self, name)
            result[_RATE_ATTR_TO_KEY[name]] = value.value if isinstance(value, Enum) else value
        return result

    def with_rate(self, key: str, value: Any) -> "DefaultRates":
        """
        Return a copy with one rate changed.

        Raises:
            ValueError: If the key does not name a rate or the method
                value is not recognised
        """
        name = self.normalise_key(key)
        if name is None:
            raise ValueError(f"Unknown rate: {key}")
        coerced = _coerce_rate(name, value)
        if coerced is None:
            raise ValueError(f"Invalid value for {key}: {value!r}")
        return replace(self, **{name: coerced})


def _coerce_rate(name: str, value: Any) -> Any:
    """Coerce a raw preset value for one rate attribute, None if invalid."""
    if name == "quality_adjustment_method":
        try:
            return QualityMethod(value.value if isinstance(value, Enum) else value)
        except ValueError:
            return None
    if name == "age_adjustment_method":
        try:
            return AgeMethod(value.value if isinstance(value, Enum) else value)
        except ValueError:
            return None
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# =============================================================================
# Adjustment Records
# =============================================================================


@dataclass(frozen=True)
class AdjustmentDetail:
    """
    One category adjustment for one comparable.

    Per-side rates and sizes are operator overrides: None means the value
    is taken from the rate table or the upstream grid. ``manual_override``
    replaces the calculated amount for display and aggregation only.
    """
    category: str
    enabled: bool = True

    # Subject data
    subject_value: RawValue = None
    subject_label: str = "N/A"

    # Comparable data
    comparable_value: RawValue = None
    comparable_label: str = "N/A"

    # Per-side overrides (lot size, basement, bathrooms)
    subject_rate: Optional[float] = None
    comparable_rate: Optional[float] = None
    subject_size: Optional[float] = None
    comparable_size: Optional[float] = None
    subject_powder_rate: Optional[float] = None
    comparable_powder_rate: Optional[float] = None

    # Calculation inputs
    difference: float = 0.0
    adjustment_rate: float = 0.0
    depreciation_rate: Optional[float] = None
    depreciation_locked: bool = False

    # Result
    calculated_amount: float = 0.0
    manual_override: Optional[float] = None

    # Metadata
    calculation_formula: str = ""
    notes: str = ""

    @property
    def effective_amount(self) -> float:
        """Amount used for display and aggregation."""
        if self.manual_override is not None:
            return self.manual_override
        return self.calculated_amount

    @property
    def has_overrides(self) -> bool:
        """Whether the operator has edited anything on this detail."""
        return (
            self.manual_override is not None
            or self.depreciation_locked
            or any(
                value is not None
                for value in (
                    self.subject_rate,
                    self.comparable_rate,
                    self.subject_size,
                    self.comparable_size,
                    self.subject_powder_rate,
                    self.comparable_powder_rate,
                )
            )
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "category": self.category,
            "enabled": self.enabled,
            "subject_value": _jsonable(self.subject_value),
            "subject_label": self.subject_label,
            "comparable_value": _jsonable(self.comparable_value),
            "comparable_label": self.comparable_label,
            "subject_rate": self.subject_rate,
            "comparable_rate": self.comparable_rate,
            "subject_size": self.subject_size,
            "comparable_size": self.comparable_size,
            "subject_powder_rate": self.subject_powder_rate,
            "comparable_powder_rate": self.comparable_powder_rate,
            "difference": self.difference,
            "adjustment_rate": self.adjustment_rate,
            "depreciation_rate": self.depreciation_rate,
            "calculated_amount": self.calculated_amount,
            "manual_override": self.manual_override,
            "effective_amount": self.effective_amount,
            "calculation_formula": self.calculation_formula,
            "notes": self.notes,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class AggregateResult:
    """Totals derived from one comparable's adjustments."""
    total_adjustment: int
    adjusted_value: float
    gross_adjustment_percent: float
    net_adjustment_percent: float


@dataclass(frozen=True)
class ComparableAdjustments:
    """All category adjustments for one comparable, plus totals."""
    comparable_id: str
    comparable_address: str = ""
    sale_price: float = 0.0
    adjustments: dict[str, AdjustmentDetail] = field(default_factory=dict)

    # Derived by the aggregator
    total_adjustment: int = 0
    adjusted_value: float = 0.0
    gross_adjustment_percent: float = 0.0
    net_adjustment_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "comparable_id": self.comparable_id,
            "comparable_address": self.comparable_address,
            "sale_price": self.sale_price,
            "adjustments": {
                category: detail.to_dict()
                for category, detail in self.adjustments.items()
            },
            "total_adjustment": self.total_adjustment,
            "adjusted_value": self.adjusted_value,
            "gross_adjustment_percent": round(self.gross_adjustment_percent, 2),
            "net_adjustment_percent": round(self.net_adjustment_percent, 2),
        }
