"""
Measurement Normalizer for the Comparable Adjustment Engine

Parses the free-text values typed into the direct-comparison grid:
- Area strings, possibly carrying both units ("558.65 m² / 6,013 ft²")
- Bathroom counts encoded as "full:half"
- Parking counts ("Garage 2 places", "Non")
- Dates

All parsers degrade to 0 / None instead of raising.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Final, Optional

from .models import MeasurementSystem


# =============================================================================
# Configuration Constants
# =============================================================================

SQFT_PER_SQM: Final[float] = 10.764

# Areas are kept to the hundredth so a rendered value re-parses exactly
AREA_DECIMALS: Final[int] = 2

# Rates are per ft², so every formula works in imperial
CALCULATION_SYSTEM: Final[MeasurementSystem] = MeasurementSystem.IMPERIAL

UNIT_SYMBOLS: Final[dict[MeasurementSystem, str]] = {
    MeasurementSystem.IMPERIAL: "ft²",
    MeasurementSystem.METRIC: "m²",
}

NOT_AVAILABLE: Final[str] = "N/A"

_IMPERIAL_MARKER = re.compile(
    r"(?:ft|pi|pc)\s*(?:²|\^?2)|sq\.?\s*ft|sqft|square\s+f(?:ee|oo)t|pieds?\s+carr",
    re.IGNORECASE,
)
_METRIC_MARKER = re.compile(
    r"m\s*(?:²|\^?2)|sq\.?\s*m\b|sqm|square\s+met|m[eè]tres?\s+carr",
    re.IGNORECASE,
)
_NUMBER = re.compile(r"-?\d[\d,\u00a0\u202f ]*(?:\.\d+)?")
_CURRENCY = re.compile(
    r"\$\s*(-?\d[\d,\u00a0\u202f ]*(?:\.\d+)?)|(-?\d[\d,\u00a0\u202f ]*(?:\.\d+)?)\s*\$"
)

_NO_WORDS: Final[frozenset[str]] = frozenset({"no", "non", "none", "aucun", "aucune", "n/a", "0"})
_COUNT_WORDS: Final[dict[str, int]] = {
    "single": 1,
    "simple": 1,
    "yes": 1,
    "oui": 1,
    "double": 2,
    "triple": 3,
}


# =============================================================================
# Numbers
# =============================================================================


def _first_number(text: str) -> Optional[float]:
    """First number in free text, tolerating thousands separators."""
    match = _NUMBER.search(text)
    if not match:
        return None
    cleaned = re.sub(r"[^\d.\-]", "", match.group(0))
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_number(value: Any) -> float:
    """
    Parse a number out of a grid value.

    Returns 0 for None, empty or non-numeric input.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    number = _first_number(str(value))
    return number if number is not None else 0.0


def has_number(value: Any) -> bool:
    """Whether a grid value carries any numeric content."""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    return _first_number(str(value)) is not None


def parse_currency(value: Any) -> float:
    """
    Parse a dollar value out of a grid description.

    Numbers and bare numeric strings are dollars. In free text only an
    amount marked with "$" counts, so "Piscine 2015" is 0 and
    "Piscine 20 000 $" is 20000.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return parse_number(value)

    text = str(value).strip()
    if _NUMBER.fullmatch(text):
        return parse_number(text)
    match = _CURRENCY.search(text)
    if not match:
        return 0.0
    return parse_number(match.group(1) or match.group(2))


# =============================================================================
# Areas
# =============================================================================


def _unit_system(text: str) -> Optional[MeasurementSystem]:
    """Detect which unit system a fragment is tagged with."""
    if _IMPERIAL_MARKER.search(text):
        return MeasurementSystem.IMPERIAL
    if _METRIC_MARKER.search(text):
        return MeasurementSystem.METRIC
    return None


def convert_area(value: float, source: MeasurementSystem, target: MeasurementSystem) -> float:
    """Convert an area between unit systems."""
    if source == target:
        return value
    if target == MeasurementSystem.IMPERIAL:
        return value * SQFT_PER_SQM
    return value / SQFT_PER_SQM


def to_canonical(raw: Any, system: MeasurementSystem = CALCULATION_SYSTEM) -> float:
    """
    Normalise an area value to a number in the requested unit system.

    A "/"-joined string is split and each side identified by its unit
    marker, not by position. When the requested side is missing the other
    side is converted. Untagged numbers are read in the calculation system
    (ft²) and converted like any other reading.

    Args:
        raw: Number, numeric string, or unit-tagged string(s)
        system: Unit system of the returned value

    Returns:
        Area rounded to two decimals, 0 if there is no numeric content
    """
    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw):
            return 0.0
        return round(convert_area(float(raw), CALCULATION_SYSTEM, system), AREA_DECIMALS)

    text = str(raw).strip()
    if not text:
        return 0.0

    tagged: dict[MeasurementSystem, float] = {}
    untagged: list[float] = []
    for part in text.split("/")[:2]:
        number = _first_number(part)
        if number is None:
            continue
        unit = _unit_system(part)
        if unit is None:
            untagged.append(number)
        elif unit not in tagged:
            tagged[unit] = number

    if system in tagged:
        value = tagged[system]
    elif tagged:
        source, reading = next(iter(tagged.items()))
        value = convert_area(reading, source, system)
    elif untagged:
        value = convert_area(untagged[0], CALCULATION_SYSTEM, system)
    else:
        return 0.0

    return round(value, AREA_DECIMALS)


def format_area_number(value: float) -> str:
    """Render an area with thousands separators and at most two decimals."""
    text = f"{value:,.{AREA_DECIMALS}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def to_display(raw: Any, system: MeasurementSystem = CALCULATION_SYSTEM) -> str:
    """
    Render an area value as a display string in the requested system.

    Re-normalising the result reproduces ``to_canonical(raw, system)``.
    Returns "N/A" when there is nothing to show.
    """
    if not has_number(raw):
        return NOT_AVAILABLE
    value = to_canonical(raw, system)
    return f"{format_area_number(value)} {UNIT_SYMBOLS[system]}"


# =============================================================================
# Rooms, Parking, Descriptors
# =============================================================================


def parse_bathrooms(value: Any) -> tuple[float, float]:
    """
    Parse a "full:half" bathroom encoding.

    A bare number counts as full bathrooms only. Malformed parts are 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0, 0.0
    if isinstance(value, (int, float)):
        return parse_number(value), 0.0

    full, _, half = str(value).partition(":")
    return parse_number(full), parse_number(half)


def parse_count(value: Any) -> float:
    """
    Parse a count such as parking spaces from free text.

    "Oui (2 places)" -> 2, "Garage double" -> 2, "Non" -> 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return parse_number(value)

    text = str(value).strip().lower()
    if not text or text in _NO_WORDS:
        return 0.0

    number = _first_number(text)
    if number is not None:
        return number

    for word, count in _COUNT_WORDS.items():
        if re.search(rf"\b{word}\b", text):
            return float(count)
    return 0.0


def is_corner_unit(value: Any) -> bool:
    """Whether a unit-location descriptor names a corner unit."""
    if not value:
        return False
    return re.search(r"\b(?:corner|coin)\b", str(value), re.IGNORECASE) is not None


def text_label(value: Any, suffix: str = "") -> str:
    """Display label for a non-area value."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return NOT_AVAILABLE
    if isinstance(value, date):
        return value.isoformat()
    return f"{value}{suffix}"


# =============================================================================
# Dates
# =============================================================================


def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO date (or date/datetime); None when missing or malformed."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def months_between(start: date, end: date) -> float:
    """
    Calendar months from start to end, negative if end precedes start.

    Whole months count exactly; leftover days count as thirtieths.
    """
    whole = (end.year - start.year) * 12 + (end.month - start.month)
    return whole + (end.day - start.day) / 30.0
