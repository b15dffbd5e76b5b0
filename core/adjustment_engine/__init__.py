"""
Comparable Adjustment Engine v1.0

Per-category dollar adjustments between a subject property and its
comparable sales, aggregated into adjusted values and gross/net
adjustment percentages for the direct-comparison approach.
"""

from .models import (
    PropertyType,
    MeasurementSystem,
    QualityMethod,
    AgeMethod,
    SyncState,
    PropertySnapshot,
    ComparisonPayload,
    DefaultRates,
    AdjustmentDetail,
    AggregateResult,
    ComparableAdjustments,
)
from .measurements import to_canonical, to_display
from .rates import DEFAULT_RATES_BY_PROPERTY_TYPE, RateTable, builtin_rates
from .categories import (
    ADJUSTMENT_CATEGORIES,
    AdjustmentCategory,
    applicable_categories,
    get_category,
)
from .calculator import AdjustmentCalculator
from .aggregator import aggregate, round_currency, to_direct_comparison_fields
from .sync import AdjustmentSyncController, PayloadDiff, diff_payloads
from .persistence import (
    DebouncedPresetWriter,
    PresetRepository,
    PresetSaveFailure,
    PresetSaveResult,
    PresetSaveSuccess,
    get_preset_repository,
    reset_preset_repository,
)

__all__ = [
    # Models
    "PropertyType",
    "MeasurementSystem",
    "QualityMethod",
    "AgeMethod",
    "SyncState",
    "PropertySnapshot",
    "ComparisonPayload",
    "DefaultRates",
    "AdjustmentDetail",
    "AggregateResult",
    "ComparableAdjustments",
    # Measurements
    "to_canonical",
    "to_display",
    # Rates
    "DEFAULT_RATES_BY_PROPERTY_TYPE",
    "RateTable",
    "builtin_rates",
    # Categories
    "ADJUSTMENT_CATEGORIES",
    "AdjustmentCategory",
    "applicable_categories",
    "get_category",
    # Engine
    "AdjustmentCalculator",
    "aggregate",
    "round_currency",
    "to_direct_comparison_fields",
    "AdjustmentSyncController",
    "PayloadDiff",
    "diff_payloads",
    # Persistence
    "DebouncedPresetWriter",
    "PresetRepository",
    "PresetSaveFailure",
    "PresetSaveResult",
    "PresetSaveSuccess",
    "get_preset_repository",
    "reset_preset_repository",
]

__version__ = "1.0"
