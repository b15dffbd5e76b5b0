"""
Comparable Adjustment Engine - Core Business Logic

This module provides the adjustment pipeline for the direct-comparison
approach:
1. Measurement normalization (dual-unit area strings)
2. Layered rate resolution (session -> organization preset -> built-in)
3. Per-category adjustment formulas
4. Aggregation (adjusted value, gross / net adjustment %)
5. Synchronization with the comparison grid
"""

from .adjustment_engine import (
    PropertyType,
    MeasurementSystem,
    SyncState,
    PropertySnapshot,
    ComparisonPayload,
    DefaultRates,
    AdjustmentDetail,
    AggregateResult,
    ComparableAdjustments,
    RateTable,
    AdjustmentCalculator,
    AdjustmentSyncController,
    PayloadDiff,
    diff_payloads,
    aggregate,
)

__all__ = [
    "PropertyType",
    "MeasurementSystem",
    "SyncState",
    "PropertySnapshot",
    "ComparisonPayload",
    "DefaultRates",
    "AdjustmentDetail",
    "AggregateResult",
    "ComparableAdjustments",
    "RateTable",
    "AdjustmentCalculator",
    "AdjustmentSyncController",
    "PayloadDiff",
    "diff_payloads",
    "aggregate",
]
