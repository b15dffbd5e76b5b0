"""
Synchronization Controller for the Comparable Adjustment Engine

Owns the per-comparable adjustment records of one report session and keeps
them consistent with the direct-comparison grid and the rate table.

State machine:
    UNINITIALIZED -> SEEDED   first payload with comparables
    SEEDED/SYNCED -> STALE    payload differs structurally from the last one
    SEEDED/STALE  -> SYNCED   refresh() recalculates affected comparables
    any           -> SEEDED   reload_from_source() discards operator edits

The grid re-delivers its payload on every render, so staleness is decided
by structural comparison (PayloadDiff), never by identity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from .aggregator import aggregate, to_direct_comparison_fields, with_totals
from .calculator import AdjustmentCalculator
from .categories import applicable_categories, get_category
from .models import (
    AggregateResult,
    ComparableAdjustments,
    ComparisonPayload,
    DefaultRates,
    MeasurementSystem,
    PropertySnapshot,
    PropertyType,
    SyncState,
)
from .rates import RateTable


logger = logging.getLogger(__name__)

SIDES = ("subject", "comparable")

# Categories whose formulas read per-side operator values
SIDE_RATE_CATEGORIES = frozenset({"lotSize", "basement", "bathrooms"})
POWDER_RATE_CATEGORIES = frozenset({"bathrooms"})
SIDE_SIZE_CATEGORIES = frozenset({
    "livingArea", "lotSize", "basement", "effectiveAge",
    "garage", "floor", "landscaping", "extras",
})


# =============================================================================
# Payload Diff
# =============================================================================


@dataclass(frozen=True)
class PayloadDiff:
    """Structural difference between two comparison payloads."""
    subject_changed: bool = False
    changed_ids: frozenset[str] = field(default_factory=frozenset)
    added_ids: frozenset[str] = field(default_factory=frozenset)
    removed_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        """True when nothing material changed."""
        return not (
            self.subject_changed
            or self.changed_ids
            or self.added_ids
            or self.removed_ids
        )

    def merge(self, other: "PayloadDiff") -> "PayloadDiff":
        """Combine two diffs observed before a refresh."""
        return PayloadDiff(
            subject_changed=self.subject_changed or other.subject_changed,
            changed_ids=self.changed_ids | other.changed_ids,
            added_ids=(self.added_ids | other.added_ids) - other.removed_ids,
            removed_ids=(self.removed_ids | other.removed_ids) - other.added_ids,
        )


def diff_payloads(
    previous: Optional[ComparisonPayload],
    current: ComparisonPayload,
) -> PayloadDiff:
    """
    Compare two payloads field by field.

    Comparables are matched by id; a reordering alone is not a change.
    """
    current_by_id = {c.id: c for c in current.comparables}
    if previous is None:
        return PayloadDiff(subject_changed=True, added_ids=frozenset(current_by_id))

    previous_by_id = {c.id: c for c in previous.comparables}
    shared = current_by_id.keys() & previous_by_id.keys()

    return PayloadDiff(
        subject_changed=previous.subject != current.subject,
        changed_ids=frozenset(
            cid for cid in shared if current_by_id[cid] != previous_by_id[cid]
        ),
        added_ids=frozenset(current_by_id.keys() - previous_by_id.keys()),
        removed_ids=frozenset(previous_by_id.keys() - current_by_id.keys()),
    )


# =============================================================================
# Controller
# =============================================================================


class AdjustmentSyncController:
    """
    Keeps adjustment records in step with upstream data and rates.

    Operator overrides (manual amounts, per-side rates and sizes, edited
    depreciation) survive upstream refreshes and rate changes; only
    reload_from_source() or a property type change discards them.
    """

    def __init__(
        self,
        property_type: PropertyType,
        rate_table: Optional[RateTable] = None,
        measurement_system: MeasurementSystem = MeasurementSystem.IMPERIAL,
    ):
        """
        Initialize controller.

        Args:
            property_type: Active property type (selects categories and rates)
            rate_table: Session rate table (a fresh one if omitted)
            measurement_system: Unit system for area labels
        """
        self._property_type = property_type
        self._rate_table = rate_table or RateTable()
        self._calculator = AdjustmentCalculator(measurement_system)

        self._state = SyncState.UNINITIALIZED
        self._payload: Optional[ComparisonPayload] = None  # last processed
        self._pending: Optional[ComparisonPayload] = None
        self._pending_diff: Optional[PayloadDiff] = None
        self._records: dict[str, ComparableAdjustments] = {}

    # =========================================================================
    # Read Access
    # =========================================================================

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def property_type(self) -> PropertyType:
        return self._property_type

    @property
    def measurement_system(self) -> MeasurementSystem:
        return self._calculator.measurement_system

    @property
    def rate_table(self) -> RateTable:
        return self._rate_table

    @property
    def rates(self) -> DefaultRates:
        """Rates in effect for the active property type."""
        return self._rate_table.get_rates(self._property_type)

    @property
    def payload(self) -> Optional[ComparisonPayload]:
        """Last payload fully processed."""
        return self._payload

    @property
    def comparables(self) -> list[ComparableAdjustments]:
        """Adjustment records in grid order."""
        return list(self._records.values())

    def get(self, comparable_id: str) -> ComparableAdjustments:
        """
        Adjustment record for one comparable.

        Raises:
            KeyError: If the comparable is unknown
        """
        try:
            return self._records[comparable_id]
        except KeyError:
            raise KeyError(f"Unknown comparable: {comparable_id}") from None

    def totals(self) -> dict[str, AggregateResult]:
        """Aggregate totals per comparable."""
        return {cid: aggregate(record) for cid, record in self._records.items()}

    def direct_comparison_fields(self) -> dict[str, dict[str, int]]:
        """Grid column values to write back, per comparable."""
        return {
            cid: to_direct_comparison_fields(record)
            for cid, record in self._records.items()
        }

    # =========================================================================
    # Upstream Synchronization
    # =========================================================================

    def receive(
        self,
        payload: ComparisonPayload,
        diff: Optional[PayloadDiff] = None,
    ) -> SyncState:
        """
        Observe a payload from the grid.

        Args:
            payload: Current subject and comparables
            diff: Structural diff against the last payload, computed by the
                caller; computed here when omitted

        Returns:
            State after observation
        """
        if self._state == SyncState.UNINITIALIZED:
            if not payload.comparables:
                logger.debug("Payload has no comparables yet; staying uninitialized")
                return self._state
            self._seed_all(payload)
            return self._state

        baseline = self._pending or self._payload
        if diff is None:
            diff = diff_payloads(baseline, payload)

        if diff.is_empty:
            logger.debug("Payload unchanged; no recalculation")
            return self._state

        self._pending_diff = self._pending_diff.merge(diff) if self._pending_diff else diff
        self._pending = payload
        if self._state == SyncState.SYNCED:
            self._state = SyncState.STALE
        return self._state

    def refresh(self) -> list[ComparableAdjustments]:
        """
        Bring records up to date with the pending payload.

        Each comparable, and each category within it, is recalculated
        independently; a failure in one never blocks the others.
        """
        if self._state not in (SyncState.SEEDED, SyncState.STALE):
            return self.comparables

        payload = self._pending
        diff = self._pending_diff or PayloadDiff()
        full = self._state == SyncState.SEEDED or diff.subject_changed
        rates = self.rates

        for cid in diff.removed_ids:
            if self._records.pop(cid, None) is not None:
                logger.info("Comparable %s removed upstream; adjustments dropped", cid)

        for cid in (diff.changed_ids | diff.added_ids) - {c.id for c in payload.comparables}:
            logger.warning("Comparable %s listed as changed but missing upstream; skipped", cid)

        records: dict[str, ComparableAdjustments] = {}
        for comparable in payload.comparables:
            record = self._records.get(comparable.id)
            is_new = record is None
            if is_new:
                record = self._seed_record(payload.subject, comparable, rates)

            if full or is_new or comparable.id in diff.changed_ids:
                record = self._recalculate(record, payload.subject, comparable, rates, refresh_values=True)
            records[comparable.id] = record

        for cid, record in self._records.items():
            if cid not in records:
                logger.warning(
                    "Comparable %s has no upstream counterpart; skipped this pass", cid
                )
                records[cid] = record

        self._records = records
        self._payload = payload
        self._pending = None
        self._pending_diff = None
        self._state = SyncState.SYNCED
        return self.comparables

    def sync(
        self,
        payload: ComparisonPayload,
        diff: Optional[PayloadDiff] = None,
    ) -> list[ComparableAdjustments]:
        """Observe a payload and refresh if it changed anything."""
        self.receive(payload, diff)
        return self.refresh()

    def reload_from_source(self) -> list[ComparableAdjustments]:
        """
        Re-seed every record from the latest payload.

        Discards manual overrides and per-comparable custom rates, sizes
        and depreciation.
        """
        payload = self._pending or self._payload
        if payload is None:
            return []

        logger.info("Reloading %d comparables from source", len(payload.comparables))
        self._seed_all(payload)
        return self.refresh()

    # =========================================================================
    # Rates and Settings
    # =========================================================================

    def set_rate(self, key: str, value: Any) -> DefaultRates:
        """Edit one rate for the active property type and recompute amounts."""
        rates = self._rate_table.set_rate(self._property_type, key, value)
        self._apply_rates()
        return rates

    def replace_rates(self, rates: DefaultRates) -> DefaultRates:
        """Replace the active property type's rates and recompute amounts."""
        self._rate_table.replace_rates(self._property_type, rates)
        self._apply_rates()
        return rates

    def reset_rates(self) -> DefaultRates:
        """Drop session rate edits for the active property type."""
        rates = self._rate_table.reset_to_default(self._property_type)
        self._apply_rates()
        return rates

    def set_property_type(self, property_type: PropertyType) -> list[ComparableAdjustments]:
        """
        Switch the active property type.

        Session rate edits for other types are kept in the rate table; the
        adjustment records are re-seeded for the new category set.
        """
        if property_type == self._property_type:
            return self.comparables

        logger.info(
            "Property type changed from %s to %s; re-seeding adjustments",
            self._property_type.value,
            property_type.value,
        )
        self._property_type = property_type
        return self.reload_from_source()

    def set_measurement_system(self, system: MeasurementSystem) -> list[ComparableAdjustments]:
        """Switch area labels between unit systems; amounts are unaffected."""
        self._calculator.measurement_system = system
        for cid, record in self._records.items():
            adjustments = dict(record.adjustments)
            for category_id, detail in record.adjustments.items():
                category = get_category(category_id)
                if category.is_area:
                    adjustments[category_id] = self._calculator.relabel(category, detail)
            self._records[cid] = replace(record, adjustments=adjustments)
        return self.comparables

    # =========================================================================
    # Operator Edits
    # =========================================================================

    def set_manual_override(
        self,
        comparable_id: str,
        category_id: str,
        amount: Optional[float],
    ) -> ComparableAdjustments:
        """Set (or clear with None) the displayed amount for one adjustment."""
        return self._edit(comparable_id, category_id, manual_override=amount)

    def set_enabled(self, comparable_id: str, category_id: str, enabled: bool) -> ComparableAdjustments:
        """Include or exclude one adjustment from the total."""
        return self._edit(comparable_id, category_id, enabled=enabled)

    def set_side_rate(
        self,
        comparable_id: str,
        category_id: str,
        side: str,
        value: Optional[float],
        powder: bool = False,
    ) -> ComparableAdjustments:
        """
        Set a per-side rate (None reverts to the rate table).

        Args:
            side: "subject" or "comparable"
            powder: Edit the powder-room rate (bathrooms only)
        """
        _check_side(side)
        allowed = POWDER_RATE_CATEGORIES if powder else SIDE_RATE_CATEGORIES
        _check_side_category(category_id, allowed, "powder-room rate" if powder else "rate")
        name = f"{side}_powder_rate" if powder else f"{side}_rate"
        return self._edit(comparable_id, category_id, **{name: value})

    def set_side_size(
        self,
        comparable_id: str,
        category_id: str,
        side: str,
        value: Optional[float],
    ) -> ComparableAdjustments:
        """Set a per-side size or quantity (None reverts to the grid value)."""
        _check_side(side)
        _check_side_category(category_id, SIDE_SIZE_CATEGORIES, "size")
        return self._edit(comparable_id, category_id, **{f"{side}_size": value})

    def set_depreciation(
        self,
        comparable_id: str,
        category_id: str,
        value: Optional[float],
    ) -> ComparableAdjustments:
        """Pin a depreciation % on one adjustment (None follows the rate table)."""
        if value is None:
            return self._edit(comparable_id, category_id, depreciation_locked=False)
        return self._edit(
            comparable_id,
            category_id,
            depreciation_rate=value,
            depreciation_locked=True,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _seed_all(self, payload: ComparisonPayload) -> None:
        """Build fresh records for every comparable (state -> SEEDED)."""
        rates = self.rates
        self._records = {
            comparable.id: self._seed_record(payload.subject, comparable, rates)
            for comparable in payload.comparables
        }
        self._pending = payload
        self._pending_diff = diff_payloads(None, payload)
        self._state = SyncState.SEEDED
        logger.info(
            "Seeded adjustments for %d comparables (%s)",
            len(self._records),
            self._property_type.value,
        )

    def _seed_record(
        self,
        subject: PropertySnapshot,
        comparable: PropertySnapshot,
        rates: DefaultRates,
    ) -> ComparableAdjustments:
        """One zeroed detail per applicable category."""
        adjustments = {
            category.id: self._calculator.with_values(
                category,
                self._calculator.seed(category, rates),
                subject,
                comparable,
            )
            for category in applicable_categories(self._property_type)
        }
        return with_totals(ComparableAdjustments(
            comparable_id=comparable.id,
            comparable_address=comparable.address,
            sale_price=comparable.sale_price,
            adjustments=adjustments,
        ))

    def _recalculate(
        self,
        record: ComparableAdjustments,
        subject: PropertySnapshot,
        comparable: PropertySnapshot,
        rates: DefaultRates,
        refresh_values: bool,
    ) -> ComparableAdjustments:
        """Recalculate every applicable category, then the totals."""
        adjustments = dict(record.adjustments)
        for category in applicable_categories(self._property_type):
            try:
                adjustments[category.id] = self._calculator.calculate(
                    category,
                    subject,
                    comparable,
                    rates,
                    existing_detail=adjustments.get(category.id),
                    refresh_values=refresh_values,
                )
            except (ArithmeticError, AttributeError, TypeError, ValueError):
                logger.warning(
                    "Could not calculate %s for comparable %s; keeping previous value",
                    category.id,
                    record.comparable_id,
                    exc_info=True,
                )

        return with_totals(replace(
            record,
            comparable_address=comparable.address,
            sale_price=comparable.sale_price,
            adjustments=adjustments,
        ))

    def _apply_rates(self) -> None:
        """Recompute amounts with current rates, reusing stored values."""
        if self._payload is None:
            return

        rates = self.rates
        for cid, record in self._records.items():
            comparable = self._payload.comparable_by_id(cid)
            if comparable is None:
                logger.warning("Comparable %s missing from last payload; rates not applied", cid)
                continue
            self._records[cid] = self._recalculate(
                record, self._payload.subject, comparable, rates, refresh_values=False
            )

    def _edit(self, comparable_id: str, category_id: str, **changes: Any) -> ComparableAdjustments:
        """Apply an operator edit to one detail and recalculate it."""
        record = self.get(comparable_id)
        category = get_category(category_id)
        detail = record.adjustments.get(category_id)
        if detail is None:
            raise KeyError(
                f"Category {category_id} does not apply to {self._property_type.value}"
            )

        detail = replace(detail, **changes)
        comparable = self._payload.comparable_by_id(comparable_id) if self._payload else None
        if comparable is not None:
            detail = self._calculator.calculate(
                category,
                self._payload.subject,
                comparable,
                self.rates,
                existing_detail=detail,
                refresh_values=False,
            )

        record = with_totals(replace(
            record,
            adjustments={**record.adjustments, category_id: detail},
        ))
        self._records[comparable_id] = record
        return record


def _check_side(side: str) -> None:
    if side not in SIDES:
        raise ValueError(f"side must be one of {SIDES}, got {side!r}")


def _check_side_category(category_id: str, allowed: frozenset[str], what: str) -> None:
    get_category(category_id)
    if category_id not in allowed:
        raise ValueError(f"{category_id} has no per-side {what}")
