"""
Preset Persistence for the Comparable Adjustment Engine

Organization rate presets keyed by property type, with optional JSON file
persistence, plus a debounced writer that coalesces bursts of rate edits
into one save per property type.

The rate table never waits on this module: it hands rates to the writer
(its outbound port) and carries on. A failed save is reported, not
retried, and never rolls back the in-memory rates.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from .models import DefaultRates, PropertyType


logger = logging.getLogger(__name__)


# =============================================================================
# Save Results
# =============================================================================


@dataclass(frozen=True)
class PresetSaveSuccess:
    """Returned when a preset was stored."""

    property_type: PropertyType
    rates: DefaultRates
    saved_at: datetime


@dataclass(frozen=True)
class PresetSaveFailure:
    """Returned when a preset could not be stored."""

    property_type: PropertyType
    reason: str


PresetSaveResult = Union[PresetSaveSuccess, PresetSaveFailure]


# =============================================================================
# Repository
# =============================================================================


class PresetRepository:
    """
    Repository for organization rate presets.

    Uses in-memory storage with optional file persistence.
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialise repository.

        Args:
            persist_path: Optional path to persist presets to a JSON file
        """
        self._presets: dict[PropertyType, DefaultRates] = {}
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        """Persist presets to file."""
        if not self._persist_path:
            return

        data = {
            "presets": {
                pt.value: rates.to_dict()
                for pt, rates in self._presets.items()
            },
            "saved_at": datetime.utcnow().isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        """Load presets from file."""
        if not self._persist_path or not self._persist_path.exists():
            return

        try:
            data = json.loads(self._persist_path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load preset data from %s: %s", self._persist_path, e)
            return

        for key, rates_data in data.get("presets", {}).items():
            property_type = PropertyType.from_string(key)
            if property_type is None:
                logger.warning("Ignoring preset for unknown property type %r", key)
                continue
            self._presets[property_type] = DefaultRates.from_dict(rates_data)

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def get(self, property_type: PropertyType) -> Optional[DefaultRates]:
        """
        Get the preset for a property type.

        Returns:
            DefaultRates if the organization saved one, None otherwise
        """
        return self._presets.get(property_type)

    def get_all(self) -> dict[PropertyType, DefaultRates]:
        """Get every saved preset."""
        return dict(self._presets)

    def save(self, property_type: PropertyType, rates: DefaultRates) -> PresetSaveResult:
        """
        Store the preset for a property type.

        Args:
            property_type: Property type the rates apply to
            rates: Complete rate set

        Returns:
            PresetSaveSuccess, or PresetSaveFailure if the file write failed.
            The in-memory preset is kept either way.
        """
        self._presets[property_type] = rates
        try:
            self._save_to_file()
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Preset save failed for %s: %s", property_type.value, e)
            return PresetSaveFailure(property_type=property_type, reason=str(e))

        logger.info("Saved %s preset", property_type.value)
        return PresetSaveSuccess(
            property_type=property_type,
            rates=rates,
            saved_at=datetime.utcnow(),
        )

    def delete(self, property_type: PropertyType) -> bool:
        """
        Delete the preset for a property type.

        Returns:
            True if deleted, False if not found
        """
        if property_type in self._presets:
            del self._presets[property_type]
            self._save_to_file()
            return True
        return False

    def count(self) -> int:
        """Get number of saved presets."""
        return len(self._presets)


# =============================================================================
# Debounced Writer
# =============================================================================


SaveFunction = Callable[[PropertyType, DefaultRates], PresetSaveResult]


class DebouncedPresetWriter:
    """
    Outbound rate persistence port with per-type debouncing.

    Calling the writer records the latest rates for a property type. Entries
    idle for at least debounce_seconds are written by flush_due(); flush()
    writes everything immediately. Flushing from a worker thread while edits
    arrive is safe.
    """

    def __init__(
        self,
        save_fn: SaveFunction,
        debounce_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        on_result: Optional[Callable[[PresetSaveResult], None]] = None,
    ):
        """
        Initialize writer.

        Args:
            save_fn: Performs one save (e.g. PresetRepository.save)
            debounce_seconds: Quiet period before a pending write is due
            clock: Monotonic time source
            on_result: Optional callback receiving every save result
        """
        self._save_fn = save_fn
        self._debounce_seconds = debounce_seconds
        self._clock = clock
        self._on_result = on_result
        self._pending: dict[PropertyType, tuple[DefaultRates, float]] = {}
        self._lock = threading.Lock()

    def __call__(self, property_type: PropertyType, rates: DefaultRates) -> None:
        """Record a rate change; an earlier pending write for the type is replaced."""
        with self._lock:
            self._pending[property_type] = (rates, self._clock())

    def pending_types(self) -> list[PropertyType]:
        """Property types with a write waiting."""
        with self._lock:
            return list(self._pending)

    def flush_due(self, now: Optional[float] = None) -> list[PresetSaveResult]:
        """Write entries whose debounce window has elapsed."""
        now = self._clock() if now is None else now
        with self._lock:
            due = [
                (pt, self._pending.pop(pt)[0])
                for pt, (_, recorded_at) in list(self._pending.items())
                if now - recorded_at >= self._debounce_seconds
            ]
        return [self._write(pt, rates) for pt, rates in due]

    def flush(self) -> list[PresetSaveResult]:
        """Write every pending entry now."""
        with self._lock:
            due = [(pt, rates) for pt, (rates, _) in self._pending.items()]
            self._pending.clear()
        return [self._write(pt, rates) for pt, rates in due]

    def _write(self, property_type: PropertyType, rates: DefaultRates) -> PresetSaveResult:
        try:
            result = self._save_fn(property_type, rates)
        except Exception as e:
            logger.exception("Preset writer failed for %s", property_type.value)
            result = PresetSaveFailure(property_type=property_type, reason=str(e))

        if isinstance(result, PresetSaveFailure):
            logger.warning(
                "Preset for %s not persisted: %s", property_type.value, result.reason
            )

        if self._on_result is not None:
            self._on_result(result)
        return result


# =============================================================================
# Singleton Instance
# =============================================================================

_repository_instance: Optional[PresetRepository] = None


def get_preset_repository(persist_path: Optional[str] = None) -> PresetRepository:
    """
    Get the preset repository singleton.

    Args:
        persist_path: Optional path for persistence (only used on first call)

    Returns:
        PresetRepository instance
    """
    global _repository_instance
    if _repository_instance is None:
        _repository_instance = PresetRepository(
            persist_path or "data/adjustment_presets.json"
        )
    return _repository_instance


def reset_preset_repository() -> None:
    """Reset the singleton instance (for testing)."""
    global _repository_instance
    _repository_instance = None
