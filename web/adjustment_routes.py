"""
Adjustment Routes - Web API for the Comparable Adjustment Engine

Each report session owns one AdjustmentSyncController. Rate edits are
handed to a shared debounced writer that saves them as organization
presets.

Routes:
- GET    /api/adjustments/defaults/{property_type}      - Resolved default rates
- POST   /api/adjustments/calculate                     - One-shot calculation
- POST   /api/adjustments/sessions                      - Open a session
- GET    /api/adjustments/sessions/{id}                 - Session state
- DELETE /api/adjustments/sessions/{id}                 - Close a session
- POST   /api/adjustments/sessions/{id}/sync            - Deliver grid payload
- POST   /api/adjustments/sessions/{id}/reload          - Discard edits, re-seed
- PUT    /api/adjustments/sessions/{id}/rates/{key}     - Edit one rate
- POST   /api/adjustments/sessions/{id}/rates/reset     - Drop session rate edits
- PUT    /api/adjustments/sessions/{id}/property-type   - Switch property type
- PUT    /api/adjustments/sessions/{id}/measurement-system - Switch area units
- PATCH  /api/adjustments/sessions/{id}/comparables/{cid}/adjustments/{category}
- GET    /api/adjustments/sessions/{id}/direct-comparison - Grid write-back
- POST   /api/adjustments/presets/flush                 - Write pending presets
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, List, Optional, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from core.adjustment_engine import (
    AdjustmentSyncController,
    ComparisonPayload,
    DebouncedPresetWriter,
    MeasurementSystem,
    PresetSaveFailure,
    PresetSaveResult,
    PropertyType,
    RateTable,
    get_preset_repository,
)
from utils.config import Config


logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api/adjustments", tags=["adjustments"])


# =============================================================================
# Request Models
# =============================================================================


class PayloadInput(BaseModel):
    """Subject and comparables as sent by the direct-comparison grid."""
    subject: dict[str, Any] = {}
    comparables: List[dict[str, Any]] = []


class CreateSessionRequest(BaseModel):
    """Request body for opening a session."""
    property_type: str = "single_family"
    measurement_system: Optional[str] = None
    payload: Optional[PayloadInput] = None


class CalculateRequest(BaseModel):
    """Request body for a stateless calculation."""
    property_type: str = "single_family"
    measurement_system: Optional[str] = None
    rates: Optional[dict[str, Any]] = None
    subject: dict[str, Any] = {}
    comparables: List[dict[str, Any]] = []


class RateUpdate(BaseModel):
    """New value for one rate."""
    value: Union[float, str]


class PropertyTypeUpdate(BaseModel):
    property_type: str


class MeasurementSystemUpdate(BaseModel):
    measurement_system: str


class AdjustmentPatch(BaseModel):
    """
    Operator edits to one adjustment.

    Only fields present in the body are applied; an explicit null clears
    the override and falls back to the grid or the rate table.
    """
    enabled: Optional[bool] = None
    manual_override: Optional[float] = None
    subject_rate: Optional[float] = None
    comparable_rate: Optional[float] = None
    subject_powder_rate: Optional[float] = None
    comparable_powder_rate: Optional[float] = None
    subject_size: Optional[float] = None
    comparable_size: Optional[float] = None
    depreciation_rate: Optional[float] = None


# =============================================================================
# Session Store
# =============================================================================


class AdjustmentSessionStore:
    """In-memory registry of report sessions."""

    def __init__(self):
        self._sessions: dict[str, AdjustmentSyncController] = {}

    def create(self, controller: AdjustmentSyncController) -> str:
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = controller
        return session_id

    def get(self, session_id: str) -> Optional[AdjustmentSyncController]:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def count(self) -> int:
        return len(self._sessions)


_session_store: Optional[AdjustmentSessionStore] = None
_preset_writer: Optional[DebouncedPresetWriter] = None

# Latest background save result per property type
_preset_results: dict[PropertyType, PresetSaveResult] = {}


def get_session_store() -> AdjustmentSessionStore:
    """Get the session store singleton."""
    global _session_store
    if _session_store is None:
        _session_store = AdjustmentSessionStore()
    return _session_store


def get_preset_writer() -> DebouncedPresetWriter:
    """Get the shared debounced preset writer."""
    global _preset_writer
    if _preset_writer is None:
        config = Config.load()
        repository = get_preset_repository(config.preset_persist_path)
        _preset_writer = DebouncedPresetWriter(
            repository.save,
            debounce_seconds=config.preset_debounce_seconds,
            on_result=_record_preset_result,
        )
    return _preset_writer


def _record_preset_result(result: PresetSaveResult) -> None:
    _preset_results[result.property_type] = result


def reset_adjustment_state() -> None:
    """Reset the session store, preset writer and save results (for testing)."""
    global _session_store, _preset_writer
    _session_store = None
    _preset_writer = None
    _preset_results.clear()


# =============================================================================
# Helpers
# =============================================================================


def _property_type(value: str) -> PropertyType:
    property_type = PropertyType.from_string(value)
    if property_type is None:
        raise HTTPException(status_code=400, detail=f"Invalid property type: {value}")
    return property_type


def _measurement_system(value: Optional[str]) -> MeasurementSystem:
    if value is None:
        value = Config.load().measurement_system
    system = MeasurementSystem.from_string(value)
    if system is None:
        raise HTTPException(status_code=400, detail=f"Invalid measurement system: {value}")
    return system


def _new_rate_table(on_change=None) -> RateTable:
    """Rate table seeded with the organization's saved presets."""
    repository = get_preset_repository(Config.load().preset_persist_path)
    return RateTable(organization_presets=repository.get_all(), on_change=on_change)


def _require_session(session_id: str) -> AdjustmentSyncController:
    controller = get_session_store().get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return controller


def _preset_save_status(property_type: PropertyType) -> Optional[dict]:
    """
    Outcome of the latest preset write for a property type.

    Lets the operator see that an edited rate was not saved. None when
    nothing was written yet.
    """
    if property_type in get_preset_writer().pending_types():
        return {"status": "pending"}
    result = _preset_results.get(property_type)
    if result is None:
        return None
    if isinstance(result, PresetSaveFailure):
        return {"status": "failed", "reason": result.reason}
    saved_at = result.saved_at.isoformat() if result.saved_at else None
    return {"status": "saved", "saved_at": saved_at}


def _session_view(session_id: str, controller: AdjustmentSyncController) -> dict:
    return {
        "session_id": session_id,
        "state": controller.state.value,
        "property_type": controller.property_type.value,
        "measurement_system": controller.measurement_system.value,
        "rates": controller.rates.to_dict(),
        "comparables": [c.to_dict() for c in controller.comparables],
        "preset_save_status": _preset_save_status(controller.property_type),
    }


# =============================================================================
# Rates
# =============================================================================


@router.get("/defaults/{property_type}")
async def get_defaults(property_type: str):
    """Organization preset for a property type, or the built-in defaults."""
    pt = _property_type(property_type)
    return {
        "property_type": pt.value,
        "rates": _new_rate_table().get_rates(pt).to_dict(),
    }


@router.post("/calculate")
async def calculate(request_data: CalculateRequest):
    """
    Calculate adjustments for a payload without opening a session.

    Rates in the body are applied on top of the resolved defaults and are
    not persisted.
    """
    pt = _property_type(request_data.property_type)
    rate_table = _new_rate_table()
    if request_data.rates:
        rates = rate_table.get_rates(pt)
        try:
            for key, value in request_data.rates.items():
                rates = rates.with_rate(key, value)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        rate_table.replace_rates(pt, rates)

    controller = AdjustmentSyncController(
        pt,
        rate_table=rate_table,
        measurement_system=_measurement_system(request_data.measurement_system),
    )
    payload = ComparisonPayload.from_dict({
        "subject": request_data.subject,
        "comparables": request_data.comparables,
    })
    comparables = controller.sync(payload)
    return {
        "property_type": pt.value,
        "rates": controller.rates.to_dict(),
        "comparables": [c.to_dict() for c in comparables],
        "direct_comparison": controller.direct_comparison_fields(),
    }


# =============================================================================
# Sessions
# =============================================================================


@router.post("/sessions", status_code=201)
async def create_session(request_data: CreateSessionRequest):
    """Open a report session, optionally with an initial payload."""
    pt = _property_type(request_data.property_type)
    controller = AdjustmentSyncController(
        pt,
        rate_table=_new_rate_table(on_change=get_preset_writer()),
        measurement_system=_measurement_system(request_data.measurement_system),
    )
    if request_data.payload is not None:
        controller.sync(ComparisonPayload.from_dict(request_data.payload.model_dump()))

    session_id = get_session_store().create(controller)
    logger.info("Opened adjustment session %s (%s)", session_id, pt.value)
    return _session_view(session_id, controller)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    controller = _require_session(session_id)
    return _session_view(session_id, controller)


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    if not get_session_store().delete(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"deleted": True}


@router.post("/sessions/{session_id}/sync")
async def sync_session(session_id: str, payload: PayloadInput):
    """Deliver the grid's current payload; unchanged payloads are a no-op."""
    controller = _require_session(session_id)
    controller.sync(ComparisonPayload.from_dict(payload.model_dump()))
    return _session_view(session_id, controller)


@router.post("/sessions/{session_id}/reload")
async def reload_session(session_id: str):
    """Re-seed from the grid, discarding operator edits."""
    controller = _require_session(session_id)
    controller.reload_from_source()
    return _session_view(session_id, controller)


@router.put("/sessions/{session_id}/rates/{key}")
async def update_rate(session_id: str, key: str, update: RateUpdate):
    controller = _require_session(session_id)
    try:
        controller.set_rate(key, update.value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _session_view(session_id, controller)


@router.post("/sessions/{session_id}/rates/reset")
async def reset_rates(session_id: str):
    controller = _require_session(session_id)
    controller.reset_rates()
    return _session_view(session_id, controller)


@router.put("/sessions/{session_id}/property-type")
async def update_property_type(session_id: str, update: PropertyTypeUpdate):
    controller = _require_session(session_id)
    controller.set_property_type(_property_type(update.property_type))
    return _session_view(session_id, controller)


@router.put("/sessions/{session_id}/measurement-system")
async def update_measurement_system(session_id: str, update: MeasurementSystemUpdate):
    controller = _require_session(session_id)
    controller.set_measurement_system(_measurement_system(update.measurement_system))
    return _session_view(session_id, controller)


@router.patch("/sessions/{session_id}/comparables/{comparable_id}/adjustments/{category}")
async def update_adjustment(
    session_id: str,
    comparable_id: str,
    category: str,
    patch: AdjustmentPatch,
):
    """Apply operator edits to one adjustment of one comparable."""
    controller = _require_session(session_id)
    edits = patch.model_fields_set

    try:
        if "enabled" in edits and patch.enabled is not None:
            controller.set_enabled(comparable_id, category, patch.enabled)
        if "manual_override" in edits:
            controller.set_manual_override(comparable_id, category, patch.manual_override)
        for side in ("subject", "comparable"):
            if f"{side}_rate" in edits:
                controller.set_side_rate(comparable_id, category, side, getattr(patch, f"{side}_rate"))
            if f"{side}_powder_rate" in edits:
                controller.set_side_rate(
                    comparable_id, category, side,
                    getattr(patch, f"{side}_powder_rate"),
                    powder=True,
                )
            if f"{side}_size" in edits:
                controller.set_side_size(comparable_id, category, side, getattr(patch, f"{side}_size"))
        if "depreciation_rate" in edits:
            controller.set_depreciation(comparable_id, category, patch.depreciation_rate)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=e.args[0] if e.args else "Not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return controller.get(comparable_id).to_dict()


@router.get("/sessions/{session_id}/direct-comparison")
async def get_direct_comparison(session_id: str):
    """Adjustment values to write back into the direct-comparison grid."""
    controller = _require_session(session_id)
    return {"comparables": controller.direct_comparison_fields()}


# =============================================================================
# Presets
# =============================================================================


@router.post("/presets/flush")
async def flush_presets():
    """Write every pending preset now."""
    results = get_preset_writer().flush()
    return {
        "saved": [r.property_type.value for r in results if not isinstance(r, PresetSaveFailure)],
        "failed": [
            {"property_type": r.property_type.value, "reason": r.reason}
            for r in results if isinstance(r, PresetSaveFailure)
        ],
    }
