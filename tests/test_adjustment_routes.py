"""
Tests for the adjustment web API

Verifies:
- Healthcheck endpoints
- Stateless calculation
- Session lifecycle, sync, rate edits and operator edits over HTTP
- 404 for unknown sessions, 400 for invalid input
- Rate edits reach the preset store after a flush
- Background preset saves, including failures, show in the session view
"""

import asyncio
import threading

import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi.testclient import TestClient

from core.adjustment_engine import PropertyType, get_preset_repository, reset_preset_repository
from web.adjustment_routes import get_preset_writer, reset_adjustment_state
from web.app import create_app, flush_presets_periodically


SUBJECT = {
    "address": "12 rue des Érables",
    "effectiveDate": "2024-07-15",
    "livingArea": 1800,
    "lotSize": 5000,
}

COMPARABLES = [
    {
        "id": "c1",
        "address": "14 rue des Érables",
        "saleDate": "2024-01-15",
        "salePrice": 450000,
        "livingArea": 2000,
        "lotSize": 5000,
    },
]


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def client(tmp_path, monkeypatch):
    """Client with isolated preset storage and session state."""
    monkeypatch.setenv("PRESET_PERSIST_PATH", str(tmp_path / "presets.json"))
    reset_preset_repository()
    reset_adjustment_state()

    yield TestClient(create_app())

    reset_adjustment_state()
    reset_preset_repository()


@pytest.fixture
def session(client):
    """Session opened with the sample payload."""
    response = client.post("/api/adjustments/sessions", json={
        "property_type": "single_family",
        "payload": {"subject": SUBJECT, "comparables": COMPARABLES},
    })
    assert response.status_code == 201
    return response.json()


def _living_area(body, comparable_id="c1"):
    for comparable in body["comparables"]:
        if comparable["comparable_id"] == comparable_id:
            return comparable["adjustments"]["livingArea"]
    raise AssertionError(f"comparable {comparable_id} missing")


# =============================================================================
# Test: Healthchecks and Defaults
# =============================================================================

class TestHealthchecks:

    def test_root_and_health(self, client):
        assert client.get("/").json() == {"status": "ok"}
        assert client.get("/health").json() == {"status": "healthy"}


class TestDefaults:
    """Tests for default rate lookup."""

    def test_builtin_defaults(self, client):
        response = client.get("/api/adjustments/defaults/condo")

        assert response.status_code == 200
        assert response.json()["rates"]["livingAreaRate"] == 35.0

    def test_legacy_quadruplex_name_accepted(self, client):
        response = client.get("/api/adjustments/defaults/quadruplex")
        assert response.json()["property_type"] == "quadruplex_plus"

    def test_invalid_property_type(self, client):
        assert client.get("/api/adjustments/defaults/castle").status_code == 400


# =============================================================================
# Test: Stateless Calculation
# =============================================================================

class TestCalculate:
    """Tests for one-shot calculation."""

    def test_living_area_example(self, client):
        response = client.post("/api/adjustments/calculate", json={
            "property_type": "single_family",
            "rates": {"livingAreaRate": 30, "marketAppreciationRate": 0},
            "subject": SUBJECT,
            "comparables": COMPARABLES,
        })
        body = response.json()

        assert response.status_code == 200
        assert _living_area(body)["calculated_amount"] == pytest.approx(-6000.0)
        assert body["direct_comparison"]["c1"]["adjustmentLivingArea"] == -6000

    def test_unknown_rate_rejected(self, client):
        response = client.post("/api/adjustments/calculate", json={
            "rates": {"poolRate": 1},
            "subject": SUBJECT,
            "comparables": COMPARABLES,
        })
        assert response.status_code == 400

    def test_calculate_does_not_persist_rates(self, client):
        client.post("/api/adjustments/calculate", json={
            "rates": {"livingAreaRate": 99},
            "subject": SUBJECT,
            "comparables": COMPARABLES,
        })
        client.post("/api/adjustments/presets/flush")

        assert get_preset_repository().get(PropertyType.SINGLE_FAMILY) is None


# =============================================================================
# Test: Sessions
# =============================================================================

class TestSessions:
    """Tests for the session lifecycle."""

    def test_create_with_payload_is_synced(self, session):
        assert session["state"] == "synced"
        assert _living_area(session)["calculated_amount"] == pytest.approx(-6000.0)

    def test_create_without_payload_is_uninitialized(self, client):
        body = client.post("/api/adjustments/sessions", json={}).json()
        assert body["state"] == "uninitialized"
        assert body["comparables"] == []

    def test_get_and_delete(self, client, session):
        url = f"/api/adjustments/sessions/{session['session_id']}"

        assert client.get(url).status_code == 200
        assert client.delete(url).json() == {"deleted": True}
        assert client.get(url).status_code == 404
        assert client.delete(url).status_code == 404

    def test_unknown_session(self, client):
        assert client.post("/api/adjustments/sessions/nope/reload").status_code == 404

    def test_sync_changed_payload(self, client, session):
        url = f"/api/adjustments/sessions/{session['session_id']}/sync"
        changed = [{**COMPARABLES[0], "livingArea": 2100}]

        body = client.post(url, json={"subject": SUBJECT, "comparables": changed}).json()

        assert body["state"] == "synced"
        assert _living_area(body)["calculated_amount"] == pytest.approx(-9000.0)

    def test_measurement_system_switch(self, client, session):
        url = f"/api/adjustments/sessions/{session['session_id']}/measurement-system"

        body = client.put(url, json={"measurement_system": "metric"}).json()
        assert body["measurement_system"] == "metric"
        assert _living_area(body)["subject_label"].endswith("m²")

        assert client.put(url, json={"measurement_system": "cubits"}).status_code == 400

    def test_property_type_switch(self, client, session):
        url = f"/api/adjustments/sessions/{session['session_id']}/property-type"

        body = client.put(url, json={"property_type": "condo"}).json()
        assert "floor" in body["comparables"][0]["adjustments"]

        assert client.put(url, json={"property_type": "castle"}).status_code == 400


class TestRateEdits:
    """Tests for session rate edits."""

    def test_rate_edit_recomputes(self, client, session):
        url = f"/api/adjustments/sessions/{session['session_id']}/rates/livingAreaRate"

        body = client.put(url, json={"value": 40}).json()

        assert body["rates"]["livingAreaRate"] == 40.0
        assert _living_area(body)["calculated_amount"] == pytest.approx(-8000.0)

    def test_unknown_rate_key(self, client, session):
        url = f"/api/adjustments/sessions/{session['session_id']}/rates/poolRate"
        assert client.put(url, json={"value": 40}).status_code == 400

    def test_reset(self, client, session):
        base = f"/api/adjustments/sessions/{session['session_id']}/rates"
        client.put(f"{base}/livingAreaRate", json={"value": 40})

        body = client.post(f"{base}/reset").json()
        assert body["rates"]["livingAreaRate"] == 30.0

    def test_rate_edit_saved_as_preset_on_flush(self, client, session):
        url = f"/api/adjustments/sessions/{session['session_id']}/rates/livingAreaRate"
        client.put(url, json={"value": 41})

        body = client.post("/api/adjustments/presets/flush").json()

        assert body["saved"] == ["single_family"]
        assert get_preset_repository().get(PropertyType.SINGLE_FAMILY).living_area_rate == 41.0


class TestAdjustmentEdits:
    """Tests for operator edits to one adjustment."""

    def _url(self, session, category="livingArea", comparable_id="c1"):
        return (
            f"/api/adjustments/sessions/{session['session_id']}"
            f"/comparables/{comparable_id}/adjustments/{category}"
        )

    def test_manual_override(self, client, session):
        body = client.patch(self._url(session), json={"manual_override": -5000}).json()

        detail = body["adjustments"]["livingArea"]
        assert detail["effective_amount"] == -5000
        assert detail["calculated_amount"] == pytest.approx(-6000.0)

    def test_clear_manual_override_with_null(self, client, session):
        client.patch(self._url(session), json={"manual_override": -5000})
        body = client.patch(self._url(session), json={"manual_override": None}).json()

        assert body["adjustments"]["livingArea"]["manual_override"] is None

    def test_disable(self, client, session):
        body = client.patch(self._url(session), json={"enabled": False}).json()
        assert body["adjustments"]["livingArea"]["enabled"] is False

        fields = client.get(
            f"/api/adjustments/sessions/{session['session_id']}/direct-comparison"
        ).json()
        assert fields["comparables"]["c1"]["adjustmentLivingArea"] == 0

    def test_side_size(self, client, session):
        body = client.patch(
            self._url(session, "basement"),
            json={"subject_size": 800, "comparable_size": 600},
        ).json()
        detail = body["adjustments"]["basement"]
        assert detail["subject_size"] == 800
        assert detail["comparable_size"] == 600

    def test_unknown_category_or_comparable(self, client, session):
        assert client.patch(self._url(session, "pool"), json={"enabled": False}).status_code == 404
        assert client.patch(self._url(session, comparable_id="zz"), json={"enabled": False}).status_code == 404

    def test_side_rate_on_category_without_one_rejected(self, client, session):
        response = client.patch(self._url(session), json={"subject_rate": 50})
        assert response.status_code == 400

        response = client.patch(self._url(session, "lotSize"), json={"comparable_powder_rate": 50})
        assert response.status_code == 400

    def test_powder_rate_on_bathrooms(self, client, session):
        body = client.patch(
            self._url(session, "bathrooms"),
            json={"comparable_powder_rate": 3000},
        ).json()
        assert body["adjustments"]["bathrooms"]["comparable_powder_rate"] == 3000


# =============================================================================
# Test: Preset Save Status
# =============================================================================

class TestPresetSaveStatus:
    """Tests for preset save results in the session view."""

    def _rate_url(self, session):
        return f"/api/adjustments/sessions/{session['session_id']}/rates/livingAreaRate"

    def test_no_status_before_any_edit(self, session):
        assert session["preset_save_status"] is None

    def test_pending_then_saved(self, client, session):
        body = client.put(self._rate_url(session), json={"value": 41}).json()
        assert body["preset_save_status"] == {"status": "pending"}

        get_preset_writer().flush_due(now=float("inf"))

        body = client.get(f"/api/adjustments/sessions/{session['session_id']}").json()
        assert body["preset_save_status"]["status"] == "saved"
        assert body["preset_save_status"]["saved_at"]

    def test_failed_background_save_reported(self, client, tmp_path, monkeypatch):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        monkeypatch.setenv("PRESET_PERSIST_PATH", str(blocker / "presets.json"))
        reset_preset_repository()
        reset_adjustment_state()

        session = client.post("/api/adjustments/sessions", json={
            "payload": {"subject": SUBJECT, "comparables": COMPARABLES},
        }).json()
        client.put(self._rate_url(session), json={"value": 41})

        get_preset_writer().flush_due(now=float("inf"))

        body = client.get(f"/api/adjustments/sessions/{session['session_id']}").json()
        assert body["preset_save_status"]["status"] == "failed"
        assert body["preset_save_status"]["reason"]
        assert body["rates"]["livingAreaRate"] == 41.0


class TestBackgroundFlush:
    """Tests for the periodic preset flush loop."""

    def test_due_presets_written_off_the_event_loop(self, client, session, monkeypatch):
        client.put(
            f"/api/adjustments/sessions/{session['session_id']}/rates/livingAreaRate",
            json={"value": 42},
        )
        writer = get_preset_writer()
        flush_due = writer.flush_due
        threads = []

        def flush_now():
            results = flush_due(now=float("inf"))
            threads.append(threading.current_thread())
            return results

        monkeypatch.setattr(writer, "flush_due", flush_now)

        async def run_until_flushed():
            task = asyncio.create_task(flush_presets_periodically(0.01))
            for _ in range(200):
                if threads:
                    break
                await asyncio.sleep(0.01)
            task.cancel()

        asyncio.run(run_until_flushed())

        assert threads
        assert threads[0] is not threading.main_thread()
        assert get_preset_repository().get(PropertyType.SINGLE_FAMILY).living_area_rate == 42.0
