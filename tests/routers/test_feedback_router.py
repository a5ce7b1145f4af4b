"""
Tests for feedback router endpoints.

The application-wide engine is replaced with one bound to the per-test
in-memory database.
"""

import pytest
from fastapi.testclient import TestClient

from vectorkb.constants import FeedbackSignal
from vectorkb.dependencies import get_preference_engine
from vectorkb.main import app
from vectorkb.models import PreferenceSnapshot


@pytest.fixture
def client(engine):
    """Create test client wired to the test engine."""
    app.dependency_overrides[get_preference_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Feedback Recording
# =============================================================================

def test_submit_feedback(client, seeded_objects, make_event):
    event = make_event(["motif-blue-circle"], user_id="alice")

    response = client.post("/feedback", json={"event_id": event.id, "signal": "exported", "user_id": "alice"})

    assert response.status_code == 200
    data = response.json()
    assert data["feedback"]["weight"] == 2.0
    assert data["feedback"]["signal"] == "exported"


def test_submit_feedback_unknown_signal_is_400(client, make_event):
    event = make_event(["motif-blue-circle"])

    response = client.post("/feedback", json={"event_id": event.id, "signal": "liked"})

    assert response.status_code == 400
    assert "liked" in response.json()["detail"]


def test_submit_feedback_unknown_event_is_404(client):
    response = client.post("/feedback", json={"event_id": 9999, "signal": "kept"})
    assert response.status_code == 404


def test_submit_feedback_oversized_weight_is_400(client, make_event):
    event = make_event(["motif-blue-circle"], user_id="alice")

    response = client.post("/feedback", json={"event_id": event.id, "signal": "kept", "user_id": "alice", "weight": 1e308})

    assert response.status_code == 400
    assert "weight" in response.json()["detail"]


def test_implicit_feedback_never_fails(client, make_event):
    event = make_event(["motif-blue-circle"], user_id="alice")

    ok = client.post("/feedback/implicit", json={"event_id": event.id, "signal": "exported", "user_id": "alice"})
    missing = client.post("/feedback/implicit", json={"event_id": 9999, "signal": "exported"})

    assert ok.status_code == 200 and ok.json() == {"recorded": True}
    assert missing.status_code == 200 and missing.json() == {"recorded": False}


def test_process_feedback(client, seeded_objects, make_event):
    event = make_event(["style-flat"], user_id="alice")

    response = client.post("/feedback/process", json={"event_id": event.id, "signal": "kept", "user_id": "alice"})

    assert response.status_code == 200
    data = response.json()
    assert data["tags_affected"] == ["flat", "minimal"]
    assert data["objects_affected"] == ["style-flat"]
    assert data["preferences_updated"] is False


def test_process_feedback_missing_signal_is_400(client):
    response = client.post("/feedback/process", json={"event_id": 1})
    assert response.status_code == 400


def test_process_feedback_batch(client, seeded_objects, make_event):
    event = make_event(["style-flat"], user_id="alice")

    response = client.post("/feedback/process/batch", json=[
        {"event_id": event.id, "signal": "kept", "user_id": "alice"},
        {"event_id": 9999, "signal": "kept", "user_id": "alice"},
    ])

    assert response.status_code == 200
    data = response.json()
    assert data["processed"] == 1
    assert data["failed"] == 1
    assert data["errors"][0]["index"] == 1


# =============================================================================
# Preferences & Diagnostics
# =============================================================================

def test_get_and_set_preferences(client):
    put = client.put("/feedback/preferences", json={"user_id": "alice", "tag": "blue", "value": 2.0})
    assert put.status_code == 200
    assert put.json()["value"] == 1.5

    response = client.get("/feedback/preferences", params={"user_id": "alice"})
    assert response.status_code == 200
    assert response.json()["preferences"]["tag_weights"] == {"blue": 1.5}

    global_response = client.get("/feedback/preferences")
    assert global_response.json()["scope"] == "global"


def test_recompute_preferences(client, engine, seeded_objects, make_event):
    assert client.post("/feedback/preferences/recompute", params={"user_id": "alice"}).json() == {
        "user_id": "alice", "updated": False,
    }

    for _ in range(10):
        event = make_event(["motif-blue-circle"], user_id="alice")
        engine.ledger.upsert_feedback(event.id, FeedbackSignal.FAVORITED, 1.5, user_id="alice")

    response = client.post("/feedback/preferences/recompute", params={"user_id": "alice"})

    assert response.json()["updated"] is True
    assert engine.get_user_preference("alice", "blue") > 0


def test_recommendations_cold_start(client, store):
    store.save_global(PreferenceSnapshot(tag_weights={"popular": 0.7}))

    response = client.get("/feedback/recommendations", params={"user_id": "new-user", "prompt": "shapes"})

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 1
    assert data["recommendations"][0]["source"] == "global"
    assert data["recommendations"][0]["tags"] == ["popular"]


def test_bias_endpoint(client, engine):
    engine.set_user_preference("alice", "extreme", 1.5)

    response = client.get("/feedback/bias", params={"user_id": "alice"})

    assert response.status_code == 200
    assert response.json()["has_extreme_bias"] is True


def test_metrics_endpoint(client):
    response = client.get("/feedback/metrics")

    assert response.status_code == 200
    data = response.json()
    assert data["total_events"] == 0
    assert data["retrieval_coverage"] == 1.0


def test_event_details(client, make_event):
    event = make_event(["motif-blue-circle"], user_id="alice", prompt="a circle")

    response = client.get(f"/feedback/events/{event.id}")
    assert response.status_code == 200
    data = response.json()
    assert data["prompt"] == "a circle"
    assert data["used_object_ids"] == ["motif-blue-circle"]
    assert "plan" not in data

    assert client.get("/feedback/events/9999").status_code == 404


# =============================================================================
# Admin
# =============================================================================

def test_admin_deprecate_and_cleanup(client, engine, seeded_objects, make_event):
    response = client.post("/feedback/admin/deprecate-stale")
    assert response.status_code == 200
    assert response.json() == {"deprecated": 0}

    make_event(["motif-blue-circle"], days_ago=200)
    response = client.post("/feedback/admin/cleanup", json={"retention_days": 90})
    assert response.status_code == 200
    assert response.json() == {"deleted_events": 1, "deleted_feedback": 0}


def test_admin_global_refresh_and_decay(client, engine, seeded_objects, make_event):
    event = make_event(["motif-blue-circle"], user_id="alice")
    client.post("/feedback", json={"event_id": event.id, "signal": "kept", "user_id": "alice"})

    assert client.post("/feedback/admin/update-global-preferences").json() == {"updated": False}
    assert client.post("/feedback/admin/update-global-preferences", params={"force": True}).json() == {"updated": True}
    assert client.post("/feedback/admin/decay").json() == {"users_decayed": 0}
