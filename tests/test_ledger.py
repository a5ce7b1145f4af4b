"""
Tests for feedback ledger access against an in-memory database.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from vectorkb.aggregator import window_start
from vectorkb.constants import FeedbackSignal, KnowledgeObjectStatus
from vectorkb.db_models import DBGenerationEvent, DBGenerationFeedback, utcnow
from vectorkb.exceptions import GenerationEventNotFoundError


def test_create_and_get_event(ledger, seeded_objects):
    event = ledger.create_event(
        prompt="a blue circle",
        used_object_ids=["motif-blue-circle"],
        user_id="alice",
        intent={"goal": "icon"},
        model_info={"name": "planner"},
    )

    loaded = ledger.get_event(event.id)

    assert loaded.prompt == "a blue circle"
    assert loaded.used_object_ids == ["motif-blue-circle"]
    assert loaded.intent == {"goal": "icon"}
    assert ledger.get_event(9999) is None


def test_upsert_creates_then_overwrites(ledger, make_event):
    event = make_event(["motif-blue-circle"], user_id="alice")

    first, created = ledger.upsert_feedback(event.id, FeedbackSignal.KEPT, 1.0, user_id="alice", notes="nice")
    second, created_again = ledger.upsert_feedback(event.id, FeedbackSignal.REPORTED, -3.0, user_id="alice")

    assert created is True
    assert created_again is False
    assert second.id == first.id
    assert second.signal == FeedbackSignal.REPORTED
    assert second.weight == -3.0
    assert second.notes is None
    assert ledger.count_feedback() == 1


def test_anonymous_feedback_is_one_row_per_event(ledger, make_event):
    event = make_event(["motif-blue-circle"])

    ledger.upsert_feedback(event.id, FeedbackSignal.KEPT, 1.0)
    ledger.upsert_feedback(event.id, FeedbackSignal.EDITED, 0.5)
    ledger.upsert_feedback(event.id, FeedbackSignal.KEPT, 1.0, user_id="bob")

    assert ledger.count_feedback() == 2
    assert ledger.get_feedback(event.id).signal == FeedbackSignal.EDITED
    assert ledger.get_feedback(event.id, user_id="bob").signal == FeedbackSignal.KEPT


def test_upsert_unknown_event_raises(ledger):
    with pytest.raises(GenerationEventNotFoundError):
        ledger.upsert_feedback(12345, FeedbackSignal.KEPT, 1.0, user_id="alice")


def test_query_feedback_enriches_and_filters(ledger, seeded_objects, make_event):
    mine = make_event(["motif-blue-circle", "style-flat", "missing-object"], user_id="alice")
    theirs = make_event(["rule-stroke"], user_id="bob")
    ledger.upsert_feedback(mine.id, FeedbackSignal.KEPT, 1.0, user_id="alice")
    ledger.upsert_feedback(theirs.id, FeedbackSignal.EXPORTED, 2.0, user_id="bob")
    ledger.upsert_feedback(
        theirs.id, FeedbackSignal.KEPT, 1.0, user_id="carol",
        created_at=utcnow() - timedelta(days=40),
    )

    since = window_start(30)
    alice_rows = ledger.query_feedback(since, user_id="alice")
    all_rows = ledger.query_feedback(since)

    assert len(alice_rows) == 1
    assert [o.id for o in alice_rows[0].objects] == ["motif-blue-circle", "style-flat"]
    assert alice_rows[0].event.id == mine.id
    assert len(all_rows) == 2


def test_get_objects_by_ids_preserves_order(ledger, seeded_objects):
    objects = ledger.get_objects_by_ids(["rule-stroke", "nope", "motif-blue-circle", "rule-stroke"])
    assert [o.id for o in objects] == ["rule-stroke", "motif-blue-circle"]


def test_active_object_count_excludes_deprecated(ledger, knowledge_base, seeded_objects):
    assert ledger.count_active_objects() == 3

    knowledge_base.update_status("rule-stroke", KnowledgeObjectStatus.DEPRECATED)

    assert ledger.count_active_objects() == 2


def test_used_object_ids_and_quality(ledger, seeded_objects, make_event):
    make_event(["motif-blue-circle", "style-flat"], user_id="alice")
    make_event(["motif-blue-circle"], user_id="alice")
    make_event(["rule-stroke"], user_id="bob", days_ago=45)

    event_count, used = ledger.used_object_ids(window_start(30))

    assert event_count == 2
    assert used == {"motif-blue-circle", "style-flat"}
    assert ledger.average_object_quality(window_start(30), user_id="alice") == pytest.approx((0.8 + 0.9 + 0.8) / 3)
    assert ledger.average_object_quality(window_start(30), user_id="nobody") == 0.0


def test_object_feedback_stats(ledger, seeded_objects, make_event):
    for user in ("a", "b"):
        event = make_event(["motif-blue-circle", "motif-blue-circle"], user_id=user)
        ledger.upsert_feedback(event.id, FeedbackSignal.REPORTED, -3.0, user_id=user)
    event = make_event(["motif-blue-circle"], user_id="c")
    ledger.upsert_feedback(event.id, FeedbackSignal.KEPT, 1.0, user_id="c")

    stats = {s.object_id: s for s in ledger.object_feedback_stats(window_start(30))}

    assert stats["motif-blue-circle"].feedback_count == 3
    assert stats["motif-blue-circle"].average_weight == pytest.approx(-5.0 / 3)


def test_delete_older_than(ledger, make_event):
    old = make_event(["motif-blue-circle"], user_id="alice", days_ago=100)
    recent = make_event(["motif-blue-circle"], user_id="alice")
    ledger.upsert_feedback(old.id, FeedbackSignal.KEPT, 1.0, user_id="alice", created_at=utcnow() - timedelta(days=100))
    ledger.upsert_feedback(recent.id, FeedbackSignal.KEPT, 1.0, user_id="alice")

    cutoff = utcnow() - timedelta(days=90)
    assert ledger.delete_older_than(DBGenerationFeedback, cutoff) == 1
    assert ledger.delete_older_than(DBGenerationEvent, cutoff) == 1

    assert ledger.get_event(old.id) is None
    assert ledger.get_event(recent.id) is not None
    assert ledger.count_feedback() == 1


def test_signal_column_rejects_values_outside_closed_set(session_factory, make_event):
    event = make_event(["motif-blue-circle"])

    db = session_factory()
    try:
        db.add(DBGenerationFeedback(event_id=event.id, signal="liked", weight=1.0))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
    finally:
        db.close()
