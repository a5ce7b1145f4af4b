"""
Tests for Celery task wrappers.

Tasks are called directly (synchronously); the engine is patched.
"""

from unittest.mock import AsyncMock, patch

import pytest

from vectorkb import tasks
from vectorkb.models import CleanupResult


@pytest.fixture
def mock_engine():
    with patch.object(tasks, "preference_engine") as engine:
        yield engine


def test_run_async_without_running_loop():
    async def answer():
        return 42

    assert tasks.run_async(answer()) == 42


def test_refresh_global_preferences(mock_engine):
    mock_engine.update_global_preferences_if_needed = AsyncMock(return_value=True)
    mock_engine.update_global_preferences = AsyncMock(return_value=True)

    assert tasks.refresh_global_preferences() == {"updated": True}
    mock_engine.update_global_preferences_if_needed.assert_awaited_once()

    tasks.refresh_global_preferences(force=True)
    mock_engine.update_global_preferences.assert_awaited_once()


def test_decay_and_deprecate(mock_engine):
    mock_engine.decay_all_user_preferences = AsyncMock(return_value=4)
    mock_engine.deprecate_stale_objects = AsyncMock(return_value=2)

    assert tasks.decay_user_preferences() == {"users_decayed": 4}
    assert tasks.deprecate_stale_objects() == {"deprecated": 2}


def test_cleanup_passes_retention(mock_engine):
    mock_engine.cleanup_old_data = AsyncMock(return_value=CleanupResult(events=3, feedback=7))

    assert tasks.cleanup_old_data(30) == {"events": 3, "feedback": 7}
    mock_engine.cleanup_old_data.assert_awaited_once_with(30)


def test_task_failure_is_reraised(mock_engine):
    mock_engine.deprecate_stale_objects = AsyncMock(side_effect=RuntimeError("db down"))

    with pytest.raises(RuntimeError):
        tasks.deprecate_stale_objects()


def test_beat_schedule_registers_learning_jobs():
    from vectorkb.celery_app import celery_app

    scheduled = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}

    assert scheduled == {
        "vectorkb.tasks.refresh_global_preferences",
        "vectorkb.tasks.decay_user_preferences",
        "vectorkb.tasks.deprecate_stale_objects",
        "vectorkb.tasks.cleanup_old_data",
    }
