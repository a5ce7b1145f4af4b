"""
Celery tasks for the preference-learning engine.

Each task is a thin wrapper that runs one engine operation from the sync
Celery worker context. Tasks log and re-raise on failure so Celery records
the error.
"""

import asyncio
import concurrent.futures
import logging
from typing import Optional

from .celery_app import celery_app
from .dependencies import preference_engine

# Initialize logger
logger = logging.getLogger(__name__)


def run_async(coro):
    """
    Safely run an async coroutine from sync Celery context.

    Handles the case where an event loop may or may not exist.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop, safe to use asyncio.run()
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor() as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result(timeout=600)


@celery_app.task(name="vectorkb.tasks.refresh_global_preferences")
def refresh_global_preferences(force: bool = False) -> dict:
    """Recompute the global snapshot when it is older than the refresh interval (or always, with force)."""
    try:
        if force:
            updated = run_async(preference_engine.update_global_preferences())
        else:
            updated = run_async(preference_engine.update_global_preferences_if_needed())
        return {"updated": updated}
    except Exception as e:
        logger.error(f"Global preference refresh failed: {e}", exc_info=True)
        raise


@celery_app.task(name="vectorkb.tasks.decay_user_preferences")
def decay_user_preferences() -> dict:
    try:
        decayed = run_async(preference_engine.decay_all_user_preferences())
        return {"users_decayed": decayed}
    except Exception as e:
        logger.error(f"Preference decay failed: {e}", exc_info=True)
        raise


@celery_app.task(name="vectorkb.tasks.deprecate_stale_objects")
def deprecate_stale_objects() -> dict:
    try:
        deprecated = run_async(preference_engine.deprecate_stale_objects())
        return {"deprecated": deprecated}
    except Exception as e:
        logger.error(f"Deprecation sweep failed: {e}", exc_info=True)
        raise


@celery_app.task(name="vectorkb.tasks.cleanup_old_data")
def cleanup_old_data(retention_days: Optional[int] = None) -> dict:
    try:
        result = run_async(preference_engine.cleanup_old_data(retention_days))
        return {"events": result.events, "feedback": result.feedback}
    except Exception as e:
        logger.error(f"Retention cleanup failed: {e}", exc_info=True)
        raise
