"""Celery tasks for travel booking sync."""

import asyncio
from datetime import datetime

from celery.exceptions import SoftTimeLimitExceeded

from celery_app import celery_app
from mailsync.gmail_sync import build_sync_engine
from mailsync.logging_config import get_logger

logger = get_logger(__name__)


@celery_app.task(bind=True, time_limit=1800, soft_time_limit=1740)
def sync_travel_bookings_task(self, user_id: int, sync_type: str = "auto"):
    """
    Celery task to sync travel bookings from a user's mailbox in the background.

    Args:
        user_id: Owner of the mail connection
        sync_type: 'full', 'incremental' or 'auto' (incremental when a
            previous sync exists, full otherwise)

    Returns:
        dict: SyncResult fields plus completed_at
    """
    self.update_state(
        state="STARTED",
        meta={"status": "syncing", "user_id": user_id, "sync_type": sync_type},
    )

    engine = build_sync_engine()

    try:
        result = asyncio.run(engine.sync(user_id, sync_type))
    except SoftTimeLimitExceeded:
        logger.warning("Sync hit the soft time limit", extra={"user_id": user_id})
        return {
            "success": False,
            "sync_type": sync_type,
            "errors": ["Sync timed out"],
            "completed_at": datetime.now().isoformat(),
        }

    return {
        **result.to_dict(),
        "completed_at": datetime.now().isoformat(),
    }
