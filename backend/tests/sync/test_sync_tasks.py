"""Tests for the Celery booking sync task.

The task is called directly (no broker); the engine factory is replaced
so no mailbox or database is touched.
"""

from mailsync.gmail_sync import SyncResult
from tasks import sync_tasks


class StubEngine:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def sync(self, user_id, sync_type="auto"):
        self.calls.append((user_id, sync_type))
        return self.result


def test_sync_task_returns_result_dict(monkeypatch):
    """Test the task runs the engine and returns SyncResult fields."""
    engine = StubEngine(SyncResult(sync_type="full", success=True, bookings_found=3))
    states = []
    monkeypatch.setattr(sync_tasks, "build_sync_engine", lambda: engine)
    monkeypatch.setattr(
        sync_tasks.sync_travel_bookings_task,
        "update_state",
        lambda **kwargs: states.append(kwargs),
    )

    result = sync_tasks.sync_travel_bookings_task(7, "full")

    assert engine.calls == [(7, "full")]
    assert result["success"] is True
    assert result["bookings_found"] == 3
    assert "completed_at" in result
    assert states[0]["state"] == "STARTED"
    assert states[0]["meta"]["user_id"] == 7
