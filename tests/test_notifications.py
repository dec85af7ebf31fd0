"""Unit tests for notification dispatch and threshold checks.

WHAT: Queue draining, sink-failure isolation, overflow dropping,
      ROAS floor and budget ratio rules
WHY: Notifications are best-effort; they must never raise into a sync
"""

import asyncio

from sqlmodel import select

from adsync.models.sync_models import Notification, NotificationType
from adsync.sync.notifications import (
    DatabaseNotificationSink,
    NotificationDispatcher,
    check_budget,
    check_roas,
    notify_reconnect,
)


class _ListSink:
    def __init__(self, fail_for=()):
        self.delivered = []
        self.fail_for = set(fail_for)

    def notify(self, user_id, message, category):
        if user_id in self.fail_for:
            raise RuntimeError("sink down")
        self.delivered.append((user_id, message, category))


class TestDispatcher:
    async def test_stop_drains_queue(self):
        sink = _ListSink()
        dispatcher = NotificationDispatcher(sink, maxsize=10)
        dispatcher.start()

        dispatcher.submit("u1", "one", NotificationType.GENERAL)
        dispatcher.submit("u2", "two", NotificationType.GENERAL)
        await dispatcher.stop()

        assert [m for _, m, _ in sink.delivered] == ["one", "two"]
        assert not dispatcher.running

    async def test_sink_failure_is_swallowed(self):
        sink = _ListSink(fail_for={"bad"})
        dispatcher = NotificationDispatcher(sink, maxsize=10)
        dispatcher.start()

        dispatcher.submit("bad", "lost", NotificationType.SYNC_ERROR)
        dispatcher.submit("good", "kept", NotificationType.SYNC_ERROR)
        await dispatcher.stop()

        assert sink.delivered == [("good", "kept", NotificationType.SYNC_ERROR)]

    async def test_full_queue_drops_without_raising(self):
        dispatcher = NotificationDispatcher(_ListSink(), maxsize=1)

        dispatcher.submit("u1", "first", NotificationType.GENERAL)
        dispatcher.submit("u1", "second", NotificationType.GENERAL)

        assert dispatcher.dropped == 1

    async def test_database_sink_persists_rows(self, session_factory, session):
        dispatcher = NotificationDispatcher(DatabaseNotificationSink(session_factory), maxsize=10)
        dispatcher.start()

        notify_reconnect(dispatcher, "user-1", "123")
        await dispatcher.stop()

        row = session.exec(select(Notification)).one()
        assert row.user_id == "user-1"
        assert row.type == NotificationType.RECONNECT_REQUIRED
        assert "123" in row.message

    async def test_stop_without_start_is_noop(self):
        dispatcher = NotificationDispatcher(_ListSink(), maxsize=1)
        await asyncio.wait_for(dispatcher.stop(), timeout=1)


class TestThresholds:
    def test_roas_below_floor_alerts(self, dispatcher):
        assert check_roas(dispatcher, "u1", "Spring", 1.2, threshold=1.5)
        assert dispatcher.categories() == [NotificationType.ROAS_ALERT]
        assert "1.20" in dispatcher.sent[0][1]

    def test_zero_roas_is_not_measured(self, dispatcher):
        assert not check_roas(dispatcher, "u1", "Spring", 0.0, threshold=1.5)
        assert not check_roas(dispatcher, "u1", "Spring", 1.5, threshold=1.5)
        assert dispatcher.sent == []

    def test_spend_over_ratio_alerts(self, dispatcher):
        assert check_budget(dispatcher, "u1", "Spring", 61.0, 50.0, ratio=1.2)
        assert "22% over budget" in dispatcher.sent[0][1]

    def test_spend_within_ratio_or_no_budget(self, dispatcher):
        assert not check_budget(dispatcher, "u1", "Spring", 60.0, 50.0, ratio=1.2)
        assert not check_budget(dispatcher, "u1", "Spring", 500.0, None, ratio=1.2)
        assert not check_budget(dispatcher, "u1", "Spring", 0.0, 50.0, ratio=1.2)
        assert dispatcher.sent == []
