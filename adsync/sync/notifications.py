"""AdSync - Sync Notifications.

Alerts raised by the sync (ROAS below floor, spend over budget, sync
failures, expired credentials) go through a bounded queue drained by a
background task. A slow or failing sink never adds latency or errors to
reconciliation; notifications are best-effort and may be dropped.
"""

import asyncio
from typing import Callable, Optional, Protocol

from sqlmodel import Session

from adsync.config import settings
from adsync.models.sync_models import Notification, NotificationType
from adsync.core.logging import get_logger

logger = get_logger("sync.notifications")


class NotificationSink(Protocol):
    def notify(self, user_id: str, message: str, category: NotificationType) -> None: ...


class DatabaseNotificationSink:
    """Appends rows to the notifications table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def notify(self, user_id: str, message: str, category: NotificationType) -> None:
        with self.session_factory() as session:
            session.add(Notification(user_id=user_id, message=message, type=category))
            session.commit()


class NotificationDispatcher:
    """Fire-and-forget front for a NotificationSink."""

    def __init__(self, sink: NotificationSink, maxsize: int | None = None):
        self.sink = sink
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=maxsize or settings.notification_queue_size
        )
        self._worker: Optional[asyncio.Task] = None
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._drain(), name="notification-dispatcher")

    async def stop(self) -> None:
        """Deliver what is queued, then stop the worker."""
        if not self.running:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    def submit(self, user_id: str, message: str, category: NotificationType) -> None:
        """Queue a notification. Never raises."""
        try:
            self._queue.put_nowait((user_id, message, category))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Notification queue full, dropped {category.value} for user {user_id}")

    async def _drain(self) -> None:
        while True:
            user_id, message, category = await self._queue.get()
            try:
                # Sinks are synchronous (DB writes); keep them off the event loop
                await asyncio.to_thread(self.sink.notify, user_id, message, category)
            except Exception as e:
                logger.error(f"Notification sink failed for user {user_id}: {e}")
            finally:
                self._queue.task_done()


# ─────────────────────────────────────────────
# THRESHOLD CHECKS
# ─────────────────────────────────────────────


def check_roas(
    dispatcher: NotificationDispatcher,
    user_id: str,
    campaign_name: str,
    roas: float,
    threshold: float | None = None,
) -> bool:
    """Alert when a measured (non-zero) ROAS falls below the floor."""
    threshold = settings.roas_alert_threshold if threshold is None else threshold
    if 0 < roas < threshold:
        dispatcher.submit(
            user_id,
            f"ROAS for campaign {campaign_name} dropped to {roas:.2f} (threshold: {threshold})",
            NotificationType.ROAS_ALERT,
        )
        return True
    return False


def check_budget(
    dispatcher: NotificationDispatcher,
    user_id: str,
    campaign_name: str,
    spend: float,
    daily_budget: Optional[float],
    ratio: float | None = None,
) -> bool:
    """Alert when spend exceeds `ratio` x the ad set's daily budget."""
    ratio = settings.budget_alert_ratio if ratio is None else ratio
    if not daily_budget or spend <= 0:
        return False
    if spend > daily_budget * ratio:
        over_pct = (spend / daily_budget - 1) * 100
        dispatcher.submit(
            user_id,
            f"Daily spend for campaign {campaign_name} is {over_pct:.0f}% over budget "
            f"({spend:.2f} / {daily_budget:.2f})",
            NotificationType.BUDGET_ALERT,
        )
        return True
    return False


def notify_sync_error(dispatcher: NotificationDispatcher, user_id: str, detail: str) -> None:
    dispatcher.submit(user_id, f"Meta sync failed: {detail}", NotificationType.SYNC_ERROR)


def notify_reconnect(dispatcher: NotificationDispatcher, user_id: str, ad_account_id: str) -> None:
    dispatcher.submit(
        user_id,
        f"Your Meta access for ad account {ad_account_id} has expired. Please reconnect.",
        NotificationType.RECONNECT_REQUIRED,
    )
