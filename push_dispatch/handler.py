"""Dispatch handler — maps "notification created" events onto the dispatcher.

Event delivery is at-least-once, so the same notification may arrive more than
once, possibly in another process. Before sending, the handler claims the
record in the store (NEW or FAILED -> DISPATCHING); only the claimant
dispatches. Afterwards the claim is settled to SENT or FAILED with a
compare-and-set against DISPATCHING. SENT is final; a FAILED record is
claimed and dispatched again on redelivery. A claim abandoned by a crashed
worker becomes claimable once it is older than ``lock_ttl_s``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

import structlog

from push_dispatch.dispatcher import Dispatcher, DispatchResult
from push_dispatch.records import NotificationRecord, NotificationStatus

logger = structlog.get_logger(__name__)

DEFAULT_LOCK_TTL_S = 120.0


class NotificationStore(Protocol):
    async def get_notification(self, user_id: str, notification_id: str) -> NotificationRecord | None: ...

    async def claim_notification(self, user_id: str, notification_id: str, now_iso: str, lock_cutoff: str) -> bool: ...

    async def mark_status(
        self,
        user_id: str,
        notification_id: str,
        status: NotificationStatus,
        expected: NotificationStatus | None = None,
    ) -> bool: ...


class NotificationPushHandler:
    def __init__(
        self,
        store: NotificationStore,
        dispatcher: Dispatcher,
        *,
        lock_ttl_s: float = DEFAULT_LOCK_TTL_S,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self.lock_ttl_s = lock_ttl_s

    async def on_notification_created(self, user_id: str, notification_id: str) -> DispatchResult | None:
        record = await self._store.get_notification(user_id, notification_id)
        if record is None:
            logger.error("notification not found; skipping", user_id=user_id, notification_id=notification_id)
            return None
        if record.status is NotificationStatus.SENT:
            logger.debug("notification already sent; dropping duplicate", user_id=user_id, notification_id=notification_id)
            return None

        now = datetime.now(timezone.utc)
        lock_cutoff = (now - timedelta(seconds=self.lock_ttl_s)).isoformat()
        claimed = await self._store.claim_notification(user_id, notification_id, now.isoformat(), lock_cutoff)
        if not claimed:
            logger.debug(
                "notification claimed elsewhere or already sent; dropping duplicate",
                user_id=user_id,
                notification_id=notification_id,
            )
            return None
        if record.status is NotificationStatus.FAILED:
            logger.info("retrying failed notification", user_id=user_id, notification_id=notification_id)

        try:
            result = await self._dispatcher.dispatch(user_id, record)
        except Exception:
            await self._settle(user_id, notification_id, NotificationStatus.FAILED)
            raise
        await self._settle(
            user_id,
            notification_id,
            NotificationStatus.FAILED if result.failed else NotificationStatus.SENT,
        )
        return result

    async def _settle(self, user_id: str, notification_id: str, status: NotificationStatus) -> None:
        try:
            updated = await self._store.mark_status(
                user_id, notification_id, status, expected=NotificationStatus.DISPATCHING
            )
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception(
                "dispatch finished but status update failed",
                user_id=user_id,
                notification_id=notification_id,
                status=status.value,
            )
            return
        if not updated:
            logger.warning("notification claim lost during dispatch", user_id=user_id, notification_id=notification_id)
