"""Warranty and return-deadline reminders for stored purchases."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from receiptsieve.models import Notification, PurchaseRecord
from receiptsieve.store import PurchaseStore

logger = logging.getLogger(__name__)

# notification type -> (purchase column, title, message template)
_REMINDERS = {
    "warranty_expiring": ("warranty_expires_at", "Warranty expiring soon", "Warranty for {item}{merchant} expires in {days} days"),
    "return_deadline": ("return_deadline", "Return deadline approaching", "Return deadline for {item}{merchant} is in {days} days"),
}


def _reminder(user_id: str, kind: str, purchase: PurchaseRecord, today: date) -> Notification:
    column, title, template = _REMINDERS[kind]
    deadline = getattr(purchase, column)
    days_left = (date.fromisoformat(deadline) - today).days
    return Notification(
        user_id=user_id,
        type=kind,
        title=title,
        message=template.format(
            item=f'"{purchase.item_name}"',
            merchant=f" from {purchase.merchant}" if purchase.merchant else "",
            days=days_left,
        ),
        purchase_id=purchase.id,
        action_url=f"/purchases/{purchase.id}",
        expires_at=deadline,
    )


def check_expiry_notifications(
    store: PurchaseStore,
    user_id: str,
    warranty_days: int = 30,
    return_days: int = 7,
    today: date | None = None,
) -> int:
    """Create reminders for deadlines inside the warning windows.

    A purchase already reminded about in the past 24 hours is skipped.
    Returns the number of notifications created.
    """
    today = today or date.today()
    recent = datetime.now(timezone.utc) - timedelta(hours=24)
    windows = {"warranty_expiring": warranty_days, "return_deadline": return_days}

    pending: list[Notification] = []
    for kind, days in windows.items():
        if days <= 0:
            continue
        column = _REMINDERS[kind][0]
        horizon = today + timedelta(days=days)
        for purchase in store.purchases_expiring_between(user_id, column, today.isoformat(), horizon.isoformat()):
            if store.has_recent_notification(user_id, purchase.id, kind, recent):
                continue
            pending.append(_reminder(user_id, kind, purchase, today))

    with store.transaction():
        for notification in pending:
            store.insert_notification(notification)

    if pending:
        logger.info("Created %d expiry notification(s) for user %s", len(pending), user_id)
    return len(pending)
