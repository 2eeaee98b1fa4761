"""Tests for warranty and return-deadline reminders."""

from contextlib import contextmanager
from datetime import date

from receiptsieve.models import PurchaseRecord
from receiptsieve.stages.expiry import check_expiry_notifications

TODAY = date(2025, 6, 1)


def _purchase(store, user_id="user-1", **kwargs):
    fields = dict(
        user_id=user_id,
        item_name="Headphones",
        merchant="Elkjøp",
        purchase_date="2024-06-20",
    )
    fields.update(kwargs)
    purchase = PurchaseRecord(**fields)
    store.insert_purchase(purchase)
    return purchase


def _notifications(db):
    return db.execute("SELECT * FROM notifications ORDER BY id").fetchall()


def test_reminders_inside_windows(db, store):
    purchase = _purchase(store, warranty_expires_at="2025-06-20", return_deadline="2025-06-05")

    created = check_expiry_notifications(store, "user-1", today=TODAY)

    assert created == 2
    rows = {row["type"]: row for row in _notifications(db)}
    warranty = rows["warranty_expiring"]
    assert warranty["title"] == "Warranty expiring soon"
    assert warranty["message"] == 'Warranty for "Headphones" from Elkjøp expires in 19 days'
    assert warranty["purchase_id"] == purchase.id
    assert warranty["action_url"] == f"/purchases/{purchase.id}"
    assert warranty["expires_at"] == "2025-06-20"
    assert rows["return_deadline"]["message"] == 'Return deadline for "Headphones" from Elkjøp is in 4 days'


def test_outside_windows_ignored(db, store):
    _purchase(store, warranty_expires_at="2025-08-01", return_deadline="2025-06-20")
    _purchase(store, warranty_expires_at="2025-05-01", return_deadline="2025-05-20")

    assert check_expiry_notifications(store, "user-1", today=TODAY) == 0
    assert _notifications(db) == []


def test_window_edges_inclusive(store):
    _purchase(store, warranty_expires_at="2025-06-01")
    _purchase(store, warranty_expires_at="2025-07-01")
    assert check_expiry_notifications(store, "user-1", today=TODAY) == 2


def test_not_repeated_within_a_day(store):
    _purchase(store, warranty_expires_at="2025-06-20")

    assert check_expiry_notifications(store, "user-1", today=TODAY) == 1
    assert check_expiry_notifications(store, "user-1", today=TODAY) == 0


def test_other_users_untouched(store):
    _purchase(store, user_id="user-2", warranty_expires_at="2025-06-20")
    assert check_expiry_notifications(store, "user-1", today=TODAY) == 0


def test_custom_and_disabled_windows(store):
    _purchase(store, warranty_expires_at="2025-08-01", return_deadline="2025-06-05")

    created = check_expiry_notifications(store, "user-1", warranty_days=90, return_days=0, today=TODAY)

    assert created == 1


def test_merchantless_message(db, store):
    _purchase(store, merchant=None, return_deadline="2025-06-02")
    check_expiry_notifications(store, "user-1", today=TODAY)
    assert _notifications(db)[0]["message"] == 'Return deadline for "Headphones" is in 1 days'


class _MemoryStore:
    """Just enough of PurchaseStore for the expiry check."""

    def __init__(self, purchases):
        self.purchases = purchases
        self.notifications = []

    @contextmanager
    def transaction(self):
        yield self

    def purchases_expiring_between(self, user_id, column, start, end):
        return [p for p in self.purchases if p.user_id == user_id and start <= getattr(p, column) <= end]

    def has_recent_notification(self, user_id, purchase_id, notification_type, since):
        return False

    def insert_notification(self, notification):
        self.notifications.append(notification)
        return len(self.notifications)


def test_any_purchase_store_can_back_the_check():
    purchase = PurchaseRecord(
        user_id="user-1", item_name="Kettle", merchant=None, purchase_date="2025-05-01",
        warranty_expires_at="2026-05-01", return_deadline="2025-06-03", id=7,
    )
    store = _MemoryStore([purchase])

    assert check_expiry_notifications(store, "user-1", today=TODAY) == 1
    assert store.notifications[0].type == "return_deadline"
    assert store.notifications[0].action_url == "/purchases/7"
