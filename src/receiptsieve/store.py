"""Persistence for purchases, the processed-email ledger, notifications and merchant defaults."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Protocol, runtime_checkable

from receiptsieve.models import (
    MerchantDefaults,
    Notification,
    ProcessedEmailRecord,
    ProcessedResult,
    PurchaseRecord,
)


@runtime_checkable
class PurchaseStore(Protocol):
    """What the pipeline needs from the persistence layer."""

    def transaction(self): ...

    def find_processed_email(self, user_id: str, email_id: str) -> ProcessedEmailRecord | None: ...

    def insert_processed_email(self, record: ProcessedEmailRecord) -> None: ...

    def find_purchase_by_order_number(self, user_id: str, order_number: str) -> PurchaseRecord | None: ...

    def lookup_merchant_defaults(self, name: str) -> MerchantDefaults | None: ...

    def insert_purchase(self, purchase: PurchaseRecord) -> int: ...

    def insert_notification(self, notification: Notification) -> int: ...

    def purchases_expiring_between(
        self, user_id: str, column: str, start: str, end: str
    ) -> list[PurchaseRecord]: ...

    def has_recent_notification(
        self, user_id: str, purchase_id: int, notification_type: str, since: datetime
    ) -> bool: ...

    def record_sync(self, user_id: str, purchases_created: int) -> None: ...


class SqliteStore:
    """PurchaseStore backed by the receiptsieve SQLite schema."""

    def __init__(self, db: sqlite3.Connection):
        self.db = db
        self._in_transaction = False

    @contextmanager
    def transaction(self) -> Iterator[SqliteStore]:
        """Group writes so they commit together or not at all."""
        if self._in_transaction:
            yield self
            return

        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self.db.rollback()
            raise
        else:
            self.db.commit()
        finally:
            self._in_transaction = False

    def _commit(self) -> None:
        if not self._in_transaction:
            self.db.commit()

    # --- processed email ledger ---

    def find_processed_email(self, user_id: str, email_id: str) -> ProcessedEmailRecord | None:
        row = self.db.execute(
            """SELECT user_id, email_id, result, purchase_id, error_message
               FROM processed_emails WHERE user_id = ? AND email_id = ?""",
            (user_id, email_id),
        ).fetchone()
        if not row:
            return None
        return ProcessedEmailRecord(
            user_id=row["user_id"],
            email_id=row["email_id"],
            result=ProcessedResult(row["result"]),
            purchase_id=row["purchase_id"],
            error_message=row["error_message"],
        )

    def insert_processed_email(self, record: ProcessedEmailRecord) -> None:
        """Write a ledger row. The (user_id, email_id) key is write-once."""
        self.db.execute(
            """INSERT INTO processed_emails (user_id, email_id, result, purchase_id, error_message)
               VALUES (?, ?, ?, ?, ?)""",
            (
                record.user_id,
                record.email_id,
                ProcessedResult(record.result).value,
                record.purchase_id,
                record.error_message,
            ),
        )
        self._commit()

    # --- purchases ---

    def find_purchase_by_order_number(self, user_id: str, order_number: str) -> PurchaseRecord | None:
        row = self.db.execute(
            "SELECT * FROM purchases WHERE user_id = ? AND order_number = ? ORDER BY id LIMIT 1",
            (user_id, order_number),
        ).fetchone()
        return _row_to_purchase(row) if row else None

    def insert_purchase(self, purchase: PurchaseRecord) -> int:
        cursor = self.db.execute(
            """INSERT INTO purchases
               (user_id, item_name, merchant, purchase_date, price, currency,
                warranty_months, warranty_expires_at, return_deadline, order_number,
                source, auto_detected, needs_review, email_metadata)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                purchase.user_id,
                purchase.item_name,
                purchase.merchant,
                purchase.purchase_date,
                purchase.price,
                purchase.currency,
                purchase.warranty_months,
                purchase.warranty_expires_at,
                purchase.return_deadline,
                purchase.order_number,
                purchase.source,
                purchase.auto_detected,
                purchase.needs_review,
                json.dumps(purchase.email_metadata),
            ),
        )
        self._commit()
        purchase.id = cursor.lastrowid
        return cursor.lastrowid

    def list_purchases(self, user_id: str) -> list[PurchaseRecord]:
        rows = self.db.execute(
            "SELECT * FROM purchases WHERE user_id = ? ORDER BY purchase_date DESC, id DESC",
            (user_id,),
        ).fetchall()
        return [_row_to_purchase(r) for r in rows]

    def purchases_expiring_between(
        self, user_id: str, column: str, start: str, end: str
    ) -> list[PurchaseRecord]:
        """Purchases whose warranty_expires_at or return_deadline falls in [start, end]."""
        if column not in ("warranty_expires_at", "return_deadline"):
            raise ValueError(f"Unsupported expiry column: {column!r}")
        rows = self.db.execute(
            f"""SELECT * FROM purchases
                WHERE user_id = ? AND {column} IS NOT NULL
                  AND {column} >= ? AND {column} <= ?
                ORDER BY {column}""",
            (user_id, start, end),
        ).fetchall()
        return [_row_to_purchase(r) for r in rows]

    # --- merchant defaults ---

    def lookup_merchant_defaults(self, name: str) -> MerchantDefaults | None:
        """Fuzzy, case-insensitive match in either direction; longest pattern wins."""
        if not name:
            return None
        row = self.db.execute(
            """SELECT name, default_warranty_months, default_return_days FROM merchants
               WHERE lower(?) LIKE '%' || lower(name) || '%'
                  OR lower(name) LIKE '%' || lower(?) || '%'
               ORDER BY length(name) DESC
               LIMIT 1""",
            (name, name),
        ).fetchone()
        if not row:
            return None
        return MerchantDefaults(
            merchant_name_pattern=row["name"],
            default_warranty_months=row["default_warranty_months"],
            default_return_days=row["default_return_days"],
        )

    def upsert_merchant_defaults(self, defaults: MerchantDefaults) -> None:
        self.db.execute(
            """INSERT INTO merchants (name, default_warranty_months, default_return_days)
               VALUES (?, ?, ?)
               ON CONFLICT(name) DO UPDATE SET
                   default_warranty_months = excluded.default_warranty_months,
                   default_return_days = excluded.default_return_days""",
            (
                defaults.merchant_name_pattern,
                defaults.default_warranty_months,
                defaults.default_return_days,
            ),
        )
        self._commit()

    def list_merchant_defaults(self) -> list[MerchantDefaults]:
        rows = self.db.execute(
            "SELECT name, default_warranty_months, default_return_days FROM merchants ORDER BY name"
        ).fetchall()
        return [
            MerchantDefaults(r["name"], r["default_warranty_months"], r["default_return_days"])
            for r in rows
        ]

    # --- notifications ---

    def insert_notification(self, notification: Notification) -> int:
        cursor = self.db.execute(
            """INSERT INTO notifications
               (user_id, type, title, message, purchase_id, action_url, expires_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                notification.user_id,
                notification.type,
                notification.title,
                notification.message,
                notification.purchase_id,
                notification.action_url,
                notification.expires_at,
            ),
        )
        self._commit()
        notification.id = cursor.lastrowid
        return cursor.lastrowid

    def has_recent_notification(
        self, user_id: str, purchase_id: int, notification_type: str, since: datetime
    ) -> bool:
        row = self.db.execute(
            """SELECT 1 FROM notifications
               WHERE user_id = ? AND purchase_id = ? AND type = ? AND created_at >= ?
               LIMIT 1""",
            (user_id, purchase_id, notification_type, _sqlite_timestamp(since)),
        ).fetchone()
        return row is not None

    # --- sync state ---

    def record_sync(self, user_id: str, purchases_created: int) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self.db.execute(
            """INSERT INTO sync_state (user_id, last_sync_at, total_purchases_synced)
               VALUES (?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   last_sync_at = excluded.last_sync_at,
                   total_purchases_synced = total_purchases_synced + excluded.total_purchases_synced""",
            (user_id, now, purchases_created),
        )
        self._commit()


def _sqlite_timestamp(dt: datetime) -> str:
    """Format like SQLite's CURRENT_TIMESTAMP (UTC, no offset)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def _row_to_purchase(row: sqlite3.Row) -> PurchaseRecord:
    metadata = {}
    if row["email_metadata"]:
        try:
            metadata = json.loads(row["email_metadata"])
        except (json.JSONDecodeError, TypeError):
            pass
    return PurchaseRecord(
        id=row["id"],
        user_id=row["user_id"],
        item_name=row["item_name"],
        merchant=row["merchant"],
        purchase_date=row["purchase_date"],
        price=row["price"],
        currency=row["currency"],
        warranty_months=row["warranty_months"] or 0,
        warranty_expires_at=row["warranty_expires_at"],
        return_deadline=row["return_deadline"],
        order_number=row["order_number"],
        source=row["source"],
        auto_detected=bool(row["auto_detected"]),
        needs_review=bool(row["needs_review"]),
        email_metadata=metadata,
    )
