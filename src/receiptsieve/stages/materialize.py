"""Stage 8: turn a validated extraction into purchases, notifications and a ledger row."""

from __future__ import annotations

import logging
from datetime import date, timedelta

from dateutil import parser as date_parser

from receiptsieve.models import (
    MessageOutcome,
    Notification,
    OverallConfidence,
    ProcessedEmailRecord,
    ProcessedResult,
    PurchaseRecord,
    RawEmailMessage,
)
from receiptsieve.stages.validate import OrderExtraction, is_purchase_email
from receiptsieve.store import PurchaseStore

logger = logging.getLogger(__name__)


def resolve_purchase_date(extraction: OrderExtraction, message: RawEmailMessage, today: date) -> date:
    """Extracted date, else the message's received date, else today."""
    if extraction.purchase_date:
        try:
            return date.fromisoformat(extraction.purchase_date)
        except ValueError:
            logger.warning("Unusable purchase_date %r", extraction.purchase_date)
    if message.received_at:
        try:
            return date_parser.parse(message.received_at).date()
        except (ValueError, OverflowError):
            logger.warning("Unparseable received_at %r on %s", message.received_at, message.id)
    return today


def item_names(extraction: OrderExtraction) -> list[str]:
    if extraction.items_list:
        return list(extraction.items_list)
    if extraction.item_name:
        return [extraction.item_name]
    return [f"Order from {extraction.merchant_name}"]


class PurchaseMaterializer:
    """Persist an accepted extraction exactly once per (user, email)."""

    def __init__(
        self,
        store: PurchaseStore,
        default_warranty_months: int = 12,
        default_return_days: int = 30,
        days_per_month: int = 30,
        today: date | None = None,
    ):
        self.store = store
        self.default_warranty_months = default_warranty_months
        self.default_return_days = default_return_days
        self.days_per_month = days_per_month
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    def materialize(
        self, user_id: str, message: RawEmailMessage, extraction: OrderExtraction, retries: int = 0
    ) -> MessageOutcome:
        """Write the purchases and ledger row for one message.

        Persistence errors propagate after the transaction rolls back.
        """
        existing = self.store.find_processed_email(user_id, message.id)
        if existing is not None:
            return MessageOutcome(
                email_id=message.id,
                result=ProcessedResult.IGNORED,
                purchase_ids=[existing.purchase_id] if existing.purchase_id else [],
                retries=retries,
            )

        with self.store.transaction():
            if not is_purchase_email(extraction):
                self.store.insert_processed_email(
                    ProcessedEmailRecord(user_id, message.id, ProcessedResult.NOT_ORDER)
                )
                return MessageOutcome(email_id=message.id, result=ProcessedResult.NOT_ORDER, retries=retries)

            if extraction.order_number:
                duplicate = self.store.find_purchase_by_order_number(user_id, extraction.order_number)
                if duplicate is not None:
                    logger.info(
                        "Order %s already recorded as purchase %s", extraction.order_number, duplicate.id
                    )
                    self.store.insert_processed_email(
                        ProcessedEmailRecord(
                            user_id, message.id, ProcessedResult.IGNORED, purchase_id=duplicate.id
                        )
                    )
                    return MessageOutcome(
                        email_id=message.id,
                        result=ProcessedResult.IGNORED,
                        purchase_ids=[duplicate.id],
                        retries=retries,
                    )

            purchases = self.build_purchases(user_id, message, extraction, retries)
            ids = []
            for purchase in purchases:
                purchase_id = self.store.insert_purchase(purchase)
                ids.append(purchase_id)
                self.store.insert_notification(
                    Notification(
                        user_id=user_id,
                        type="new_purchase",
                        title="New purchase detected!",
                        message=f'We found an order for "{purchase.item_name}" from {purchase.merchant}',
                        purchase_id=purchase_id,
                        action_url=f"/purchases/{purchase_id}",
                    )
                )

            self.store.insert_processed_email(
                ProcessedEmailRecord(
                    user_id, message.id, ProcessedResult.CREATED_PURCHASE, purchase_id=ids[0]
                )
            )

        logger.info("Created %d purchase(s) from %s (%s)", len(ids), message.id, extraction.merchant_name)
        return MessageOutcome(
            email_id=message.id, result=ProcessedResult.CREATED_PURCHASE, purchase_ids=ids, retries=retries
        )

    def build_purchases(
        self, user_id: str, message: RawEmailMessage, extraction: OrderExtraction, retries: int = 0
    ) -> list[PurchaseRecord]:
        defaults = self.store.lookup_merchant_defaults(extraction.merchant_name)

        warranty_months = extraction.warranty_months
        if warranty_months is None and defaults and defaults.default_warranty_months is not None:
            warranty_months = defaults.default_warranty_months
        if warranty_months is None:
            warranty_months = self.default_warranty_months

        return_days = self.default_return_days
        if defaults and defaults.default_return_days is not None:
            return_days = defaults.default_return_days

        purchase_date = resolve_purchase_date(extraction, message, self.today)

        warranty_expires_at = None
        if warranty_months > 0:
            warranty_expires_at = purchase_date + timedelta(days=warranty_months * self.days_per_month)

        return_deadline = None
        if extraction.return_deadline_days is not None:
            return_deadline = purchase_date + timedelta(days=extraction.return_deadline_days)
        elif return_days > 0:
            return_deadline = purchase_date + timedelta(days=return_days)

        names = item_names(extraction)
        metadata = {
            "subject": message.subject,
            "sender": message.sender,
            "received_at": message.received_at,
            "gmail_message_id": message.id,
            "confidence": extraction.confidence.model_dump(mode="json"),
            "language": extraction.language.value,
            "email_type": extraction.email_type.value,
            "merchant_category": extraction.merchant_category.value if extraction.merchant_category else None,
            "items": names,
            "extraction_notes": extraction.extraction_notes,
            "retries": retries,
        }
        needs_review = extraction.confidence.overall != OverallConfidence.HIGH or extraction.needs_review

        return [
            PurchaseRecord(
                user_id=user_id,
                item_name=name,
                merchant=extraction.merchant_name,
                purchase_date=purchase_date.isoformat(),
                price=extraction.total_amount if len(names) == 1 else None,
                currency=extraction.currency,
                warranty_months=warranty_months,
                warranty_expires_at=warranty_expires_at.isoformat() if warranty_expires_at else None,
                return_deadline=return_deadline.isoformat() if return_deadline else None,
                order_number=extraction.order_number,
                needs_review=needs_review,
                email_metadata=dict(metadata),
            )
            for name in names
        ]
