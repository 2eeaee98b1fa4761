"""Per-user purchase sync: mailbox -> extraction -> purchases, one message at a time."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from receiptsieve.gmail.client import Mailbox
from receiptsieve.models import (
    BatchReport,
    MessageOutcome,
    ProcessedEmailRecord,
    ProcessedResult,
    RawEmailMessage,
)
from receiptsieve.stages.extract import ExtractionOrchestrator, prepare_context
from receiptsieve.stages.materialize import PurchaseMaterializer
from receiptsieve.stages.merchant import MerchantRecognizer
from receiptsieve.store import PurchaseStore

logger = logging.getLogger(__name__)


class PurchaseSyncEngine:
    """Runs the extraction pipeline over a batch of messages for one user.

    A failing message is recorded as failed in the ledger and never stops
    the batch; the caller reads the BatchReport instead of catching.
    """

    def __init__(
        self,
        orchestrator: ExtractionOrchestrator,
        store: PurchaseStore,
        materializer: PurchaseMaterializer | None = None,
        max_content_chars: int = 15000,
        recognizers: list[MerchantRecognizer] | None = None,
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.materializer = materializer or PurchaseMaterializer(store)
        self.max_content_chars = max_content_chars
        self.recognizers = recognizers

    def sync_messages(
        self,
        user_id: str,
        messages: Iterable[RawEmailMessage],
        progress_callback: Callable[[int, MessageOutcome], None] | None = None,
    ) -> BatchReport:
        report = BatchReport()
        for i, message in enumerate(messages, 1):
            report.total += 1
            outcome = self.process_message(user_id, message)
            report.add(outcome)
            if progress_callback:
                progress_callback(i, outcome)
        return report

    def process_message(self, user_id: str, message: RawEmailMessage) -> MessageOutcome:
        if self.store.find_processed_email(user_id, message.id) is not None:
            return MessageOutcome(email_id=message.id)

        try:
            context = prepare_context(
                message, max_content_chars=self.max_content_chars, recognizers=self.recognizers
            )
            extraction = self.orchestrator.extract(context)
        except Exception as e:
            logger.exception("Extracting %s failed", message.id)
            return self._record_failure(user_id, message.id, f"{type(e).__name__}: {e}", 0)

        if not extraction.success:
            return self._record_failure(
                user_id, message.id, extraction.error or "extraction failed", extraction.retries
            )

        try:
            return self.materializer.materialize(user_id, message, extraction.data, retries=extraction.retries)
        except Exception as e:
            logger.exception("Materializing %s failed", message.id)
            return self._record_failure(user_id, message.id, f"{type(e).__name__}: {e}", extraction.retries)

    def _record_failure(self, user_id: str, email_id: str, error: str, retries: int) -> MessageOutcome:
        try:
            self.store.insert_processed_email(
                ProcessedEmailRecord(user_id, email_id, ProcessedResult.FAILED, error_message=error)
            )
        except Exception as e:
            logger.error("Could not record failure for %s: %s", email_id, e)
            error = f"{error} (failure not recorded: {e})"
        return MessageOutcome(email_id=email_id, result=ProcessedResult.FAILED, error=error, retries=retries)

    def sync_mailbox(
        self,
        user_id: str,
        mailbox: Mailbox,
        query: str,
        max_results: int = 50,
        progress_callback: Callable[[int, MessageOutcome], None] | None = None,
    ) -> BatchReport:
        """List, fetch and process matching messages, then record the sync."""
        ids = mailbox.list_message_ids(query, max_results)
        logger.info("Mailbox returned %d candidate message(s) for %s", len(ids), user_id)

        report = BatchReport()
        for i, message_id in enumerate(ids, 1):
            report.total += 1
            if self.store.find_processed_email(user_id, message_id) is not None:
                outcome = MessageOutcome(email_id=message_id)
            else:
                try:
                    message = mailbox.fetch_message(message_id)
                except Exception as e:
                    logger.warning("Fetching %s failed: %s", message_id, e)
                    outcome = self._record_failure(user_id, message_id, f"fetch failed: {e}", 0)
                else:
                    outcome = self.process_message(user_id, message)
            report.add(outcome)
            if progress_callback:
                progress_callback(i, outcome)

        self.store.record_sync(user_id, report.synced)
        return report
