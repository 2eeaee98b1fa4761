"""Dataclasses mirroring pipeline values and DB tables for type safety."""

from __future__ import annotations

import email.utils
from dataclasses import dataclass, field, replace
from enum import Enum


class Language(str, Enum):
    NORWEGIAN = "no"
    ENGLISH = "en"
    SWEDISH = "sv"
    DANISH = "da"
    GERMAN = "de"
    FRENCH = "fr"
    OTHER = "other"


class EmailType(str, Enum):
    ORDER_CONFIRMATION = "order_confirmation"
    PAYMENT_RECEIPT = "payment_receipt"
    SHIPPING_CONFIRMATION = "shipping_confirmation"
    DELIVERY_CONFIRMATION = "delivery_confirmation"
    REFUND = "refund"
    INVOICE = "invoice"
    THANK_YOU = "thank_you"
    UNKNOWN = "unknown"


class MerchantCategory(str, Enum):
    APPAREL = "apparel"
    BEAUTY = "beauty"
    ELECTRONICS = "electronics"
    GROCERIES = "groceries"
    HOME = "home"
    TRAVEL = "travel"
    SUBSCRIPTIONS = "subscriptions"
    ENTERTAINMENT = "entertainment"
    HEALTH = "health"
    OTHER = "other"


class OverallConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HintSource(str, Enum):
    # Declaration order is priority order.
    EXPLICIT = "explicit"
    SUBJECT_PATTERN = "subject_pattern"
    KNOWN_DOMAIN = "known_domain"
    SENDER_DOMAIN_DERIVED = "sender_domain_derived"

    @property
    def priority(self) -> int:
        return list(HintSource).index(self)


class ProcessedResult(str, Enum):
    NOT_ORDER = "not_order"
    IGNORED = "ignored"
    CREATED_PURCHASE = "created_purchase"
    FAILED = "failed"


@dataclass(frozen=True)
class RawEmailMessage:
    id: str
    subject: str = ""
    sender: str = ""  # "Display Name <address>"
    html_body: str | None = None
    text_body: str | None = None
    received_at: str | None = None
    has_attachment: bool = False
    attachment_type: str | None = None

    @property
    def sender_name(self) -> str:
        return email.utils.parseaddr(self.sender)[0].strip()

    @property
    def sender_address(self) -> str:
        return email.utils.parseaddr(self.sender)[1].strip().lower()

    @property
    def sender_domain(self) -> str:
        address = self.sender_address
        return address.split("@", 1)[1] if "@" in address else ""


@dataclass
class Table:
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)


@dataclass
class NormalizedEmailText:
    text: str = ""
    has_structured_data: bool = False
    tables: list[Table] = field(default_factory=list)


@dataclass(frozen=True)
class AmountCandidate:
    raw: str
    amount: float | None = None
    currency: str | None = None  # ISO 4217
    confidence: float = 0.0

    def with_confidence(self, confidence: float) -> AmountCandidate:
        return replace(self, confidence=confidence)


@dataclass(frozen=True)
class MerchantHint:
    name: str
    source: HintSource


@dataclass
class MerchantDefaults:
    merchant_name_pattern: str
    default_warranty_months: int | None = None
    default_return_days: int | None = None


@dataclass
class ProcessedEmailRecord:
    user_id: str
    email_id: str
    result: ProcessedResult
    purchase_id: int | None = None
    error_message: str | None = None


@dataclass
class PurchaseRecord:
    user_id: str
    item_name: str
    merchant: str
    purchase_date: str  # YYYY-MM-DD
    price: float | None = None
    currency: str | None = None
    warranty_months: int = 0
    warranty_expires_at: str | None = None
    return_deadline: str | None = None
    order_number: str | None = None
    source: str = "gmail_auto"
    auto_detected: bool = True
    needs_review: bool = False
    email_metadata: dict = field(default_factory=dict)
    id: int | None = None


@dataclass
class Notification:
    user_id: str
    type: str  # new_purchase | warranty_expiring | return_deadline
    title: str
    message: str
    purchase_id: int | None = None
    action_url: str | None = None
    expires_at: str | None = None
    id: int | None = None


@dataclass
class ExtractionContext:
    """Everything stages 1-5 derive from one message before the LLM call."""

    message: RawEmailMessage
    normalized: NormalizedEmailText
    content: str
    language: Language
    amounts: list[AmountCandidate] = field(default_factory=list)
    possible_total: AmountCandidate | None = None
    merchant_hint: MerchantHint | None = None


@dataclass
class MessageOutcome:
    email_id: str
    result: ProcessedResult | None = None  # None when skipped
    purchase_ids: list[int] = field(default_factory=list)
    error: str | None = None
    retries: int = 0

    @property
    def ok(self) -> bool:
        return self.result is not None and self.result != ProcessedResult.FAILED


@dataclass
class BatchReport:
    total: int = 0
    synced: int = 0  # purchases created
    ignored: int = 0
    not_order: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    outcomes: list[MessageOutcome] = field(default_factory=list)

    def add(self, outcome: MessageOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.result is None:
            self.skipped += 1
        elif outcome.result == ProcessedResult.CREATED_PURCHASE:
            self.synced += len(outcome.purchase_ids)
        elif outcome.result == ProcessedResult.IGNORED:
            self.ignored += 1
        elif outcome.result == ProcessedResult.NOT_ORDER:
            self.not_order += 1
        elif outcome.result == ProcessedResult.FAILED:
            self.failed += 1
        if outcome.error:
            self.errors.append(f"{outcome.email_id}: {outcome.error}")

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "synced": self.synced,
            "ignored": self.ignored,
            "not_order": self.not_order,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }
