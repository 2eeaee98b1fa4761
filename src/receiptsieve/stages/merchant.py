"""Stage 5: merchant name hint from subject, sender domain and known-merchant map."""

from __future__ import annotations

import logging
import re
from typing import Protocol

import yaml

from receiptsieve.models import HintSource, MerchantHint
from receiptsieve.stages.noise import EMAIL_PROVIDER_NAMES, is_consumer_email_domain

logger = logging.getLogger(__name__)

KNOWN_MERCHANT_DOMAINS: dict[str, str] = {
    "amazon": "Amazon",
    "anthropic.com": "Anthropic",
    "apple.com": "Apple",
    "boozt.com": "Boozt",
    "cdon": "CDON",
    "clasohlson": "Clas Ohlson",
    "elkjop": "Elkjøp",
    "elgiganten": "Elgiganten",
    "hm.com": "H&M",
    "hm.no": "H&M",
    "ikea": "IKEA",
    "jula": "Jula",
    "komplett": "Komplett",
    "netflix": "Netflix",
    "netonnet": "NetOnNet",
    "nike.com": "Nike",
    "power.no": "Power",
    "spotify": "Spotify",
    "xxl": "XXL",
    "zalando": "Zalando",
    "zara": "Zara",
}

# Transactional mail platforms that send on behalf of merchants.
BULK_SENDER_LABELS = (
    "sendgrid", "mailgun", "mailchimp", "mcsv", "amazonses", "klaviyo",
    "shopifyemail", "postmarkapp", "sparkpostmail", "mandrillapp", "stripe",
    "paypal", "rsgsv", "exacttarget",
)

_SECOND_LEVEL_SUFFIXES = ("co.uk", "org.uk", "com.au", "co.nz", "co.jp", "com.br", "co.za")
_SUBDOMAIN_NOISE = ("mail", "email", "e", "em", "news", "info", "noreply", "no-reply", "order", "orders", "shop", "store", "www")

_REPLY_PREFIX = re.compile(r"^(?:(?:re|fwd?|fw|sv|vs|aw|wg)\s*:\s*)+", re.IGNORECASE)

# Tried in order; the first one yielding an acceptable name wins.
SUBJECT_PATTERNS: list[re.Pattern] = [
    re.compile(r"(?:receipt|invoice|order|purchase|payment)\s+from\s+(?P<m>.+)", re.IGNORECASE),
    re.compile(r"thank(?:s| you)\s+for\s+(?:shopping|ordering|your order|your purchase)\s+(?:at|with|from)\s+(?P<m>.+)", re.IGNORECASE),
    re.compile(r"takk\s+for\s+(?:kjøpet|bestillingen|handelen)\s+(?:hos|fra)\s+(?P<m>.+)", re.IGNORECASE),
    re.compile(r"tack\s+för\s+(?:ditt köp|din beställning)\s+(?:hos|från)\s+(?P<m>.+)", re.IGNORECASE),
    re.compile(r"tak\s+for\s+(?:dit køb|din bestilling)\s+(?:hos|fra)\s+(?P<m>.+)", re.IGNORECASE),
    re.compile(r"(?:kvittering|ordrebekreftelse|bestillingsbekreftelse)\s+fra\s+(?P<m>.+)", re.IGNORECASE),
    re.compile(
        r"^(?P<m>.+?)\s*[-–—|:]\s*(?:order|ordre|bestilling)\s*(?:confirmation|bekreftelse|bekräftelse)",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:order confirmation|ordrebekreftelse|receipt|kvittering)\s*[-–—|:]\s*(?P<m>.+)",
        re.IGNORECASE,
    ),
    re.compile(r"^your\s+(?P<m>.+?)\s+(?:order|receipt|purchase)\b", re.IGNORECASE),
]

# "... from Amazon.com has shipped": the status after the name is not part of it.
_TRAILING_STATUS = re.compile(
    r"\s+(?:(?:is|has|have|was|were|will|are|er|har|ble|blev|är|var)\s|(?:shipped|confirmed|delivered|sendt|levert|skickad)\b).*$",
    re.IGNORECASE,
)

_GENERIC_WORDS = {
    "your", "my", "order", "receipt", "the", "new", "confirmation", "purchase",
    "invoice", "payment", "din", "ditt", "bestilling", "kvittering", "ordre",
    "us", "you", "our", "shop", "store",
}

# Names that mean "no merchant": a mail provider or a placeholder.
_NON_MERCHANT_NAMES = {"email", "e-mail", "mail", "unknown"}
# Words that may accompany a provider name ("Gmail Team", "outlook.com").
_PROVIDER_FILLER = {"com", "no", "net", "mail", "email", "team", "inbox", "me", "google", "microsoft"}


def is_email_provider_name(name: str | None) -> bool:
    """True when a merchant name is really a mailbox provider or a placeholder.

    "Gmail", "outlook.com" and "Yahoo Mail" qualify; "Live Nation" does not.
    """
    if not name:
        return False
    lower = name.strip().lower()
    if lower in _NON_MERCHANT_NAMES:
        return True
    tokens = [t for t in re.split(r"[^a-z0-9]+", lower) if t]
    if not any(t in EMAIL_PROVIDER_NAMES for t in tokens):
        return False
    return all(t in EMAIL_PROVIDER_NAMES or t in _PROVIDER_FILLER for t in tokens)


def _clean_subject_name(raw: str) -> str:
    name = raw.split("#", 1)[0]
    name = re.split(r"\s+[-|–—]\s+", name, maxsplit=1)[0]
    name = _TRAILING_STATUS.sub("", name)
    name = re.sub(r"\s+(?:order|ordre)\s*(?:no\.?|nr\.?|number)?\s*\d.*$", "", name, flags=re.IGNORECASE)
    return name.strip().strip(".,:;!?-–—|\"' ")


def _acceptable(name: str) -> bool:
    if len(name) < 2 or "@" in name:
        return False
    if name.lower() in _GENERIC_WORDS:
        return False
    return not is_email_provider_name(name)


def extract_merchant_from_subject(subject: str) -> str | None:
    """Pull a merchant name out of a receipt subject line.

    >>> extract_merchant_from_subject("Your receipt from Anthropic, PBC #123")
    'Anthropic, PBC'
    """
    if not subject:
        return None
    subject = _REPLY_PREFIX.sub("", subject.strip())
    for pattern in SUBJECT_PATTERNS:
        m = pattern.search(subject)
        if not m:
            continue
        name = _clean_subject_name(m.group("m"))
        if _acceptable(name):
            return name
    return None


def registrable_label(domain: str) -> str:
    """Return the label just left of the public suffix: shop.zara.co.uk -> zara."""
    labels = [l for l in (domain or "").lower().strip(".").split(".") if l]
    if len(labels) < 2:
        return labels[0] if labels else ""
    if ".".join(labels[-2:]) in _SECOND_LEVEL_SUFFIXES and len(labels) >= 3:
        return labels[-3]
    return labels[-2]


def extract_merchant_from_sender_domain(domain: str) -> str | None:
    """Title-case the sender's base domain label, unless it is a provider or bulk sender."""
    domain = (domain or "").lower().strip()
    if not domain:
        return None
    if any(p in domain for p in EMAIL_PROVIDER_NAMES):
        return None

    label = registrable_label(domain)
    if not label or label in BULK_SENDER_LABELS or label in _SUBDOMAIN_NOISE:
        return None

    name = " ".join(part.capitalize() for part in re.split(r"[-_]+", label) if part)
    return name if len(name) >= 2 else None


def load_merchant_domains(path: str | None = None) -> dict[str, str]:
    """Load extra domain -> merchant name mappings from YAML.

    Returns an empty dict if the file does not exist.
    """
    if path is None:
        path = "merchant_domains.yaml"

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}

    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a mapping of domain to merchant name", path)
        return {}
    return {str(k).lower(): str(v) for k, v in data.items() if v}


class MerchantRecognizer(Protocol):
    """One source of merchant hints."""

    source: HintSource

    def recognize(self, subject: str, sender: str) -> str | None: ...


class SubjectPatternRecognizer:
    source = HintSource.SUBJECT_PATTERN

    def recognize(self, subject: str, sender: str) -> str | None:
        return extract_merchant_from_subject(subject)


class KnownDomainRecognizer:
    """Match the sender domain against a table of known merchant domains.

    Keys match as substrings of the domain; longer keys are tried first so
    "hm.no" wins over a shorter overlapping key.
    """

    source = HintSource.KNOWN_DOMAIN

    def __init__(self, extra: dict[str, str] | None = None):
        merged = dict(KNOWN_MERCHANT_DOMAINS)
        merged.update(extra or {})
        self.domains = sorted(merged.items(), key=lambda kv: len(kv[0]), reverse=True)

    def recognize(self, subject: str, sender: str) -> str | None:
        domain = _domain_of(sender)
        if not domain or is_consumer_email_domain(domain):
            return None
        for key, name in self.domains:
            if key in domain:
                return name
        return None


class SenderDomainRecognizer:
    source = HintSource.SENDER_DOMAIN_DERIVED

    def recognize(self, subject: str, sender: str) -> str | None:
        return extract_merchant_from_sender_domain(_domain_of(sender))


def _domain_of(sender: str) -> str:
    match = re.search(r"@([A-Za-z0-9.-]+)", sender or "")
    return match.group(1).lower().strip(".") if match else ""


def default_recognizers(extra_domains: dict[str, str] | None = None) -> list[MerchantRecognizer]:
    return [SubjectPatternRecognizer(), KnownDomainRecognizer(extra_domains), SenderDomainRecognizer()]


def resolve_merchant_hint(
    subject: str,
    sender: str,
    explicit_hint: str | None = None,
    recognizers: list[MerchantRecognizer] | None = None,
) -> MerchantHint | None:
    """Return the highest-priority merchant hint, or None.

    An explicit caller hint always wins; then the recognizers run in order.
    A mail provider name is never returned, whatever produced it.
    """
    if explicit_hint and explicit_hint.strip() and not is_email_provider_name(explicit_hint):
        return MerchantHint(name=explicit_hint.strip(), source=HintSource.EXPLICIT)

    if recognizers is None:
        recognizers = default_recognizers()
    for recognizer in recognizers:
        name = recognizer.recognize(subject or "", sender or "")
        if name and not is_email_provider_name(name):
            return MerchantHint(name=name, source=recognizer.source)
    return None
