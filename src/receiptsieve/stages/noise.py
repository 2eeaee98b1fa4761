"""Stage 2: remove forwarding artifacts that leak the forwarder's mail provider."""

from __future__ import annotations

import re

# Consumer mailbox providers. A forwarded receipt carries the forwarding
# user's address; none of these can ever be the merchant.
EMAIL_PROVIDER_NAMES = ("gmail", "outlook", "hotmail", "yahoo", "icloud", "live")

CONSUMER_EMAIL_DOMAINS = (
    "gmail.com", "googlemail.com",
    "outlook.com", "hotmail.com", "live.com", "live.no", "msn.com",
    "yahoo.com", "yahoo.no", "ymail.com",
    "icloud.com", "me.com", "mac.com",
    "aol.com", "proton.me", "protonmail.com",
    "online.no", "frisurf.no",
)

REDACTED_EMAIL = "[email removed]"

_FORWARD_MARKERS = re.compile(
    r"^\s*(?:"
    r"-{2,}\s*(?:Forwarded message|Original Message|Videresendt melding|Videresendt meddelelse"
    r"|Vidarebefordrat meddelande|Weitergeleitete Nachricht|Opprinnelig melding"
    r"|Ursprungligt meddelande|Oprindelig meddelelse)\s*-{0,}"
    r"|Begin forwarded message:?"
    r"|Start på videresendt melding:?"
    r"|Start på videresendt meddelelse:?"
    r"|Början på vidarebefordrat meddelande:?"
    r")\s*$",
    re.IGNORECASE,
)

_HEADER_LINE = re.compile(
    r"^\s*[>*]*\s*(?:From|To|Cc|Sent|Date|Subject|Reply-To|"
    r"Fra|Til|Kopi|Sendt|Dato|Emne|"
    r"Från|Till|Skickat|Datum|Ämne|"
    r"Von|An|Gesendet|Betreff)\s*:",
    re.IGNORECASE,
)

_EMAIL_ADDRESS = re.compile(r"<?\b([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b>?")


def is_consumer_email_domain(domain: str) -> bool:
    """True for mailbox providers (gmail.com, outlook.no, mail.yahoo.com, ...)."""
    domain = (domain or "").lower().strip().strip(".")
    if not domain:
        return False
    if any(domain == d or domain.endswith("." + d) for d in CONSUMER_EMAIL_DOMAINS):
        return True
    return any(label in EMAIL_PROVIDER_NAMES for label in domain.split("."))


def strip_forwarding_noise(text: str) -> str:
    """Drop forwarding separators and address header lines, redact provider addresses.

    Header lines are only dropped when they carry an email address, so a
    receipt line like "Date: 12.03.2025" survives.
    """
    if not text:
        return ""

    kept: list[str] = []
    for line in text.split("\n"):
        if _FORWARD_MARKERS.match(line):
            continue
        if _HEADER_LINE.match(line) and ("@" in line or _mentions_provider(line)):
            continue
        kept.append(_redact_provider_addresses(line))

    cleaned = "\n".join(kept)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def _mentions_provider(line: str) -> bool:
    lower = line.lower()
    return any(f"{name}." in lower for name in EMAIL_PROVIDER_NAMES)


def _redact_provider_addresses(line: str) -> str:
    def _replace(match: re.Match) -> str:
        if is_consumer_email_domain(match.group(2)):
            return REDACTED_EMAIL
        return match.group(0)

    return _EMAIL_ADDRESS.sub(_replace, line)
