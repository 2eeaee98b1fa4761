"""Mailbox access: the Gmail API adapter and local .eml loading."""

from __future__ import annotations

import base64
import email
import email.policy
import email.utils
import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from receiptsieve.models import RawEmailMessage

logger = logging.getLogger(__name__)

ORDER_SUBJECT_TERMS = (
    "subject:order",
    "subject:confirmation",
    "subject:receipt",
    "subject:purchase",
    'subject:"your order"',
    'subject:"order confirmation"',
)


def order_search_query(lookback_days: int = 7, today: date | None = None) -> str:
    """Gmail search for order-like subjects received in the last lookback_days."""
    since = (today or date.today()) - timedelta(days=lookback_days)
    return f"after:{since:%Y/%m/%d} ({' OR '.join(ORDER_SUBJECT_TERMS)})"


@runtime_checkable
class Mailbox(Protocol):
    def list_message_ids(self, query: str, max_results: int = 50) -> list[str]: ...

    def fetch_message(self, message_id: str) -> RawEmailMessage: ...


class GmailMailbox:
    """Mailbox backed by the Gmail API service."""

    def __init__(self, service):
        self.service = service

    def list_message_ids(self, query: str, max_results: int = 50) -> list[str]:
        """Return up to max_results message ids matching the search query."""
        ids: list[str] = []
        page_token = None

        while len(ids) < max_results:
            result = (
                self.service.users()
                .messages()
                .list(userId="me", q=query, maxResults=max_results - len(ids), pageToken=page_token)
                .execute()
            )
            ids.extend(m["id"] for m in result.get("messages", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return ids[:max_results]

    def fetch_message(self, message_id: str) -> RawEmailMessage:
        raw = (
            self.service.users()
            .messages()
            .get(userId="me", id=message_id, format="full")
            .execute()
        )
        return parse_gmail_message(raw)


def parse_gmail_message(raw_msg: dict) -> RawEmailMessage:
    """Convert a Gmail API message resource into a RawEmailMessage."""
    payload = raw_msg.get("payload", {})
    header_map: dict[str, str] = {}
    for h in payload.get("headers", []):
        key = h.get("name", "").lower()
        if key not in header_map:
            header_map[key] = h.get("value", "")

    body_parts: dict[str, list[str]] = {"html": [], "text": []}
    attachments: list[str] = []
    _extract_parts(payload, body_parts, attachments)

    received_at = None
    if raw_msg.get("internalDate"):
        received_at = _epoch_ms_to_iso(raw_msg["internalDate"])
    elif header_map.get("date"):
        received_at = header_map["date"]

    return RawEmailMessage(
        id=raw_msg["id"],
        subject=header_map.get("subject", ""),
        sender=header_map.get("from", ""),
        html_body="\n".join(body_parts["html"]) or None,
        text_body="\n".join(body_parts["text"]) or None,
        received_at=received_at,
        has_attachment=bool(attachments),
        attachment_type=attachments[0] if attachments else None,
    )


def _extract_parts(part: dict, body_parts: dict[str, list[str]], attachments: list[str]) -> None:
    """Recursively collect text/html bodies and attachment mime types."""
    mime_type = part.get("mimeType", "")

    if part.get("filename"):
        attachments.append(mime_type)
        return

    sub_parts = part.get("parts", [])
    if sub_parts:
        for sub in sub_parts:
            _extract_parts(sub, body_parts, attachments)
        return

    body_data = part.get("body", {}).get("data", "")
    if not body_data:
        return

    try:
        decoded = base64.urlsafe_b64decode(body_data).decode("utf-8", errors="replace")
    except (ValueError, TypeError) as e:
        logger.warning("Skipping undecodable %s part: %s", mime_type, e)
        return

    if mime_type == "text/html":
        body_parts["html"].append(decoded)
    elif mime_type == "text/plain":
        body_parts["text"].append(decoded)


def _epoch_ms_to_iso(value: str | int) -> str:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).isoformat()


def load_eml(path: str | Path) -> RawEmailMessage:
    """Read a saved .eml file into a RawEmailMessage (id = Message-ID, else the file stem)."""
    path = Path(path)
    with open(path, "rb") as f:
        msg = email.message_from_binary_file(f, policy=email.policy.default)

    html_parts: list[str] = []
    text_parts: list[str] = []
    attachments: list[str] = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        if part.get_filename() or part.get_content_disposition() == "attachment":
            attachments.append(part.get_content_type())
            continue
        if part.get_content_type() == "text/html":
            html_parts.append(part.get_content())
        elif part.get_content_type() == "text/plain":
            text_parts.append(part.get_content())

    received_at = None
    if msg["date"]:
        try:
            received_at = email.utils.parsedate_to_datetime(str(msg["date"])).isoformat()
        except (TypeError, ValueError):
            received_at = str(msg["date"])

    return RawEmailMessage(
        id=str(msg["message-id"] or path.stem).strip("<>"),
        subject=str(msg["subject"] or ""),
        sender=str(msg["from"] or ""),
        html_body="\n".join(html_parts) or None,
        text_body="\n".join(text_parts) or None,
        received_at=received_at,
        has_attachment=bool(attachments),
        attachment_type=attachments[0] if attachments else None,
    )
