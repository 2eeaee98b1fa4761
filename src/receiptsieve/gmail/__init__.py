"""Mailbox collaborators: Gmail API adapter, OAuth helpers, .eml loading."""

from receiptsieve.gmail.client import GmailMailbox, Mailbox, load_eml, order_search_query

__all__ = ["GmailMailbox", "Mailbox", "load_eml", "order_search_query"]
