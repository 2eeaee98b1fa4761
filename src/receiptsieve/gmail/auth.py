"""OAuth2 authentication for the Gmail API (read-only)."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from receiptsieve.config import Config

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]


def _cached_credentials(token_file: Path) -> Credentials | None:
    if not token_file.is_file():
        return None
    return Credentials.from_authorized_user_file(str(token_file), SCOPES)


def _consent_flow(credentials_file: Path) -> Credentials:
    if not credentials_file.is_file():
        raise FileNotFoundError(
            f"Gmail credentials file not found: {credentials_file}. "
            "Download OAuth 2.0 client credentials from Google Cloud Console."
        )
    flow = InstalledAppFlow.from_client_secrets_file(str(credentials_file), SCOPES)
    return flow.run_local_server(port=0)


def _store_token(creds: Credentials, token_file: Path) -> None:
    """Write the token readable by the owner only."""
    token_file.parent.mkdir(parents=True, exist_ok=True)
    token_file.write_text(creds.to_json())
    os.chmod(token_file, 0o600)


def authenticate(config: Config) -> Credentials:
    """Return valid read-only credentials.

    A cached token is reused, refreshed when expired, or replaced through the
    browser consent flow.
    """
    token_file = Path(config.gmail.token_file)
    creds = _cached_credentials(token_file)
    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        logger.info("Refreshing Gmail token")
        creds.refresh(Request())
    else:
        creds = _consent_flow(Path(config.gmail.credentials_file))

    _store_token(creds, token_file)
    return creds


def get_gmail_service(config: Config):
    """Return an authenticated Gmail API service object."""
    return build("gmail", "v1", credentials=authenticate(config), cache_discovery=False)
