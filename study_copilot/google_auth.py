# study_copilot/google_auth.py
"""
Google Calendar OAuth helpers (web flow).

- /auth/start and /auth/callback in web.api build the flow here
- get_calendar_service() rehydrates stored credentials, refreshing when expired

Required env vars for the flow:
  GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, OAUTH_REDIRECT_URI
"""

from __future__ import annotations

import json
import logging
import os
from typing import List, Optional

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from study_copilot.token_store import load_token, save_token

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]


def build_google_flow(scopes: List[str] = CALENDAR_SCOPES) -> Flow:
    client_config = {
        "web": {
            "client_id": os.environ["GOOGLE_CLIENT_ID"],
            "client_secret": os.environ["GOOGLE_CLIENT_SECRET"],
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": [os.environ["OAUTH_REDIRECT_URI"]],
        }
    }
    return Flow.from_client_config(
        client_config=client_config,
        scopes=scopes,
        redirect_uri=os.environ["OAUTH_REDIRECT_URI"],
    )


def save_credentials(creds: Credentials) -> None:
    save_token(creds.to_json())


def get_calendar_service(scopes: List[str] = CALENDAR_SCOPES):
    """
    Return a Google Calendar API client.

    Raises RuntimeError when no usable token is stored; the API turns that into a 401.
    """
    creds: Optional[Credentials] = None

    token_json = load_token()
    if token_json:
        creds = Credentials.from_authorized_user_info(json.loads(token_json), scopes)

    if not creds:
        raise RuntimeError("No stored OAuth token. Run /auth/start to authenticate first.")

    if not creds.valid:
        if creds.expired and creds.refresh_token:
            creds.refresh(Request())
            save_credentials(creds)
            logger.info("Refreshed Google credentials")
        else:
            raise RuntimeError("Stored OAuth token is invalid and cannot refresh. Run /auth/start again.")

    return build("calendar", "v3", credentials=creds)
