# study_copilot/token_store.py
"""
Google OAuth token storage.

- Hosted: token JSON in Upstash (Redis REST), enabled with UPSTASH_ENABLED=1
- Local dev: token JSON on disk (GOOGLE_TOKEN_PATH, default token.json)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import requests

logger = logging.getLogger(__name__)

_TOKEN_KEY = "study_copilot_google_token"


def _local_token_path() -> Path:
    return Path(os.getenv("GOOGLE_TOKEN_PATH", "token.json"))


def _upstash_config() -> tuple[Optional[str], Optional[str]]:
    """
    Read Upstash env vars. Upstash is only used with an explicit UPSTASH_ENABLED=1,
    so local runs never write tokens to a shared Redis by accident.
    """
    if os.getenv("UPSTASH_ENABLED") != "1":
        return None, None

    url = os.getenv("UPSTASH_REDIS_REST_URL")
    token = os.getenv("UPSTASH_REDIS_REST_TOKEN")
    if not url or not token:
        logger.warning("UPSTASH_ENABLED=1 but Upstash URL/token missing; using local token file")
        return None, None
    return url.rstrip("/"), token


def save_token(token_json: str) -> None:
    url, token = _upstash_config()

    if not url or not token:
        path = _local_token_path()
        path.write_text(token_json, encoding="utf-8")
        logger.info("Saved Google token to %s", path.resolve())
        return

    resp = requests.post(
        f"{url}/set/{_TOKEN_KEY}",
        headers={"Authorization": f"Bearer {token}"},
        data=token_json.encode("utf-8"),
        timeout=10,
    )
    resp.raise_for_status()
    logger.info("Saved Google token to Upstash")


def load_token() -> Optional[str]:
    url, token = _upstash_config()

    if not url or not token:
        path = _local_token_path()
        if path.exists():
            return path.read_text(encoding="utf-8")
        return None

    resp = requests.get(
        f"{url}/get/{_TOKEN_KEY}",
        headers={"Authorization": f"Bearer {token}"},
        timeout=10,
    )
    resp.raise_for_status()

    # Upstash returns {"result": "<value>"} when present, {"result": None} when missing.
    return resp.json().get("result")
