"""Resolve Google service account credentials from the environment.

Three sources are tried in order: inline JSON, base64-encoded JSON, then a
key file on disk. The first one that is set wins.
"""

import base64
import binascii
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from google.oauth2 import service_account

from course_payments.config import Settings
from course_payments.errors import ConfigurationError

logger = logging.getLogger("course_payments.credentials")

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def load_service_account_info(settings: Settings) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Return ``(source, info)``; ``info`` is None when the file path is used."""
    if settings.credentials_json:
        try:
            return "inline", json.loads(settings.credentials_json)
        except ValueError:
            raise ConfigurationError(
                "Invalid GOOGLE_CREDENTIALS_JSON: must contain valid service account JSON"
            )

    if settings.credentials_base64:
        try:
            decoded = base64.b64decode(settings.credentials_base64, validate=True).decode("utf-8")
            return "base64", json.loads(decoded)
        except (binascii.Error, UnicodeDecodeError, ValueError):
            raise ConfigurationError(
                "Invalid GOOGLE_CREDENTIALS_BASE64: must be base64 of service account JSON"
            )

    if not os.path.exists(settings.credentials_path):
        raise ConfigurationError(
            "Google credentials not found. Set GOOGLE_CREDENTIALS_PATH or "
            "GOOGLE_APPLICATION_CREDENTIALS to a valid file, or provide "
            "GOOGLE_CREDENTIALS_JSON / GOOGLE_CREDENTIALS_BASE64."
        )
    return "file", None


def resolve_credentials(settings: Settings) -> service_account.Credentials:
    source, info = load_service_account_info(settings)
    logger.info(f"Using Google credentials from {source} source")

    try:
        if info is None:
            return service_account.Credentials.from_service_account_file(
                settings.credentials_path, scopes=SCOPES
            )
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    except (ValueError, KeyError) as exc:
        raise ConfigurationError(f"Google credentials from {source} source are malformed: {exc}")
