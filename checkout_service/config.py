"""
config.py — Environment-driven settings for the checkout service

All settings come from environment variables (the same names the storefront
deployment already uses). `Settings.from_env()` is evaluated per request by the
API layer so that toggling SHEETS_ENABLED / EMAIL_ENABLED needs no restart.
"""

import logging
import os
from typing import List, Mapping, Optional

from pydantic import BaseModel

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"


def _flag(value: Optional[str]) -> bool:
    # Integrations are on unless explicitly switched off with "false".
    return value != "false"


def _resolve_base_url(environ: Mapping[str, str]) -> str:
    if environ.get("BASE_URL"):
        return environ["BASE_URL"].rstrip("/")
    if environ.get("VERCEL_URL"):
        return f"https://{environ['VERCEL_URL']}"
    return DEFAULT_BASE_URL


def _number(environ: Mapping[str, str], name: str, default, cast=int, minimum=0):
    """
    Reads a numeric variable. An unparsable or out-of-range value is logged
    and replaced by `default`.
    """
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        value = None
    if value is None or not value >= minimum:
        log.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default
    return value


class Settings(BaseModel):
    """
    Runtime configuration.

    Attributes:
        sheets_enabled (bool): SHEETS_ENABLED, ledger integration switch.
        email_enabled (bool): EMAIL_ENABLED, notifier integration switch.
        google_sheet_id (str): GOOGLE_SHEET_ID of the order ledger spreadsheet.
        google_service_account_email (str): Service account client email.
        google_private_key (str): Service account PEM key, `\\n` escapes expanded.
        sheets_api_url (str): Root of the Sheets REST API.
        smtp_host / smtp_port / smtp_from_email / smtp_password: Mail transport.
        order_notification_email (str): Comma separated staff recipients.
        base_url (str): Public site URL used to build product image links.
    """

    sheets_enabled: bool = True
    email_enabled: bool = True

    google_sheet_id: str = ""
    google_service_account_email: str = ""
    google_private_key: str = ""
    sheets_api_url: str = "https://sheets.googleapis.com"

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_from_email: str = ""
    smtp_password: str = ""
    order_notification_email: str = ""

    base_url: str = DEFAULT_BASE_URL
    image_extension: str = "webp"
    store_name: str = "BS MONTERS"

    retry_max_attempts: int = 4
    retry_base_delay: float = 1.0

    log_file: str = "order_processing.log"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Builds settings from `environ` (defaults to `os.environ`)."""
        env = os.environ if environ is None else environ
        return cls(
            sheets_enabled=_flag(env.get("SHEETS_ENABLED")),
            email_enabled=_flag(env.get("EMAIL_ENABLED")),
            google_sheet_id=env.get("GOOGLE_SHEET_ID", ""),
            google_service_account_email=env.get("GOOGLE_SERVICE_ACCOUNT_EMAIL", ""),
            google_private_key=env.get("GOOGLE_PRIVATE_KEY", "").replace("\\n", "\n"),
            sheets_api_url=env.get("SHEETS_API_URL", "https://sheets.googleapis.com"),
            smtp_host=env.get("SMTP_HOST") or "smtp.gmail.com",
            smtp_port=_number(env, "SMTP_PORT", 587, minimum=1),
            smtp_from_email=env.get("SMTP_FROM_EMAIL", ""),
            smtp_password=env.get("SMTP_PASSWORD", ""),
            order_notification_email=env.get("ORDER_NOTIFICATION_EMAIL", ""),
            base_url=_resolve_base_url(env),
            image_extension=env.get("IMAGE_EXTENSION") or "webp",
            store_name=env.get("STORE_NAME") or "BS MONTERS",
            retry_max_attempts=_number(env, "RETRY_MAX_ATTEMPTS", 4, minimum=1),
            retry_base_delay=_number(env, "RETRY_BASE_DELAY", 1.0, cast=float),
            log_file=env.get("LOG_FILE", "order_processing.log"),
        )

    @property
    def notification_recipients(self) -> List[str]:
        return [e.strip() for e in self.order_notification_email.split(",") if e.strip()]
