"""
This module provides communication clients for the external systems an accepted
order is dispatched to:
- Order ledger (Google Sheets API via google-api-python-client, service-account auth)
- Staff notification (SMTP)
Each class encapsulates its protocol logic, retry policy and error handling.
Both `append` and `notify` always return a DispatchOutcome and never raise.
"""

import asyncio
import logging
import re
import smtplib
import ssl
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, List, Optional

import httplib2
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from . import email_templates
from .config import Settings
from .errors import ConfigurationError, IntegrationError
from .models import DispatchOutcome, ValidatedOrder
from .pricing import DELIVERY_LABELS, watch_image_url, watch_model_label
from .retry import with_retry

log = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_SHEET_NAME = "Sheet1"

HEADER_ROW = [
    "Order ID",
    "Date",
    "Image Preview",
    "Name",
    "Phone",
    "Wilaya",
    "Baladiya",
    "Watch Model",
    "Model Number",
    "Quantity",
    "Delivery Type",
    "Total Price",
    "Status",
]
LAST_COLUMN = "M"
NEW_ORDER_STATUS = "New"

SHEETS_TIMEOUT = 10.0
SMTP_TIMEOUT = 10.0
_ROW_NUMBER = re.compile(r"(\d+)$")


def _default_http() -> httplib2.Http:
    return httplib2.Http(timeout=SHEETS_TIMEOUT)


def a1_range(sheet_name: str, cells: str) -> str:
    """Quoted A1 notation, e.g. `'Orders'!A2:A`."""
    return "'{}'!{}".format(sheet_name.replace("'", "''"), cells)


def format_order_row(order: ValidatedOrder, settings: Settings,
                     timestamp: Optional[datetime] = None) -> List[Any]:
    """
    Maps an order to a ledger row in HEADER_ROW column order.

    The image column holds an IMAGE() formula pointing at the public product
    picture, so the sheet renders a preview instead of storing binary data.
    """
    timestamp = timestamp or datetime.now(timezone.utc)
    image_url = watch_image_url(settings.base_url, order.watchModelId, settings.image_extension)
    return [
        order.clientRequestId,
        timestamp.isoformat(),
        f'=IMAGE("{image_url}")',
        order.fullName,
        order.phone,
        order.wilayaNameAr,
        order.baladiyaNameAr,
        watch_model_label(order.watchModelId),
        order.modelNumber or "",
        order.quantity,
        DELIVERY_LABELS[order.deliveryOption],
        order.totalPrice,
        NEW_ORDER_STATUS,
    ]


def parse_row_number(append_response: dict) -> Optional[int]:
    """Extracts the written row from `updates.updatedRange` ("'Orders'!A7:M7" -> 7)."""
    updated_range = (append_response.get("updates") or {}).get("updatedRange")
    if not updated_range:
        return None
    match = _ROW_NUMBER.search(updated_range)
    return int(match.group(1)) if match else None


# --- Ledger Client (Google Sheets API) ---
class SheetsLedger:
    """
    Client for the order ledger, a Google spreadsheet.
    Appends one row per accepted order and answers existence lookups by
    clientRequestId (column A).

    The Sheets client library is blocking, so every call runs in a worker
    thread with its own service object (httplib2 connections are not
    thread-safe).
    """
    def __init__(self, settings: Settings, credentials=None, http_factory=None, sleep=asyncio.sleep):
        """
        Args:
            settings (Settings): Sheet id, service account and retry settings.
            credentials: Pre-built google-auth credentials (built lazily from settings otherwise).
            http_factory: Returns the httplib2-compatible transport the
                authorized client wraps. Defaults to `httplib2.Http`.
            sleep: Awaitable sleep used between retry attempts.
        """
        self.settings = settings
        self._credentials = credentials
        self._http_factory = http_factory or _default_http
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self.settings.sheets_enabled

    def _sheet_id(self) -> str:
        if not self.settings.google_sheet_id:
            raise ConfigurationError("GOOGLE_SHEET_ID environment variable is not set")
        return self.settings.google_sheet_id

    def _get_credentials(self):
        if self._credentials is None:
            email = self.settings.google_service_account_email
            key = self.settings.google_private_key
            if not email or not key:
                raise ConfigurationError(
                    "Missing Google Service Account credentials. "
                    "Check GOOGLE_SERVICE_ACCOUNT_EMAIL and GOOGLE_PRIVATE_KEY environment variables."
                )
            self._credentials = service_account.Credentials.from_service_account_info(
                {"client_email": email, "private_key": key, "token_uri": GOOGLE_TOKEN_URI},
                scopes=SHEETS_SCOPES,
            )
        return self._credentials

    def _service(self):
        http = AuthorizedHttp(self._get_credentials(), http=self._http_factory())
        return build(
            "sheets", "v4",
            http=http,
            cache_discovery=False,
            client_options={"api_endpoint": self.settings.sheets_api_url},
        )

    @staticmethod
    def _first_sheet_name(service, sheet_id: str) -> str:
        try:
            response = service.spreadsheets().get(
                spreadsheetId=sheet_id, fields="sheets.properties.title"
            ).execute()
            return response["sheets"][0]["properties"]["title"]
        except (HttpError, KeyError, IndexError) as e:
            log.warning(f"Could not read sheet name, falling back to {DEFAULT_SHEET_NAME!r}: {e}")
            return DEFAULT_SHEET_NAME

    @staticmethod
    def _ensure_headers(service, sheet_id: str, sheet_name: str):
        """Writes HEADER_ROW into an empty sheet. Failures are logged and ignored."""
        values = service.spreadsheets().values()
        try:
            response = values.get(spreadsheetId=sheet_id, range=a1_range(sheet_name, "A1:Z1")).execute()
            if response.get("values"):
                return

            values.update(
                spreadsheetId=sheet_id,
                range=a1_range(sheet_name, f"A1:{LAST_COLUMN}1"),
                valueInputOption="USER_ENTERED",
                body={"values": [HEADER_ROW]},
            ).execute()
            log.info(f"Ledger headers created in sheet {sheet_name!r}.")
        except HttpError as e:
            log.warning(f"Could not create ledger headers (sheet may already have them): {e}")

    def _append_once(self, order: ValidatedOrder) -> Optional[int]:
        """One append attempt (blocking, run in a thread)."""
        sheet_id = self._sheet_id()
        service = self._service()
        sheet_name = self._first_sheet_name(service, sheet_id)
        self._ensure_headers(service, sheet_id, sheet_name)

        row = format_order_row(order, self.settings)
        response = service.spreadsheets().values().append(
            spreadsheetId=sheet_id,
            range=a1_range(sheet_name, f"A:{LAST_COLUMN}"),
            valueInputOption="USER_ENTERED",
            insertDataOption="INSERT_ROWS",
            body={"values": [row]},
        ).execute()
        return parse_row_number(response)

    def _order_ids(self) -> set:
        sheet_id = self._sheet_id()
        service = self._service()
        sheet_name = self._first_sheet_name(service, sheet_id)
        response = service.spreadsheets().values().get(
            spreadsheetId=sheet_id, range=a1_range(sheet_name, "A2:A")
        ).execute()
        rows = response.get("values") or []
        return {str(cell).strip() for row in rows for cell in row}

    async def append(self, order: ValidatedOrder) -> DispatchOutcome:
        """
        Appends `order` to the ledger, retrying transient failures.

        Returns:
            DispatchOutcome: success with metadata `rowNumber`, a skipped
            success when the ledger is switched off, or a failure with the
            last error message.
        """
        log_prefix = f"[Order: {order.clientRequestId}]"
        if not self.enabled:
            log.info(f"{log_prefix} Google Sheets integration is disabled, skipping ledger write.")
            return DispatchOutcome.skipped()

        try:
            row_number = await with_retry(
                lambda: asyncio.to_thread(self._append_once, order),
                self.settings.retry_max_attempts,
                self.settings.retry_base_delay,
                sleep=self._sleep,
                no_retry=(ConfigurationError,),
                label=f"{log_prefix} Sheets append",
            )
        except Exception as e:
            log.error(f"{log_prefix} Error saving order to Google Sheets: {e}")
            return DispatchOutcome.failed(str(e) or e.__class__.__name__)

        log.info(f"{log_prefix} Order saved to Google Sheets. Row: {row_number}")
        return DispatchOutcome.ok(rowNumber=row_number)

    async def contains(self, client_request_id: str) -> bool:
        """
        Checks column A (below the header) for `client_request_id`.

        Raises:
            ConfigurationError: If sheet id or credentials are missing.
            HttpError: If the Sheets API answers with an error.
            OSError, httplib2.HttpLib2Error: If the Sheets API cannot be reached.
        """
        order_ids = await asyncio.to_thread(self._order_ids)
        return client_request_id.strip() in order_ids


# --- Notification Client (SMTP) ---
class EmailNotifier:
    """
    Client for the staff order alert (SMTP).
    Every attempt opens, verifies and closes its own connection.
    """
    def __init__(self, settings: Settings, smtp_factory=smtplib.SMTP,
                 smtp_ssl_factory=smtplib.SMTP_SSL, sleep=asyncio.sleep):
        self.settings = settings
        self._smtp_factory = smtp_factory
        self._smtp_ssl_factory = smtp_ssl_factory
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self.settings.email_enabled

    def recipients(self) -> List[str]:
        """ORDER_NOTIFICATION_EMAIL (comma separated), else SMTP_FROM_EMAIL."""
        recipients = self.settings.notification_recipients
        if recipients:
            return recipients
        if self.settings.smtp_from_email:
            return [self.settings.smtp_from_email]
        raise ConfigurationError(
            "No recipient email specified. Set ORDER_NOTIFICATION_EMAIL or SMTP_FROM_EMAIL"
        )

    def build_message(self, order: ValidatedOrder, recipients: List[str]) -> EmailMessage:
        settings = self.settings
        from_email = settings.smtp_from_email or "noreply@localhost"

        message = EmailMessage()
        message["Subject"] = email_templates.build_subject(order)
        message["From"] = formataddr((settings.store_name, from_email))
        message["To"] = ", ".join(recipients)
        message["Message-ID"] = make_msgid()
        message.set_content(email_templates.render_text(
            order, settings.base_url, settings.store_name, settings.image_extension))
        message.add_alternative(email_templates.render_html(
            order, settings.base_url, settings.store_name, settings.image_extension), subtype="html")
        return message

    def _deliver(self, message: EmailMessage, recipients: List[str]):
        """
        One delivery attempt over a fresh connection (blocking, run in a thread).

        Raises:
            ConfigurationError: If SMTP credentials are missing.
            IntegrationError: If the server does not answer NOOP with 250.
            smtplib.SMTPException, OSError: On connection, auth or send failures.
        """
        settings = self.settings
        if not settings.smtp_from_email or not settings.smtp_password:
            raise ConfigurationError(
                "Missing SMTP configuration. Check SMTP_FROM_EMAIL and SMTP_PASSWORD environment variables."
            )

        context = ssl.create_default_context()
        use_ssl = settings.smtp_port == 465
        if use_ssl:
            smtp = self._smtp_ssl_factory(settings.smtp_host, settings.smtp_port,
                                          timeout=SMTP_TIMEOUT, context=context)
        else:
            smtp = self._smtp_factory(settings.smtp_host, settings.smtp_port, timeout=SMTP_TIMEOUT)

        with smtp:
            if not use_ssl:
                smtp.starttls(context=context)
            smtp.login(settings.smtp_from_email, settings.smtp_password)

            code, _ = smtp.noop()
            if code != 250:
                raise IntegrationError("SMTP connection verification failed")
            log.info("SMTP connection verified.")

            smtp.send_message(message, to_addrs=recipients)

    async def notify(self, order: ValidatedOrder) -> DispatchOutcome:
        """
        Sends the order alert to all recipients in one message.

        Returns:
            DispatchOutcome: success with metadata `recipients` (count), a
            skipped success when email is switched off, or a failure.
        """
        log_prefix = f"[Order: {order.clientRequestId}]"
        if not self.enabled:
            log.info(f"{log_prefix} Email integration is disabled, skipping notification.")
            return DispatchOutcome.skipped()

        try:
            recipients = self.recipients()
            message = self.build_message(order, recipients)
            await with_retry(
                lambda: asyncio.to_thread(self._deliver, message, recipients),
                self.settings.retry_max_attempts,
                self.settings.retry_base_delay,
                sleep=self._sleep,
                no_retry=(ConfigurationError,),
                label=f"{log_prefix} SMTP send",
            )
        except Exception as e:
            log.error(f"{log_prefix} Error sending order email: {e}")
            return DispatchOutcome.failed(str(e) or e.__class__.__name__)

        log.info(f"{log_prefix} Order email sent to {len(recipients)} recipient(s).")
        return DispatchOutcome.ok(recipients=len(recipients))
