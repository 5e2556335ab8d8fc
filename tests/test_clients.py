"""Ledger (Sheets) and notifier (SMTP) client tests."""

from datetime import datetime, timezone
from email.message import EmailMessage

import pytest
from googleapiclient.errors import HttpError

from checkout_service.clients import (
    HEADER_ROW,
    EmailNotifier,
    SheetsLedger,
    a1_range,
    format_order_row,
    parse_row_number,
)
from checkout_service.errors import ConfigurationError
from checkout_service.validation import validate_order
from mock_services import mock_sheets_service
from mock_services.mock_sheets_service import rows_of
from tests.conftest import SHEET_ID, make_settings, order_payload


def _order(**overrides):
    return validate_order(order_payload(**overrides)).order


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


def test_format_order_row():
    order = _order(watchModelId=7, deliveryOption="office", totalPrice=2100, modelNumber="W7")
    ts = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)

    row = format_order_row(order, make_settings(), timestamp=ts)

    assert len(row) == len(HEADER_ROW)
    assert row[0] == order.clientRequestId
    assert row[1] == "2026-03-01T12:30:00+00:00"
    assert row[2] == '=IMAGE("https://shop.example/images/watches/7.webp")'
    assert row[7] == "موديل 7"
    assert row[8] == "W7"
    assert row[9] == 1
    assert row[10] == "مكتب"
    assert row[11] == 2100
    assert row[12] == "New"


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"updates": {"updatedRange": "'Orders'!A7:M7"}}, 7),
        ({"updates": {"updatedRange": "Sheet1!A12:M12"}}, 12),
        ({"updates": {}}, None),
        ({}, None),
    ],
)
def test_parse_row_number(payload, expected):
    assert parse_row_number(payload) == expected


def test_a1_range_quotes_sheet_name():
    assert a1_range("Orders", "A2:A") == "'Orders'!A2:A"
    assert a1_range("Shop's orders", "A1") == "'Shop''s orders'!A1"


async def test_append_creates_headers_then_row(make_ledger):
    ledger = make_ledger(make_settings())
    order = _order()

    outcome = await ledger.append(order)

    assert outcome.success
    assert outcome.metadata == {"rowNumber": 2}
    rows = rows_of(SHEET_ID)
    assert rows[0] == HEADER_ROW
    assert rows[1][0] == order.clientRequestId
    assert rows[1][10] == "منزل"


async def test_second_append_keeps_single_header(make_ledger):
    ledger = make_ledger(make_settings())

    await ledger.append(_order())
    outcome = await ledger.append(_order())

    assert outcome.metadata["rowNumber"] == 3
    assert [r[0] for r in rows_of(SHEET_ID)].count("Order ID") == 1


async def test_existing_data_is_not_overwritten(make_ledger):
    mock_sheets_service.SPREADSHEETS[SHEET_ID]["Orders"].append(["legacy header"])
    ledger = make_ledger(make_settings())

    outcome = await ledger.append(_order())

    assert outcome.metadata["rowNumber"] == 2
    assert rows_of(SHEET_ID)[0] == ["legacy header"]


async def test_header_failure_is_not_fatal(make_ledger):
    ledger = make_ledger(make_settings(google_sheet_id="noheader_sheet"))

    outcome = await ledger.append(_order())

    assert outcome.success
    assert outcome.metadata["rowNumber"] == 1


async def test_append_retries_then_fails(make_ledger, sleeps):
    ledger = make_ledger(make_settings(google_sheet_id="fail_sheet"))

    outcome = await ledger.append(_order())

    assert not outcome.success
    assert "503" in outcome.error
    assert sleeps.delays == [1.0, 2.0, 4.0]


async def test_disabled_ledger_is_a_successful_no_op(make_ledger):
    ledger = make_ledger(make_settings(sheets_enabled=False))

    outcome = await ledger.append(_order())

    assert outcome.success
    assert outcome.was_skipped
    assert rows_of(SHEET_ID) == []


async def test_missing_sheet_id_fails_without_retry(make_ledger, sleeps):
    ledger = make_ledger(make_settings(google_sheet_id=""))

    outcome = await ledger.append(_order())

    assert not outcome.success
    assert "GOOGLE_SHEET_ID" in outcome.error
    assert sleeps.delays == []


async def test_missing_credentials_fail_without_retry(sheets_http, sleeps):
    settings = make_settings(google_service_account_email="", google_private_key="")
    ledger = SheetsLedger(settings, http_factory=sheets_http, sleep=sleeps)

    outcome = await ledger.append(_order())

    assert not outcome.success
    assert "GOOGLE_SERVICE_ACCOUNT_EMAIL" in outcome.error
    assert sleeps.delays == []


async def test_contains(make_ledger):
    ledger = make_ledger(make_settings())
    order = _order()
    await ledger.append(order)

    assert await ledger.contains(order.clientRequestId)
    assert not await ledger.contains("Order ID")
    assert not await ledger.contains(_order().clientRequestId)


async def test_contains_raises_when_ledger_is_down(make_ledger):
    ledger = make_ledger(make_settings(google_sheet_id="fail_sheet"))

    with pytest.raises(HttpError) as exc_info:
        await ledger.contains(_order().clientRequestId)

    assert exc_info.value.resp.status == 503


async def test_readonly_ledger_still_answers_lookups(make_ledger):
    mock_sheets_service.SPREADSHEETS["readonly_sheet"]["Orders"].extend([list(HEADER_ROW), ["known-id"]])
    ledger = make_ledger(make_settings(google_sheet_id="readonly_sheet"))

    assert await ledger.contains("known-id")
    outcome = await ledger.append(_order())
    assert not outcome.success
    assert "503" in outcome.error


async def test_contains_requires_sheet_id(make_ledger):
    ledger = make_ledger(make_settings(google_sheet_id=""))

    with pytest.raises(ConfigurationError):
        await ledger.contains(_order().clientRequestId)


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------


def _parts(message: EmailMessage) -> tuple[str, str]:
    text = message.get_body(preferencelist=("plain",)).get_content()
    html = message.get_body(preferencelist=("html",)).get_content()
    return text, html


async def test_notify_sends_one_message_to_all_recipients(make_notifier, smtp_class):
    notifier = make_notifier(make_settings())
    order = _order(fullName="Amine <b>", modelNumber="W3")

    outcome = await notifier.notify(order)

    assert outcome.success
    assert outcome.metadata == {"recipients": 2}
    [smtp] = smtp_class.instances
    assert (smtp.host, smtp.port) == ("smtp.test", 587)
    assert smtp.calls == ["starttls", ("login", "shop@example.com"), "quit"]
    [(message, to_addrs)] = smtp.sent
    assert to_addrs == ["owner@example.com", "staff@example.com"]
    assert "Amine <b>" in message["Subject"]

    text, html = _parts(message)
    assert order.clientRequestId in text
    assert "https://shop.example/images/watches/3.webp" in text
    assert "1,600 + 800 = 2,400 دج" in text
    assert "رقم النموذج المدخل: W3" in text
    assert "Amine &lt;b&gt;" in html
    assert "Amine <b>" not in html
    assert 'dir="rtl"' in html


async def test_notify_uses_implicit_tls_on_port_465(make_notifier, smtp_class):
    notifier = make_notifier(make_settings(smtp_port=465))

    outcome = await notifier.notify(_order())

    assert outcome.success
    assert "starttls" not in smtp_class.instances[0].calls


async def test_failed_verification_reconnects_each_attempt(make_notifier, smtp_class, sleeps):
    smtp_class.noop_code = 421
    notifier = make_notifier(make_settings())

    outcome = await notifier.notify(_order())

    assert not outcome.success
    assert outcome.error == "SMTP connection verification failed"
    assert len(smtp_class.instances) == 4
    assert all(not s.sent for s in smtp_class.instances)
    assert sleeps.delays == [1.0, 2.0, 4.0]


async def test_notify_recovers_from_connection_errors(make_notifier, smtp_class, sleeps):
    smtp_class.fail_connects = 2
    notifier = make_notifier(make_settings())

    outcome = await notifier.notify(_order())

    assert outcome.success
    assert len(smtp_class.instances) == 1
    assert sleeps.delays == [1.0, 2.0]


async def test_missing_smtp_password_fails_without_retry(make_notifier, smtp_class, sleeps):
    notifier = make_notifier(make_settings(smtp_password=""))

    outcome = await notifier.notify(_order())

    assert not outcome.success
    assert "SMTP_PASSWORD" in outcome.error
    assert smtp_class.instances == []
    assert sleeps.delays == []


async def test_disabled_notifier_is_a_successful_no_op(make_notifier, smtp_class):
    notifier = make_notifier(make_settings(email_enabled=False))

    outcome = await notifier.notify(_order())

    assert outcome.success and outcome.was_skipped
    assert smtp_class.instances == []


def test_recipients_fall_back_to_sender():
    notifier = EmailNotifier(make_settings(order_notification_email=""))

    assert notifier.recipients() == ["shop@example.com"]


def test_recipients_missing():
    notifier = EmailNotifier(make_settings(order_notification_email="", smtp_from_email=""))

    with pytest.raises(ConfigurationError):
        notifier.recipients()
