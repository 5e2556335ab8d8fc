"""Shared test fixtures."""

import os
import uuid
from collections.abc import AsyncGenerator

import google.auth.credentials
import httplib2
import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# No order log file during tests
os.environ.setdefault("LOG_FILE", "")

from checkout_service import main as main_mod  # noqa: E402
from checkout_service.clients import EmailNotifier, SheetsLedger  # noqa: E402
from checkout_service.config import Settings  # noqa: E402
from mock_services import mock_sheets_service  # noqa: E402

SHEET_ID = "sheet-test"


class FakeCredentials(google.auth.credentials.Credentials):
    """Service account credentials that already hold a token."""

    def __init__(self):
        super().__init__()
        self.token = "test-token"

    def refresh(self, request):
        pass


class MockSheetsHttp:
    """
    httplib2.Http stand-in that serves requests from the in-process mock
    Sheets app, in the shape googleapiclient.http.HttpMock returns.
    """

    def __init__(self, app):
        self._client = TestClient(app)

    def request(self, uri, method="GET", body=None, headers=None, redirections=5,
                connection_type=None):
        response = self._client.request(method, uri, content=body, headers=headers)
        info = {"status": str(response.status_code), **response.headers}
        return httplib2.Response(info), response.content


class FakeSMTP:
    """Records what an smtplib.SMTP connection would have done."""
    instances: list = []
    noop_code = 250
    fail_connects = 0

    def __init__(self, host, port, timeout=None, context=None):
        cls = type(self)
        if cls.fail_connects > 0:
            cls.fail_connects -= 1
            raise ConnectionRefusedError("connection refused")
        self.host = host
        self.port = port
        self.calls = []
        self.sent = []
        cls.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.calls.append("quit")
        return False

    def starttls(self, context=None):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def noop(self):
        return self.noop_code, b"OK"

    def send_message(self, message, to_addrs=None):
        self.sent.append((message, to_addrs))


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_settings(**overrides) -> Settings:
    values = dict(
        google_sheet_id=SHEET_ID,
        google_service_account_email="orders@project.iam.gserviceaccount.com",
        google_private_key="unused",
        sheets_api_url="http://sheets.test",
        smtp_host="smtp.test",
        smtp_port=587,
        smtp_from_email="shop@example.com",
        smtp_password="app-password",
        order_notification_email="owner@example.com, staff@example.com",
        base_url="https://shop.example",
        log_file="",
    )
    values.update(overrides)
    return Settings(**values)


def order_payload(**overrides) -> dict:
    payload = {
        "clientRequestId": str(uuid.uuid4()),
        "fullName": "محمد بن علي",
        "phone": "0555123456",
        "wilayaId": 16,
        "wilayaNameAr": "الجزائر",
        "baladiya": "bab-ezzouar",
        "baladiyaNameAr": "باب الزوار",
        "watchModelId": 3,
        "deliveryOption": "home",
        "totalPrice": 2400,
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def reset_mock_sheets():
    mock_sheets_service.reset()
    yield
    mock_sheets_service.reset()


@pytest.fixture
def sheets_http():
    return lambda: MockSheetsHttp(mock_sheets_service.app)


@pytest.fixture
def smtp_class():
    """A fresh FakeSMTP subclass so class-level state never leaks between tests."""
    class _SMTP(FakeSMTP):
        instances = []
    return _SMTP


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_ledger(sheets_http, sleeps):
    def _make(settings: Settings) -> SheetsLedger:
        return SheetsLedger(settings, credentials=FakeCredentials(),
                            http_factory=sheets_http, sleep=sleeps)
    return _make


@pytest.fixture
def make_notifier(smtp_class, sleeps):
    def _make(settings: Settings) -> EmailNotifier:
        return EmailNotifier(settings, smtp_factory=smtp_class,
                             smtp_ssl_factory=smtp_class, sleep=sleeps)
    return _make


@pytest.fixture
def app_settings():
    """Mutable holder for the settings the API dependencies are built from."""
    return {"settings": make_settings()}


@pytest.fixture
async def client(app_settings, make_ledger, make_notifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client for the checkout app wired to the mock Sheets API and a fake SMTP server."""
    app = main_mod.app
    app.dependency_overrides[main_mod.get_ledger] = lambda: make_ledger(app_settings["settings"])
    app.dependency_overrides[main_mod.get_notifier] = lambda: make_notifier(app_settings["settings"])
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()
