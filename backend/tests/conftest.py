import hashlib
import hmac
import json
import os
import time
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Set test environment variables
os.environ.update(
    {
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "SPREADSHEET_ID": "sheet-123",
        "SHEET_NAME": "Sheet1",
        "LOG_LEVEL": "DEBUG",
    }
)

from formpay.core.config import Settings, get_settings  # noqa: E402
from formpay.main import (  # noqa: E402
    app,
    get_form_sheets_client,
    get_sheets_client,
    get_stripe_client,
)

WEBHOOK_SECRET = "whsec_test"


def stripe_header(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    payload = f"{ts}.".encode("utf-8") + body
    sig = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def checkout_event(**session) -> dict:
    obj = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "amount_total": 4999,
        "payment_intent": "pi_123",
        "customer_details": {"name": "Jo Smith", "email": "jo@example.com"},
        "metadata": {"customerName": "Jo Smith", "age": "34", "photoUrls": "a,b,c"},
    }
    obj.update(session)
    return {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": obj}}


def encode(event: dict) -> bytes:
    return json.dumps(event).encode("utf-8")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        google_application_credentials_json="",
        spreadsheet_id="sheet-123",
        sheet_name="Sheet1",
        google_sheet_id="config-456",
    )


@pytest.fixture
def sheets() -> MagicMock:
    mock = MagicMock()
    mock.read_headers.return_value = []
    mock.get_values.return_value = []
    return mock


@pytest.fixture
def stripe_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(settings, sheets, stripe_client):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_sheets_client] = lambda: sheets
    app.dependency_overrides[get_form_sheets_client] = lambda: sheets
    app.dependency_overrides[get_stripe_client] = lambda: stripe_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sign():
    return stripe_header


@pytest.fixture
def make_event():
    return checkout_event
