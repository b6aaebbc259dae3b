import json
import logging

import pytest

from formpay.core.errors import (
    AppendFailed,
    CosmeticFormattingFailed,
    CredentialsMissing,
    MalformedRequest,
    SchemaReadFailed,
    SchemaWriteFailed,
    SignatureInvalid,
)
from formpay.services.ingest import WebhookProcessor, WebhookState, store_record
from formpay.services.schema import SYSTEM_FIELDS


def encode(event) -> bytes:
    return json.dumps(event).encode("utf-8")


# ---------- processor ----------
def test_completed_checkout_stored(settings, sheets, sign, make_event):
    body = encode(make_event())
    outcome = WebhookProcessor(settings, sheets).process(body, sign(body))

    assert outcome.trail == [
        WebhookState.RECEIVED,
        WebhookState.VERIFYING,
        WebhookState.VERIFIED,
        WebhookState.PROCESSING,
        WebhookState.STORED,
        WebhookState.ACKNOWLEDGED,
    ]
    assert outcome.event_id == "evt_1"

    headers = list(SYSTEM_FIELDS) + ["age", "photoUrls"]
    sheets.write_headers.assert_called_once_with("sheet-123", "Sheet1", headers)
    spreadsheet_id, sheet_name, row = sheets.append_row.call_args.args
    assert (spreadsheet_id, sheet_name) == ("sheet-123", "Sheet1")
    assert row[1:] == ["Jo Smith", "jo@example.com", "completed", "pi_123", 49.99, "34", "a\nb\nc"]
    sheets.autosize_columns.assert_called_once_with("sheet-123", "Sheet1", len(headers))


def test_other_event_type_not_stored(settings, sheets, sign):
    body = encode({"id": "evt_2", "type": "payment_intent.succeeded", "data": {"object": {}}})
    outcome = WebhookProcessor(settings, sheets).process(body, sign(body))

    assert outcome.trail[-2:] == [WebhookState.VERIFIED, WebhookState.ACKNOWLEDGED]
    sheets.read_headers.assert_not_called()
    sheets.append_row.assert_not_called()


def test_invalid_signature_rejected_without_side_effects(settings, sheets, make_event):
    body = encode(make_event())
    processor = WebhookProcessor(settings, sheets)

    with pytest.raises(SignatureInvalid):
        processor.process(body, "t=1,v1=bad")

    assert not sheets.method_calls


def test_verified_but_unparseable_body(settings, sheets, sign):
    body = b"not json"
    with pytest.raises(MalformedRequest):
        WebhookProcessor(settings, sheets).process(body, sign(body))
    assert not sheets.method_calls


def test_missing_webhook_secret(settings, sheets, sign, make_event):
    settings.stripe_webhook_secret = ""
    body = encode(make_event())
    with pytest.raises(CredentialsMissing):
        WebhookProcessor(settings, sheets).process(body, sign(body))


@pytest.mark.parametrize(
    "method,error",
    [
        ("read_headers", SchemaReadFailed("read failed")),
        ("write_headers", SchemaWriteFailed("write failed")),
        ("append_row", AppendFailed("quota exceeded")),
        ("read_headers", CredentialsMissing("no credentials")),
    ],
)
def test_storage_failures_acknowledged(settings, sheets, sign, make_event, caplog, method, error):
    getattr(sheets, method).side_effect = error
    body = encode(make_event())

    with caplog.at_level(logging.ERROR):
        outcome = WebhookProcessor(settings, sheets).process(body, sign(body))

    assert outcome.trail[-2:] == [WebhookState.STORE_FAILED, WebhookState.ACKNOWLEDGED]
    assert outcome.error is error
    assert "Failed to store payment pi_123" in caplog.text


def test_schema_write_failure_skips_append(settings, sheets, sign, make_event):
    sheets.write_headers.side_effect = SchemaWriteFailed("write failed")
    body = encode(make_event())
    WebhookProcessor(settings, sheets).process(body, sign(body))
    sheets.append_row.assert_not_called()


# ---------- store_record ----------
def test_cosmetic_failure_swallowed(sheets, caplog):
    sheets.read_headers.return_value = ["timestamp", "email"]
    sheets.autosize_columns.side_effect = CosmeticFormattingFailed("no sheet")

    with caplog.at_level(logging.WARNING):
        row = store_record(sheets, "sid", "Sheet1", {"timestamp": "T", "email": "e"})

    assert row == ["T", "e"]
    sheets.append_row.assert_called_once_with("sid", "Sheet1", ["T", "e"])
    assert "Column resize skipped" in caplog.text


def test_autosize_optional(sheets):
    store_record(sheets, "sid", "Sheet1", {"timestamp": "T"}, autosize=False)
    sheets.autosize_columns.assert_not_called()


def test_row_aligned_to_existing_headers(sheets):
    sheets.read_headers.return_value = ["email", "legacy", "timestamp"]
    row = store_record(sheets, "sid", "Sheet1", {"timestamp": "T", "email": "e", "promoCode": "X"})
    assert row == ["e", "", "T", "X"]
    sheets.write_headers.assert_called_once_with(
        "sid", "Sheet1", ["email", "legacy", "timestamp", "promoCode"]
    )


# ---------- HTTP ----------
def test_webhook_endpoint(client, sheets, sign, make_event):
    body = encode(make_event())
    r = client.post(
        "/api/webhook",
        content=body,
        headers={"Stripe-Signature": sign(body), "Content-Type": "application/json"},
    )
    assert r.status_code == 200
    assert r.json() == {"received": True}
    sheets.append_row.assert_called_once()


def test_webhook_invalid_signature(client, sheets, make_event):
    body = encode(make_event())
    r = client.post("/api/webhook", content=body, headers={"Stripe-Signature": "t=1,v1=bad"})
    assert r.status_code == 400
    assert "error" in r.json()
    sheets.append_row.assert_not_called()


def test_webhook_non_ascii_signature(client, sheets, sign, make_event):
    body = encode(make_event())
    header = sign(body)[:-1] + "\u00e9"
    r = client.post("/api/webhook", content=body, headers={"Stripe-Signature": header.encode("latin-1")})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid signature"}
    sheets.append_row.assert_not_called()


def test_webhook_missing_signature(client, sheets, make_event):
    r = client.post("/api/webhook", content=encode(make_event()))
    assert r.status_code == 400
    assert r.json() == {"error": "Missing Stripe-Signature header"}


def test_webhook_append_failure_still_acknowledged(client, sheets, sign, make_event, caplog):
    sheets.append_row.side_effect = AppendFailed("quota exceeded")
    body = encode(make_event())

    with caplog.at_level(logging.ERROR):
        r = client.post("/api/webhook", content=body, headers={"Stripe-Signature": sign(body)})

    assert r.status_code == 200
    assert r.json() == {"received": True}
    assert "quota exceeded" in caplog.text


def test_webhook_other_event_acknowledged(client, sheets, sign):
    body = encode({"id": "evt_3", "type": "invoice.paid", "data": {"object": {}}})
    r = client.post("/api/webhook", content=body, headers={"Stripe-Signature": sign(body)})
    assert r.status_code == 200
    sheets.append_row.assert_not_called()


def test_webhook_rejects_get(client):
    r = client.get("/api/webhook")
    assert r.status_code == 405


def test_webhook_unconfigured_secret(client, settings, sign, make_event):
    settings.stripe_webhook_secret = ""
    body = encode(make_event())
    r = client.post("/api/webhook", content=body, headers={"Stripe-Signature": sign(body)})
    assert r.status_code == 500
    assert r.json() == {"error": "STRIPE_WEBHOOK_SECRET is not set"}
