"""Webhook ingestion: verify, normalize, reconcile headers, append.

Once an event is verified it is always acknowledged. Spreadsheet failures are
logged and absorbed so Stripe does not keep redelivering an event whose only
problem is on the storage side; such records are lost, not retried.
"""

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from formpay.core.config import Settings
from formpay.core.errors import (
    CosmeticFormattingFailed,
    CredentialsMissing,
    MalformedRequest,
    SignatureInvalid,
    StorageError,
)
from formpay.schemas.events import StripeEvent
from formpay.services import stripe_verify
from formpay.services.normalizer import NormalizedRecord, normalize_event
from formpay.services.row_mapper import map_row
from formpay.services.schema import ensure_headers

logger = logging.getLogger(__name__)


class WebhookState(str, enum.Enum):
    RECEIVED = "received"
    VERIFYING = "verifying"
    REJECTED = "rejected"
    VERIFIED = "verified"
    PROCESSING = "processing"
    STORED = "stored"
    STORE_FAILED = "store_failed"
    ACKNOWLEDGED = "acknowledged"


@dataclass
class WebhookOutcome:
    trail: list[WebhookState] = field(default_factory=lambda: [WebhookState.RECEIVED])
    event_id: str | None = None
    event_type: str | None = None
    record: NormalizedRecord | None = None
    row: list[Any] | None = None
    error: Exception | None = None

    @property
    def state(self) -> WebhookState:
        return self.trail[-1]

    def advance(self, state: WebhookState) -> None:
        logger.debug(f"Webhook {self.event_id or '<unparsed>'}: {self.state.value} -> {state.value}")
        self.trail.append(state)


def store_record(sheets, spreadsheet_id: str, sheet_name: str, record, autosize: bool = True) -> list[Any]:
    """Reconcile the header row, then append ``record`` as one row.

    Raises the StorageError subclasses of the sheets client; a failed column
    resize is only logged.
    """
    headers = ensure_headers(sheets, spreadsheet_id, sheet_name, record.keys())
    row = map_row(headers, record)
    sheets.append_row(spreadsheet_id, sheet_name, row)
    if autosize:
        try:
            sheets.autosize_columns(spreadsheet_id, sheet_name, len(headers))
        except CosmeticFormattingFailed as exc:
            logger.warning(f"Column resize skipped: {exc}")
    return row


class WebhookProcessor:
    def __init__(self, settings: Settings, sheets):
        self.settings = settings
        self.sheets = sheets

    def process(self, raw_body: bytes, signature: str | None) -> WebhookOutcome:
        """Run one delivery through the pipeline.

        Raises SignatureInvalid or MalformedRequest before any side effect;
        every other failure ends in an acknowledged outcome.
        """
        outcome = WebhookOutcome()
        event = self._verify(raw_body, signature, outcome)

        outcome.event_id = event.id
        outcome.event_type = event.type
        logger.info(f"Webhook received: {event.type} ({event.id})")

        record = normalize_event(
            event.model_dump(by_alias=True), dedupe_customer_name=self.settings.dedupe_customer_name
        )
        if record is None:
            logger.info(f"Ignoring event type {event.type}")
            outcome.advance(WebhookState.ACKNOWLEDGED)
            return outcome

        outcome.record = record
        outcome.advance(WebhookState.PROCESSING)
        logger.info(f"Processing completed payment {record['paymentId'] or '<no payment id>'}")
        try:
            outcome.row = store_record(
                self.sheets,
                self.settings.spreadsheet_id,
                self.settings.sheet_name,
                record,
                autosize=self.settings.autosize_columns,
            )
            outcome.advance(WebhookState.STORED)
            logger.info(f"Payment {record['paymentId']} stored in '{self.settings.sheet_name}'")
        except (StorageError, CredentialsMissing) as exc:
            # Acknowledged anyway; the provider must not retry storage failures.
            outcome.error = exc
            outcome.advance(WebhookState.STORE_FAILED)
            logger.error(
                f"Failed to store payment {record['paymentId']} "
                f"({type(exc).__name__}): {exc}"
            )

        outcome.advance(WebhookState.ACKNOWLEDGED)
        return outcome

    def _verify(self, raw_body: bytes, signature: str | None, outcome: WebhookOutcome) -> StripeEvent:
        outcome.advance(WebhookState.VERIFYING)
        if not self.settings.stripe_webhook_secret:
            raise CredentialsMissing("STRIPE_WEBHOOK_SECRET is not set")
        try:
            stripe_verify.verify(
                raw_body=raw_body,
                header=signature,
                secret=self.settings.stripe_webhook_secret,
                tolerance=self.settings.stripe_signature_tolerance,
            )
        except SignatureInvalid:
            outcome.advance(WebhookState.REJECTED)
            raise
        outcome.advance(WebhookState.VERIFIED)

        # Only parsed once the signature checks out.
        try:
            return StripeEvent.model_validate(json.loads(raw_body))
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
            outcome.advance(WebhookState.REJECTED)
            raise MalformedRequest("Invalid event payload") from exc
