"""Turn a verified Stripe event into a flat record for the sheet."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator

from formpay.services.schema import SYSTEM_FIELDS, header_key, is_system_field

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_STATUS_COMPLETED = "completed"
UNKNOWN_NAME = "Unknown"
PHOTO_URLS_KEY = header_key("photoUrls")


@dataclass(frozen=True)
class PaymentSession:
    session_id: str
    payment_id: str
    amount: Decimal | None  # major units
    email: str
    name: str
    metadata: dict[str, Any] = field(default_factory=dict)


class NormalizedRecord(Mapping):
    """Read-only field mapping: system fields first, then metadata fields.

    A metadata key that matches a system field (by ``header_key``) is dropped;
    system values always win.
    """

    def __init__(self, system: Mapping[str, Any], extra: Mapping[str, Any] | None = None):
        missing = [f for f in SYSTEM_FIELDS if f not in system]
        if missing:
            raise ValueError(f"System fields missing: {missing}")
        self._data = {f: system[f] for f in SYSTEM_FIELDS}
        seen = {}
        for key, value in (extra or {}).items():
            if is_system_field(key):
                logger.debug(f"Ignoring metadata key '{key}' shadowing a system field")
                continue
            other = seen.setdefault(header_key(key), key)
            if other != key:
                logger.warning(
                    f"Metadata keys '{other}' and '{key}' map to the same column; only one value is written"
                )
            self._data.setdefault(key, value)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"NormalizedRecord({self._data!r})"

    @property
    def dynamic_fields(self) -> dict[str, Any]:
        return {k: v for k, v in self._data.items() if k not in SYSTEM_FIELDS}


def minor_to_major(amount: int | None) -> Decimal | None:
    """Convert Stripe's integer minor units to major units.

    Assumes a two-decimal currency (USD, EUR, ...). Zero-decimal currencies
    such as JPY would be off by a factor of 100.
    """
    if amount is None:
        return None
    return Decimal(int(amount)) / Decimal(100)


def split_photo_urls(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def _payment_id(value: Any) -> str:
    # payment_intent is an id string unless the event was expanded
    if isinstance(value, Mapping):
        return str(value.get("id") or "")
    return str(value or "")


def extract_payment_session(session: Mapping[str, Any]) -> PaymentSession:
    metadata = dict(session.get("metadata") or {})
    details = session.get("customer_details") or {}

    name = details.get("name") or metadata.get("customerName") or UNKNOWN_NAME
    email = details.get("email") or session.get("customer_email") or ""

    return PaymentSession(
        session_id=str(session.get("id") or ""),
        payment_id=_payment_id(session.get("payment_intent")),
        amount=minor_to_major(session.get("amount_total")),
        email=email,
        name=name,
        metadata=metadata,
    )


def normalize_session(
    payment: PaymentSession,
    *,
    dedupe_customer_name: bool = True,
    now: datetime | None = None,
) -> NormalizedRecord:
    timestamp = (now or datetime.now(timezone.utc)).isoformat()

    extra = dict(payment.metadata)
    for key in extra:
        if header_key(key) == PHOTO_URLS_KEY:
            extra[key] = split_photo_urls(extra[key])
    # Heuristic: a customerName equal to the resolved name would only
    # duplicate the name column. A different value is kept.
    if dedupe_customer_name and extra.get("customerName") == payment.name:
        del extra["customerName"]

    system = {
        "timestamp": timestamp,
        "name": payment.name,
        "email": payment.email,
        "paymentStatus": PAYMENT_STATUS_COMPLETED,
        "paymentId": payment.payment_id,
        "paymentAmount": payment.amount if payment.amount is not None else "",
    }
    return NormalizedRecord(system, extra)


def normalize_event(
    event: Mapping[str, Any],
    *,
    dedupe_customer_name: bool = True,
    now: datetime | None = None,
) -> NormalizedRecord | None:
    """Return a record for completed checkouts, ``None`` for any other event type."""
    if event.get("type") != CHECKOUT_COMPLETED:
        return None

    session = (event.get("data") or {}).get("object") or {}
    payment = extract_payment_session(session)
    logger.info(f"Normalizing checkout session {payment.session_id or '<unknown>'}")
    return normalize_session(payment, dedupe_customer_name=dedupe_customer_name, now=now)

