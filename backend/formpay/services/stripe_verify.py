import hashlib
import hmac
import logging
import time

from formpay.core.errors import SignatureInvalid

logger = logging.getLogger(__name__)


def compute_signature(raw_body: bytes, timestamp: int, secret: str) -> str:
    """HMAC-SHA256 of ``b"<timestamp>." + raw_body`` keyed with the endpoint secret."""
    payload = f"{timestamp}.".encode("utf-8") + raw_body
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def parse_header(header: str) -> tuple[int, list[str]]:
    timestamp = None
    signatures = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            raise SignatureInvalid("Malformed Stripe-Signature header")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise SignatureInvalid("Malformed Stripe-Signature header")
        elif key == "v1":
            signatures.append(value)

    if timestamp is None:
        raise SignatureInvalid("Stripe-Signature header has no timestamp")
    if not signatures:
        raise SignatureInvalid("Stripe-Signature header has no v1 signature")
    return timestamp, signatures


def verify(
    raw_body: bytes, header: str | None, secret: str, tolerance: int = 300
) -> None:
    """
    Raise SignatureInvalid unless ``header`` signs ``raw_body`` with ``secret``.

    ``raw_body`` must be the request body exactly as received; any
    re-serialization changes the bytes and breaks the check. A ``tolerance``
    of zero or less disables the timestamp window.
    """
    if not header:
        raise SignatureInvalid("Missing Stripe-Signature header")

    timestamp, signatures = parse_header(header)

    if tolerance > 0 and abs(time.time() - timestamp) > tolerance:
        logger.warning(f"Signature timestamp {timestamp} outside {tolerance}s tolerance")
        raise SignatureInvalid("Timestamp outside tolerance")

    expected = compute_signature(raw_body, timestamp, secret).encode("ascii")
    # Header values arrive as latin-1 text; compare bytes so non-ASCII input is a mismatch.
    if not any(
        hmac.compare_digest(expected, sig.encode("utf-8", "surrogatepass")) for sig in signatures
    ):
        logger.warning("Stripe signature mismatch")
        raise SignatureInvalid("Invalid signature")
