import logging
from typing import Any

import stripe

from formpay.core.config import Settings
from formpay.core.errors import CheckoutFailed, CredentialsMissing
from formpay.schemas.checkout import CheckoutRequest

logger = logging.getLogger(__name__)


def get_stripe_client(settings: Settings) -> stripe.StripeClient:
    if not settings.stripe_secret_key:
        raise CredentialsMissing("STRIPE_SECRET_KEY is not set")
    return stripe.StripeClient(settings.stripe_secret_key)


def metadata_value(value: Any) -> str:
    # Stripe metadata only holds strings; lists travel comma-joined.
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    if value is None:
        return ""
    return str(value)


def build_metadata(req: CheckoutRequest) -> dict[str, str]:
    metadata = {}
    if req.customer_name:
        metadata["customerName"] = req.customer_name
    for key, value in req.metadata.items():
        metadata[str(key)] = metadata_value(value)
    return metadata


def build_session_params(req: CheckoutRequest, settings: Settings) -> dict[str, Any]:
    return {
        "payment_method_types": ["card"],
        "line_items": [
            {
                "price_data": {
                    "currency": settings.checkout_currency,
                    "product_data": {"name": req.product_name},
                    "unit_amount": req.product_price,
                },
                "quantity": 1,
            }
        ],
        "mode": "payment",
        "success_url": settings.checkout_success_url,
        "cancel_url": settings.checkout_cancel_url,
        "customer_email": req.customer_email,
        "metadata": build_metadata(req),
    }


def create_checkout_session(
    client: stripe.StripeClient, req: CheckoutRequest, settings: Settings
) -> str:
    """Create a hosted Checkout session and return its redirect URL."""
    try:
        session = client.checkout.sessions.create(params=build_session_params(req, settings))
    except stripe.StripeError as exc:
        logger.error(f"Error creating checkout session: {exc}")
        raise CheckoutFailed(exc.user_message or str(exc)) from exc

    logger.info(f"Checkout session created: {session.id}")
    return session.url
