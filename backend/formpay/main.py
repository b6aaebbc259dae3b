import logging
from datetime import datetime, timezone

import stripe
from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from formpay.core.config import Settings, get_settings
from formpay.core.errors import (
    CredentialsMissing,
    FormConfigFailed,
    FormpayError,
    StorageError,
)
from formpay.core.logging_utils import configure_logging
from formpay.middleware.body_size import BodySizeLimitMiddleware
from formpay.middleware.security_headers import SecurityHeadersMiddleware
from formpay.schemas.checkout import CheckoutRequest, CheckoutResponse
from formpay.schemas.form_config import FormConfigResponse
from formpay.services import checkout
from formpay.services.form_config import parse_form_steps
from formpay.services.ingest import WebhookProcessor
from formpay.services.sheets import SheetsClient

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Formpay",
    description="Checkout sessions and Stripe webhooks recorded to Google Sheets",
    version="1.0.0",
)

app.add_middleware(BodySizeLimitMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
)

FORM_CONFIG_CACHE_CONTROL = "s-maxage=300, stale-while-revalidate=600"
READONLY_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]


# ---------- errors ----------
@app.exception_handler(FormpayError)
async def formpay_error_handler(request: Request, exc: FormpayError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        name = ".".join(loc) or "body"
        if name not in fields:
            fields.append(name)
    return JSONResponse(
        status_code=400,
        content={"error": f"Missing or invalid required fields: {', '.join(fields)}"},
    )


# ---------- dependencies ----------
def get_sheets_client(settings: Settings = Depends(get_settings)) -> SheetsClient:
    return SheetsClient.from_settings(settings)


def get_form_sheets_client(settings: Settings = Depends(get_settings)) -> SheetsClient:
    return SheetsClient.from_settings(settings, scopes=READONLY_SCOPES)


def get_stripe_client(settings: Settings = Depends(get_settings)) -> stripe.StripeClient:
    return checkout.get_stripe_client(settings)


# ---------- status ----------
@app.get("/api")
def index():
    return {
        "status": "API is running",
        "availableEndpoints": [
            "/api/create-checkout-session",
            "/api/webhook",
            "/api/get-form-config",
        ],
        "message": "API for Stripe form integration is working properly",
    }


@app.get("/health", include_in_schema=False)
def health(settings: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "settings": {
            "stripe_secret_key": bool(settings.stripe_secret_key),
            "stripe_webhook_secret": bool(settings.stripe_webhook_secret),
            "google_credentials": bool(settings.google_application_credentials_json),
            "spreadsheet_id": bool(settings.spreadsheet_id),
            "sheet_name": settings.sheet_name,
        },
    }


# ---------- checkout ----------
@app.post("/api/create-checkout-session", response_model=CheckoutResponse)
def create_checkout_session(
    data: CheckoutRequest,
    settings: Settings = Depends(get_settings),
    client: stripe.StripeClient = Depends(get_stripe_client),
):
    logger.info(f"Received checkout request for {data.product_name!r}")
    url = checkout.create_checkout_session(client, data, settings)
    return CheckoutResponse(checkout_url=url)


# ---------- webhook ----------
@app.post("/api/webhook")
async def stripe_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    sheets: SheetsClient = Depends(get_sheets_client),
):
    # Signature is computed over the exact bytes Stripe sent.
    raw = await request.body()
    signature = request.headers.get("stripe-signature")

    processor = WebhookProcessor(settings, sheets)
    outcome = await run_in_threadpool(processor.process, raw, signature)
    logger.info(f"Webhook {outcome.event_id} finished in state {outcome.state.value}")
    return {"received": True}


# ---------- form configuration ----------
@app.get("/api/get-form-config", response_model=FormConfigResponse)
def get_form_config(
    response: Response,
    settings: Settings = Depends(get_settings),
    sheets: SheetsClient = Depends(get_form_sheets_client),
):
    try:
        if not settings.google_sheet_id:
            raise CredentialsMissing("GOOGLE_SHEET_ID is not set")
        rows = sheets.get_values(settings.google_sheet_id, settings.form_config_range)
    except (StorageError, CredentialsMissing) as exc:
        logger.error(f"Error fetching form config: {exc}")
        raise FormConfigFailed("Failed to fetch form configuration") from exc

    response.headers["Cache-Control"] = FORM_CONFIG_CACHE_CONTROL
    return FormConfigResponse(
        form_steps=parse_form_steps(rows),
        last_updated=datetime.now(timezone.utc),
    )
