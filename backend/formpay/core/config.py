from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_signature_tolerance: int = 300

    # Google Sheets
    google_application_credentials_json: str = ""
    spreadsheet_id: str = ""
    sheet_name: str = "Sheet1"
    google_sheet_id: str = ""  # form configuration spreadsheet
    form_config_range: str = "Form_Config!A2:K11"
    sheets_timeout: float = 10.0
    sheets_append_retries: int = 1
    autosize_columns: bool = True

    # Checkout
    checkout_success_url: str = "https://your-framer-site.com/success"
    checkout_cancel_url: str = "https://your-framer-site.com/cancel"
    checkout_currency: str = "usd"

    # Row mapping
    dedupe_customer_name: bool = True

    allowed_origins: str = "*"
    log_level: str = "INFO"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Use SPREADSHEET_ID if GOOGLE_SHEET_ID is not set
        if not self.google_sheet_id and self.spreadsheet_id:
            self.google_sheet_id = self.spreadsheet_id

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
