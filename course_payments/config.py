import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from course_payments.errors import ConfigurationError

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

DEFAULT_ALLOWED_ORIGINS = [
    "https://iacg.co.in",
    "https://www.iacg.co.in",
    "http://localhost:5173",
    "http://localhost:3000",
    "http://localhost:3001",
]

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


def cors_origins() -> List[str]:
    """Comma-separated CORS_ALLOWED_ORIGINS, or the default site and dev origins."""
    load_dotenv(dotenv_path=ENV_PATH)
    value = os.getenv("CORS_ALLOWED_ORIGINS")
    if not value:
        return list(DEFAULT_ALLOWED_ORIGINS)
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    razorpay_key_id: str
    razorpay_key_secret: str
    spreadsheet_id: str
    razorpay_webhook_secret: Optional[str] = None
    allow_unsigned_webhooks: bool = True
    sheet_range: str = "Sheet1!A1"
    credentials_json: Optional[str] = None
    credentials_base64: Optional[str] = None
    credentials_path: str = "credentials/google_service_account.json"
    environment: str = "development"
    port: int = 5001
    base_url: str = "http://localhost:5001"
    success_redirect_url: str = "https://iacg.co.in/manga-art-thank-you-page/"
    cancel_redirect_url: str = "http://localhost:5173/"
    course_fee: int = 100
    course_currency: str = "INR"
    business_name: str = ""
    allow_debug_env: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def callback_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/payment/verify-payment"

    @property
    def cancel_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/payment/cancel-payment"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(dotenv_path=ENV_PATH)

        key_id = os.getenv("RAZORPAY_KEY_ID")
        key_secret = os.getenv("RAZORPAY_KEY_SECRET")
        if not key_id or not key_secret:
            raise ConfigurationError(
                "RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be set. Check your .env file."
            )

        spreadsheet_id = os.getenv("GOOGLE_SHEETS_SPREADSHEET_ID") or os.getenv("GOOGLE_SHEET_ID")
        if not spreadsheet_id:
            raise ConfigurationError(
                "Missing spreadsheet ID. Set GOOGLE_SHEETS_SPREADSHEET_ID (preferred) or GOOGLE_SHEET_ID."
            )

        environment = os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development"

        try:
            port = int(os.getenv("PORT", "5001"))
            course_fee = int(os.getenv("COURSE_FEE_MINOR_UNITS", "100"))
        except ValueError as exc:
            raise ConfigurationError(f"PORT and COURSE_FEE_MINOR_UNITS must be integers: {exc}")

        return cls(
            razorpay_key_id=key_id,
            razorpay_key_secret=key_secret,
            spreadsheet_id=spreadsheet_id,
            razorpay_webhook_secret=os.getenv("RAZORPAY_WEBHOOK_SECRET") or None,
            allow_unsigned_webhooks=_flag(
                "RAZORPAY_ALLOW_UNSIGNED_WEBHOOKS", environment != "production"
            ),
            sheet_range=os.getenv("GOOGLE_SHEETS_RANGE", "Sheet1!A1"),
            credentials_json=os.getenv("GOOGLE_CREDENTIALS_JSON") or None,
            credentials_base64=os.getenv("GOOGLE_CREDENTIALS_BASE64") or None,
            credentials_path=(
                os.getenv("GOOGLE_CREDENTIALS_PATH")
                or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
                or "credentials/google_service_account.json"
            ),
            environment=environment,
            port=port,
            base_url=os.getenv("BASE_URL", "http://localhost:5001"),
            success_redirect_url=os.getenv(
                "PAYMENT_SUCCESS_URL", "https://iacg.co.in/manga-art-thank-you-page/"
            ),
            cancel_redirect_url=os.getenv("PAYMENT_CANCEL_URL", "http://localhost:5173/"),
            course_fee=course_fee,
            course_currency=os.getenv("COURSE_CURRENCY", "INR"),
            business_name=os.getenv("MERCHANT_BUSINESS_NAME", ""),
            allow_debug_env=_flag("ALLOW_DEBUG_ENV", False),
        )
