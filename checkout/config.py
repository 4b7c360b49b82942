import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

SANDBOX_BASE_URL = "https://api-m.sandbox.paypal.com"
DEFAULT_ENTRY_LOOKUP_URL = "https://comprehensivetranslator.com/wp-json/custom/v1/entry-email/"


def _bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    paypal_client_id: Optional[str] = None
    paypal_client_secret: Optional[str] = None
    paypal_base_url: str = SANDBOX_BASE_URL
    paypal_webhook_id: Optional[str] = None

    entry_lookup_url: str = DEFAULT_ENTRY_LOOKUP_URL
    wp_username: Optional[str] = None
    wp_app_password: Optional[str] = None

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_ssl: bool = False
    mail_from: Optional[str] = None
    seller_email: Optional[str] = None

    http_timeout: float = 10.0
    port: int = 8888
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            paypal_client_id=os.getenv("PAYPAL_CLIENT_ID"),
            paypal_client_secret=os.getenv("PAYPAL_CLIENT_SECRET"),
            paypal_base_url=os.getenv("PAYPAL_BASE_URL", SANDBOX_BASE_URL).rstrip("/"),
            paypal_webhook_id=os.getenv("PAYPAL_WEBHOOK_ID") or None,
            entry_lookup_url=os.getenv("ENTRY_LOOKUP_URL", DEFAULT_ENTRY_LOOKUP_URL),
            wp_username=os.getenv("WP_USERNAME"),
            wp_app_password=os.getenv("WP_APP_PASSWORD"),
            smtp_host=os.getenv("SMTP_HOST", "localhost"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_username=os.getenv("SMTP_USERNAME"),
            smtp_password=os.getenv("SMTP_PASSWORD"),
            smtp_use_ssl=_bool(os.getenv("SMTP_USE_SSL")),
            mail_from=os.getenv("MAIL_FROM") or os.getenv("SMTP_USERNAME"),
            seller_email=os.getenv("SELLER_EMAIL"),
            http_timeout=float(os.getenv("HTTP_TIMEOUT", "10")),
            port=int(os.getenv("PORT", "8888")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
