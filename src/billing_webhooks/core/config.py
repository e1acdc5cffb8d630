"""
Application settings
"""
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import validator
from pydantic_settings import BaseSettings


_FILE_PATH = Path(__file__).resolve()


def _collect_env_files(file_path: Path) -> tuple[Path, ...]:
    """Collect .env candidates starting from the closest directory"""

    collected: list[Path] = []
    seen: set[Path] = set()

    for directory in file_path.parents:
        for name in (".env", ".env.local"):
            candidate = directory / name
            if candidate.exists() and candidate not in seen:
                collected.append(candidate)
                seen.add(candidate)

    return tuple(collected)


_ENV_FILES = _collect_env_files(_FILE_PATH)


def _load_dotenv_files() -> None:
    for dotenv_path in _ENV_FILES:
        load_dotenv(dotenv_path, override=False)


_load_dotenv_files()


class Settings(BaseSettings):
    """Service settings"""

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False

    # Supabase (service role is required for webhook writes)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    # PayPal
    PAYPAL_CLIENT_ID: Optional[str] = None
    PAYPAL_SECRET_KEY: Optional[str] = None
    # Without a webhook id signature verification is skipped
    PAYPAL_WEBHOOK_ID: Optional[str] = None
    PAYPAL_API_BASE_URL: str = "https://api-m.sandbox.paypal.com"
    PAYPAL_API_TIMEOUT: float = 15.0
    # 0 = single attempt; retries apply to 408/429/5xx and network errors
    PAYPAL_API_MAX_RETRIES: int = 0
    PAYPAL_API_BACKOFF_FACTOR: float = 0.5

    # Notification senders (edge functions)
    NOTIFICATION_FUNCTIONS_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT: float = 10.0

    # Billing defaults
    COMMISSION_AMOUNT: float = 5.00
    COMMISSION_CURRENCY: str = "USD"
    SUBSCRIPTION_DEFAULT_AMOUNT: float = 9.99
    SUBSCRIPTION_DEFAULT_CURRENCY: str = "USD"

    @validator("PAYPAL_API_BASE_URL", "SUPABASE_URL")
    def strip_trailing_slash(cls, v):
        return v.rstrip("/") if v else v

    @validator("PAYPAL_WEBHOOK_ID", "PAYPAL_CLIENT_ID", "PAYPAL_SECRET_KEY")
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None

    @validator("COMMISSION_CURRENCY", "SUBSCRIPTION_DEFAULT_CURRENCY")
    def upper_currency(cls, v):
        return v.upper()

    @property
    def notification_base_url(self) -> str:
        if self.NOTIFICATION_FUNCTIONS_URL:
            return self.NOTIFICATION_FUNCTIONS_URL.rstrip("/")
        return f"{self.SUPABASE_URL}/functions/v1"

    class Config:
        env_file = tuple(str(path) for path in _ENV_FILES) if _ENV_FILES else None
        case_sensitive = True
        extra = "allow"


settings = Settings()
