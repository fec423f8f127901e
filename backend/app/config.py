"""
Process configuration.

All values come from environment variables (or a local .env file loaded with
python-dotenv). Components never read the environment themselves; they are
handed a Settings instance instead.

Environment variables
---------------------
RESEND_WEBHOOK_SECRET        Svix signing secret for the inbound webhook.
RESEND_API_KEY               Resend API key (attachment listing/retrieval).
CLOUDINARY_CLOUD_NAME        Cloudinary account used to host receipt images.
CLOUDINARY_API_KEY
CLOUDINARY_API_SECRET
OCR_API_KEY                  OCR.space API key.
GOOGLE_SHEET_ID              Spreadsheet that holds the receipt ledger.
GOOGLE_SERVICE_ACCOUNT_FILE  Path to the service-account JSON for Sheets.
VALIDATION_TARGET_NAME       Payee name pattern expected on a valid receipt.
VALIDATION_TARGET_PHONE      Payee phone expected on a valid receipt.
"""

import logging
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

load_dotenv()

# Field name -> environment variable
_REQUIRED_ENV = {
    "webhook_secret": "RESEND_WEBHOOK_SECRET",
    "resend_api_key": "RESEND_API_KEY",
    "cloudinary_cloud_name": "CLOUDINARY_CLOUD_NAME",
    "cloudinary_api_key": "CLOUDINARY_API_KEY",
    "cloudinary_api_secret": "CLOUDINARY_API_SECRET",
    "ocr_api_key": "OCR_API_KEY",
    "google_sheet_id": "GOOGLE_SHEET_ID",
    "google_service_account_file": "GOOGLE_SERVICE_ACCOUNT_FILE",
}

# Missing validation targets are not fatal: receipts are still recorded,
# just never marked valid.
_VALIDATION_ENV = {
    "validation_target_name": "VALIDATION_TARGET_NAME",
    "validation_target_phone": "VALIDATION_TARGET_PHONE",
}


class Settings(BaseModel):
    """Resolved configuration for one process."""

    model_config = {"frozen": True}

    webhook_secret: str
    resend_api_key: str
    cloudinary_cloud_name: str
    cloudinary_api_key: str
    cloudinary_api_secret: str
    ocr_api_key: str
    google_sheet_id: str
    google_service_account_file: str
    validation_target_name: Optional[str] = None
    validation_target_phone: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        """
        Build Settings from a mapping (defaults to os.environ).

        Raises ValueError listing every missing required variable. The
        validation targets may be missing; that is reported as an error
        log and handled by the validity rule.
        """
        env = os.environ if environ is None else environ

        def _read(name: str) -> Optional[str]:
            value = (env.get(name) or "").strip()
            return value or None

        values: dict = {}
        missing: list[str] = []
        for field, var in _REQUIRED_ENV.items():
            value = _read(var)
            if value is None:
                missing.append(var)
            values[field] = value

        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        for field, var in _VALIDATION_ENV.items():
            values[field] = _read(var)
            if values[field] is None:
                logger.error(
                    f"{var} is not set; every receipt will be recorded as invalid"
                )

        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    """Cached process-wide Settings, used as a FastAPI dependency."""
    return Settings.from_env()
