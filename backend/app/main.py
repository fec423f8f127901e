"""
Receipt Ledger API
FastAPI application that turns emailed payment receipts into ledger rows.
"""

import logging
import os

from fastapi import FastAPI

from app.config import get_settings
from app.routers import webhooks
from app.services.attachment_resolver import configure_resend
from app.services.image_host import configure_image_host

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Receipt Ledger API",
    description="OCR-based payment receipt intake from inbound email",
    version="0.1.0",
)

# Include routers
app.include_router(webhooks.router, prefix="/api/receipts", tags=["receipts"])


@app.on_event("startup")
async def configure_sdk_clients() -> None:
    """Apply SDK credentials once, before any request is served."""
    settings = get_settings()
    configure_resend(settings)
    configure_image_host(settings)


@app.on_event("startup")
async def log_startup_url() -> None:
    """
    Log where the webhook endpoint is listening.

    The port shown is taken from the ``HOST_PORT`` environment variable so
    that Docker-mapped ports are reported correctly. Defaults to 8000.
    """
    host_port = os.getenv("HOST_PORT", "8000")
    logger.info(
        "Receipt Ledger API running at http://localhost:%s (webhook: /api/receipts/inbound)",
        host_port,
    )


@app.get("/")
async def root():
    return {"message": "Receipt Ledger API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}
