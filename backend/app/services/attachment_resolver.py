"""
Attachment resolution for received emails.

Resend's receiving API is eventually consistent: right after the
`email.received` webhook fires, the attachment list can be empty and
individual attachments can 404 for a short while. The resolver therefore
tries three strategies in order. The first one that yields an attachment
with a download_url wins; listings whose entries carry no URL yet fall
through to the next strategy.

  1. resend SDK        Emails.Receiving.Attachments.list(), when the
                       installed SDK exposes it. Any error skips it.
  2. REST listing      GET /emails/receiving/{email_id}/attachments.
                       A non-2xx status means "no data".
  3. per-stub lookup   GET /emails/receiving/{email_id}/attachments/{id}
                       for every stub the webhook carried. 404 is retried
                       up to MAX_NOT_FOUND_RETRIES times, RETRY_DELAY_SECONDS
                       apart; any other failure drops that stub only.

Every strategy has the same contract: (email_id, stubs) -> list | None.
"""

import logging
import time
from typing import Callable, Optional, Sequence

import httpx
import resend

from app.config import Settings
from app.models.inbound_email import AttachmentDescriptor, AttachmentStub

logger = logging.getLogger(__name__)

RESEND_API_BASE = "https://api.resend.com"
MAX_NOT_FOUND_RETRIES = 3
RETRY_DELAY_SECONDS = 0.5
HTTP_TIMEOUT_SECONDS = 15.0

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp"})

Strategy = Callable[[str, Sequence[AttachmentStub]], Optional[list[AttachmentDescriptor]]]


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _parse_attachment(item) -> Optional[AttachmentDescriptor]:
    """Accept either {"data": {...}} or a bare attachment object."""
    if isinstance(item, dict) and isinstance(item.get("data"), dict):
        item = item["data"]
    if not isinstance(item, dict):
        return None
    return AttachmentDescriptor.model_validate(item)


def _parse_attachment_list(body) -> list[AttachmentDescriptor]:
    """Accept either {"data": [...]} or a bare array."""
    items = body.get("data") if isinstance(body, dict) else body
    if not isinstance(items, list):
        return []

    attachments: list[AttachmentDescriptor] = []
    for item in items:
        descriptor = _parse_attachment(item)
        if descriptor is not None:
            attachments.append(descriptor)
    return attachments


def _downloadable(attachments) -> list[AttachmentDescriptor]:
    return [a for a in attachments or () if a.download_url]


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def is_image_attachment(attachment: AttachmentDescriptor) -> bool:
    """True when the filename has an image extension or the type is image/*."""
    filename = (attachment.filename or "").lower()
    if "." in filename and filename.rsplit(".", 1)[1] in IMAGE_EXTENSIONS:
        return True
    return (attachment.content_type or "").lower().startswith("image/")


def select_image_attachment(
    attachments: Sequence[AttachmentDescriptor],
) -> Optional[AttachmentDescriptor]:
    """Return the first image attachment (first match, not best match)."""
    for attachment in attachments:
        if is_image_attachment(attachment):
            return attachment
    return None


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

def configure_resend(settings: Settings) -> None:
    """Set the process-wide resend SDK key. Called once at startup."""
    resend.api_key = settings.resend_api_key


def _sdk_attachments_api():
    """
    Return resend.Emails.Receiving.Attachments, or None when the installed
    SDK does not ship the receiving API.
    """
    receiving = getattr(resend.Emails, "Receiving", None)
    return getattr(receiving, "Attachments", None)


class AttachmentResolver:
    """
    Resolves the attachments of a received email.

    Args:
        http_client:  httpx.Client pointed at the Resend API, already
                      carrying the Authorization header.
        sdk:          object exposing ``list(email_id=...)``, or None when
                      no first-class client is available.
        sleep:        called between 404 retries; injected for tests.
    """

    def __init__(
        self,
        http_client: httpx.Client,
        *,
        sdk=None,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = MAX_NOT_FOUND_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ) -> None:
        self._http = http_client
        self._sdk = sdk
        self._sleep = sleep
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "AttachmentResolver":
        client = httpx.Client(
            base_url=RESEND_API_BASE,
            headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            timeout=HTTP_TIMEOUT_SECONDS,
        )
        return cls(client, sdk=_sdk_attachments_api())

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "AttachmentResolver":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def strategies(self) -> list[tuple[str, Strategy]]:
        return [
            ("sdk", self.list_with_sdk),
            ("rest", self.list_with_rest),
            ("per-attachment", self.fetch_each_stub),
        ]

    def resolve(
        self,
        email_id: str,
        stubs: Sequence[AttachmentStub] = (),
    ) -> Optional[list[AttachmentDescriptor]]:
        """
        Try each strategy in order; return the URL-bearing attachments of
        the first one that has any, or None when none of them did.
        """
        for name, strategy in self.strategies():
            attachments = _downloadable(strategy(email_id, stubs))
            if attachments:
                logger.info(
                    f"Resolved {len(attachments)} attachment(s) for email {email_id} via {name}"
                )
                return attachments

        logger.info(f"No attachments resolved for email {email_id}")
        return None

    # -- strategy 1 ---------------------------------------------------------

    def list_with_sdk(
        self, email_id: str, stubs: Sequence[AttachmentStub] = ()
    ) -> Optional[list[AttachmentDescriptor]]:
        if self._sdk is None:
            return None
        try:
            return _parse_attachment_list(self._sdk.list(email_id=email_id))
        except Exception as e:
            logger.warning(f"SDK attachment listing failed for email {email_id}: {e}")
            return None

    # -- strategy 2 ---------------------------------------------------------

    def list_with_rest(
        self, email_id: str, stubs: Sequence[AttachmentStub] = ()
    ) -> Optional[list[AttachmentDescriptor]]:
        try:
            response = self._http.get(f"/emails/receiving/{email_id}/attachments")
        except httpx.HTTPError as e:
            logger.warning(f"REST attachment listing failed for email {email_id}: {e}")
            return None

        if not response.is_success:
            logger.info(
                f"REST attachment listing for email {email_id} returned HTTP {response.status_code}"
            )
            return None

        try:
            return _parse_attachment_list(response.json())
        except ValueError as e:
            logger.warning(f"REST attachment listing for email {email_id} was not JSON: {e}")
            return None

    # -- strategy 3 ---------------------------------------------------------

    def fetch_each_stub(
        self, email_id: str, stubs: Sequence[AttachmentStub] = ()
    ) -> Optional[list[AttachmentDescriptor]]:
        if not stubs:
            return None

        found: list[AttachmentDescriptor] = []
        for stub in stubs:
            descriptor = self.fetch_attachment(email_id, stub)
            if descriptor is not None and descriptor.download_url:
                found.append(descriptor)
        return found

    def fetch_attachment(
        self, email_id: str, stub: AttachmentStub
    ) -> Optional[AttachmentDescriptor]:
        """
        Fetch one attachment record, retrying while the provider answers 404.

        Metadata missing from the response is filled in from the stub.
        """
        path = f"/emails/receiving/{email_id}/attachments/{stub.id}"
        attempts = self._max_retries + 1

        for attempt in range(attempts):
            if attempt:
                self._sleep(self._retry_delay)

            try:
                response = self._http.get(path)
            except httpx.HTTPError as e:
                logger.warning(f"Fetching attachment {stub.id} failed: {e}")
                return None

            if response.status_code == 404:
                logger.info(f"Attachment {stub.id} not ready (attempt {attempt + 1}/{attempts})")
                continue

            if not response.is_success:
                logger.warning(
                    f"Fetching attachment {stub.id} returned HTTP {response.status_code}; skipping"
                )
                return None

            try:
                descriptor = _parse_attachment(response.json())
            except ValueError as e:
                logger.warning(f"Attachment {stub.id} response was not JSON: {e}")
                return None
            if descriptor is None:
                return None

            return descriptor.model_copy(update={
                "id": descriptor.id or stub.id,
                "filename": descriptor.filename or stub.filename,
                "content_type": descriptor.content_type or stub.content_type,
            })

        logger.warning(f"Attachment {stub.id} still not found after {attempts} attempts")
        return None
