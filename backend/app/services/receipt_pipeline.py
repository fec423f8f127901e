"""
Receipt pipeline: one inbound email in, at most one ledger row out.

Steps:
1. Resolve the email's attachments (three strategies, see attachment_resolver).
2. Pick the first image attachment.
3. Download it from the provider's time-limited URL.
4. Re-host it on the image host.
5. OCR the hosted image.
6. Extract operation code / amount / date and decide validity.
7. Append the ReceiptRecord to the ledger.

An email without an image attachment ends the run quietly with no row
written. Failures in steps 3-7 raise ReceiptProcessingError subclasses;
the webhook router logs them.
"""

import logging
from typing import Callable, Optional

from app.config import Settings
from app.models.inbound_email import InboundEvent
from app.models.receipt import ReceiptRecord
from app.services.attachment_resolver import AttachmentResolver, select_image_attachment
from app.services.image_fetcher import fetch_image
from app.services.image_host import upload_image
from app.services.ledger import LedgerWriter
from app.services.ocr import ocr_image
from app.services.receipt_extractor import extract_fields

logger = logging.getLogger(__name__)


def create_receipt_record(
    email: str,
    image_link: str,
    settings: Settings,
    ocr: Callable[[str, str], str] = ocr_image,
) -> ReceiptRecord:
    """OCR the hosted image and build the record from the extracted fields."""
    ocr_text = ocr(settings.ocr_api_key, image_link)
    fields = extract_fields(
        ocr_text,
        settings.validation_target_name,
        settings.validation_target_phone,
    )

    return ReceiptRecord(
        email=email,
        amount=fields.amount,
        image_link=image_link,
        valid_receipt=fields.valid,
        operation_code=fields.operation_code if fields.valid else None,
        date=fields.date,
    )


def process_inbound_event(
    event: InboundEvent,
    settings: Settings,
    *,
    resolver: AttachmentResolver,
    write_record: Callable[[ReceiptRecord], None],
    fetch: Callable[[str], bytes] = fetch_image,
    upload: Callable[..., str] = upload_image,
    ocr: Callable[[str, str], str] = ocr_image,
) -> Optional[ReceiptRecord]:
    """
    Run the pipeline for one event with explicit collaborators.

    Returns the written record, or None when the email carried no usable
    image attachment.
    """
    logger.info(f"Processing receipt email {event.message_id} from {event.sender_email!r}")

    # 1. Resolve attachments
    attachments = resolver.resolve(event.message_id, event.attachments)
    if not attachments:
        logger.warning(f"No receipt attachment found for email {event.message_id}")
        return None

    # 2. Select the receipt image
    attachment = select_image_attachment(attachments)
    if attachment is None:
        logger.warning(
            f"Email {event.message_id} has {len(attachments)} attachment(s) but none is an image"
        )
        return None
    if not attachment.download_url:
        logger.warning(
            f"Image attachment {attachment.id} of email {event.message_id} has no download URL"
        )
        return None

    logger.info(f"Receipt image found: {attachment.filename!r} ({attachment.content_type})")

    # 3-4. Download and re-host
    content = fetch(attachment.download_url)
    image_link = upload(content, attachment.filename)

    # 5-6. OCR + extraction
    record = create_receipt_record(event.sender_email, image_link, settings, ocr=ocr)

    # 7. Persist
    write_record(record)
    logger.info(
        f"Receipt {record.id} recorded for {record.email!r} (valid={record.valid_receipt})"
    )
    return record


def run_receipt_pipeline(event: InboundEvent, settings: Settings) -> Optional[ReceiptRecord]:
    """Run the pipeline against the real Resend, Cloudinary, OCR and Sheets services."""

    def write_record(record: ReceiptRecord) -> None:
        LedgerWriter.from_settings(settings).append(record)

    with AttachmentResolver.from_settings(settings) as resolver:
        return process_inbound_event(
            event,
            settings,
            resolver=resolver,
            write_record=write_record,
        )
