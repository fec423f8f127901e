"""
Inbound email models.

InboundEvent is the provider-agnostic view of one `email.received`
notification. AttachmentStub is the minimal attachment metadata embedded in
that notification; AttachmentDescriptor is a fully materialized attachment
as returned by the inbox provider's attachment API (with a download URL).
"""

from typing import Optional
from pydantic import BaseModel


class AttachmentStub(BaseModel):
    """Attachment metadata carried inline by the webhook event."""

    model_config = {"frozen": True}

    id: str
    filename: Optional[str] = None
    content_type: Optional[str] = None


class InboundEvent(BaseModel):
    """One received message, as announced by the inbox provider."""

    model_config = {"frozen": True}

    message_id: str
    sender_email: str = ""
    attachments: tuple[AttachmentStub, ...] = ()


class AttachmentDescriptor(BaseModel):
    """
    A single attachment as reported by the inbox provider.

    download_url is time-limited (roughly one hour). Unknown provider
    fields such as size or expires_at are ignored.
    """

    model_config = {"extra": "ignore"}

    id: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
    download_url: Optional[str] = None
