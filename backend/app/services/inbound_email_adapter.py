"""
Inbound email adapter service.

Normalizes a verified Resend webhook event into the provider-agnostic
InboundEvent model. Only this module knows Resend's payload shape.

Resend `email.received` event shape
-----------------------------------
  type                 "email.received"
  data.email_id        str   id used against the receiving API
  data.from            str   sender, e.g. "Alice <alice@example.com>"
  data.cc              list  str, or {"email": ...} / {"address": ...}
  data.attachments     list  each item has:
                                 id            str
                                 filename      str (optional)
                                 content_type  str (optional)

Attachment content is NOT inlined; it has to be fetched from the
receiving API (see attachment_resolver).
"""

import re
from typing import Optional

from app.models.inbound_email import AttachmentStub, InboundEvent

EMAIL_RECEIVED = "email.received"


class UnsupportedEvent(ValueError):
    """The event is well-formed but not something the receipt flow handles."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


def _extract_address(value) -> Optional[str]:
    """
    Pull a bare address out of a header value.

    Accepts "Name <addr@host>", "addr@host", or a dict with an "email" or
    "address" key. Returns None when nothing usable is found.
    """
    if isinstance(value, dict):
        value = value.get("email") or value.get("address")
    if not isinstance(value, str) or not value.strip():
        return None

    match = re.search(r"<([^>]+)>", value)
    addr = match.group(1) if match else value
    return addr.strip() or None


def resolve_sender(data: dict) -> str:
    """
    Sender email for the ledger: the From address, else the first usable
    CC address, else "".
    """
    sender = _extract_address(data.get("from"))
    if sender:
        return sender

    for cc in data.get("cc") or []:
        addr = _extract_address(cc)
        if addr:
            return addr
    return ""


def normalize_resend_event(event: dict) -> InboundEvent:
    """
    Convert a verified Resend webhook event to InboundEvent.

    Raises UnsupportedEvent for other event types or when email_id is
    missing. Attachment stubs without an id are skipped: they cannot be
    fetched individually.
    """
    event_type = event.get("type")
    if event_type != EMAIL_RECEIVED:
        raise UnsupportedEvent("ignored_event_type", f"Ignoring event type {event_type!r}")

    data = event.get("data") or {}
    message_id = data.get("email_id")
    if not message_id:
        raise UnsupportedEvent("missing_email_id", "email.received event has no email_id")

    stubs: list[AttachmentStub] = []
    for att in data.get("attachments") or []:
        if not isinstance(att, dict) or not att.get("id"):
            continue
        stubs.append(
            AttachmentStub(
                id=str(att["id"]),
                filename=att.get("filename"),
                content_type=att.get("content_type"),
            )
        )

    return InboundEvent(
        message_id=str(message_id),
        sender_email=resolve_sender(data),
        attachments=tuple(stubs),
    )
