#!/usr/bin/env python3
"""
Dev helper: send a signed `email.received` webhook to the local backend.

Builds a Resend-shaped event, signs it with the Svix secret exactly like
Resend does, and POSTs it to /api/receipts/inbound. The backend then runs
the receipt pipeline against the real Resend receiving API, so --email-id
must name an email your Resend account actually received.

Usage
-----
# Basic, targeting localhost:8000
python scripts/send_test_webhook.py --email-id 4ef9a417-02e9-4d39-ad75-9611e0fcc33c

# Include inline attachment stubs (enables the per-attachment fallback)
python scripts/send_test_webhook.py --email-id <id> --attachment-id <att-id>

# Custom sender address
python scripts/send_test_webhook.py --email-id <id> --from payer@example.com

# Print the signed request without sending it
python scripts/send_test_webhook.py --email-id <id> --dry-run

Environment / .env
------------------
RESEND_WEBHOOK_SECRET   Svix signing secret (whsec_...). Required unless
                        --secret is passed.
"""

import argparse
import json
import os
import sys
import textwrap
import uuid
from datetime import datetime, timezone
from pathlib import Path

import httpx
from dotenv import load_dotenv
from svix.webhooks import Webhook


# ---------------------------------------------------------------------------
# Event builder
# ---------------------------------------------------------------------------

def _build_event(
    email_id: str,
    from_email: str,
    to_address: str,
    subject: str,
    attachment_ids: list[str],
) -> dict:
    """
    Build a Resend `email.received` event.

    Attachment stubs carry only an id; the backend fills in the rest from
    the receiving API.
    """
    return {
        "type": "email.received",
        "created_at": datetime.now(timezone.utc).isoformat(),
        "data": {
            "email_id": email_id,
            "from": from_email,
            "to": [to_address],
            "subject": subject,
            "attachments": [{"id": att_id} for att_id in attachment_ids],
        },
    }


def _sign(body: str, secret: str) -> dict:
    """Return the three svix-* headers for body."""
    msg_id = f"msg_{uuid.uuid4().hex}"
    timestamp = datetime.now(timezone.utc)
    return {
        "svix-id": msg_id,
        "svix-timestamp": str(int(timestamp.timestamp())),
        "svix-signature": Webhook(secret).sign(msg_id, timestamp, body),
    }


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    # Locate project root (scripts/ lives one level below the root)
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_webhook.py",
        description=textwrap.dedent("""\
            Send a signed email.received webhook to the receipt backend.

            Reads RESEND_WEBHOOK_SECRET from the environment or a .env file
            in the project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument("--email-id", required=True, help="Resend received email id")
    parser.add_argument(
        "--attachment-id",
        action="append",
        default=[],
        metavar="ID",
        help="Inline attachment stub id (repeatable)",
    )
    parser.add_argument(
        "--from",
        dest="from_email",
        default="payer@example.com",
        help="Sender email address (default: payer@example.com)",
    )
    parser.add_argument(
        "--to",
        default="pagos@inbound.example.com",
        help="Recipient address (default: pagos@inbound.example.com)",
    )
    parser.add_argument(
        "--subject",
        default="Comprobante de pago",
        help='Email subject (default: "Comprobante de pago")',
    )
    parser.add_argument(
        "--secret",
        default=None,
        metavar="SECRET",
        help="Override the signing secret (defaults to RESEND_WEBHOOK_SECRET).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the signed request without sending it.",
    )

    args = parser.parse_args()

    secret = args.secret or os.getenv("RESEND_WEBHOOK_SECRET", "")
    if not secret:
        print(
            "ERROR: No webhook secret found.\n"
            "Set RESEND_WEBHOOK_SECRET in your environment or .env file, "
            "or pass --secret.",
            file=sys.stderr,
        )
        return 1

    event = _build_event(
        email_id=args.email_id,
        from_email=args.from_email,
        to_address=args.to,
        subject=args.subject,
        attachment_ids=args.attachment_id,
    )
    body = json.dumps(event)
    headers = {"Content-Type": "application/json", **_sign(body, secret)}

    endpoint = f"{args.url.rstrip('/')}/api/receipts/inbound"

    print(f"Endpoint  : {endpoint}")
    print(f"Email id  : {args.email_id}")
    print(f"From      : {args.from_email}")
    print(f"Stubs     : {', '.join(args.attachment_id) or '(none)'}")

    if args.dry_run:
        print("\n[DRY RUN] Headers:")
        print(json.dumps(headers, indent=2))
        print("\n[DRY RUN] Payload:")
        print(json.dumps(event, indent=2))
        return 0

    try:
        response = httpx.post(endpoint, content=body, headers=headers, timeout=30)
    except httpx.ConnectError as exc:
        print(f"\nERROR: Could not connect to {endpoint}: {exc}", file=sys.stderr)
        return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
