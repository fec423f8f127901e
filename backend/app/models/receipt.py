"""
Receipt ledger record.

One ReceiptRecord is built per processed email and appended to the ledger
exactly once. operation_code is only kept for valid receipts; invalid ones
are recorded for audit without it.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, Field, model_validator

# Ledger column order (also the header row of the spreadsheet)
LEDGER_COLUMNS = (
    "id",
    "email",
    "amount",
    "imageLink",
    "validReceipt",
    "operationCode",
    "date",
)


def _generate_receipt_id() -> str:
    """Random version-4 UUID string."""
    return str(uuid.uuid4())


class ReceiptRecord(BaseModel):
    model_config = {"frozen": True}

    id: str = Field(default_factory=_generate_receipt_id)
    email: str
    amount: str
    image_link: str
    valid_receipt: bool
    operation_code: Optional[str] = None
    date: str

    @model_validator(mode="after")
    def _operation_code_only_when_valid(self) -> "ReceiptRecord":
        if self.valid_receipt and not self.operation_code:
            raise ValueError("a valid receipt requires an operation_code")
        if not self.valid_receipt and self.operation_code is not None:
            raise ValueError("an invalid receipt must not carry an operation_code")
        return self

    def to_ledger_row(self) -> dict:
        """Map the record onto ledger column names."""
        return {
            "id": self.id,
            "email": self.email,
            "amount": self.amount,
            "imageLink": self.image_link,
            "validReceipt": self.valid_receipt,
            "operationCode": self.operation_code or "",
            "date": self.date,
        }
