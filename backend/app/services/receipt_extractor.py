"""
Receipt field extraction from OCR text.

Pure functions over the raw text returned by the OCR service. Each
extractor returns NOT_FOUND instead of raising when its pattern is absent.

Patterns
--------
operation code   first run of 7+ digits between word boundaries
amount           "S/" + optional spaces + 1,234.56 style number
                 (grouped thousands, exactly two decimals)
date             "15 Jun. 2024"  (day, 3-letter month, optional dot, year)
time             "10:30 a.m."    (a.m./p.m., dots and spacing optional)
"""

import logging
import re
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)

NOT_FOUND = "NOT_FOUND"

_OPERATION_CODE_RE = re.compile(r"\b\d{7,}\b")
_AMOUNT_RE = re.compile(r"S/\s*(\d{1,3}(?:,\d{3})*\.\d{2})")
_DATE_RE = re.compile(r"\d{1,2}\s+[a-zA-Z]{3}\.?\s+\d{4}")
_TIME_RE = re.compile(r"\d{1,2}:\d{2}\s*[ap]\.?\s*m\.?", re.IGNORECASE)


class ExtractedFields(NamedTuple):
    operation_code: str
    amount: str
    date: str
    valid: bool


def extract_operation_code(ocr_text: str) -> str:
    match = _OPERATION_CODE_RE.search(ocr_text)
    return match.group(0) if match else NOT_FOUND


def extract_amount(ocr_text: str) -> str:
    """Amount without the currency prefix, e.g. "1,234.56"."""
    match = _AMOUNT_RE.search(ocr_text)
    return match.group(1) if match else NOT_FOUND


def extract_date(ocr_text: str) -> str:
    """
    "<date> <time>" when both are present, otherwise whichever one was
    found, otherwise NOT_FOUND.
    """
    date_match = _DATE_RE.search(ocr_text)
    time_match = _TIME_RE.search(ocr_text)

    date_part = date_match.group(0) if date_match else ""
    time_part = time_match.group(0) if time_match else ""

    if date_part and time_part:
        return f"{date_part} {time_part}"
    return date_part or time_part or NOT_FOUND


def matches_payee(
    ocr_text: str,
    target_name: Optional[str],
    target_phone: Optional[str],
) -> bool:
    """
    True when the text names the expected payee and shows their phone.

    target_name is a case-insensitive regular expression; target_phone is
    an exact substring. Missing or unusable targets are a configuration
    error: logged, and the receipt is treated as not matching.
    """
    name = (target_name or "").strip()
    phone = (target_phone or "").strip()

    if not name or not phone:
        logger.error(
            "VALIDATION_TARGET_NAME or VALIDATION_TARGET_PHONE is not configured"
        )
        return False

    try:
        has_name = re.search(name, ocr_text, re.IGNORECASE) is not None
    except re.error as e:
        logger.error(f"VALIDATION_TARGET_NAME is not a valid pattern: {e}")
        return False

    return has_name and phone in ocr_text


def extract_fields(
    ocr_text: str,
    target_name: Optional[str],
    target_phone: Optional[str],
) -> ExtractedFields:
    """Run every extractor and decide whether the receipt is valid."""
    operation_code = extract_operation_code(ocr_text)
    amount = extract_amount(ocr_text)
    date = extract_date(ocr_text)

    valid = (
        NOT_FOUND not in (operation_code, amount, date)
        and matches_payee(ocr_text, target_name, target_phone)
    )
    return ExtractedFields(operation_code, amount, date, valid)
