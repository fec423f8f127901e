"""
OCR.space client.

Posts the hosted image URL and returns the text of the first parsed
result. A response without parsed text yields "" rather than an error;
everything else that goes wrong is raised as OCRError with the cause
attached.
"""

import logging
from typing import Optional

import httpx

from app.errors import OCRError

logger = logging.getLogger(__name__)

OCR_ENDPOINT = "https://api.ocr.space/parse/image"
OCR_LANGUAGE = "spa"
OCR_ENGINE = "2"
OCR_TIMEOUT_SECONDS = 60.0


def _parsed_text(body) -> str:
    results = body.get("ParsedResults") if isinstance(body, dict) else None
    if not results or not isinstance(results, list) or not isinstance(results[0], dict):
        return ""
    text = results[0].get("ParsedText")
    return text if isinstance(text, str) else ""


def _call_ocr(api_key: str, image_url: str, client: httpx.Client) -> str:
    response = client.post(
        OCR_ENDPOINT,
        files={
            "apikey": (None, api_key),
            "url": (None, image_url),
            "language": (None, OCR_LANGUAGE),
            "OCREngine": (None, OCR_ENGINE),
        },
    )
    if not response.is_success:
        raise OCRError(f"OCR API error: {response.status_code} {response.text}")

    body = response.json()
    if isinstance(body, dict) and body.get("IsErroredOnProcessing"):
        message = body.get("ErrorMessage") or "unknown error"
        if isinstance(message, list):
            message = "; ".join(str(m) for m in message)
        raise OCRError(f"OCR API reported an error: {message}")

    return _parsed_text(body)


def ocr_image(
    api_key: str,
    image_url: str,
    client: Optional[httpx.Client] = None,
) -> str:
    """
    Run OCR over the image at image_url.

    Raises:
        OCRError: "OCR processing failed", with the original failure as
                  __cause__.
    """
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=OCR_TIMEOUT_SECONDS)

    try:
        text = _call_ocr(api_key, image_url, client)
    except Exception as e:
        raise OCRError("OCR processing failed") from e
    finally:
        if owns_client:
            client.close()

    logger.info(f"OCR returned {len(text)} characters for {image_url}")
    return text
