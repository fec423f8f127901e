"""
Exceptions raised while turning an inbound email into a ledger row.

All of them carry the underlying failure as __cause__ (raise ... from exc).
"""


class ReceiptProcessingError(Exception):
    """Base class: a pipeline run had to stop."""


class ImageFetchError(ReceiptProcessingError):
    """The attachment could not be downloaded from the inbox provider."""


class ImageUploadError(ReceiptProcessingError):
    """The receipt image could not be stored on the image host."""


class OCRError(ReceiptProcessingError):
    """The OCR service call failed or returned an error."""


class LedgerWriteError(ReceiptProcessingError):
    """The receipt row could not be appended to the ledger."""
