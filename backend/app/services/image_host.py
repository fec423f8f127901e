"""
Cloudinary image hosting for receipt images.

The inbox provider's download URLs expire after about an hour, so every
receipt image is re-hosted and the permanent secure_url is what goes into
the ledger and to the OCR service.
"""

import io

import cloudinary
import cloudinary.uploader

from app.config import Settings
from app.errors import ImageUploadError

UPLOAD_FOLDER = "Capictive"


def configure_image_host(settings: Settings) -> None:
    """Set the process-wide Cloudinary credentials. Called once at startup."""
    cloudinary.config(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        secure=True,
    )


def upload_image(content: bytes, filename: str | None = None) -> str:
    """
    Upload image bytes and return the hosted HTTPS URL.

    Requires configure_image_host to have run.

    Args:
        content: Raw image bytes
        filename: Original attachment filename, kept as the asset's
                  display name when given

    Raises:
        ImageUploadError: If the upload fails or returns no URL
    """
    options: dict = {"folder": UPLOAD_FOLDER, "resource_type": "image"}
    if filename:
        options["filename_override"] = filename
        options["use_filename"] = True

    try:
        result = cloudinary.uploader.upload(io.BytesIO(content), **options)
    except Exception as e:
        raise ImageUploadError(f"Failed to upload receipt image: {e}") from e

    url = (result or {}).get("secure_url")
    if not url:
        raise ImageUploadError("Image host returned no secure_url")
    return url
