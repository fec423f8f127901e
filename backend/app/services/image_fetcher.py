"""
Download attachment bytes from the inbox provider's signed download URL.
"""

from typing import Optional

import httpx

from app.errors import ImageFetchError

DOWNLOAD_TIMEOUT_SECONDS = 30.0


def fetch_image(download_url: str, client: Optional[httpx.Client] = None) -> bytes:
    """
    GET the download URL and return the raw body.

    Raises ImageFetchError on transport errors or a non-2xx status.
    """
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True)

    try:
        response = client.get(download_url)
        response.raise_for_status()
        return response.content
    except httpx.HTTPError as e:
        raise ImageFetchError(f"Failed to download attachment: {e}") from e
    finally:
        if owns_client:
            client.close()
