"""
Thumbnail download for notification images.

Fetches manga covers from the Suwayomi server with the current bearer
token. Every failure degrades to a text-only notification.
"""

import logging
from urllib.parse import urljoin

import aiohttp

from suwayomi_watcher.session import CredentialSession

logger = logging.getLogger(__name__)


class ThumbnailFetcher:
    """Downloads thumbnails through the shared authenticated HTTP session."""

    def __init__(self, session: CredentialSession, max_size: int = 10 * 1024 * 1024):
        """
        Initialize the fetcher.

        Parameters
        ----------
        session : CredentialSession
            Session providing the HTTP client and Authorization header.
        max_size : int
            Largest accepted image in bytes.
        """
        self.session = session
        self.max_size = max_size

    def resolve(self, image_ref: str) -> str:
        """Turn a server-relative thumbnail path into an absolute URL."""
        return urljoin(self.session.config.http_url + "/", image_ref.lstrip("/"))

    async def fetch(self, image_ref: str | None) -> bytes | None:
        """
        Download a thumbnail.

        Parameters
        ----------
        image_ref : str | None
            Thumbnail path or absolute URL.

        Returns
        -------
        bytes | None
            Image bytes, or None if there is no image or it cannot be fetched.
        """
        if not image_ref:
            return None

        url = self.resolve(image_ref)
        http = await self.session.get_session()

        try:
            async with http.get(url, headers=self.session.auth_headers()) as response:
                if not 200 <= response.status < 300:
                    logger.warning("Cannot download thumbnail: HTTP %d", response.status)
                    return None

                if response.content_length and response.content_length > self.max_size:
                    logger.warning(
                        "Thumbnail too large (%d bytes), sending text only",
                        response.content_length,
                    )
                    return None

                data = await response.read()
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.error("Error fetching thumbnail %s: %s", url, e)
            return None

        if len(data) > self.max_size:
            logger.warning("Thumbnail too large (%d bytes), sending text only", len(data))
            return None
        return data or None
