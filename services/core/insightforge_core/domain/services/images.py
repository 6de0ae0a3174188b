"""Download post images for multimodal extraction."""

import logging
from typing import Optional

import httpx

from insightforge_core.domain.services.inference import ImageInput

logger = logging.getLogger(__name__)

IMAGE_TIMEOUT = 10.0
DEFAULT_MEDIA_TYPE = "image/jpeg"
_KNOWN_TYPES = ("png", "gif", "webp")


def detect_media_type(url: str, content_type: Optional[str]) -> str:
    """Media type from the response header, falling back to the URL extension."""
    header = (content_type or "").lower()
    for kind in _KNOWN_TYPES:
        if kind in header:
            return f"image/{kind}"
    path = url.lower().split("?", 1)[0]
    for kind in _KNOWN_TYPES:
        if path.endswith(f".{kind}"):
            return f"image/{kind}"
    return DEFAULT_MEDIA_TYPE


class ImageFetcher:
    """Downloads images; failures return None and are only logged."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = IMAGE_TIMEOUT):
        self._http_client = http_client
        self.timeout = timeout

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._http_client

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(self, url: str) -> Optional[ImageInput]:
        client = self._get_http_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to download image {url}: {e}")
            return None
        if not response.content:
            return None
        return ImageInput(
            data=response.content,
            media_type=detect_media_type(url, response.headers.get("content-type")),
        )
