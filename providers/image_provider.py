"""
Image Provider Classes

Read-only access to the remote image collection. Providers fetch pages of the
latest images, single images by id, and search results. Pagination is
page-number based and the source reports no totals for the gallery listing:
a short or empty page is the only end-of-collection signal.

Every failure (non-2xx status, transport error, timeout, undecodable body)
surfaces as `FetchError`. There is no retry; callers decide what to show.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import aiohttp
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import FetchError
from core.models import Image, SearchResults

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 12
UNSPLASH_API_BASE = "https://api.unsplash.com"


class ImageProvider(ABC):
    """Abstract base class for image sources"""

    @abstractmethod
    async def fetch_page(
        self, page: int = 1, per_page: int = DEFAULT_PER_PAGE
    ) -> List[Image]:
        """Fetch one page of the latest images, in source order"""
        pass

    @abstractmethod
    async def fetch_by_id(self, image_id: str) -> Image:
        """Fetch a single image; raises FetchError when missing"""
        pass

    @abstractmethod
    async def search(self, query: str, page: int = 1) -> SearchResults:
        """Search images by free text"""
        pass

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Source identifier for this provider"""
        pass


class UnsplashImageProvider(ImageProvider):
    """Unsplash REST API provider using aiohttp"""

    def __init__(
        self,
        access_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.access_key = access_key or os.getenv("UNSPLASH_ACCESS_KEY", "")
        self.base_url = (
            base_url or os.getenv("UNSPLASH_API_BASE", UNSPLASH_API_BASE)
        ).rstrip("/")
        self.timeout_seconds = timeout_seconds or float(
            os.getenv("UNSPLASH_TIMEOUT_SECONDS", "10")
        )
        if not self.access_key:
            logger.warning("UNSPLASH_ACCESS_KEY is not set; requests will be rejected")

    @property
    def source_name(self) -> str:
        return "unsplash"

    async def fetch_page(
        self, page: int = 1, per_page: int = DEFAULT_PER_PAGE
    ) -> List[Image]:
        payload = await self._get_json(
            "/photos",
            {"page": page, "per_page": per_page, "order_by": "latest"},
            resource=f"photos page {page}",
        )
        if not isinstance(payload, list):
            raise FetchError(f"photos page {page}", "Expected a list of photos")

        images = self._parse_images(payload, f"photos page {page}")
        logger.info(f"Fetched {len(images)} photos for page {page}")
        return images

    async def fetch_by_id(self, image_id: str) -> Image:
        resource = f"photo {image_id}"
        payload = await self._get_json(f"/photos/{image_id}", {}, resource=resource)
        try:
            return Image.model_validate(payload)
        except PydanticValidationError as e:
            raise FetchError(resource, f"Malformed photo payload: {e}") from e

    async def search(self, query: str, page: int = 1) -> SearchResults:
        resource = f"search '{query}' page {page}"
        payload = await self._get_json(
            "/search/photos", {"query": query, "page": page}, resource=resource
        )
        try:
            return SearchResults.model_validate(payload)
        except PydanticValidationError as e:
            raise FetchError(resource, f"Malformed search payload: {e}") from e

    def _parse_images(self, payload: List[Dict[str, Any]], resource: str) -> List[Image]:
        try:
            return [Image.model_validate(item) for item in payload]
        except PydanticValidationError as e:
            raise FetchError(resource, f"Malformed photo payload: {e}") from e

    async def _get_json(
        self, path: str, params: Dict[str, Any], resource: str
    ) -> Any:
        """GET base_url + path with the access key; non-2xx raises FetchError"""
        url = f"{self.base_url}{path}"
        query = {**params, "client_id": self.access_key}

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=query) as response:
                    if response.status < 200 or response.status >= 300:
                        logger.warning(
                            f"Image source returned {response.status} for {resource}",
                            extra={"upstream_status": response.status, "path": path},
                        )
                        raise FetchError(
                            resource,
                            f"HTTP {response.status}",
                            upstream_status=response.status,
                        )
                    return await response.json(content_type=None)

        except FetchError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"Timed out fetching {resource}")
            raise FetchError(resource, "Request timed out") from e
        except aiohttp.ClientError as e:
            logger.error(f"Transport error fetching {resource}: {e}")
            raise FetchError(resource, f"Transport error: {e}") from e
        except ValueError as e:
            logger.error(f"Undecodable response for {resource}: {e}")
            raise FetchError(resource, "Response body is not valid JSON") from e
