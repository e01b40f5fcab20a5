"""
Gallery Service.

Wraps an `ImageProvider` with the request cache and turns page-number
pagination into a scroll surface.

Key Components:
- `GalleryService`: Cached `fetch_page` and `fetch_by_id`, uncached `search`,
  and `iter_pages`, a lazy page cursor that stops at the first short or empty
  page (the source reports no total for the gallery listing).
- `GalleryScroll`: The concatenated list of images shown by an infinitely
  scrolling gallery. Pages are appended in request order; each page keeps its
  internal order. De-duplication by image id is opt-in. `load_pages` walks
  `iter_pages` to load several pages in one call.

Failures from the provider (`FetchError`) propagate unchanged and are never
cached, so a retry by the caller goes back to the source.
"""

import logging
import os
from typing import AsyncIterator, List, Optional, Set

from core.cache import CacheManager, cache_key, get_cache
from core.models import Image, SearchResults
from providers.image_provider import DEFAULT_PER_PAGE, ImageProvider

logger = logging.getLogger(__name__)


class GalleryService:
    """Cached access to the remote image source"""

    def __init__(
        self,
        provider: ImageProvider,
        cache: Optional[CacheManager] = None,
        cache_ttl: Optional[float] = None,
    ):
        self.provider = provider
        self.cache = cache or get_cache()
        self.cache_ttl = (
            cache_ttl
            if cache_ttl is not None
            else float(os.getenv("IMAGE_CACHE_TTL", "300"))
        )

    async def fetch_page(
        self, page: int = 1, per_page: int = DEFAULT_PER_PAGE
    ) -> List[Image]:
        key = cache_key(self.provider.source_name, "page", page, per_page)
        images = await self.cache.get_or_fetch(
            key, lambda: self.provider.fetch_page(page, per_page), ttl=self.cache_ttl
        )
        return list(images)

    async def fetch_by_id(self, image_id: str) -> Image:
        key = cache_key(self.provider.source_name, "photo", image_id)
        return await self.cache.get_or_fetch(
            key, lambda: self.provider.fetch_by_id(image_id), ttl=self.cache_ttl
        )

    async def search(self, query: str, page: int = 1) -> SearchResults:
        return await self.provider.search(query, page)

    async def iter_pages(
        self,
        per_page: int = DEFAULT_PER_PAGE,
        start_page: int = 1,
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[List[Image]]:
        """
        Yield pages lazily, starting at start_page.

        Terminates after a page shorter than per_page (which is still yielded
        when non-empty), on an empty page, or after max_pages pages.
        """
        page = start_page
        fetched = 0
        while max_pages is None or fetched < max_pages:
            images = await self.fetch_page(page, per_page)
            fetched += 1
            if not images:
                logger.debug(f"Empty page {page}; gallery exhausted")
                return
            yield images
            if len(images) < per_page:
                logger.debug(f"Short page {page} ({len(images)}/{per_page}); gallery exhausted")
                return
            page += 1


class GalleryScroll:
    """Scroll surface built from consecutive gallery pages"""

    def __init__(
        self,
        gallery: GalleryService,
        per_page: int = DEFAULT_PER_PAGE,
        deduplicate: bool = False,
        start_page: int = 1,
    ):
        self.gallery = gallery
        self.per_page = per_page
        self.deduplicate = deduplicate
        self.images: List[Image] = []
        self.next_page = start_page
        self.has_next_page = True
        self._seen_ids: Set[str] = set()

    async def load_next_page(self) -> List[Image]:
        """
        Fetch the next page and append it. Returns the images appended.

        A FetchError leaves the scroll untouched so the same page can be
        requested again.
        """
        if not self.has_next_page:
            return []

        page = await self.gallery.fetch_page(self.next_page, self.per_page)
        return self._append(page)

    async def load_pages(self, count: int) -> List[Image]:
        """
        Append up to count pages, stopping early at the end of the gallery.

        Pages fetched before a FetchError stay appended.
        """
        if not self.has_next_page:
            return []

        appended: List[Image] = []
        loaded = 0
        async for page in self.gallery.iter_pages(
            self.per_page, start_page=self.next_page, max_pages=count
        ):
            loaded += 1
            appended.extend(self._append(page))

        if loaded < count:
            # iter_pages stopped early at the end of the gallery
            self.has_next_page = False
        return appended

    def _append(self, page: List[Image]) -> List[Image]:
        self.next_page += 1
        if len(page) < self.per_page:
            self.has_next_page = False

        appended = []
        for image in page:
            if self.deduplicate:
                if image.id in self._seen_ids:
                    continue
                self._seen_ids.add(image.id)
            appended.append(image)

        self.images.extend(appended)
        return appended
