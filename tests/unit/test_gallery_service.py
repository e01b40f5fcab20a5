"""
Unit tests for GalleryService and GalleryScroll

Tests caching of image source reads, page iteration and the scroll state.
"""
import pytest

from core.exceptions import FetchError
from services.gallery_service import GalleryScroll


class TestGalleryService:
    """Test GalleryService with a fake image source"""

    @pytest.mark.asyncio
    async def test_pages_are_disjoint_and_ordered(self, gallery_service, sample_images):
        page_one = await gallery_service.fetch_page(1, 12)
        page_two = await gallery_service.fetch_page(2, 12)

        assert [image.id for image in page_one] == [image.id for image in sample_images[:12]]
        assert [image.id for image in page_two] == [image.id for image in sample_images[12:24]]
        assert not {image.id for image in page_one} & {image.id for image in page_two}

    @pytest.mark.asyncio
    async def test_fetch_page_is_cached(self, gallery_service, fake_provider):
        await gallery_service.fetch_page(1, 12)
        await gallery_service.fetch_page(1, 12)
        await gallery_service.fetch_page(1, 6)

        assert fake_provider.calls == [("page", 1, 12), ("page", 1, 6)]

    @pytest.mark.asyncio
    async def test_fetch_by_id_is_cached(self, gallery_service, fake_provider):
        first = await gallery_service.fetch_by_id("image-2")
        second = await gallery_service.fetch_by_id("image-2")

        assert first.id == second.id == "image-2"
        assert fake_provider.calls == [("photo", "image-2")]

    @pytest.mark.asyncio
    async def test_fetch_by_id_missing_raises(self, gallery_service):
        with pytest.raises(FetchError) as exc_info:
            await gallery_service.fetch_by_id("nope")

        assert exc_info.value.upstream_status == 404

    @pytest.mark.asyncio
    async def test_failed_fetch_not_cached(self, gallery_service, fake_provider):
        fake_provider.failures["page"] = FetchError("photos page 1", "HTTP 500", 500)
        with pytest.raises(FetchError):
            await gallery_service.fetch_page(1)

        del fake_provider.failures["page"]
        assert len(await gallery_service.fetch_page(1)) == 12

    @pytest.mark.asyncio
    async def test_search_is_not_cached(self, gallery_service, fake_provider):
        await gallery_service.search("number 1")
        results = await gallery_service.search("number 1")

        assert results.total > 0
        assert [call[0] for call in fake_provider.calls] == ["search", "search"]

    @pytest.mark.asyncio
    async def test_iter_pages_stops_after_short_page(self, gallery_service, fake_provider):
        pages = [page async for page in gallery_service.iter_pages(per_page=12)]

        assert [len(page) for page in pages] == [12, 12, 1]
        assert len(fake_provider.calls) == 3

    @pytest.mark.asyncio
    async def test_iter_pages_stops_on_empty_page(self, gallery_service):
        pages = [page async for page in gallery_service.iter_pages(per_page=5)]

        assert [len(page) for page in pages] == [5, 5, 5, 5, 5]

    @pytest.mark.asyncio
    async def test_iter_pages_max_pages(self, gallery_service):
        pages = [page async for page in gallery_service.iter_pages(per_page=5, max_pages=2)]

        assert len(pages) == 2


class TestGalleryScroll:
    """Test GalleryScroll state"""

    @pytest.mark.asyncio
    async def test_scroll_appends_pages(self, gallery_service, sample_images):
        scroll = GalleryScroll(gallery_service, per_page=12)

        await scroll.load_next_page()
        await scroll.load_next_page()

        assert [image.id for image in scroll.images] == [image.id for image in sample_images[:24]]
        assert scroll.next_page == 3
        assert scroll.has_next_page

    @pytest.mark.asyncio
    async def test_scroll_ends_on_short_page(self, gallery_service):
        scroll = GalleryScroll(gallery_service, per_page=12)

        for _ in range(4):
            await scroll.load_next_page()

        assert len(scroll.images) == 25
        assert not scroll.has_next_page
        assert await scroll.load_next_page() == []

    @pytest.mark.asyncio
    async def test_fetch_error_leaves_state_untouched(self, gallery_service, fake_provider):
        scroll = GalleryScroll(gallery_service, per_page=12)
        fake_provider.failures["page"] = FetchError("photos page 1", "Request timed out")

        with pytest.raises(FetchError):
            await scroll.load_next_page()

        assert scroll.images == []
        assert scroll.next_page == 1
        assert scroll.has_next_page

    @pytest.mark.asyncio
    async def test_deduplicate(self, gallery_service, fake_provider, sample_images):
        fake_provider.images = sample_images[:3] + sample_images[:3]
        scroll = GalleryScroll(gallery_service, per_page=3, deduplicate=True)

        await scroll.load_next_page()
        appended = await scroll.load_next_page()

        assert appended == []
        assert len(scroll.images) == 3

    @pytest.mark.asyncio
    async def test_load_pages(self, gallery_service, fake_provider):
        scroll = GalleryScroll(gallery_service, per_page=5)

        appended = await scroll.load_pages(3)

        assert len(appended) == 15
        assert scroll.next_page == 4
        assert scroll.has_next_page
        assert len(fake_provider.calls) == 3

    @pytest.mark.asyncio
    async def test_load_pages_from_start_page_to_end(self, gallery_service, sample_images):
        scroll = GalleryScroll(gallery_service, per_page=12, start_page=3)

        appended = await scroll.load_pages(5)

        assert [image.id for image in appended] == [sample_images[24].id]
        assert not scroll.has_next_page
        assert await scroll.load_pages(1) == []

    @pytest.mark.asyncio
    async def test_load_pages_ends_on_empty_page(self, gallery_service):
        scroll = GalleryScroll(gallery_service, per_page=5, start_page=5)

        await scroll.load_pages(3)

        assert len(scroll.images) == 5
        assert scroll.next_page == 6
        assert not scroll.has_next_page
