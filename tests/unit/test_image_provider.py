"""
Unit tests for the Unsplash image provider

Tests request building and error mapping with a mocked aiohttp session.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, Mock, patch

import aiohttp

from core.exceptions import FetchError
from providers.image_provider import UnsplashImageProvider

PHOTO = {
    "id": "abc123",
    "alt_description": "a quiet harbour",
    "description": None,
    "likes": 12,
    "user": {"name": "Ann", "username": "ann", "links": {"html": "https://unsplash.com/@ann"}},
    "urls": {"regular": "https://images.unsplash.com/abc123", "small": "https://images.unsplash.com/abc123s"},
}


class TestUnsplashImageProvider:
    """Test UnsplashImageProvider"""

    @pytest.fixture
    def provider(self):
        return UnsplashImageProvider(
            access_key="key-1", base_url="https://api.test/", timeout_seconds=5
        )

    @pytest.fixture
    def mock_http(self, async_context_manager):
        """Patch aiohttp.ClientSession; returns (session, response)"""

        def install(status=200, payload=None, error=None):
            response = Mock()
            response.status = status
            response.json = AsyncMock(return_value=payload, side_effect=error)

            session = Mock()
            session.get = Mock(return_value=async_context_manager(response))

            patcher = patch(
                "aiohttp.ClientSession", return_value=async_context_manager(session)
            )
            patcher.start()
            return session, response, patcher

        patchers = []

        def factory(**kwargs):
            session, response, patcher = install(**kwargs)
            patchers.append(patcher)
            return session, response

        yield factory
        for patcher in patchers:
            patcher.stop()

    def test_properties(self, provider):
        assert provider.source_name == "unsplash"
        assert provider.base_url == "https://api.test"

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("UNSPLASH_ACCESS_KEY", "env-key")
        monkeypatch.setenv("UNSPLASH_API_BASE", "https://env.test")

        provider = UnsplashImageProvider()

        assert provider.access_key == "env-key"
        assert provider.base_url == "https://env.test"

    @pytest.mark.asyncio
    async def test_fetch_page_success(self, provider, mock_http):
        session, _ = mock_http(payload=[PHOTO, {**PHOTO, "id": "def456"}])

        images = await provider.fetch_page(2, 12)

        assert [image.id for image in images] == ["abc123", "def456"]
        assert images[0].alt_description == "a quiet harbour"
        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert url == "https://api.test/photos"
        assert params == {"page": 2, "per_page": 12, "order_by": "latest", "client_id": "key-1"}

    @pytest.mark.asyncio
    async def test_fetch_page_non_2xx_raises(self, provider, mock_http):
        mock_http(status=403, payload={"errors": ["Rate Limit Exceeded"]})

        with pytest.raises(FetchError) as exc_info:
            await provider.fetch_page(1)

        assert exc_info.value.upstream_status == 403

    @pytest.mark.asyncio
    async def test_fetch_page_rejects_non_list(self, provider, mock_http):
        mock_http(payload={"unexpected": True})

        with pytest.raises(FetchError):
            await provider.fetch_page(1)

    @pytest.mark.asyncio
    async def test_fetch_by_id(self, provider, mock_http):
        session, _ = mock_http(payload=PHOTO)

        image = await provider.fetch_by_id("abc123")

        assert image.id == "abc123"
        assert image.user.username == "ann"
        assert session.get.call_args.args[0] == "https://api.test/photos/abc123"

    @pytest.mark.asyncio
    async def test_fetch_by_id_not_found(self, provider, mock_http):
        mock_http(status=404, payload={"errors": ["Couldn't find Photo"]})

        with pytest.raises(FetchError) as exc_info:
            await provider.fetch_by_id("missing")

        assert exc_info.value.status_code == 502
        assert exc_info.value.upstream_status == 404

    @pytest.mark.asyncio
    async def test_search(self, provider, mock_http):
        session, _ = mock_http(payload={"total": 1, "total_pages": 1, "results": [PHOTO]})

        results = await provider.search("harbour", 3)

        assert results.total == 1
        assert results.results[0].id == "abc123"
        params = session.get.call_args.kwargs["params"]
        assert params["query"] == "harbour"
        assert params["page"] == 3

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, provider, mock_http):
        mock_http(error=ValueError("Expecting value"))

        with pytest.raises(FetchError):
            await provider.fetch_page(1)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, provider):
        with patch("aiohttp.ClientSession", side_effect=aiohttp.ClientError("refused")):
            with pytest.raises(FetchError) as exc_info:
                await provider.fetch_page(1)

        assert exc_info.value.upstream_status is None

    @pytest.mark.asyncio
    async def test_timeout_raises(self, provider):
        with patch("aiohttp.ClientSession", side_effect=asyncio.TimeoutError()):
            with pytest.raises(FetchError) as exc_info:
                await provider.fetch_by_id("abc123")

        assert "timed out" in exc_info.value.message
