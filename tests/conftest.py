import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient
import os
import sys
from typing import Dict, Generator, List

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import app
from api.dependencies import get_gallery_service
from core.cache import CacheManager, MemoryCacheBackend
from core.database import init_engine, create_db_and_tables, dispose_engine, get_session_factory
from core.exceptions import FetchError
from core.models import Image, SearchResults
from providers.image_provider import DEFAULT_PER_PAGE, ImageProvider
from providers.store_provider import SQLRealtimeStore
from services.gallery_service import GalleryService
from services.identity_service import IdentityContext, MemoryLocalStorage

IN_MEMORY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_image(image_id: str, alt_description=None, **extra) -> Image:
    """Build an image the way the remote source would return it."""
    return Image.model_validate(
        {
            "id": image_id,
            "alt_description": alt_description,
            "user": {
                "name": "Test Photographer",
                "username": "tester",
                "links": {"html": "https://example.com/@tester"},
            },
            "urls": {
                "regular": f"https://images.example.com/{image_id}?w=1080",
                "small": f"https://images.example.com/{image_id}?w=400",
            },
            **extra,
        }
    )


class FakeImageProvider(ImageProvider):
    """In-memory image source with a fixed, ordered catalogue."""

    def __init__(self, images: List[Image]):
        self.images = images
        self.calls: List[tuple] = []
        self.failures: Dict[str, FetchError] = {}

    @property
    def source_name(self) -> str:
        return "fake"

    async def fetch_page(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> List[Image]:
        self.calls.append(("page", page, per_page))
        if "page" in self.failures:
            raise self.failures["page"]
        start = (page - 1) * per_page
        return self.images[start : start + per_page]

    async def fetch_by_id(self, image_id: str) -> Image:
        self.calls.append(("photo", image_id))
        for image in self.images:
            if image.id == image_id:
                return image
        raise FetchError(f"photos/{image_id}", "HTTP 404", upstream_status=404)

    async def search(self, query: str, page: int = 1) -> SearchResults:
        self.calls.append(("search", query, page))
        results = [
            image
            for image in self.images
            if query.lower() in (image.alt_description or "").lower()
        ]
        return SearchResults(total=len(results), total_pages=1, results=results)


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, tmp_path):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DATABASE_URL", IN_MEMORY_DATABASE_URL)
    monkeypatch.setenv("GALLERY_IDENTITY_FILE", str(tmp_path / "identity.json"))
    monkeypatch.setenv("UNSPLASH_ACCESS_KEY", "test_access_key")


@pytest.fixture
def sample_images() -> List[Image]:
    """Twenty-five images; image-3 has no description."""
    return [
        make_image(f"image-{n}", None if n == 3 else f"photo number {n}")
        for n in range(1, 26)
    ]


@pytest.fixture
def fake_provider(sample_images) -> FakeImageProvider:
    return FakeImageProvider(sample_images)


@pytest.fixture
def cache_manager() -> CacheManager:
    """Create a fresh cache manager for testing."""
    return CacheManager(MemoryCacheBackend())


@pytest.fixture
def gallery_service(fake_provider, cache_manager) -> GalleryService:
    return GalleryService(fake_provider, cache_manager, cache_ttl=60)


@pytest.fixture
async def store():
    """SQL realtime store over a private in-memory database."""
    init_engine(IN_MEMORY_DATABASE_URL)
    await create_db_and_tables()
    realtime_store = SQLRealtimeStore(get_session_factory())
    yield realtime_store
    realtime_store.close()
    await dispose_engine()


@pytest.fixture
def identity_context() -> IdentityContext:
    return IdentityContext(MemoryLocalStorage({"userId": "localuser1", "username": "Blue Fox"}))


@pytest.fixture
def test_client(gallery_service) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app, backed by the fake image source."""
    app.dependency_overrides[get_gallery_service] = lambda: gallery_service
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock()
    logger.info = Mock()
    logger.error = Mock()
    logger.warning = Mock()
    logger.debug = Mock()
    return logger


class AsyncContextManager:
    """Helper class for testing async context managers."""

    def __init__(self, return_value=None):
        self.return_value = return_value

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


@pytest.fixture
def async_context_manager():
    """Create an async context manager for testing."""
    return AsyncContextManager
