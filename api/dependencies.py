from typing import Optional

from core.cache import get_cache
from providers.image_provider import UnsplashImageProvider
from providers.store_provider import RealtimeStore
from services.connection_service import ConnectionService
from services.gallery_service import GalleryService
from services.identity_service import IdentityContext, get_identity_context
from services.interaction_service import InteractionWriter
from services.live_query_service import LiveQueryService

store: Optional[RealtimeStore] = None
gallery_service: Optional[GalleryService] = None
interaction_writer: Optional[InteractionWriter] = None
live_query_service: Optional[LiveQueryService] = None
connection_service: Optional[ConnectionService] = None


def configure_services(
    realtime_store: RealtimeStore, gallery: Optional[GalleryService] = None
) -> None:
    """Wire the service singletons around a store; called from the app lifespan"""
    global store, gallery_service, interaction_writer, live_query_service, connection_service

    store = realtime_store
    gallery_service = gallery or GalleryService(UnsplashImageProvider(), get_cache())
    interaction_writer = InteractionWriter(realtime_store)
    live_query_service = LiveQueryService(realtime_store)
    connection_service = ConnectionService(live_query_service)


def _require(service, name: str):
    if service is None:
        raise RuntimeError(f"{name} requested before configure_services()")
    return service


def get_store() -> RealtimeStore:
    return _require(store, "store")


def get_gallery_service() -> GalleryService:
    return _require(gallery_service, "gallery_service")


def get_interaction_writer() -> InteractionWriter:
    return _require(interaction_writer, "interaction_writer")


def get_live_query_service() -> LiveQueryService:
    return _require(live_query_service, "live_query_service")


def get_connection_service() -> ConnectionService:
    return _require(connection_service, "connection_service")


def get_identity() -> IdentityContext:
    return get_identity_context()
