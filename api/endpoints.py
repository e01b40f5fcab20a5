"""
API Endpoints for the Gallery Live API.

This module defines the REST and WebSocket surface that the gallery front end
talks to. It composes the image source, the interaction writer and the live
queries; the endpoints themselves hold no aggregation logic.

Endpoints Provided:
- `/identity`: The local user's id and display name.
- `/emojis`: The reaction palette, optionally filtered by name.
- `/photos`, `/photos/{image_id}`, `/search/photos`: Image source reads.
  Failures surface as `FetchError` (502).
- `/gallery`: Several consecutive pages at once for a scrolling view, with
  the next page to request and whether one exists.
- `/images/{image_id}/reactions`, `/images/{image_id}/comments`: Read the
  current state, or add a reaction/comment. Input is validated here, before
  the writer is called.
- `/reactions/{id}`, `/comments/{id}` (DELETE): Creator-only deletes.
- `/feed`: The activity feed, newest first, with rendered activity text.
- `/status`, `/sessions`: Live session and store statistics.
- `/ws/images/{image_id}`, `/ws/feed`: Live views pushing full snapshots.

Write endpoints report the writer's `WriteResult` as-is: 201 (or 200 for
deletes) when it succeeded, 202 when the record was written without its feed
entry, 503 when nothing was written.
"""

import logging
import uuid
from typing import List, Optional, Tuple
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.cache import get_cache
from core.database import get_database_info
from core.exceptions import (
    PermissionDeniedError,
    RecordNotFoundError,
    ValidationError,
    WebSocketConnectionError,
)
from core.logging_config import log_function_call, set_correlation_id
from core.models import (
    Comment,
    Identity,
    Image,
    ReactionGroup,
    Reaction,
    SearchResults,
    WriteResult,
    WriteStatus,
)
from core.validation import EMOJI_NAMES, InputValidator, search_emojis
from providers.store_provider import RealtimeStore
from services.connection_service import ConnectionService, ViewScope
from services.gallery_service import GalleryScroll, GalleryService
from services.identity_service import IdentityContext
from services.interaction_service import InteractionWriter
from services.live_query_service import LiveQueryService, activity_text, group_by_emoji
from .dependencies import (
    get_connection_service,
    get_gallery_service,
    get_identity,
    get_interaction_writer,
    get_live_query_service,
    get_store,
)

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Gallery"])
websocket_router = APIRouter(tags=["Live Views"])


# Request/Response Models
class ReactionRequest(BaseModel):
    emoji: str
    user_id: Optional[str] = None
    username: Optional[str] = None


class CommentRequest(BaseModel):
    text: str
    user_id: Optional[str] = None
    username: Optional[str] = None


class EmojiResponse(BaseModel):
    emoji: str
    name: str


class GalleryResponse(BaseModel):
    images: List[Image]
    next_page: int
    has_next_page: bool


class ReactionsResponse(BaseModel):
    image_id: str
    groups: List[ReactionGroup]
    reactions: List[Reaction]


class CommentsResponse(BaseModel):
    image_id: str
    count: int
    comments: List[Comment]


class FeedEntry(BaseModel):
    id: str
    type: str
    image_id: str
    image_title: str
    user_id: str
    username: str
    created_at: int
    emoji: Optional[str] = None
    comment_text: Optional[str] = None
    text: str


async def resolve_author(
    user_id: Optional[str], username: Optional[str], identity: IdentityContext
) -> Tuple[str, str]:
    """Explicit author from the request, or the local identity"""
    if user_id is None and username is None:
        local = await identity.get_or_create()
        return local.user_id, local.username

    if not user_id or not username or not username.strip():
        raise ValidationError(
            "user_id", user_id, "user_id and username must be given together"
        )
    return InputValidator.validate_record_id(user_id, "user_id"), username.strip()


def write_response(result: WriteResult, success_status: int = 201) -> JSONResponse:
    status_code = {
        WriteStatus.OK: success_status,
        WriteStatus.PARTIAL: 202,
        WriteStatus.FAILED: 503,
    }[result.status]
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


# Identity and palette
@router.get("/identity", response_model=Identity)
async def get_local_identity(identity: IdentityContext = Depends(get_identity)):
    """The local user's persisted id and display name"""
    return await identity.get_or_create()


@router.get("/emojis", response_model=List[EmojiResponse])
async def list_emojis(search: str = ""):
    """Reaction palette, filtered by name"""
    return [
        EmojiResponse(emoji=emoji, name=EMOJI_NAMES[emoji])
        for emoji in search_emojis(search)
    ]


# Image source
@router.get("/photos", response_model=List[Image])
async def list_photos(
    page: int = 1,
    per_page: int = 12,
    gallery: GalleryService = Depends(get_gallery_service),
):
    """One page of the latest images"""
    InputValidator.validate_page(page, per_page)
    return await gallery.fetch_page(page, per_page)


@router.get("/gallery", response_model=GalleryResponse)
async def get_gallery(
    start_page: int = 1,
    pages: int = Query(1, ge=1, le=10),
    per_page: int = 12,
    gallery: GalleryService = Depends(get_gallery_service),
):
    """
    Consecutive gallery pages for an infinitely scrolling view.

    Images are de-duplicated by id across the loaded pages. `has_next_page`
    turns false at the first short or empty page.
    """
    InputValidator.validate_page(start_page, per_page)
    scroll = GalleryScroll(
        gallery, per_page=per_page, deduplicate=True, start_page=start_page
    )
    await scroll.load_pages(pages)
    return GalleryResponse(
        images=scroll.images,
        next_page=scroll.next_page,
        has_next_page=scroll.has_next_page,
    )


@router.get("/photos/{image_id}", response_model=Image)
async def get_photo(
    image_id: str, gallery: GalleryService = Depends(get_gallery_service)
):
    InputValidator.validate_record_id(image_id, "image_id")
    return await gallery.fetch_by_id(image_id)


@router.get("/search/photos", response_model=SearchResults)
async def search_photos(
    query: str = Query(..., min_length=1),
    page: int = 1,
    gallery: GalleryService = Depends(get_gallery_service),
):
    InputValidator.validate_page(page)
    return await gallery.search(query, page)


# Reactions
@router.get("/images/{image_id}/reactions", response_model=ReactionsResponse)
async def get_image_reactions(
    image_id: str, live: LiveQueryService = Depends(get_live_query_service)
):
    """Current reactions of an image and their grouped counts"""
    InputValidator.validate_record_id(image_id, "image_id")
    reactions = await live.get_reactions(image_id)
    return ReactionsResponse(
        image_id=image_id, groups=group_by_emoji(reactions), reactions=reactions
    )


@router.post("/images/{image_id}/reactions")
@log_function_call(logger)
async def add_image_reaction(
    image_id: str,
    request: ReactionRequest,
    gallery: GalleryService = Depends(get_gallery_service),
    writer: InteractionWriter = Depends(get_interaction_writer),
    identity: IdentityContext = Depends(get_identity),
):
    """React to an image with an emoji from the palette"""
    InputValidator.validate_record_id(image_id, "image_id")
    emoji = InputValidator.validate_emoji(request.emoji)
    user_id, username = await resolve_author(
        request.user_id, request.username, identity
    )
    image = await gallery.fetch_by_id(image_id)

    result = await writer.add_reaction(image_id, emoji, user_id, username, image)
    return write_response(result)


@router.delete("/reactions/{reaction_id}")
async def delete_reaction(
    reaction_id: str,
    user_id: Optional[str] = None,
    live: LiveQueryService = Depends(get_live_query_service),
    writer: InteractionWriter = Depends(get_interaction_writer),
    identity: IdentityContext = Depends(get_identity),
):
    """Delete a reaction; only its creator may do so"""
    InputValidator.validate_record_id(reaction_id, "reaction_id")
    reaction = await live.get_reaction(reaction_id)
    if reaction is None:
        raise RecordNotFoundError("reaction", reaction_id)

    requester = user_id or (await identity.get_or_create()).user_id
    if reaction.user_id != requester:
        raise PermissionDeniedError("reaction", reaction_id)

    return write_response(await writer.delete_reaction(reaction_id), 200)


# Comments
@router.get("/images/{image_id}/comments", response_model=CommentsResponse)
async def get_image_comments(
    image_id: str, live: LiveQueryService = Depends(get_live_query_service)
):
    InputValidator.validate_record_id(image_id, "image_id")
    comments = await live.get_comments(image_id)
    return CommentsResponse(image_id=image_id, count=len(comments), comments=comments)


@router.post("/images/{image_id}/comments")
@log_function_call(logger)
async def add_image_comment(
    image_id: str,
    request: CommentRequest,
    gallery: GalleryService = Depends(get_gallery_service),
    writer: InteractionWriter = Depends(get_interaction_writer),
    identity: IdentityContext = Depends(get_identity),
):
    """Comment on an image; empty or whitespace-only text is rejected"""
    InputValidator.validate_record_id(image_id, "image_id")
    text = InputValidator.validate_comment_text(request.text)
    user_id, username = await resolve_author(
        request.user_id, request.username, identity
    )
    image = await gallery.fetch_by_id(image_id)

    result = await writer.add_comment(image_id, text, user_id, username, image)
    return write_response(result)


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    user_id: Optional[str] = None,
    live: LiveQueryService = Depends(get_live_query_service),
    writer: InteractionWriter = Depends(get_interaction_writer),
    identity: IdentityContext = Depends(get_identity),
):
    """Delete a comment; only its creator may do so"""
    InputValidator.validate_record_id(comment_id, "comment_id")
    comment = await live.get_comment(comment_id)
    if comment is None:
        raise RecordNotFoundError("comment", comment_id)

    requester = user_id or (await identity.get_or_create()).user_id
    if comment.user_id != requester:
        raise PermissionDeniedError("comment", comment_id)

    return write_response(await writer.delete_comment(comment_id), 200)


# Activity feed
@router.get("/feed", response_model=List[FeedEntry])
async def get_feed(
    limit: int = Query(50, ge=1, le=500),
    live: LiveQueryService = Depends(get_live_query_service),
):
    """Activity feed, newest first"""
    items = await live.get_feed(limit)
    return [
        FeedEntry(**item.model_dump(mode="json"), text=activity_text(item))
        for item in items
    ]


# Status
@router.get("/status")
async def get_api_status(
    conn_svc: ConnectionService = Depends(get_connection_service),
    store: RealtimeStore = Depends(get_store),
):
    """API status and statistics"""
    return {
        "status": "healthy",
        "service": "Gallery Live API",
        "sessions": conn_svc.get_connection_stats(),
        "store": store.stats(),
        "cache": await get_cache().backend.stats(),
        "database": await get_database_info(),
    }


@router.get("/sessions")
async def get_active_sessions(
    conn_svc: ConnectionService = Depends(get_connection_service),
):
    """Information about open live views"""
    return conn_svc.get_active_sessions()


# WebSocket Endpoints
async def serve_live_view(
    websocket: WebSocket, scope: ViewScope, conn_svc: ConnectionService
) -> None:
    """Accept the socket, stream snapshots until the client goes away"""
    # Two sockets may present the same client id; each connection gets its own key
    client_session_id = websocket.query_params.get("session_id")
    connection_id = uuid.uuid4().hex
    session_id = (
        f"{client_session_id}-{connection_id[:8]}" if client_session_id else connection_id
    )
    set_correlation_id(session_id)

    await websocket.accept()
    await websocket.send_json(
        {
            "type": "connected",
            "session_id": session_id,
            "client_session_id": client_session_id,
            "scope": scope.kind,
            "image_id": scope.image_id,
        }
    )

    started = await conn_svc.start_session(session_id, scope, websocket.send_json)
    if not started:
        error = WebSocketConnectionError(session_id, "live view could not be started")
        logger.error(error.message, extra={"session_id": session_id})
        await websocket.send_json(
            {"type": "error", "code": error.error_code, "message": error.message}
        )
        await websocket.close(code=1011)
        return

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await websocket.send_json(
                    {"type": "error", "message": "Messages must be JSON objects"}
                )
                continue

            message_type = data.get("type") if isinstance(data, dict) else None
            if message_type == "ping":
                await websocket.send_json({"type": "pong"})
            elif message_type == "status":
                await websocket.send_json(
                    {
                        "type": "status_response",
                        "session_id": session_id,
                        "active": conn_svc.is_active(session_id),
                    }
                )

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for session {session_id}")
    finally:
        await conn_svc.stop_session(session_id)


@websocket_router.websocket("/ws/images/{image_id}")
async def websocket_image_view(
    websocket: WebSocket,
    image_id: str,
    conn_svc: ConnectionService = Depends(get_connection_service),
):
    """Live reaction groups and comments for one image"""
    if not InputValidator.RECORD_ID_PATTERN.match(image_id):
        await websocket.close(code=4400, reason="Invalid image id")
        return
    await serve_live_view(websocket, ViewScope.image(image_id), conn_svc)


@websocket_router.websocket("/ws/feed")
async def websocket_feed_view(
    websocket: WebSocket,
    conn_svc: ConnectionService = Depends(get_connection_service),
):
    """Live activity feed, newest first"""
    await serve_live_view(websocket, ViewScope.feed(), conn_svc)
