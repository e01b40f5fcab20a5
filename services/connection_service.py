"""
Live View Connection Management Service.

This module provides the `ConnectionService`, which owns the live subscriptions
behind every open view: an image detail overlay (reaction groups and comments
for one image) or the activity feed panel. Each view is a session identified by
a `session_id`; closing the view stops the session and tears down its
subscriptions, which is the only cancellation the live queries know.

Key Components:
- `ViewScope`: What a session watches, either `ViewScope.image(image_id)` or
  `ViewScope.feed()`.
- `ConnectionService`: Maps session ids to their subscriptions and the
  callback that forwards snapshot messages (typically to a WebSocket).

Messages handed to the callback are plain dicts:
- `{"type": "reactions", "image_id", "groups", "reactions"}`
- `{"type": "comments", "image_id", "comments"}`
- `{"type": "feed", "items"}` with items sorted newest first and carrying
  their rendered activity `text`.

State is held in memory, which suits one process per client.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from core.models import Comment, FeedItem, Reaction, ReactionGroup
from providers.store_provider import Subscription
from services.live_query_service import LiveQueryService, activity_text, sort_feed

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ViewScope:
    kind: str
    image_id: Optional[str] = None

    @classmethod
    def image(cls, image_id: str) -> "ViewScope":
        return cls("image", image_id)

    @classmethod
    def feed(cls) -> "ViewScope":
        return cls("feed")


def feed_message(items: List[FeedItem]) -> Dict[str, Any]:
    return {
        "type": "feed",
        "items": [
            {**item.model_dump(mode="json"), "text": activity_text(item)}
            for item in sort_feed(items)
        ],
    }


def reactions_message(
    image_id: str, groups: List[ReactionGroup], reactions: List[Reaction]
) -> Dict[str, Any]:
    return {
        "type": "reactions",
        "image_id": image_id,
        "groups": [group.model_dump() for group in groups],
        "reactions": [reaction.model_dump(mode="json") for reaction in reactions],
    }


def comments_message(image_id: str, comments: List[Comment]) -> Dict[str, Any]:
    return {
        "type": "comments",
        "image_id": image_id,
        "comments": [comment.model_dump(mode="json") for comment in comments],
    }


class ConnectionService:
    """Service that manages the live subscriptions of open views"""

    def __init__(self, live_queries: LiveQueryService):
        self.live_queries = live_queries

        # Maps session_id to its live subscriptions
        self.active_sessions: Dict[str, List[Subscription]] = {}

        # Maps session_id to what it is watching
        self.session_scopes: Dict[str, ViewScope] = {}

    async def start_session(
        self, session_id: str, scope: ViewScope, callback: MessageCallback
    ) -> bool:
        """
        Open the live subscriptions for a view.

        Args:
            session_id: Unique session identifier
            scope: The image or feed being watched
            callback: Receives every snapshot message, starting with the
                current state

        Returns:
            bool: True if all subscriptions were established
        """
        if session_id in self.active_sessions:
            logger.warning(f"Session {session_id} already active, restarting")
            await self.stop_session(session_id)

        logger.info(
            f"Starting {scope.kind} session {session_id}",
            extra={"session_id": session_id, "image_id": scope.image_id},
        )

        subscriptions: List[Subscription] = []
        try:
            if scope.kind == "image":
                image_id = scope.image_id

                def on_reactions(groups, reactions):
                    return callback(reactions_message(image_id, groups, reactions))

                def on_comments(comments):
                    return callback(comments_message(image_id, comments))

                subscriptions.append(
                    await self.live_queries.subscribe_reaction_groups(
                        image_id, on_reactions
                    )
                )
                subscriptions.append(
                    await self.live_queries.subscribe_comments(image_id, on_comments)
                )
            elif scope.kind == "feed":
                subscriptions.append(
                    await self.live_queries.subscribe_feed(
                        lambda items: callback(feed_message(items))
                    )
                )
            else:
                raise ValueError(f"Unknown view scope: {scope.kind}")

        except Exception as e:
            logger.error(f"Error starting session {session_id}: {e}", exc_info=True)
            for subscription in subscriptions:
                subscription.close()
            return False

        self.active_sessions[session_id] = subscriptions
        self.session_scopes[session_id] = scope
        logger.info(f"Successfully started session {session_id}")
        return True

    async def stop_session(self, session_id: str) -> bool:
        """
        Tear down the subscriptions of a session.

        Returns:
            bool: True if the session existed
        """
        subscriptions = self.active_sessions.pop(session_id, None)
        self.session_scopes.pop(session_id, None)
        if subscriptions is None:
            logger.warning(f"No active session found for {session_id}")
            return False

        for subscription in subscriptions:
            subscription.close()

        logger.info(f"Stopped session {session_id}")
        return True

    def is_active(self, session_id: str) -> bool:
        subscriptions = self.active_sessions.get(session_id)
        return bool(subscriptions) and all(sub.active for sub in subscriptions)

    def get_active_sessions(self) -> Dict[str, Dict[str, Any]]:
        """Information about all active sessions"""
        return {
            session_id: {
                "session_id": session_id,
                "scope": self.session_scopes[session_id].kind,
                "image_id": self.session_scopes[session_id].image_id,
                "active": self.is_active(session_id),
                "subscriptions": len(subscriptions),
                "deliveries": sum(sub.deliveries for sub in subscriptions),
            }
            for session_id, subscriptions in self.active_sessions.items()
        }

    def get_connection_stats(self) -> Dict[str, Any]:
        total_sessions = len(self.active_sessions)
        image_sessions = sum(
            1 for scope in self.session_scopes.values() if scope.kind == "image"
        )

        return {
            "total_sessions": total_sessions,
            "image_sessions": image_sessions,
            "feed_sessions": total_sessions - image_sessions,
            "active_session_ids": list(self.active_sessions.keys()),
        }

    async def stop_all_sessions(self) -> int:
        """Stop every session (used on shutdown). Returns sessions stopped."""
        stopped_count = 0
        for session_id in list(self.active_sessions.keys()):
            if await self.stop_session(session_id):
                stopped_count += 1

        logger.info(f"Stopped {stopped_count} live sessions")
        return stopped_count
