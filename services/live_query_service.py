"""
Live Query and Aggregation Service.

Subscribes to the realtime store and derives what the views render:

- per-image reactions and their grouped counts (`group_by_emoji`),
- per-image comments, oldest first,
- the global activity feed, which viewers sort newest first (`sort_feed`) and
  render as sentences (`activity_text`).

Every subscription is push-based: the callback receives the full current
result set on subscribe and again whenever a matching record is created or
deleted by any writer. Groupings are recomputed from scratch on every
snapshot; nothing is maintained incrementally.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Union

from core.models import Comment, FeedItem, FeedItemType, Reaction, ReactionGroup
from providers.store_provider import LiveQuery, RealtimeStore, Subscription

logger = logging.getLogger(__name__)

Callback = Callable[[list], Union[None, Awaitable[None]]]
GroupsCallback = Callable[
    [List[ReactionGroup], List[Reaction]], Union[None, Awaitable[None]]
]


def group_by_emoji(reactions: Sequence[Reaction]) -> List[ReactionGroup]:
    """
    Partition reactions by exact emoji value.

    Groups appear in first-occurrence order of their emoji in the input;
    user_ids lists every contributing user, duplicates included.
    """
    groups: Dict[str, ReactionGroup] = {}
    for reaction in reactions:
        group = groups.get(reaction.emoji)
        if group is None:
            groups[reaction.emoji] = ReactionGroup(
                emoji=reaction.emoji, count=1, user_ids=[reaction.user_id]
            )
        else:
            group.count += 1
            group.user_ids.append(reaction.user_id)
    return list(groups.values())


def sort_feed(items: Sequence[FeedItem]) -> List[FeedItem]:
    """Newest first; ties keep delivery order"""
    return sorted(items, key=lambda item: item.created_at or 0, reverse=True)


def activity_text(item: FeedItem) -> str:
    title = item.image_title or "Untitled Image"
    if item.type == FeedItemType.REACTION:
        return f'{item.username} reacted {item.emoji} on "{title}"'
    if item.type == FeedItemType.COMMENT:
        return f'{item.username} commented on "{title}": "{item.comment_text}"'
    return ""


class LiveQueryService:
    """Live views over reactions, comments and the activity feed"""

    def __init__(self, store: RealtimeStore):
        self.store = store

    async def subscribe_reactions(
        self, image_id: str, callback: Callback
    ) -> Subscription:
        return await self.store.subscribe(
            LiveQuery.of("reactions", image_id=image_id), callback
        )

    async def subscribe_reaction_groups(
        self, image_id: str, callback: GroupsCallback
    ) -> Subscription:
        """Like subscribe_reactions, but delivers (groups, reactions)"""

        def on_snapshot(reactions: List[Reaction]):
            return callback(group_by_emoji(reactions), reactions)

        return await self.subscribe_reactions(image_id, on_snapshot)

    async def subscribe_comments(
        self, image_id: str, callback: Callback
    ) -> Subscription:
        return await self.store.subscribe(
            LiveQuery.of("comments", image_id=image_id), callback
        )

    async def subscribe_feed(self, callback: Callback) -> Subscription:
        """Unscoped feed, delivered unsorted; callers apply sort_feed"""
        return await self.store.subscribe(LiveQuery.of("feed_items"), callback)

    # One-shot readers for request/response callers

    async def get_reactions(self, image_id: str) -> List[Reaction]:
        return await self.store.query(LiveQuery.of("reactions", image_id=image_id))

    async def get_reaction_groups(self, image_id: str) -> List[ReactionGroup]:
        return group_by_emoji(await self.get_reactions(image_id))

    async def get_comments(self, image_id: str) -> List[Comment]:
        return await self.store.query(LiveQuery.of("comments", image_id=image_id))

    async def get_feed(self, limit: Optional[int] = None) -> List[FeedItem]:
        items = sort_feed(await self.store.query(LiveQuery.of("feed_items")))
        return items[:limit] if limit is not None else items

    async def get_reaction(self, reaction_id: str) -> Optional[Reaction]:
        return await self.store.get("reactions", reaction_id)

    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        return await self.store.get("comments", comment_id)
