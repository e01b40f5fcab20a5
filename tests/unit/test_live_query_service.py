"""
Unit tests for the live query service

Tests emoji grouping, feed ordering, activity text and the push-based
subscriptions built on the realtime store.
"""
import pytest

from core.models import Comment, FeedItem, FeedItemType, Reaction
from services.interaction_service import InteractionWriter
from services.live_query_service import (
    LiveQueryService,
    activity_text,
    group_by_emoji,
    sort_feed,
)

FIRE = "\U0001F525"
HEART = "❤️"
SPARKLE = "✨"


def reaction(emoji, user_id, created_at=0, image_id="image-1"):
    return Reaction(
        id=f"{user_id}-{created_at}",
        image_id=image_id,
        emoji=emoji,
        user_id=user_id,
        username=f"user {user_id}",
        created_at=created_at,
    )


def feed_item(item_id, created_at, **fields):
    values = {
        "type": FeedItemType.REACTION,
        "image_id": "image-1",
        "image_title": "a red bicycle",
        "user_id": "u1",
        "username": "Red Tiger",
        "emoji": FIRE,
    }
    values.update(fields)
    return FeedItem(id=item_id, created_at=created_at, **values)


class TestGroupByEmoji:
    """Test grouping of reactions by emoji"""

    def test_empty(self):
        assert group_by_emoji([]) == []

    def test_counts_and_first_occurrence_order(self):
        reactions = [
            reaction(FIRE, "a"),
            reaction(HEART, "b"),
            reaction(FIRE, "c"),
            reaction(SPARKLE, "a"),
            reaction(FIRE, "a"),
        ]

        groups = group_by_emoji(reactions)

        assert [(g.emoji, g.count) for g in groups] == [(FIRE, 3), (HEART, 1), (SPARKLE, 1)]
        assert groups[0].user_ids == ["a", "c", "a"]

    def test_counts_sum_to_total(self):
        reactions = [reaction(emoji, str(n)) for n, emoji in enumerate([FIRE, HEART] * 7)]

        groups = group_by_emoji(reactions)

        assert sum(g.count for g in groups) == len(reactions)
        assert all(g.count == len(g.user_ids) >= 1 for g in groups)
        assert len({g.emoji for g in groups}) == len(groups)

    def test_emoji_compared_exactly(self):
        """Variation selectors make a different emoji"""
        groups = group_by_emoji([reaction("❤", "a"), reaction(HEART, "b")])

        assert len(groups) == 2


class TestSortFeed:
    """Test feed ordering"""

    def test_newest_first(self):
        items = [feed_item("a", 100), feed_item("b", 300), feed_item("c", 200)]

        assert [item.created_at for item in sort_feed(items)] == [300, 200, 100]

    def test_ties_keep_input_order(self):
        items = [feed_item("a", 100), feed_item("b", 100), feed_item("c", 100)]

        assert [item.id for item in sort_feed(items)] == ["a", "b", "c"]


class TestActivityText:
    """Test feed sentence rendering"""

    def test_reaction_text(self):
        assert activity_text(feed_item("a", 1)) == f'Red Tiger reacted {FIRE} on "a red bicycle"'

    def test_comment_text(self):
        item = feed_item(
            "a", 1, type=FeedItemType.COMMENT, emoji=None, comment_text="lovely colours"
        )

        assert activity_text(item) == 'Red Tiger commented on "a red bicycle": "lovely colours"'


class TestLiveQueryService:
    """Test live subscriptions against the SQL store"""

    @pytest.fixture
    def live(self, store):
        return LiveQueryService(store)

    @pytest.fixture
    def writer(self, store):
        return InteractionWriter(store)

    @pytest.mark.asyncio
    async def test_reaction_groups_follow_writes(self, live, writer, store):
        snapshots = []
        await live.subscribe_reaction_groups(
            "image-1",
            lambda groups, reactions: snapshots.append(
                [(g.emoji, g.count) for g in groups]
            ),
        )

        await writer.add_reaction("image-1", FIRE, "u1", "Red Tiger")
        await writer.add_reaction("image-1", FIRE, "u2", "Blue Fox")
        await writer.add_reaction("image-2", HEART, "u2", "Blue Fox")
        await store.drain()

        assert snapshots == [[], [(FIRE, 1)], [(FIRE, 2)]]

    @pytest.mark.asyncio
    async def test_comments_snapshot_after_delete(self, live, writer, store):
        snapshots = []
        await live.subscribe_comments("image-1", lambda rows: snapshots.append(len(rows)))

        added = await writer.add_comment("image-1", "first", "u1", "Red Tiger")
        await writer.delete_comment(added.record_id)
        await store.drain()

        assert snapshots == [0, 1, 0]

    @pytest.mark.asyncio
    async def test_feed_survives_deletes(self, live, writer):
        added = await writer.add_reaction("image-1", FIRE, "u1", "Red Tiger")
        await writer.delete_reaction(added.record_id)

        feed = await live.get_feed()

        assert [item.id for item in feed] == [added.feed_item_id]
        assert await live.get_reactions("image-1") == []

    @pytest.mark.asyncio
    async def test_feed_subscription_sees_every_image(self, live, writer, store):
        snapshots = []
        await live.subscribe_feed(lambda rows: snapshots.append(len(rows)))

        await writer.add_reaction("image-1", FIRE, "u1", "Red Tiger")
        await writer.add_comment("image-2", "hi", "u1", "Red Tiger")
        await store.drain()

        assert snapshots == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_get_feed_limit(self, live, writer):
        for n in range(5):
            await writer.add_comment("image-1", f"comment {n}", "u1", "Red Tiger")

        assert len(await live.get_feed(limit=3)) == 3

    @pytest.mark.asyncio
    async def test_single_record_readers(self, live, writer):
        added = await writer.add_comment("image-1", "hello", "u1", "Red Tiger")

        comment = await live.get_comment(added.record_id)

        assert isinstance(comment, Comment)
        assert comment.text == "hello"
        assert await live.get_reaction("missing") is None

    @pytest.mark.asyncio
    async def test_get_reaction_groups(self, live, writer):
        await writer.add_reaction("image-1", SPARKLE, "u1", "Red Tiger")
        await writer.add_reaction("image-1", SPARKLE, "u1", "Red Tiger")

        groups = await live.get_reaction_groups("image-1")

        assert len(groups) == 1
        assert groups[0].count == 2
        assert groups[0].user_ids == ["u1", "u1"]
