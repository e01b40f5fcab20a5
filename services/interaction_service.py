"""
Interaction Writer Service.

This module provides the `InteractionWriter`, the only component that creates
or deletes reactions and comments. Every creation is a paired write: the domain
record plus an append-only `FeedItem` that mirrors it for the live activity
panel.

Key behaviors:
- One timestamp per operation: the record and its feed item share `created_at`.
- The feed item carries a snapshot of the image title taken at write time
  (`alt_description`, or "Untitled Image").
- When the store supports atomic batches both records go in one transaction.
  Otherwise they are written in sequence, and a failed feed write after a
  successful record write is reported as `partial`; the feed is a best-effort
  activity log, not a source of truth.
- Deletes remove exactly the named record. Feed items are never retracted.
- Nothing here raises to the caller. Failures are logged and returned as a
  `WriteResult` carrying a `WriteError` message; the caller decides whether
  to surface them.

Validation (empty comment text, palette membership) is the caller's job and
happens before these methods are invoked.
"""

import logging
import time
from typing import Optional

from core.exceptions import WriteError
from core.models import FeedItemType, Image, WriteResult, WriteStatus, image_title_of
from providers.store_provider import RealtimeStore, TxOp

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class InteractionWriter:
    """Writes reactions and comments together with their feed entries"""

    def __init__(self, store: RealtimeStore):
        self.store = store

    async def add_reaction(
        self,
        image_id: str,
        emoji: str,
        user_id: str,
        username: str,
        image: Optional[Image] = None,
    ) -> WriteResult:
        created_at = now_ms()
        reaction_id = self.store.new_id()
        record = TxOp.create(
            "reactions",
            reaction_id,
            image_id=image_id,
            emoji=emoji,
            user_id=user_id,
            username=username,
            created_at=created_at,
        )
        feed_item_id = self.store.new_id()
        feed = TxOp.create(
            "feed_items",
            feed_item_id,
            type=FeedItemType.REACTION,
            image_id=image_id,
            image_title=image_title_of(image),
            emoji=emoji,
            user_id=user_id,
            username=username,
            created_at=created_at,
        )
        return await self._write_pair("add_reaction", record, feed)

    async def add_comment(
        self,
        image_id: str,
        text: str,
        user_id: str,
        username: str,
        image: Optional[Image] = None,
    ) -> WriteResult:
        created_at = now_ms()
        comment_id = self.store.new_id()
        record = TxOp.create(
            "comments",
            comment_id,
            image_id=image_id,
            text=text,
            user_id=user_id,
            username=username,
            created_at=created_at,
        )
        feed_item_id = self.store.new_id()
        feed = TxOp.create(
            "feed_items",
            feed_item_id,
            type=FeedItemType.COMMENT,
            image_id=image_id,
            image_title=image_title_of(image),
            comment_text=text,
            user_id=user_id,
            username=username,
            created_at=created_at,
        )
        return await self._write_pair("add_comment", record, feed)

    async def delete_reaction(self, reaction_id: str) -> WriteResult:
        return await self._delete("delete_reaction", "reactions", reaction_id)

    async def delete_comment(self, comment_id: str) -> WriteResult:
        return await self._delete("delete_comment", "comments", comment_id)

    async def _write_pair(self, operation: str, record: TxOp, feed: TxOp) -> WriteResult:
        log_extra = {
            "operation": operation,
            "image_id": record.data["image_id"],
            "record_id": record.record_id,
        }

        if self.store.supports_atomic_batches:
            try:
                await self.store.transact([record, feed])
            except Exception as e:
                return self._failed(operation, e, log_extra, record_id=None)

            logger.info(f"{operation} committed", extra=log_extra)
            return WriteResult(
                status=WriteStatus.OK,
                operation=operation,
                record_id=record.record_id,
                feed_item_id=feed.record_id,
            )

        try:
            await self.store.transact([record])
        except Exception as e:
            return self._failed(operation, e, log_extra, record_id=None)

        try:
            await self.store.transact([feed])
        except Exception as e:
            error = WriteError(operation, f"feed entry not written: {e}")
            logger.warning(
                f"{operation} wrote the record but not its feed entry: {e}",
                extra=log_extra,
                exc_info=True,
            )
            return WriteResult(
                status=WriteStatus.PARTIAL,
                operation=operation,
                record_id=record.record_id,
                error=error.message,
            )

        logger.info(f"{operation} committed", extra=log_extra)
        return WriteResult(
            status=WriteStatus.OK,
            operation=operation,
            record_id=record.record_id,
            feed_item_id=feed.record_id,
        )

    async def _delete(self, operation: str, collection: str, record_id: str) -> WriteResult:
        log_extra = {"operation": operation, "record_id": record_id}
        try:
            await self.store.transact([TxOp.delete(collection, record_id)])
        except Exception as e:
            return self._failed(operation, e, log_extra, record_id=record_id)

        logger.info(f"{operation} committed", extra=log_extra)
        return WriteResult(
            status=WriteStatus.OK, operation=operation, record_id=record_id
        )

    def _failed(
        self, operation: str, exc: Exception, log_extra: dict, record_id: Optional[str]
    ) -> WriteResult:
        error = WriteError(operation, str(exc) or type(exc).__name__)
        logger.error(f"Error in {operation}: {exc}", extra=log_extra, exc_info=True)
        return WriteResult(
            status=WriteStatus.FAILED,
            operation=operation,
            record_id=record_id,
            error=error.message,
        )
