"""
Realtime Store Provider Classes

The realtime store holds reactions, comments and feed items and pushes live
query results to subscribers. The application only relies on two primitives:

- `transact(ops)`: apply one or more create/update/delete operations. When
  `supports_atomic_batches` is true the whole batch commits or fails together.
- `subscribe(query, callback)`: register a live query scoped by equality
  filters. The callback receives the full result set first and again
  after every committed change touching a matching record (snapshots, never
  diffs).

`SQLRealtimeStore` implements both on top of SQLModel and the async database
engine, with an in-process `ChangeBus` that re-runs each affected live query
once per commit and queues the snapshot on every subscriber of that query.
A write returns as soon as the snapshots are queued; each subscription hands
them to its callback from its own task, so a slow subscriber only delays
itself.
Record identifiers are generated by the caller before submission.
"""

import asyncio
import inspect
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, Union
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import SQLModel, select

from core.models import Comment, FeedItem, Reaction

logger = logging.getLogger(__name__)

COLLECTIONS: Dict[str, Type[SQLModel]] = {
    "reactions": Reaction,
    "comments": Comment,
    "feed_items": FeedItem,
}

MAX_PENDING_SNAPSHOTS = 100

SnapshotCallback = Callable[[List[Any]], Union[None, Awaitable[None]]]


class TxAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class TxOp:
    """One record operation inside a transaction"""

    collection: str
    record_id: str
    action: TxAction
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, collection: str, record_id: str, **data) -> "TxOp":
        return cls(collection, record_id, TxAction.CREATE, data)

    @classmethod
    def update(cls, collection: str, record_id: str, **data) -> "TxOp":
        return cls(collection, record_id, TxAction.UPDATE, data)

    @classmethod
    def delete(cls, collection: str, record_id: str) -> "TxOp":
        return cls(collection, record_id, TxAction.DELETE)


@dataclass(frozen=True)
class LiveQuery:
    """A collection plus equality filters. Hashable, used as the channel key."""

    collection: str
    where: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def of(cls, collection: str, **where) -> "LiveQuery":
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return cls(collection, tuple(sorted(where.items())))

    def matches(self, values: Dict[str, Any]) -> bool:
        return all(values.get(key) == expected for key, expected in self.where)


class Subscription:
    """
    Handle for a live query registration.

    Snapshots are queued with `push` and handed to the callback by a drain
    task owned by the subscription, so publishers never wait on a subscriber.
    Each subscriber sees its snapshots in commit order. When more than
    `MAX_PENDING_SNAPSHOTS` are waiting the oldest is dropped; every snapshot
    is a full result set, so the newest one supersedes it.
    """

    def __init__(
        self,
        query: LiveQuery,
        callback: SnapshotCallback,
        on_close: Callable[["Subscription"], None],
    ):
        self.id = uuid.uuid4().hex
        self.query = query
        self._callback = callback
        self._on_close = on_close
        self._active = True
        self._pending: asyncio.Queue = asyncio.Queue()
        self._drain_task: Optional[asyncio.Task] = None
        self.deliveries = 0
        self.dropped = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pending(self) -> int:
        return self._pending.qsize()

    def push(self, snapshot: List[Any]) -> None:
        """Queue a snapshot for delivery without waiting on the callback"""
        if not self._active:
            return

        if self._pending.qsize() >= MAX_PENDING_SNAPSHOTS:
            self._pending.get_nowait()
            self._pending.task_done()
            self.dropped += 1
            logger.warning(
                f"Subscriber for {self.query.collection} is falling behind, dropped a stale snapshot",
                extra={"subscription_id": self.id, "dropped": self.dropped},
            )

        self._pending.put_nowait(list(snapshot))
        if self._drain_task is None:
            self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            snapshot = await self._pending.get()
            try:
                await self.deliver(snapshot)
            finally:
                self._pending.task_done()

    async def deliver(self, snapshot: List[Any]) -> None:
        """Run the callback once; subscriber errors are logged, never propagated"""
        if not self._active:
            return
        try:
            result = self._callback(list(snapshot))
            if inspect.isawaitable(result):
                await result
            self.deliveries += 1
        except Exception as e:
            logger.error(
                f"Error in subscriber callback for {self.query.collection}: {e}",
                extra={"subscription_id": self.id},
                exc_info=True,
            )

    async def wait_idle(self) -> None:
        """Wait until every queued snapshot has been handed to the callback"""
        if self._active:
            await self._pending.join()

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._drain_task is not None:
            self._drain_task.cancel()
        while not self._pending.empty():
            self._pending.get_nowait()
            self._pending.task_done()
        self._on_close(self)


class ChangeBus:
    """
    Change notification bus keyed by live query.

    Snapshots are computed under a lock so every subscriber observes them in
    commit order. Delivery itself is queued on each subscription, so
    publishing never waits for subscriber I/O.
    """

    def __init__(self, run_query: Callable[[LiveQuery], Awaitable[List[Any]]]):
        self._run_query = run_query
        self._channels: Dict[LiveQuery, List[Subscription]] = {}
        self._lock = asyncio.Lock()

    def add(self, subscription: Subscription) -> None:
        self._channels.setdefault(subscription.query, []).append(subscription)

    async def attach(self, subscription: Subscription) -> None:
        """Queue the initial snapshot and start receiving changes"""
        async with self._lock:
            snapshot = await self._run_query(subscription.query)
            self.add(subscription)
            subscription.push(snapshot)

    def remove(self, subscription: Subscription) -> None:
        subscribers = self._channels.get(subscription.query)
        if not subscribers:
            return
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            del self._channels[subscription.query]

    async def publish(self, changes: List[Tuple[str, Dict[str, Any]]]) -> int:
        """Re-run every live query touched by changes; returns queries refreshed"""
        async with self._lock:
            refreshed = 0
            for query, subscribers in list(self._channels.items()):
                if not any(
                    collection == query.collection and query.matches(values)
                    for collection, values in changes
                ):
                    continue

                try:
                    snapshot = await self._run_query(query)
                except Exception as e:
                    logger.error(f"Failed to refresh live query {query}: {e}")
                    continue

                refreshed += 1
                for subscription in list(subscribers):
                    subscription.push(snapshot)
            return refreshed

    def subscriptions(self) -> List[Subscription]:
        return [sub for subs in self._channels.values() for sub in subs]

    async def drain(self) -> None:
        """Wait until all queued snapshots have been delivered"""
        await asyncio.gather(*(sub.wait_idle() for sub in self.subscriptions()))

    def close_all(self) -> int:
        """Close every subscription; returns how many were closed"""
        subscriptions = self.subscriptions()
        for subscription in subscriptions:
            subscription.close()
        return len(subscriptions)

    def stats(self) -> Dict[str, Any]:
        subscriptions = self.subscriptions()
        return {
            "live_queries": len(self._channels),
            "subscriptions": len(subscriptions),
            "pending_snapshots": sum(sub.pending for sub in subscriptions),
        }


class RealtimeStore(ABC):
    """Abstract base class for realtime stores"""

    supports_atomic_batches: bool = True

    def new_id(self) -> str:
        """Client-side record identifier"""
        return str(uuid.uuid4())

    @abstractmethod
    async def transact(self, ops: List[TxOp]) -> None:
        """Apply record operations; raises on failure"""
        pass

    @abstractmethod
    async def query(self, query: LiveQuery) -> List[Any]:
        """One-shot evaluation of a live query"""
        pass

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[Any]:
        """Fetch a single record or None"""
        pass

    @abstractmethod
    async def subscribe(
        self, query: LiveQuery, callback: SnapshotCallback
    ) -> Subscription:
        """Register a live query; delivers the current snapshot first"""
        pass

    async def drain(self) -> None:
        """Wait until queued snapshots have reached their subscribers"""
        pass

    def close(self) -> None:
        """Close every live subscription"""
        pass

    def stats(self) -> Dict[str, Any]:
        return {}


def _model_for(collection: str) -> Type[SQLModel]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection}") from None


class SQLRealtimeStore(RealtimeStore):
    """Realtime store backed by SQLModel tables and an in-process change bus"""

    supports_atomic_batches = True

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory
        self._bus = ChangeBus(self.query)

    async def transact(self, ops: List[TxOp]) -> None:
        if not ops:
            return

        changes: List[Tuple[str, Dict[str, Any]]] = []
        async with self._session_factory() as session:
            async with session.begin():
                for op in ops:
                    model = _model_for(op.collection)

                    if op.action == TxAction.CREATE:
                        record = model(id=op.record_id, **op.data)
                        session.add(record)
                        changes.append((op.collection, record.model_dump()))

                    elif op.action == TxAction.UPDATE:
                        record = await session.get(model, op.record_id)
                        if record is None:
                            record = model(id=op.record_id, **op.data)
                            session.add(record)
                        else:
                            changes.append((op.collection, record.model_dump()))
                            for key, value in op.data.items():
                                setattr(record, key, value)
                        changes.append((op.collection, record.model_dump()))

                    elif op.action == TxAction.DELETE:
                        record = await session.get(model, op.record_id)
                        if record is None:
                            logger.debug(
                                f"Delete of missing {op.collection} record {op.record_id} ignored"
                            )
                            continue
                        changes.append((op.collection, record.model_dump()))
                        await session.delete(record)

        logger.debug(
            f"Committed transaction with {len(ops)} operation(s)",
            extra={"collections": sorted({op.collection for op in ops})},
        )
        if changes:
            await self._bus.publish(changes)

    async def query(self, query: LiveQuery) -> List[Any]:
        model = _model_for(query.collection)
        statement = select(model)
        for key, value in query.where:
            statement = statement.where(getattr(model, key) == value)
        statement = statement.order_by(model.created_at)

        async with self._session_factory() as session:
            result = await session.exec(statement)
            return list(result.all())

    async def get(self, collection: str, record_id: str) -> Optional[Any]:
        model = _model_for(collection)
        async with self._session_factory() as session:
            return await session.get(model, record_id)

    async def subscribe(
        self, query: LiveQuery, callback: SnapshotCallback
    ) -> Subscription:
        subscription = Subscription(query, callback, self._bus.remove)
        await self._bus.attach(subscription)
        logger.debug(
            f"Subscribed to {query.collection}",
            extra={"where": dict(query.where), "subscription_id": subscription.id},
        )
        return subscription

    async def drain(self) -> None:
        await self._bus.drain()

    def close(self) -> None:
        closed = self._bus.close_all()
        logger.info(f"Closed {closed} live subscription(s)")

    def stats(self) -> Dict[str, Any]:
        return {"backend": "sql", **self._bus.stats()}
