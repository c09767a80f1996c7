"""In-process realtime hub.

Publish/subscribe keyed by table and a single-column row filter, e.g.
``("messages", "conversation_id", <uuid>)``. Repositories publish after
their writes commit; websocket handlers and conversation sessions consume.

Delivery is in publish order per channel. Each subscription owns a bounded
queue: a consumer that falls behind is dropped rather than allowed to grow
memory, and its next read raises SubscriptionError so it can resubscribe and
backfill from the database.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel

from recoveryline.errors import SubscriptionError

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100

EventKind = Literal["insert", "update"]
ChannelKey = tuple[str, str, str]


@dataclass(frozen=True)
class RealtimeEvent:
    """A row change pushed to subscribers."""

    table: str
    kind: EventKind
    payload: BaseModel
    keys: dict[str, str] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {
            "table": self.table,
            "kind": self.kind,
            "row": self.payload.model_dump(mode="json"),
        }


class Subscription:
    """Handle for one subscriber on one or more channels."""

    def __init__(self, hub: "RealtimeHub", keys: tuple[ChannelKey, ...], maxsize: int):
        self._hub = hub
        self.keys = keys
        self._queue: asyncio.Queue[RealtimeEvent | None] = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._closed = False
        self.drop_reason: str | None = None

    @property
    def active(self) -> bool:
        return not self._closed and self.drop_reason is None

    def _offer(self, event: RealtimeEvent) -> bool:
        if not self.active:
            return False
        if self._queue.qsize() >= self._maxsize:
            self._drop("subscriber queue overflow")
            return False
        self._queue.put_nowait(event)
        return True

    def _drop(self, reason: str) -> None:
        if not self.active:
            return
        self.drop_reason = reason
        self._hub._discard(self)
        # The backlog is incomplete anyway; the consumer must reload.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)
        logger.warning("Realtime subscription %s dropped: %s", self.keys, reason)

    async def next_event(self, timeout: float | None = None) -> RealtimeEvent | None:
        """Wait for the next event; None on timeout.

        Raises:
            SubscriptionError: the subscription was dropped or closed.
        """
        if self._closed:
            raise SubscriptionError("Subscription closed")
        if self.drop_reason is not None and self._queue.empty():
            raise SubscriptionError(self.drop_reason)
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is None:
            raise SubscriptionError(self.drop_reason or "Subscription closed")
        return item

    def close(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._hub._discard(self)
        if self._queue.empty():
            self._queue.put_nowait(None)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> RealtimeEvent:
        event = None
        while event is None:
            try:
                event = await self.next_event()
            except SubscriptionError:
                if self._closed:
                    raise StopAsyncIteration
                raise
        return event


class RealtimeHub:
    """Fan-out of row change events to channel subscribers."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._channels: dict[ChannelKey, set[Subscription]] = defaultdict(set)
        self.closed = False

    @staticmethod
    def channel(table: str, column: str, value: object) -> ChannelKey:
        return (table, column, str(value))

    def subscribe(self, table: str, *, column: str, value: object) -> Subscription:
        """Subscribe to changes of `table` rows where `column == value`."""
        return self.subscribe_many([self.channel(table, column, value)])

    def subscribe_many(self, channels: list[ChannelKey]) -> Subscription:
        """One subscription (one queue, one ordering) over several channels.

        Raises:
            SubscriptionError: If the hub has been closed.
        """
        if self.closed:
            raise SubscriptionError("Realtime hub is closed")
        keys = tuple(dict.fromkeys(channels))
        subscription = Subscription(self, keys, self.queue_size)
        for key in keys:
            self._channels[key].add(subscription)
        logger.debug("Subscribed to %s", keys)
        return subscription

    def publish(self, table: str, kind: EventKind, payload: BaseModel, **keys: object) -> int:
        """Deliver an event to every matching subscriber.

        Args:
            table: Table the row belongs to.
            kind: "insert" or "update".
            payload: Typed row representation.
            **keys: Column values subscribers may filter on.

        Returns:
            Number of subscribers the event was queued for. A subscriber
            matching on several keys receives the event once.
        """
        str_keys = {column: str(value) for column, value in keys.items()}
        event = RealtimeEvent(table=table, kind=kind, payload=payload, keys=str_keys)
        seen: set[int] = set()
        delivered = 0
        for column, value in str_keys.items():
            for subscription in list(self._channels.get((table, column, value), ())):
                if id(subscription) in seen:
                    continue
                seen.add(id(subscription))
                if subscription._offer(event):
                    delivered += 1
        return delivered

    def subscriber_count(self, table: str, *, column: str, value: object) -> int:
        return len(self._channels.get(self.channel(table, column, value), ()))

    def disconnect_all(self, reason: str = "realtime channel reset") -> None:
        """Drop every subscription, as a lost upstream connection would."""
        subscriptions = {id(s): s for subs in self._channels.values() for s in subs}
        for subscription in subscriptions.values():
            subscription._drop(reason)

    def close(self) -> None:
        self.closed = True
        self.disconnect_all("realtime hub closed")

    def _discard(self, subscription: Subscription) -> None:
        for key in subscription.keys:
            subscriptions = self._channels.get(key)
            if subscriptions is None:
                continue
            subscriptions.discard(subscription)
            if not subscriptions:
                self._channels.pop(key, None)
