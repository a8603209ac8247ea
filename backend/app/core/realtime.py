"""
In-process publish/subscribe hub for realtime fan-out.

WHAT: Topic-based broadcast of chat messages, notifications and story events
WHY: One process-scoped channel shared by WebSocket and SSE connections
HOW: Bounded asyncio queues per subscriber, topic -> subscriber index,
     explicit start/stop lifecycle owned by the FastAPI lifespan

Delivery is best effort: at-most-once, no queuing for absent subscribers,
no redelivery. A subscriber whose queue is full loses the event. The
database is the durable record; clients recover by re-fetching history.
"""

import asyncio
import threading
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Set
from uuid import uuid4

from .config import settings
from ..models.events import Envelope
from ..utils.logger import get_logger

logger = get_logger(__name__)


class Subscriber:
    """
    One connected client (a WebSocket or an SSE stream).

    WHAT: Owns a bounded event queue and the set of joined topics
    WHY: Decouple publishers from slow consumers
    HOW: Hub pushes with put_nowait; the connection task awaits next_event()
    """

    def __init__(self, user_id: Optional[int], queue_size: int):
        self.id = str(uuid4())
        self.user_id = user_id
        self.topics: Set[str] = set()
        self.queue: "asyncio.Queue[Optional[Envelope]]" = asyncio.Queue(maxsize=queue_size)
        self.closed = False

    async def next_event(self) -> Optional[Envelope]:
        """Wait for the next event; None means the hub closed this subscriber."""
        return await self.queue.get()

    def offer(self, envelope: Envelope) -> bool:
        """Queue an event without waiting. False when closed or full."""
        if self.closed:
            return False
        try:
            self.queue.put_nowait(envelope)
        except asyncio.QueueFull:
            return False
        return True

    def _close(self):
        self.closed = True
        # Make room for the sentinel if the consumer has stalled
        while True:
            try:
                self.queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()

    def __repr__(self):
        return f"<Subscriber(id={self.id[:8]}, user={self.user_id}, topics={len(self.topics)})>"


class _RoomLock:
    """An asyncio lock plus the number of tasks holding or waiting on it."""

    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class RealtimeHub:
    """
    Manage topic subscriptions and event delivery.

    WHAT: Registry of subscribers keyed by topic, plus per-room ordering locks
    WHY: Replace a module-global socket registry with an injected instance
    HOW: Mutations guarded by a threading lock; delivery always happens on the
         event loop thread (worker threads hand off via call_soon_threadsafe)
    """

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or settings.HUB_QUEUE_SIZE
        self._topics: Dict[str, Set[Subscriber]] = {}
        self._subscribers: Dict[str, Subscriber] = {}
        self._room_locks: Dict[str, _RoomLock] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread_id: Optional[int] = None
        self._running = False
        self._published = 0
        self._delivered = 0
        self._dropped = 0

    # ---- lifecycle -------------------------------------------------------

    def start(self):
        """Bind the hub to the running event loop. Call from the lifespan."""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._loop_thread_id = threading.get_ident()
        self._running = True
        logger.info("Realtime hub started")

    def stop(self):
        """Close every subscriber and forget all topics."""
        if not self._running:
            return
        self._running = False
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
            self._topics.clear()
            self._room_locks.clear()
        for subscriber in subscribers:
            subscriber._close()
        logger.info(f"Realtime hub stopped ({len(subscribers)} subscribers closed)")

    @property
    def is_running(self) -> bool:
        return self._running

    # ---- membership ------------------------------------------------------

    def subscribe(self, user_id: Optional[int] = None, topics: Iterable[str] = ()) -> Subscriber:
        """
        Register a new subscriber, optionally pre-joined to some topics.

        Raises:
            RuntimeError: If the hub has not been started
        """
        if not self._running:
            raise RuntimeError("Realtime hub is not running")
        subscriber = Subscriber(user_id, self.queue_size)
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
            for topic in topics:
                self._join_locked(subscriber, topic)
        logger.debug(f"Subscribed {subscriber}")
        return subscriber

    def unsubscribe(self, subscriber: Subscriber):
        """Drop a subscriber from every topic. Safe to call twice."""
        with self._lock:
            self._subscribers.pop(subscriber.id, None)
            for topic in list(subscriber.topics):
                self._leave_locked(subscriber, topic)
        logger.debug(f"Unsubscribed {subscriber}")

    def join(self, subscriber: Subscriber, topic: str):
        """Add a subscriber to a topic. Idempotent, no acknowledgement."""
        with self._lock:
            if subscriber.id not in self._subscribers:
                return
            self._join_locked(subscriber, topic)

    def leave(self, subscriber: Subscriber, topic: str):
        with self._lock:
            self._leave_locked(subscriber, topic)

    def _join_locked(self, subscriber: Subscriber, topic: str):
        self._topics.setdefault(topic, set()).add(subscriber)
        subscriber.topics.add(topic)

    def _leave_locked(self, subscriber: Subscriber, topic: str):
        members = self._topics.get(topic)
        if members is not None:
            members.discard(subscriber)
            if not members:
                del self._topics[topic]
        subscriber.topics.discard(topic)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._topics.get(topic, ()))

    @asynccontextmanager
    async def room_lock(self, topic: str) -> AsyncIterator[None]:
        """
        Serialize persist+publish for one room.

        Holding it across the write and the broadcast makes the broadcast
        order of a room equal to its storage order. The entry lives only
        while some task holds or waits for it. Loop thread only.

        Usage:
            async with hub.room_lock(room_id):
                ...
        """
        with self._lock:
            entry = self._room_locks.get(topic)
            if entry is None:
                entry = self._room_locks[topic] = _RoomLock()
            entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            with self._lock:
                entry.holders -= 1
                if entry.holders == 0 and self._room_locks.get(topic) is entry:
                    del self._room_locks[topic]

    # ---- delivery --------------------------------------------------------

    def publish(self, topic: str, event: str, data: Any,
                exclude: Optional[Subscriber] = None,
                exclude_user_id: Optional[int] = None) -> int:
        """
        Broadcast an event to every subscriber of a topic.

        Thread-safe. Events published while nobody listens are dropped.

        Args:
            topic: Topic name (room id, notification_<id>, stories)
            event: Event name sent to clients
            data: JSON-serializable payload
            exclude: Subscriber that should not receive its own event
            exclude_user_id: Skip every subscriber of this user

        Returns:
            Number of subscribers targeted at publish time
        """
        if not self._running or self._loop is None:
            logger.debug(f"Hub not running, dropping {event} on {topic}")
            return 0

        envelope: Envelope = {"event": event, "data": data}
        with self._lock:
            self._published += 1
            targets = [
                s for s in self._topics.get(topic, ())
                if s is not exclude and (exclude_user_id is None or s.user_id != exclude_user_id)
            ]

        if not targets:
            return 0

        if threading.get_ident() == self._loop_thread_id:
            self._deliver(targets, envelope, topic)
        else:
            try:
                self._loop.call_soon_threadsafe(self._deliver, targets, envelope, topic)
            except RuntimeError as e:
                # Loop already closed during shutdown
                logger.warning(f"Could not schedule {event} on {topic}: {e}")
                return 0
        return len(targets)

    def _deliver(self, targets: list, envelope: Envelope, topic: str):
        for subscriber in targets:
            if subscriber.closed:
                continue
            if subscriber.offer(envelope):
                self._delivered += 1
            else:
                self._dropped += 1
                logger.warning(
                    f"Dropped {envelope['event']} on {topic} for {subscriber} (queue full)"
                )

    def stats(self) -> dict:
        with self._lock:
            return {
                "running": self._running,
                "subscribers": len(self._subscribers),
                "topics": len(self._topics),
                "room_locks": len(self._room_locks),
                "published": self._published,
                "delivered": self._delivered,
                "dropped": self._dropped,
            }
