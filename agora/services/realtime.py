"""
Realtime Change Notifications

Every write to participants or logs publishes a ChangeEvent for its challenge.
Subscribers register with on_change() and get an unsubscribe callable back.

LeaderboardFeed sits on top: it reloads the snapshot and recomputes the whole
leaderboard on each event, then fans the result out to async listeners
(the SSE stream endpoint). FeedRegistry keeps one feed per challenge.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from agora.models.challenge import ChallengeSnapshot, LeaderboardEntry
from agora.services.leaderboard import compute_leaderboard
from agora.services.logger import logger

CHANGE_TABLES = ("participants", "logs")
CHANGE_EVENTS = ("INSERT", "UPDATE", "DELETE")

ChangeCallback = Callable[["ChangeEvent"], None]


@dataclass(frozen=True)
class ChangeEvent:
    challenge_id: str
    table: str
    event: str
    record_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.table not in CHANGE_TABLES:
            raise ValueError(f"Unsupported table '{self.table}'")
        if self.event not in CHANGE_EVENTS:
            raise ValueError(f"Unsupported event '{self.event}'")


class ChangeNotifier:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[ChangeCallback]] = {}
        self._lock = threading.Lock()

    def on_change(self, challenge_id: str, callback: ChangeCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.setdefault(challenge_id, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(challenge_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(challenge_id, None)

        return unsubscribe

    def subscriber_count(self, challenge_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(challenge_id, []))

    def total_subscribers(self) -> int:
        with self._lock:
            return sum(len(callbacks) for callbacks in self._subscribers.values())

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event.challenge_id, []))

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Change subscriber failed for challenge {event.challenge_id}: {e}",
                    exc_info=True,
                )


class LeaderboardFeed:
    """
    Keeps the latest leaderboard for one challenge, recomputed from scratch on
    every change notification.
    """

    def __init__(
        self,
        challenge_id: str,
        notifier: ChangeNotifier,
        snapshot_loader: Callable[[], ChallengeSnapshot],
        today_fn: Callable[[], date],
    ) -> None:
        self.challenge_id = challenge_id
        self.notifier = notifier
        self.snapshot_loader = snapshot_loader
        self.today_fn = today_fn
        self.entries: List[LeaderboardEntry] = []
        self._listeners: List[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []
        self._listeners_lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> List[LeaderboardEntry]:
        self._unsubscribe = self.notifier.on_change(self.challenge_id, self._on_change)
        return self.refresh()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        with self._listeners_lock:
            self._listeners.clear()

    def refresh(self) -> List[LeaderboardEntry]:
        snapshot = self.snapshot_loader()
        self.entries = compute_leaderboard(
            snapshot.participants, snapshot.metrics, snapshot.logs, self.today_fn()
        )
        return self.entries

    def listen(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> asyncio.Queue:
        """Queue receiving every recomputed leaderboard. Call from the event loop."""
        queue: asyncio.Queue = asyncio.Queue()
        with self._listeners_lock:
            self._listeners.append((loop or asyncio.get_running_loop(), queue))
        return queue

    def unlisten(self, queue: asyncio.Queue) -> int:
        """Drop one listener queue; returns how many are left."""
        with self._listeners_lock:
            self._listeners = [item for item in self._listeners if item[1] is not queue]
            return len(self._listeners)

    def listener_count(self) -> int:
        with self._listeners_lock:
            return len(self._listeners)

    def _on_change(self, event: ChangeEvent) -> None:
        entries = self.refresh()
        logger.info(
            f"Leaderboard recomputed for challenge {self.challenge_id} "
            f"after {event.event} on {event.table}"
        )
        with self._listeners_lock:
            listeners = list(self._listeners)
        for loop, queue in listeners:
            loop.call_soon_threadsafe(queue.put_nowait, entries)


class FeedRegistry:
    """
    One LeaderboardFeed per challenge, shared by every open stream.

    A write triggers a single snapshot reload per challenge no matter how many
    clients are watching. The feed unsubscribes when its last listener leaves.
    """

    def __init__(self, notifier: ChangeNotifier) -> None:
        self.notifier = notifier
        self._feeds: Dict[str, LeaderboardFeed] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        challenge_id: str,
        snapshot_loader: Callable[[], ChallengeSnapshot],
        today_fn: Callable[[], date],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> Tuple[List[LeaderboardEntry], asyncio.Queue]:
        """Current leaderboard plus a queue of later ones. Call from the event loop."""
        loop = loop or asyncio.get_running_loop()
        with self._lock:
            feed = self._feeds.get(challenge_id)
            if feed is None:
                feed = LeaderboardFeed(challenge_id, self.notifier, snapshot_loader, today_fn)
                try:
                    feed.start()
                except Exception:
                    feed.stop()
                    raise
                self._feeds[challenge_id] = feed
            queue = feed.listen(loop)
            return feed.entries, queue

    def unsubscribe(self, challenge_id: str, queue: asyncio.Queue) -> None:
        with self._lock:
            feed = self._feeds.get(challenge_id)
            if feed is None:
                return
            if feed.unlisten(queue) == 0:
                feed.stop()
                del self._feeds[challenge_id]

    def feed_count(self) -> int:
        with self._lock:
            return len(self._feeds)


# Process-wide notifier shared by the write path and stream subscribers
change_notifier = ChangeNotifier()
