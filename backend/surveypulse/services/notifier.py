# surveypulse/services/notifier.py
"""
Change notifier: fans a "something changed" event out to every open
dashboard connection.

One registry, one delivery path. Each connection is a Subscriber with its
own bounded queue; the transport (SSE stream, WebSocket) only decides how a
change is named and shaped, and drains the queue on its own task. Delivery
is put_nowait, so a slow or dead connection never blocks the others or the
request that triggered the change.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import uuid4

SUBSCRIBER_QUEUE_SIZE = int(os.getenv("SUBSCRIBER_QUEUE_SIZE", "100"))

logger = logging.getLogger(__name__)

# (event name, JSON-able payload); None signals the drain loop to stop
Message = Optional[Tuple[str, Any]]


def iso_utc(ts: datetime) -> str:
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ChangeEvent:
    survey_id: str
    company_id: str
    timestamp: datetime

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ChangeEvent":
        return cls(
            survey_id=record["surveyId"],
            company_id=record["companyId"],
            timestamp=record["createdAt"],
        )


class Subscriber:
    """A live connection with its own outbound queue."""

    kind = "base"

    def __init__(self, maxsize: int = SUBSCRIBER_QUEUE_SIZE):
        self.id = uuid4().hex[:12]
        self.queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def render_change(self, change: ChangeEvent) -> Tuple[str, Any]:
        raise NotImplementedError

    def deliver(self, event: str, data: Any) -> bool:
        """Queue a message without waiting; False if it was dropped."""
        if self.closed:
            return False
        try:
            self.queue.put_nowait((event, data))
            return True
        except asyncio.QueueFull:
            logger.warning("Dropping %s for slow %s subscriber %s", event, self.kind, self.id)
            return False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            # drain loop checks .closed after every message
            pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class StreamSubscriber(Subscriber):
    """Server-sent events connection."""

    kind = "sse"

    def render_change(self, change: ChangeEvent) -> Tuple[str, Any]:
        return "response:created", {
            "surveyId": change.survey_id,
            "companyId": change.company_id,
            "timestamp": iso_utc(change.timestamp),
            "summary": {"submitted": 1},
        }


class SocketSubscriber(Subscriber):
    """Bidirectional WebSocket connection."""

    kind = "ws"

    def render_change(self, change: ChangeEvent) -> Tuple[str, Any]:
        return "server:response", {
            "companyId": change.company_id,
            "surveyId": change.survey_id,
            "timestamp": iso_utc(change.timestamp),
        }


class ChangeNotifier:
    """Registry of live subscribers. Owned by the app, passed to handlers."""

    def __init__(self):
        self._subscribers: Set[Subscriber] = set()

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribers(self) -> List[Subscriber]:
        # snapshot, so add/remove during a broadcast is safe
        return list(self._subscribers)

    def add(self, sub: Subscriber) -> Subscriber:
        self._subscribers.add(sub)
        logger.info("%s subscriber %s connected (%d live)", sub.kind, sub.id, len(self._subscribers))
        return sub

    def remove(self, sub: Subscriber) -> None:
        if sub in self._subscribers:
            self._subscribers.discard(sub)
            logger.info("%s subscriber %s disconnected (%d live)", sub.kind, sub.id, len(self._subscribers))
        sub.close()

    def publish(self, event: str, data: Any, exclude: Optional[Subscriber] = None,
                kind: Optional[str] = None) -> int:
        """Send the same message to every subscriber (optionally one transport only)."""
        delivered = 0
        for sub in self.subscribers():
            if sub is exclude or (kind and sub.kind != kind):
                continue
            try:
                if sub.deliver(event, data):
                    delivered += 1
            except Exception:
                logger.exception("Delivery of %s to %r failed", event, sub)
        return delivered

    def notify(self, change: ChangeEvent) -> int:
        """Fan a change out to every subscriber in its transport's shape."""
        delivered = 0
        for sub in self.subscribers():
            try:
                event, data = sub.render_change(change)
                if sub.deliver(event, data):
                    delivered += 1
            except Exception:
                logger.exception("Change delivery to %r failed", sub)
        return delivered

    def close_all(self) -> None:
        for sub in self.subscribers():
            self.remove(sub)
