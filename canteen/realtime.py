# canteen/realtime.py
"""
Best-effort push notifications over WebSockets.

Subscriptions live only in this process: a client that reconnects must
subscribe again, and an event emitted while it was away is gone. Clients
recover by re-fetching state over HTTP.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Set
from uuid import uuid4

from fastapi.encoders import jsonable_encoder

log = logging.getLogger(__name__)

ADMINS_TOPIC = "admins"

# client action -> topic prefix
ACTIONS = {
    "join-queue": "queue",
    "leave-queue": "queue",
    "track-order": "order",
    "track-xerox": "xerox",
}


def topic_for(kind: str, ident: Any) -> str:
    return f"{kind}-{ident}"


class SubscriptionRegistry:
    """Connection id -> socket and topics, plus the reverse topic index."""

    def __init__(self) -> None:
        self._sockets: Dict[str, Any] = {}
        self._topics: Dict[str, Set[str]] = {}
        self._members: Dict[str, Set[str]] = {}

    def register(self, socket: Any) -> str:
        conn_id = uuid4().hex
        self._sockets[conn_id] = socket
        self._topics[conn_id] = set()
        return conn_id

    def drop(self, conn_id: str) -> None:
        self._sockets.pop(conn_id, None)
        for topic in self._topics.pop(conn_id, set()):
            members = self._members.get(topic)
            if members is not None:
                members.discard(conn_id)
                if not members:
                    del self._members[topic]

    def subscribe(self, conn_id: str, topic: str) -> None:
        if conn_id not in self._sockets:
            return
        self._topics[conn_id].add(topic)
        self._members.setdefault(topic, set()).add(conn_id)

    def unsubscribe(self, conn_id: str, topic: str) -> None:
        self._topics.get(conn_id, set()).discard(topic)
        members = self._members.get(topic)
        if members is not None:
            members.discard(conn_id)
            if not members:
                del self._members[topic]

    def topics_of(self, conn_id: str) -> Set[str]:
        return set(self._topics.get(conn_id, set()))

    def subscribers(self, topic: str) -> Dict[str, Any]:
        return {cid: self._sockets[cid] for cid in self._members.get(topic, set()) if cid in self._sockets}

    def connections(self) -> Dict[str, Any]:
        return dict(self._sockets)

    def __len__(self) -> int:
        return len(self._sockets)


class Notifier:
    def __init__(self, registry: Optional[SubscriptionRegistry] = None) -> None:
        self.registry = registry or SubscriptionRegistry()

    async def _send(self, targets: Dict[str, Any], event: str, payload: Any) -> int:
        message = {"event": event, "data": jsonable_encoder(payload)}
        delivered = 0
        for conn_id, socket in targets.items():
            try:
                await socket.send_json(message)
                delivered += 1
            except Exception as e:
                # at-most-once: a dead socket just loses the event
                log.debug("dropping connection %s after send failure: %s", conn_id, e)
                self.registry.drop(conn_id)
        return delivered

    async def emit(self, topic: str, event: str, payload: Any) -> int:
        return await self._send(self.registry.subscribers(topic), event, payload)

    async def emit_many(self, topics: list[str], event: str, payload: Any) -> int:
        targets: Dict[str, Any] = {}
        for topic in topics:
            targets.update(self.registry.subscribers(topic))
        return await self._send(targets, event, payload)

    async def broadcast(self, event: str, payload: Any) -> int:
        return await self._send(self.registry.connections(), event, payload)


notifier = Notifier()
