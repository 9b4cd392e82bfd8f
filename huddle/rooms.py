"""
Room router module.

Channel rooms as plain in-memory sets. Callers check access before joining.
"""

import threading
from collections import defaultdict
from typing import Dict, FrozenSet, Set


class RoomRouter:
    """Many-to-many bookkeeping between connections and channel ids."""

    def __init__(self):
        self._members: Dict[int, Set[str]] = defaultdict(set)   # channel_id -> sids
        self._rooms: Dict[str, Set[int]] = defaultdict(set)     # sid -> channel_ids
        self._lock = threading.Lock()

    def join(self, connection_id: str, channel_id: int):
        with self._lock:
            self._members[channel_id].add(connection_id)
            self._rooms[connection_id].add(channel_id)

    def leave(self, connection_id: str, channel_id: int):
        with self._lock:
            self._discard(connection_id, channel_id)

    def leave_all(self, connection_id: str):
        with self._lock:
            for channel_id in list(self._rooms.get(connection_id, ())):
                self._discard(connection_id, channel_id)
            self._rooms.pop(connection_id, None)

    def close_room(self, channel_id: int):
        """Unsubscribe everyone from a channel that no longer exists."""
        with self._lock:
            for connection_id in list(self._members.get(channel_id, ())):
                self._discard(connection_id, channel_id)

    def subscribers_of(self, channel_id: int) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._members.get(channel_id, ()))

    def rooms_of(self, connection_id: str) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._rooms.get(connection_id, ()))

    def is_subscribed(self, connection_id: str, channel_id: int) -> bool:
        with self._lock:
            return connection_id in self._members.get(channel_id, ())

    def clear(self):
        with self._lock:
            self._members.clear()
            self._rooms.clear()

    def _discard(self, connection_id, channel_id):
        members = self._members.get(channel_id)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._members[channel_id]
        rooms = self._rooms.get(connection_id)
        if rooms is not None:
            rooms.discard(channel_id)
            if not rooms:
                del self._rooms[connection_id]
