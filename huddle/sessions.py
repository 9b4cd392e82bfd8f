"""
Session registry module.

Maps live connection ids (Socket.IO sids) to the identity that authenticated
on them, and keeps the persisted online/offline status in step.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .models import STATUS_OFFLINE, STATUS_ONLINE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Authenticated user behind a connection."""
    user_id: int
    username: str


def run_inline(target, *args):
    """Spawner that runs the task immediately in the caller."""
    target(*args)


class SessionRegistry:
    """Connection id -> Identity, owned by one dispatcher.

    ``verify_token(token)`` returns an Identity or raises AuthenticationError.
    ``write_status(user_id, status)`` persists presence; it runs through
    ``spawn(target, *args)`` so connection handling never waits on it.
    """

    def __init__(self, verify_token: Callable, write_status: Callable, spawn: Callable = run_inline):
        self._verify_token = verify_token
        self._write_status = write_status
        self._spawn = spawn
        self._sessions: Dict[str, Identity] = {}
        self._lock = threading.Lock()

    def authenticate(self, connection_id: str, token) -> Identity:
        identity = self._verify_token(token)
        with self._lock:
            previous = self._sessions.get(connection_id)
            self._sessions[connection_id] = identity
            previous_gone = (previous is not None
                             and previous.user_id != identity.user_id
                             and not self._has_connection(previous.user_id))
        if previous_gone:
            self._spawn(self._persist_status, previous.user_id, STATUS_OFFLINE)
        self._spawn(self._persist_status, identity.user_id, STATUS_ONLINE)
        logger.info(f'Connection {connection_id} authenticated as {identity.username} (uid={identity.user_id})')
        return identity

    def lookup(self, connection_id: str) -> Optional[Identity]:
        return self._sessions.get(connection_id)

    def forget(self, connection_id: str) -> Optional[Identity]:
        """Drop a connection. Safe to call more than once.

        The user is marked offline only once their last connection is gone.
        """
        with self._lock:
            identity = self._sessions.pop(connection_id, None)
            last = identity is not None and not self._has_connection(identity.user_id)
        if last:
            self._spawn(self._persist_status, identity.user_id, STATUS_OFFLINE)
        return identity

    def is_connected(self, user_id: int) -> bool:
        with self._lock:
            return self._has_connection(user_id)

    def connections_of(self, user_id: int) -> List[str]:
        with self._lock:
            return [sid for sid, i in self._sessions.items() if i.user_id == user_id]

    def connection_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def clear(self):
        with self._lock:
            self._sessions.clear()

    def __len__(self):
        return len(self._sessions)

    def _has_connection(self, user_id):
        return any(i.user_id == user_id for i in self._sessions.values())

    def _persist_status(self, user_id, status):
        try:
            self._write_status(user_id, status)
        except Exception:
            logger.exception(f'Failed to mark user {user_id} {status}')
