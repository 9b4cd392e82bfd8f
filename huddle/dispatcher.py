"""
Event dispatcher module.

Turns committed mutations and relayed client signals into Socket.IO
broadcasts. One instance per process owns the session registry and the room
router; it is created by the app factory and torn down with :meth:`close`.

Message events must only be dispatched after the store commit succeeded.
Typing events are advisory and never persisted. Typing expiry is the
client's job: the dispatcher relays explicit start/stop signals only.
"""

import logging
import threading
from collections import defaultdict

from .sessions import Identity

logger = logging.getLogger(__name__)

MESSAGE_NEW = 'message:new'
MESSAGE_UPDATE = 'message:update'
MESSAGE_DELETE = 'message:delete'
TYPING_START = 'typing:start'
TYPING_STOP = 'typing:stop'
USER_ONLINE = 'user:online'
USER_OFFLINE = 'user:offline'


class EventDispatcher:

    def __init__(self, socketio, sessions, rooms, namespace='/'):
        self.socketio = socketio
        self.sessions = sessions
        self.rooms = rooms
        self.namespace = namespace
        self._room_locks = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    # Connection lifecycle

    def authenticate(self, connection_id, token) -> Identity:
        """Register the connection; raises AuthenticationError on a bad token."""
        identity = self.sessions.authenticate(connection_id, token)
        self.presence_changed(identity, online=True, exclude=connection_id)
        return identity

    def disconnect(self, connection_id):
        self.rooms.leave_all(connection_id)
        identity = self.sessions.forget(connection_id)
        if identity is not None and not self.sessions.is_connected(identity.user_id):
            self.presence_changed(identity, online=False, exclude=connection_id)
        return identity

    def join(self, connection_id, channel_id):
        """Subscribe a connection. Access must already have been checked."""
        self.rooms.join(connection_id, channel_id)
        logger.info(f'Connection {connection_id} joined channel {channel_id}')

    def leave(self, connection_id, channel_id):
        self.rooms.leave(connection_id, channel_id)
        logger.info(f'Connection {connection_id} left channel {channel_id}')

    def revoke(self, user_id, channel_ids):
        """Unsubscribe all of a user's connections, e.g. after leaving a server."""
        for connection_id in self.sessions.connections_of(user_id):
            for channel_id in channel_ids:
                self.rooms.leave(connection_id, channel_id)

    def close_rooms(self, channel_ids):
        for channel_id in channel_ids:
            self.rooms.close_room(channel_id)
            with self._locks_guard:
                self._room_locks.pop(channel_id, None)

    # Message events

    def message_created(self, channel_id, message):
        return self._broadcast_room(channel_id, MESSAGE_NEW, message)

    def message_updated(self, channel_id, message):
        if not message.get('updatedAt'):
            raise ValueError('updated message payload needs an updatedAt timestamp')
        return self._broadcast_room(channel_id, MESSAGE_UPDATE, message)

    def message_deleted(self, channel_id, message_id):
        payload = {'channelId': channel_id, 'messageId': message_id}
        return self._broadcast_room(channel_id, MESSAGE_DELETE, payload)

    # Typing indicators

    def typing_started(self, connection_id, channel_id):
        identity = self._subscribed_identity(connection_id, channel_id)
        if identity is None:
            return 0
        payload = {'channelId': channel_id, 'userId': identity.user_id, 'username': identity.username}
        return self._broadcast_room(channel_id, TYPING_START, payload, exclude=connection_id)

    def typing_stopped(self, connection_id, channel_id):
        identity = self._subscribed_identity(connection_id, channel_id)
        if identity is None:
            return 0
        payload = {'channelId': channel_id, 'userId': identity.user_id}
        return self._broadcast_room(channel_id, TYPING_STOP, payload, exclude=connection_id)

    # Presence

    def presence_changed(self, identity, online, exclude=None):
        """Tell every other authenticated connection, regardless of rooms."""
        event = USER_ONLINE if online else USER_OFFLINE
        payload = {
            'userId': identity.user_id,
            'username': identity.username,
            'status': 'online' if online else 'offline',
        }
        sent = 0
        for connection_id in self.sessions.connection_ids():
            if connection_id == exclude:
                continue
            sent += self._send(event, payload, connection_id)
        logger.debug(f'{event} for uid={identity.user_id} sent to {sent} connection(s)')
        return sent

    def close(self):
        self.rooms.clear()
        self.sessions.clear()
        logger.info('Dispatcher closed')

    def _subscribed_identity(self, connection_id, channel_id):
        identity = self.sessions.lookup(connection_id)
        if identity is None or not self.rooms.is_subscribed(connection_id, channel_id):
            logger.debug(f'Dropping typing signal from {connection_id} for channel {channel_id}')
            return None
        return identity

    def _room_lock(self, channel_id):
        with self._locks_guard:
            return self._room_locks[channel_id]

    def _broadcast_room(self, channel_id, event, payload, exclude=None):
        # One broadcast at a time per room keeps delivery FIFO within a channel
        sent = 0
        with self._room_lock(channel_id):
            for connection_id in sorted(self.rooms.subscribers_of(channel_id)):
                if connection_id == exclude:
                    continue
                sent += self._send(event, payload, connection_id)
        logger.debug(f'{event} in channel {channel_id} sent to {sent} connection(s)')
        return sent

    def _send(self, event, payload, connection_id):
        try:
            self.socketio.emit(event, payload, to=connection_id, namespace=self.namespace)
            return 1
        except Exception as e:
            logger.error(f'Failed to send {event} to {connection_id}: {e}')
            return 0
