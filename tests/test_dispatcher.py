import unittest
from unittest.mock import Mock

from huddle.dispatcher import EventDispatcher
from huddle.errors import AuthenticationError
from huddle.rooms import RoomRouter
from huddle.sessions import Identity, SessionRegistry

USERS = {'alice': Identity(1, 'alice'), 'bob': Identity(2, 'bob'), 'carol': Identity(3, 'carol')}


def verify(token):
    if token not in USERS:
        raise AuthenticationError('Authentication failed')
    return USERS[token]


class RecordingSocketIO:
    """Stands in for flask_socketio.SocketIO and records addressed emits."""

    def __init__(self):
        self.sent = []

    def emit(self, event, payload, to=None, namespace=None):
        self.sent.append((to, event, payload))

    def received_by(self, sid, event=None):
        return [p for to, e, p in self.sent if to == sid and (event is None or e == event)]


class TestEventDispatcher(unittest.TestCase):

    def setUp(self):
        self.socketio = RecordingSocketIO()
        self.writes = []
        sessions = SessionRegistry(verify, lambda uid, status: self.writes.append((uid, status)))
        self.dispatcher = EventDispatcher(self.socketio, sessions, RoomRouter())

    def connect(self, sid, user, *channel_ids):
        self.dispatcher.authenticate(sid, user)
        for channel_id in channel_ids:
            self.dispatcher.join(sid, channel_id)

    def test_message_reaches_only_its_room(self):
        self.connect('a', 'alice', 1)
        self.connect('b', 'bob', 2)
        self.socketio.sent.clear()
        message = {'id': 7, 'channelId': 1, 'content': 'hello'}
        self.assertEqual(self.dispatcher.message_created(1, message), 1)
        self.assertEqual(self.socketio.received_by('a', 'message:new'), [message])
        self.assertEqual(self.socketio.received_by('b'), [])

    def test_author_also_receives_own_message(self):
        self.connect('a', 'alice', 1)
        self.dispatcher.message_created(1, {'id': 1})
        self.assertEqual(self.socketio.received_by('a', 'message:new'), [{'id': 1}])

    def test_update_requires_updated_at(self):
        self.connect('a', 'alice', 1)
        with self.assertRaises(ValueError):
            self.dispatcher.message_updated(1, {'id': 1, 'updatedAt': None})
        self.dispatcher.message_updated(1, {'id': 1, 'updatedAt': '2026-01-01T00:00:00.000000Z'})
        self.assertEqual(len(self.socketio.received_by('a', 'message:update')), 1)

    def test_delete_payload(self):
        self.connect('a', 'alice', 1)
        self.dispatcher.message_deleted(1, 9)
        self.assertEqual(self.socketio.received_by('a', 'message:delete'), [{'channelId': 1, 'messageId': 9}])

    def test_typing_skips_origin(self):
        self.connect('a', 'alice', 1)
        self.connect('b', 'bob', 1)
        self.assertEqual(self.dispatcher.typing_started('a', 1), 1)
        self.assertEqual(self.socketio.received_by('a', 'typing:start'), [])
        self.assertEqual(self.socketio.received_by('b', 'typing:start'),
                         [{'channelId': 1, 'userId': 1, 'username': 'alice'}])
        self.dispatcher.typing_stopped('a', 1)
        self.assertEqual(self.socketio.received_by('b', 'typing:stop'), [{'channelId': 1, 'userId': 1}])

    def test_typing_from_unsubscribed_or_anonymous_connection_is_dropped(self):
        self.connect('b', 'bob', 1)
        self.connect('a', 'alice')
        self.assertEqual(self.dispatcher.typing_started('a', 1), 0)
        self.assertEqual(self.dispatcher.typing_started('ghost', 1), 0)
        self.assertEqual(self.socketio.received_by('b', 'typing:start'), [])

    def test_presence_goes_to_other_authenticated_connections(self):
        self.connect('a', 'alice')
        self.connect('b', 'bob')
        self.assertEqual(self.socketio.received_by('a', 'user:online'),
                         [{'userId': 2, 'username': 'bob', 'status': 'online'}])
        self.assertEqual(self.socketio.received_by('b', 'user:online'), [])

    def test_offline_sent_once_last_connection_goes(self):
        self.connect('a1', 'alice', 1)
        self.connect('a2', 'alice', 1)
        self.connect('b', 'bob')
        self.dispatcher.disconnect('a1')
        self.assertEqual(self.socketio.received_by('b', 'user:offline'), [])
        self.dispatcher.disconnect('a2')
        self.assertEqual(self.socketio.received_by('b', 'user:offline'),
                         [{'userId': 1, 'username': 'alice', 'status': 'offline'}])
        self.assertEqual(self.dispatcher.rooms.subscribers_of(1), frozenset())
        self.assertEqual(self.writes[-1], (1, 'offline'))

    def test_disconnect_twice_is_harmless(self):
        self.connect('a', 'alice', 1)
        self.dispatcher.disconnect('a')
        self.assertIsNone(self.dispatcher.disconnect('a'))

    def test_revoke_unsubscribes_all_user_connections(self):
        self.connect('a1', 'alice', 1, 2)
        self.connect('a2', 'alice', 1)
        self.connect('b', 'bob', 1)
        self.dispatcher.revoke(1, [1])
        self.assertEqual(self.dispatcher.rooms.subscribers_of(1), frozenset({'b'}))
        self.assertEqual(self.dispatcher.rooms.rooms_of('a1'), frozenset({2}))

    def test_close_rooms_drops_subscribers_and_room_locks(self):
        self.connect('a', 'alice', 1, 2)
        self.dispatcher.message_created(1, {'id': 1})
        self.dispatcher.message_created(2, {'id': 2})
        self.dispatcher.close_rooms([1])
        self.assertEqual(self.dispatcher.rooms.rooms_of('a'), frozenset({2}))
        self.assertNotIn(1, self.dispatcher._room_locks)
        self.assertIn(2, self.dispatcher._room_locks)

    def test_room_order_is_preserved(self):
        self.connect('a', 'alice', 1)
        for i in range(5):
            self.dispatcher.message_created(1, {'id': i})
        self.assertEqual([p['id'] for p in self.socketio.received_by('a', 'message:new')], list(range(5)))

    def test_failed_send_is_logged_and_others_still_served(self):
        socketio = Mock()
        socketio.emit.side_effect = [RuntimeError('transport closed'), None]
        rooms = RoomRouter()
        rooms.join('a', 1)
        rooms.join('b', 1)
        dispatcher = EventDispatcher(socketio, SessionRegistry(verify, lambda *a: None), rooms)
        with self.assertLogs('huddle.dispatcher', level='ERROR'):
            sent = dispatcher.message_created(1, {'id': 1})
        self.assertEqual(sent, 1)
        self.assertEqual(socketio.emit.call_count, 2)


if __name__ == '__main__':
    unittest.main()
