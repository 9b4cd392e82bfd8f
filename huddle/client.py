"""
Python client for the chat service.

A channel view is bootstrapped from REST history and then kept current from
live events. History pages and live events overlap freely, so everything is
merged by message id: the same message arriving twice, or out of order, leaves
the timeline unchanged.
"""

import logging
import threading
import time
from collections import defaultdict

import requests
import socketio

from .models import parse_timestamp

logger = logging.getLogger(__name__)

TYPING_WINDOW = 3.0  # seconds without a new typing:start before a user counts as stopped


class ClientError(Exception):
    def __init__(self, status_code, message):
        super().__init__(f'{status_code}: {message}')
        self.status_code = status_code
        self.message = message


def _order_key(message):
    return (parse_timestamp(message['createdAt']), message['id'])


def _edit_key(message):
    stamp = message.get('updatedAt')
    return parse_timestamp(stamp) if stamp else parse_timestamp(message['createdAt'])


class ChannelTimeline:
    """Idempotent, order-independent view of one channel's messages."""

    def __init__(self, channel_id):
        self.channel_id = channel_id
        self._messages = {}
        self._deleted = set()
        self._lock = threading.Lock()

    def merge(self, messages):
        for message in messages:
            self.upsert(message)

    def upsert(self, message):
        """Insert or replace a message; the most recently edited copy wins."""
        with self._lock:
            message_id = message['id']
            if message_id in self._deleted:
                return False
            current = self._messages.get(message_id)
            if current is not None and _edit_key(current) > _edit_key(message):
                return False
            self._messages[message_id] = message
            return True

    def remove(self, message_id):
        with self._lock:
            self._deleted.add(message_id)
            return self._messages.pop(message_id, None) is not None

    def messages(self):
        with self._lock:
            return sorted(self._messages.values(), key=_order_key)

    def __len__(self):
        return len(self._messages)

    def __contains__(self, message_id):
        return message_id in self._messages


class TypingTracker:
    """Who is typing in one channel, expiring silent typists after the window."""

    def __init__(self, window=TYPING_WINDOW, clock=time.monotonic):
        self.window = window
        self._clock = clock
        self._typing = {}

    def started(self, user_id, username):
        self._typing[user_id] = (username, self._clock())

    def stopped(self, user_id):
        self._typing.pop(user_id, None)

    def active(self):
        now = self._clock()
        expired = [uid for uid, (_, seen) in self._typing.items() if now - seen > self.window]
        for uid in expired:
            del self._typing[uid]
        return {uid: name for uid, (name, _) in self._typing.items()}


class ChatClient:
    """REST + Socket.IO client that keeps ChannelTimelines in sync."""

    def __init__(self, base_url, http=None, sio=None, timeout=10):
        self.base_url = base_url.rstrip('/')
        self.http = http or requests.Session()
        self.sio = sio or socketio.Client()
        self.timeout = timeout
        self.access_token = None
        self.refresh_token = None
        self.user = None
        self.timelines = {}
        self.typing = defaultdict(TypingTracker)
        self.online = {}
        self._register_handlers()

    # REST

    def _request(self, method, path, **kwargs):
        headers = kwargs.pop('headers', {})
        if self.access_token:
            headers['Authorization'] = f'Bearer {self.access_token}'
        response = self.http.request(method, f'{self.base_url}/api{path}',
                                     headers=headers, timeout=self.timeout, **kwargs)
        try:
            body = response.json()
        except ValueError:
            raise ClientError(response.status_code, 'Response was not JSON')
        if not body.get('success'):
            raise ClientError(response.status_code, body.get('error') or 'Request failed')
        return body.get('data')

    def _remember(self, result):
        self.user = result['user']
        self.access_token = result['accessToken']
        self.refresh_token = result['refreshToken']
        return self.user

    def register(self, email, username, password):
        return self._remember(self._request('POST', '/auth/register', json={
            'email': email, 'username': username, 'password': password}))

    def login(self, email, password):
        return self._remember(self._request('POST', '/auth/login', json={
            'email': email, 'password': password}))

    def refresh(self):
        data = self._request('POST', '/auth/refresh', json={'refreshToken': self.refresh_token})
        self.access_token = data['accessToken']
        return self.access_token

    def logout(self):
        self._request('POST', '/auth/logout', json={'refreshToken': self.refresh_token})
        self.access_token = self.refresh_token = None

    def fetch_page(self, channel_id, limit=50, before=None):
        """One history page older than ``before``, a message dict or None.

        The cursor message's createdAt rides along so the page still resolves
        if that message was deleted in the meantime.
        """
        params = {'limit': limit}
        if before is not None:
            params['before'] = before['id']
            params['beforeAt'] = before['createdAt']
        return self._request('GET', f'/messages/channel/{channel_id}', params=params)

    def load_history(self, channel_id, limit=50, max_pages=None):
        """Page backwards until a short page; returns the channel's timeline."""
        timeline = self.timeline(channel_id)
        before = None
        pages = 0
        while max_pages is None or pages < max_pages:
            page = self.fetch_page(channel_id, limit=limit, before=before)
            pages += 1
            timeline.merge(page)
            if len(page) < limit:
                break
            before = page[0]
        return timeline

    def send_message(self, channel_id, content):
        message = self._request('POST', f'/messages/channel/{channel_id}', json={'content': content})
        self.timeline(channel_id).upsert(message)
        return message

    def edit_message(self, message_id, content):
        message = self._request('PATCH', f'/messages/{message_id}', json={'content': content})
        self.timeline(message['channelId']).upsert(message)
        return message

    def delete_message(self, channel_id, message_id):
        self._request('DELETE', f'/messages/{message_id}')
        self.timeline(channel_id).remove(message_id)

    # Live connection

    def timeline(self, channel_id):
        if channel_id not in self.timelines:
            self.timelines[channel_id] = ChannelTimeline(channel_id)
        return self.timelines[channel_id]

    def connect(self):
        self.sio.connect(self.base_url)

    def open_channel(self, channel_id, limit=50):
        # Wait for the join ack so nothing falls between the history read and the live feed
        self.sio.call('channel:join', channel_id, timeout=self.timeout)
        return self.load_history(channel_id, limit=limit, max_pages=1)

    def close_channel(self, channel_id):
        self.sio.emit('channel:leave', channel_id)

    def start_typing(self, channel_id):
        self.sio.emit('typing:start', {'channelId': channel_id})

    def stop_typing(self, channel_id):
        self.sio.emit('typing:stop', {'channelId': channel_id})

    def disconnect(self):
        self.sio.disconnect()

    def _register_handlers(self):
        self.sio.on('connect', self._on_connect)
        self.sio.on('error', self._on_error)
        self.sio.on('message:new', self._on_message)
        self.sio.on('message:update', self._on_message)
        self.sio.on('message:delete', self._on_message_delete)
        self.sio.on('typing:start', self._on_typing_start)
        self.sio.on('typing:stop', self._on_typing_stop)
        self.sio.on('user:online', self._on_presence)
        self.sio.on('user:offline', self._on_presence)

    def _on_connect(self):
        self.sio.emit('authenticate', self.access_token)

    def _on_error(self, data):
        logger.warning(f'Server error event: {data.get("message") if isinstance(data, dict) else data}')

    def _on_message(self, message):
        self.timeline(message['channelId']).upsert(message)

    def _on_message_delete(self, data):
        self.timeline(data['channelId']).remove(data['messageId'])

    def _on_typing_start(self, data):
        self.typing[data['channelId']].started(data['userId'], data.get('username'))

    def _on_typing_stop(self, data):
        self.typing[data['channelId']].stopped(data['userId'])

    def _on_presence(self, data):
        self.online[data['userId']] = data.get('status') == 'online'
