"""Shared fixtures for the API and socket tests."""

import shutil
import tempfile
import unittest
from datetime import timedelta

from huddle import create_app, socketio
from huddle.models import db

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'SECRET_KEY': 'test-secret',
    'JWT_SECRET_KEY': 'test-jwt-secret-with-enough-length-for-hs256',
    'JWT_ACCESS_TOKEN_EXPIRES': timedelta(minutes=5),
    'JWT_REFRESH_TOKEN_EXPIRES': timedelta(days=1),
    'SYNC_PRESENCE_WRITES': True,
    'SOCKET_AUTH_TIMEOUT': 0,
    'CORS_ORIGIN': '*',
    'RATE_LIMIT_MAX_REQUESTS': 10000,
    'LOG_LEVEL': 'WARNING',
}


class ChatTestCase(unittest.TestCase):
    """Fresh app, in-memory database and upload folder per test."""

    config_overrides = {}

    def setUp(self):
        self.upload_dir = tempfile.mkdtemp()
        config = dict(TEST_CONFIG, UPLOAD_FOLDER=self.upload_dir, **self.config_overrides)
        self.app = create_app(config)
        with self.app.app_context():
            db.create_all()
        self.client = self.app.test_client()
        self.sockets = []

    def tearDown(self):
        for sock in self.sockets:
            if sock.is_connected():
                sock.disconnect()
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
        shutil.rmtree(self.upload_dir, ignore_errors=True)

    # REST helpers

    def register(self, username, password='secret1', email=None):
        response = self.client.post('/api/auth/register', json={
            'email': email or f'{username}@example.com',
            'username': username,
            'password': password,
        })
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()['data']

    def headers(self, account):
        return {'Authorization': f"Bearer {account['accessToken']}"}

    def create_server(self, account, name='Test'):
        response = self.client.post('/api/servers', json={'name': name}, headers=self.headers(account))
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()['data']

    def text_channel(self, server):
        return next(c for c in server['channels'] if c['type'] == 'text')

    def join(self, account, server):
        response = self.client.post(f"/api/servers/{server['id']}/join", headers=self.headers(account))
        self.assertEqual(response.status_code, 201, response.get_json())

    def post_message(self, account, channel, content):
        response = self.client.post(f"/api/messages/channel/{channel['id']}",
                                    json={'content': content}, headers=self.headers(account))
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()['data']

    def history(self, account, channel, **params):
        response = self.client.get(f"/api/messages/channel/{channel['id']}",
                                   query_string=params, headers=self.headers(account))
        self.assertEqual(response.status_code, 200, response.get_json())
        return response.get_json()['data']

    # Socket helpers

    def socket(self, account=None):
        sock = socketio.test_client(self.app)
        self.sockets.append(sock)
        if account is not None:
            sock.emit('authenticate', account['accessToken'])
            received = sock.get_received()
            self.assertIn('authenticated', [e['name'] for e in received])
        return sock

    @staticmethod
    def events(sock, name=None):
        received = sock.get_received()
        if name is None:
            return received
        return [e['args'][0] for e in received if e['name'] == name]
