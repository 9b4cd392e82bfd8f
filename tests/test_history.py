import unittest
from datetime import datetime, timedelta

from helpers import ChatTestCase

from huddle.errors import ValidationError
from huddle.history import parse_limit
from huddle.models import Message, db, isoformat

BASE = datetime(2026, 1, 1, 12, 0, 0)


class TestParseLimit(unittest.TestCase):

    def test_defaults_and_cap(self):
        self.assertEqual(parse_limit(None), 50)
        self.assertEqual(parse_limit(''), 50)
        self.assertEqual(parse_limit('10'), 10)
        self.assertEqual(parse_limit('500'), 100)

    def test_rejects_garbage(self):
        for raw in ('abc', '0', '-3', '1.5'):
            with self.assertRaises(ValidationError):
                parse_limit(raw)


class TestHistoryPaging(ChatTestCase):

    def setUp(self):
        super().setUp()
        self.alice = self.register('alice')
        self.server = self.create_server(self.alice)
        self.channel = self.text_channel(self.server)
        self.ids = []
        with self.app.app_context():
            for i in range(5):
                message = Message.create(self.channel['id'], self.alice['user']['id'], f'm{i + 1}')
                message.created_at = BASE + timedelta(minutes=i)
                db.session.flush()
                self.ids.append(message.id)
            db.session.commit()

    def test_pages_by_timestamp(self):
        first = self.history(self.alice, self.channel, limit=2)
        self.assertEqual([m['content'] for m in first], ['m4', 'm5'])
        second = self.history(self.alice, self.channel, limit=2, before=first[0]['createdAt'])
        self.assertEqual([m['content'] for m in second], ['m2', 'm3'])
        third = self.history(self.alice, self.channel, limit=2, before=second[0]['createdAt'])
        self.assertEqual([m['content'] for m in third], ['m1'])

    def test_pages_by_message_id(self):
        seen = []
        before = None
        while True:
            params = {'limit': 2}
            if before is not None:
                params['before'] = before
            page = self.history(self.alice, self.channel, **params)
            seen = page + seen
            if len(page) < 2:
                break
            before = page[0]['id']
        self.assertEqual([m['id'] for m in seen], self.ids)

    def test_message_id_cursor_breaks_timestamp_ties(self):
        with self.app.app_context():
            for message_id in self.ids:
                db.session.get(Message, message_id).created_at = BASE
            db.session.commit()
        page = self.history(self.alice, self.channel, limit=2, before=self.ids[2])
        self.assertEqual([m['id'] for m in page], self.ids[:2])

    def test_default_page_is_oldest_first(self):
        page = self.history(self.alice, self.channel)
        self.assertEqual([m['id'] for m in page], self.ids)
        stamps = [m['createdAt'] for m in page]
        self.assertEqual(stamps, sorted(stamps))
        self.assertEqual(stamps[0], isoformat(BASE))

    def test_deleted_cursor_falls_back_to_its_timestamp(self):
        first = self.history(self.alice, self.channel, limit=2)
        cursor = first[0]
        response = self.client.delete(f"/api/messages/{cursor['id']}", headers=self.headers(self.alice))
        self.assertEqual(response.status_code, 200)

        second = self.history(self.alice, self.channel, limit=2,
                              before=cursor['id'], beforeAt=cursor['createdAt'])
        self.assertEqual([m['content'] for m in second], ['m2', 'm3'])

        response = self.client.get(f"/api/messages/channel/{self.channel['id']}",
                                   query_string={'before': cursor['id']}, headers=self.headers(self.alice))
        self.assertEqual(response.status_code, 400)

    def test_bad_cursor(self):
        for before in ('yesterday', '99999'):
            response = self.client.get(f"/api/messages/channel/{self.channel['id']}",
                                       query_string={'before': before}, headers=self.headers(self.alice))
            self.assertEqual(response.status_code, 400, before)

    def test_bad_limit(self):
        response = self.client.get(f"/api/messages/channel/{self.channel['id']}",
                                   query_string={'limit': 'lots'}, headers=self.headers(self.alice))
        self.assertEqual(response.status_code, 400)


if __name__ == '__main__':
    unittest.main()
