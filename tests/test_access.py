"""Access rules evaluated against plain fixture objects, no database."""

import unittest
from types import SimpleNamespace

from huddle import access


def membership(user_id, server_id, role='member'):
    return SimpleNamespace(user_id=user_id, server_id=server_id, role=role)


class TestChannelRules(unittest.TestCase):

    def setUp(self):
        self.channel = SimpleNamespace(id=10, server_id=1)

    def test_member_can_read_and_write(self):
        m = membership(5, 1)
        self.assertTrue(access.can_read_channel(5, self.channel, m))
        self.assertTrue(access.can_write_channel(5, self.channel, m))

    def test_non_member_is_refused_everything(self):
        for m in (None, membership(5, 2), membership(6, 1)):
            self.assertFalse(access.can_read_channel(5, self.channel, m))
            self.assertFalse(access.can_write_channel(5, self.channel, m))
            self.assertFalse(access.can_manage_channel(5, self.channel, m))

    def test_only_owner_and_admin_manage_channels(self):
        self.assertTrue(access.can_manage_channel(5, self.channel, membership(5, 1, 'owner')))
        self.assertTrue(access.can_manage_channel(5, self.channel, membership(5, 1, 'admin')))
        self.assertFalse(access.can_manage_channel(5, self.channel, membership(5, 1, 'member')))
        self.assertTrue(access.can_manage_channels_in(5, 1, membership(5, 1, 'admin')))


class TestMessageRules(unittest.TestCase):

    def setUp(self):
        self.message = SimpleNamespace(id=99, author_id=7)

    def test_only_author_edits(self):
        self.assertTrue(access.can_edit_message(7, self.message))
        self.assertFalse(access.can_edit_message(8, self.message))

    def test_author_deletes_even_without_membership(self):
        self.assertTrue(access.can_delete_message(7, self.message, None, 1))

    def test_owner_and_admin_delete_others_messages(self):
        self.assertTrue(access.can_delete_message(8, self.message, membership(8, 1, 'owner'), 1))
        self.assertTrue(access.can_delete_message(8, self.message, membership(8, 1, 'admin'), 1))

    def test_plain_member_cannot_delete_others_messages(self):
        self.assertFalse(access.can_delete_message(8, self.message, membership(8, 1), 1))

    def test_admin_of_another_server_cannot_delete(self):
        self.assertFalse(access.can_delete_message(8, self.message, membership(8, 2, 'admin'), 1))


class TestServerRules(unittest.TestCase):

    def test_only_owner_manages_server(self):
        server = SimpleNamespace(id=1, owner_id=3)
        self.assertTrue(access.can_manage_server(3, server))
        self.assertFalse(access.can_manage_server(4, server))


if __name__ == '__main__':
    unittest.main()
