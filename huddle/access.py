"""
Access rules for servers, channels and messages.

Pure predicates over records the caller has already loaded. ``membership`` is
the caller's ServerMembership for the relevant server, or None. Nothing here
touches the database, so any object with the right attributes will do.
"""

from .models import MANAGER_ROLES


def _is_member_of(user_id, server_id, membership):
    return (membership is not None
            and membership.user_id == user_id
            and membership.server_id == server_id)


def can_read_channel(user_id, channel, membership):
    return _is_member_of(user_id, channel.server_id, membership)


def can_write_channel(user_id, channel, membership):
    return can_read_channel(user_id, channel, membership)


def can_manage_channels_in(user_id, server_id, membership):
    """Create, rename, retype or delete channels: owner/admin only."""
    return _is_member_of(user_id, server_id, membership) and membership.role in MANAGER_ROLES


def can_manage_channel(user_id, channel, membership):
    return can_manage_channels_in(user_id, channel.server_id, membership)


def can_edit_message(user_id, message):
    return message.author_id == user_id


def can_delete_message(user_id, message, membership, server_id):
    """Authors may delete their own messages; owners/admins of the server may delete any."""
    if message.author_id == user_id:
        return True
    return _is_member_of(user_id, server_id, membership) and membership.role in MANAGER_ROLES


def can_manage_server(user_id, server):
    return server.owner_id == user_id
