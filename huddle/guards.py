"""Load a resource, evaluate the access rule, raise the matching error."""

from . import access
from .errors import AuthorizationError, NotFoundError
from .models import Channel, Message, Server, ServerMembership


def readable_channel(channel_id, user_id):
    """Channel the user may read, plus their membership.

    Non-members get the same NotFoundError as a missing channel so that
    channel ids cannot be probed.
    """
    channel = Channel.find_by_id(channel_id)
    if channel is None:
        raise NotFoundError('Channel not found')
    membership = ServerMembership.find(user_id, channel.server_id)
    if not access.can_read_channel(user_id, channel, membership):
        raise NotFoundError('Channel not found')
    return channel, membership


def writable_channel(channel_id, user_id):
    channel, membership = readable_channel(channel_id, user_id)
    if not access.can_write_channel(user_id, channel, membership):
        raise AuthorizationError('Not allowed to post in this channel')
    return channel, membership


def manageable_channel(channel_id, user_id):
    channel, membership = readable_channel(channel_id, user_id)
    if not access.can_manage_channel(user_id, channel, membership):
        raise AuthorizationError('Only server owners and admins can manage channels')
    return channel, membership


def channel_manager(server_id, user_id):
    """Server in which the user may create channels."""
    server, membership = member_server(server_id, user_id)
    if not access.can_manage_channels_in(user_id, server.id, membership):
        raise AuthorizationError('Only server owners and admins can manage channels')
    return server, membership


def member_server(server_id, user_id):
    server = Server.find_by_id(server_id)
    if server is None:
        raise NotFoundError('Server not found')
    membership = ServerMembership.find(user_id, server.id)
    if membership is None:
        raise AuthorizationError('Not a member of this server')
    return server, membership


def owned_server(server_id, user_id):
    server = Server.find_by_id(server_id)
    if server is None:
        raise NotFoundError('Server not found')
    if not access.can_manage_server(user_id, server):
        raise AuthorizationError('Only the server owner can do that')
    return server


def visible_message(message_id, user_id):
    """Message plus the user's membership in its server.

    Authors always see their own messages, even after leaving the server.
    """
    message = Message.find_by_id(message_id)
    if message is None:
        raise NotFoundError('Message not found')
    server_id = message.channel.server_id
    membership = ServerMembership.find(user_id, server_id)
    if message.author_id != user_id and not access.can_read_channel(user_id, message.channel, membership):
        raise NotFoundError('Message not found')
    return message, membership
