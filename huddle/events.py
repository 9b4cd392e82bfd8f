"""
Socket.IO event handlers.

Inbound protocol: ``authenticate``, ``channel:join``, ``channel:leave``,
``message:new``, ``message:update``, ``message:delete``, ``typing:start``,
``typing:stop``. Errors go back to the origin as ``error({message})``.
"""

import logging

from flask import current_app, request
from flask_socketio import disconnect, emit

from . import get_dispatcher, socketio
from .errors import AuthenticationError, ChatError, InternalError, NotFoundError, ValidationError
from .guards import readable_channel
from .models import Message

logger = logging.getLogger(__name__)


def _require_identity():
    identity = get_dispatcher().sessions.lookup(request.sid)
    if identity is None:
        raise AuthenticationError('Not authenticated')
    return identity


def _as_id(value, field):
    if isinstance(value, bool):
        raise ValidationError(f'{field} is required')
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    raise ValidationError(f'{field} is required')


def _channel_id(data):
    if isinstance(data, dict):
        return _as_id(data.get('channelId'), 'channelId')
    return _as_id(data, 'channelId')


def _committed_message(data, identity):
    """The stored message a client is re-announcing, after access checks."""
    if not isinstance(data, dict):
        raise ValidationError('channelId and message are required')
    channel_id = _channel_id(data)
    announced = data.get('message') if isinstance(data.get('message'), dict) else {}
    message_id = _as_id(announced.get('id', data.get('messageId')), 'message id')
    readable_channel(channel_id, identity.user_id)
    message = Message.find_by_id(message_id)
    if message is None or message.channel_id != channel_id:
        raise NotFoundError('Message not found')
    return channel_id, message


@socketio.on('connect')
def handle_connect():
    logger.info(f'Socket {request.sid} connected')
    timeout = current_app.config['SOCKET_AUTH_TIMEOUT']
    if timeout > 0:
        socketio.start_background_task(_enforce_auth_deadline, get_dispatcher(), request.sid, timeout)


def _enforce_auth_deadline(dispatcher, sid, timeout):
    socketio.sleep(timeout)
    if dispatcher.sessions.lookup(sid) is None:
        logger.info(f'Socket {sid} did not authenticate within {timeout}s, closing')
        socketio.server.disconnect(sid, namespace=dispatcher.namespace)


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    identity = get_dispatcher().disconnect(request.sid)
    if identity is not None:
        logger.info(f'User {identity.username} (uid={identity.user_id}) disconnected')
    else:
        logger.info(f'Socket {request.sid} disconnected')


@socketio.on('authenticate')
def handle_authenticate(data):
    token = data.get('token') if isinstance(data, dict) else data
    try:
        identity = get_dispatcher().authenticate(request.sid, token)
    except AuthenticationError as e:
        logger.warning(f'Socket {request.sid} failed to authenticate: {e.message}')
        emit('error', {'message': 'Authentication failed'})
        disconnect()
        return
    emit('authenticated', {'userId': identity.user_id, 'username': identity.username})


@socketio.on('channel:join')
def handle_channel_join(data):
    identity = _require_identity()
    channel_id = _channel_id(data)
    readable_channel(channel_id, identity.user_id)
    get_dispatcher().join(request.sid, channel_id)
    return {'channelId': channel_id}


@socketio.on('channel:leave')
def handle_channel_leave(data):
    get_dispatcher().leave(request.sid, _channel_id(data))


@socketio.on('message:new')
def handle_message_new(data):
    channel_id, message = _committed_message(data, _require_identity())
    get_dispatcher().message_created(channel_id, message.to_dict())


@socketio.on('message:update')
def handle_message_update(data):
    channel_id, message = _committed_message(data, _require_identity())
    if message.updated_at is None:
        raise ValidationError('Message has not been edited')
    get_dispatcher().message_updated(channel_id, message.to_dict())


@socketio.on('message:delete')
def handle_message_delete(data):
    identity = _require_identity()
    if not isinstance(data, dict):
        raise ValidationError('channelId and messageId are required')
    channel_id = _channel_id(data)
    message_id = _as_id(data.get('messageId'), 'messageId')
    readable_channel(channel_id, identity.user_id)
    if Message.find_by_id(message_id) is not None:
        raise ValidationError('Message has not been deleted')
    get_dispatcher().message_deleted(channel_id, message_id)


@socketio.on('typing:start')
def handle_typing_start(data):
    _require_identity()
    get_dispatcher().typing_started(request.sid, _channel_id(data))


@socketio.on('typing:stop')
def handle_typing_stop(data):
    _require_identity()
    get_dispatcher().typing_stopped(request.sid, _channel_id(data))


@socketio.on_error_default
def handle_socket_error(e):
    if isinstance(e, ChatError) and e.status_code < 500:
        logger.info(f'Socket {request.sid}: {e.message}')
        emit('error', {'message': e.message})
        return
    logger.error(f'Socket handler failed for {request.sid}', exc_info=e)
    emit('error', {'message': InternalError.default_message})
