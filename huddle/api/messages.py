# Message history and mutations; every mutation is broadcast after its commit
from flask import Blueprint, current_app, request
from flask_jwt_extended import current_user, jwt_required

from . import json_body
from .. import get_dispatcher, get_uploads
from .. import access
from ..errors import AuthorizationError, ValidationError, created, success
from ..guards import visible_message, writable_channel
from ..history import get_messages
from ..limits import limit_api
from ..models import Message, db, utcnow

messages = limit_api(Blueprint('messages', __name__))


@messages.before_request
@jwt_required()
def require_login():
    pass


def _content(data):
    content = data.get('content')
    if content is None:
        return ''
    if not isinstance(content, str):
        raise ValidationError('content must be a string')
    return content.strip()


def _store_uploads(files):
    limit = current_app.config['MAX_ATTACHMENTS']
    if len(files) > limit:
        raise ValidationError(f'At most {limit} files per message')
    store = get_uploads()
    stored = []
    try:
        for file_storage in files:
            stored.append(store.save(file_storage))
    except ValidationError:
        store.discard_urls([item['url'] for item in stored])
        raise
    return stored


@messages.route('/channel/<int:channel_id>', methods=['GET'])
def list_messages(channel_id):
    page = get_messages(channel_id, current_user.id,
                        limit=request.args.get('limit'),
                        before=request.args.get('before'),
                        before_at=request.args.get('beforeAt'))
    return success(page)


@messages.route('/channel/<int:channel_id>', methods=['POST'])
def create_message(channel_id):
    channel, _ = writable_channel(channel_id, current_user.id)
    data = json_body()
    content = _content(data)
    files = [f for f in request.files.getlist('files') if f and f.filename]
    if not content and not files:
        raise ValidationError('Message content is required')

    attachments = _store_uploads(files)
    message = Message.create(channel.id, current_user.id, content or None, attachments)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        get_uploads().discard_urls([item['url'] for item in attachments])
        raise
    payload = message.to_dict()
    get_dispatcher().message_created(channel.id, payload)
    return created(payload, 'Message sent successfully')


@messages.route('/<int:message_id>', methods=['PATCH'])
def update_message(message_id):
    message, _ = visible_message(message_id, current_user.id)
    if not access.can_edit_message(current_user.id, message):
        raise AuthorizationError('You can only edit your own messages')
    content = _content(json_body())
    if not content and not message.attachments:
        raise ValidationError('Message content is required')

    message.content = content or None
    message.updated_at = utcnow()
    db.session.commit()
    payload = message.to_dict()
    get_dispatcher().message_updated(message.channel_id, payload)
    return success(payload, 'Message updated successfully')


@messages.route('/<int:message_id>', methods=['DELETE'])
def delete_message(message_id):
    message, membership = visible_message(message_id, current_user.id)
    server_id = message.channel.server_id
    if not access.can_delete_message(current_user.id, message, membership, server_id):
        raise AuthorizationError('You can only delete your own messages or be a server admin')

    channel_id = message.channel_id
    urls = [a.url for a in message.attachments]
    db.session.delete(message)
    db.session.commit()
    get_dispatcher().message_deleted(channel_id, message_id)
    get_uploads().discard_urls(urls)
    return success(None, 'Message deleted successfully')
