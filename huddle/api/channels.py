from flask import Blueprint
from flask_jwt_extended import current_user, jwt_required

from . import json_body, text_field
from .. import get_dispatcher, get_uploads
from ..errors import ValidationError, created, success
from ..guards import channel_manager, manageable_channel, member_server
from ..limits import limit_api
from ..models import CHANNEL_TYPES, Attachment, Channel, db

channels = limit_api(Blueprint('channels', __name__))


@channels.before_request
@jwt_required()
def require_login():
    pass


def _channel_type(data, required=True):
    value = text_field(data, 'type', required=required)
    if value is None:
        return None
    if value not in CHANNEL_TYPES:
        raise ValidationError('Channel type must be "text" or "voice"')
    return value


@channels.route('/server/<int:server_id>', methods=['GET'])
def list_channels(server_id):
    server, _ = member_server(server_id, current_user.id)
    return success([c.to_dict() for c in Channel.list_by_server(server.id)])


@channels.route('/server/<int:server_id>', methods=['POST'])
def create_channel(server_id):
    data = json_body()
    name = text_field(data, 'name')
    channel_type = _channel_type(data)
    server, _ = channel_manager(server_id, current_user.id)
    channel = Channel.create(server.id, name, channel_type)
    db.session.commit()
    return created(channel.to_dict(), 'Channel created successfully')


@channels.route('/<int:channel_id>', methods=['PATCH'])
def update_channel(channel_id):
    data = json_body()
    channel, _ = manageable_channel(channel_id, current_user.id)
    if 'name' in data:
        channel.name = text_field(data, 'name')
    if 'type' in data:
        channel.type = _channel_type(data)
    db.session.commit()
    return success(channel.to_dict(), 'Channel updated successfully')


@channels.route('/<int:channel_id>', methods=['DELETE'])
def delete_channel(channel_id):
    channel, _ = manageable_channel(channel_id, current_user.id)
    urls = Attachment.urls_in_channels([channel.id])
    db.session.delete(channel)
    db.session.commit()
    get_dispatcher().close_rooms([channel_id])
    get_uploads().discard_urls(urls)
    return success(None, 'Channel deleted successfully')
