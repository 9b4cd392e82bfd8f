from flask import Blueprint, current_app
from flask_jwt_extended import current_user, jwt_required
from sqlalchemy.exc import IntegrityError

from . import json_body, text_field
from .. import get_dispatcher, get_uploads
from ..errors import ConflictError, NotFoundError, ValidationError, created, success
from ..guards import member_server, owned_server
from ..limits import limit_api
from ..models import (CHANNEL_TEXT, CHANNEL_VOICE, ROLE_OWNER, Attachment, Server,
                      ServerMembership, db)

servers = limit_api(Blueprint('servers', __name__))

DEFAULT_CHANNELS = (('general', CHANNEL_TEXT), ('General', CHANNEL_VOICE))


@servers.before_request
@jwt_required()
def require_login():
    pass


@servers.route('', methods=['GET'])
def list_servers():
    return success([s.to_summary_dict() for s in Server.find_all_for_user(current_user.id)])


@servers.route('', methods=['POST'])
def create_server():
    data = json_body()
    name = text_field(data, 'name')
    icon_color = text_field(data, 'iconColor', required=False) or current_app.config['DEFAULT_ICON_COLOR']
    server = Server.create(current_user, name, icon_color, DEFAULT_CHANNELS)
    db.session.commit()
    current_app.logger.info(f'User {current_user.id} created server {server.id}')
    return created(server.to_detail_dict(), 'Server created successfully')


@servers.route('/<int:server_id>', methods=['GET'])
def get_server(server_id):
    server, _ = member_server(server_id, current_user.id)
    return success(server.to_detail_dict())


@servers.route('/<int:server_id>', methods=['PATCH'])
def update_server(server_id):
    server = owned_server(server_id, current_user.id)
    data = json_body()
    if 'name' in data:
        server.name = text_field(data, 'name')
    if 'icon' in data:
        server.icon = text_field(data, 'icon', required=False) or None
    if 'iconColor' in data:
        server.icon_color = text_field(data, 'iconColor', required=False) or None
    db.session.commit()
    return success(server.to_dict(), 'Server updated successfully')


@servers.route('/<int:server_id>', methods=['DELETE'])
def delete_server(server_id):
    server = owned_server(server_id, current_user.id)
    channel_ids = [c.id for c in server.channels]
    urls = Attachment.urls_in_channels(channel_ids)
    db.session.delete(server)
    db.session.commit()
    get_dispatcher().close_rooms(channel_ids)
    get_uploads().discard_urls(urls)
    current_app.logger.info(f'Server {server_id} deleted by user {current_user.id}')
    return success(None, 'Server deleted successfully')


@servers.route('/<int:server_id>/join', methods=['POST'])
def join_server(server_id):
    server = Server.find_by_id(server_id)
    if server is None:
        raise NotFoundError('Server not found')
    if ServerMembership.find(current_user.id, server.id) is not None:
        raise ConflictError('Already a member of this server')
    membership = ServerMembership.create(current_user.id, server.id)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Already a member of this server')
    return created(membership.to_dict(), 'Joined server successfully')


@servers.route('/<int:server_id>/leave', methods=['POST'])
def leave_server(server_id):
    server, membership = member_server(server_id, current_user.id)
    if membership.role == ROLE_OWNER:
        raise ValidationError('The owner cannot leave their own server')
    channel_ids = [c.id for c in server.channels]
    db.session.delete(membership)
    db.session.commit()
    get_dispatcher().revoke(current_user.id, channel_ids)
    return success(None, 'Left server successfully')
