from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import and_, or_
from sqlalchemy.orm import joinedload, selectinload
from werkzeug.security import check_password_hash, generate_password_hash

db = SQLAlchemy()

ROLE_OWNER = 'owner'
ROLE_ADMIN = 'admin'
ROLE_MEMBER = 'member'
MANAGER_ROLES = (ROLE_OWNER, ROLE_ADMIN)

STATUS_ONLINE = 'online'
STATUS_IDLE = 'idle'
STATUS_DND = 'dnd'
STATUS_OFFLINE = 'offline'
USER_STATUSES = (STATUS_ONLINE, STATUS_IDLE, STATUS_DND, STATUS_OFFLINE)

CHANNEL_TEXT = 'text'
CHANNEL_VOICE = 'voice'
CHANNEL_TYPES = (CHANNEL_TEXT, CHANNEL_VOICE)


def utcnow():
    # Stored naive, always UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    if value is None:
        return None
    return value.isoformat(timespec='microseconds') + 'Z'


def parse_timestamp(value):
    """Parse an ISO-8601 string into a naive UTC datetime; ValueError if malformed."""
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    avatar = db.Column(db.String(500), nullable=True)
    status = db.Column(db.String(10), nullable=False, default=STATUS_OFFLINE)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    memberships = db.relationship('ServerMembership', backref='user', lazy=True,
                                  cascade='all, delete-orphan')
    messages = db.relationship('Message', backref='author', lazy=True)
    refresh_tokens = db.relationship('RefreshToken', backref='user', lazy=True,
                                     cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @classmethod
    def find_by_id(cls, user_id):
        return db.session.get(cls, user_id)

    @classmethod
    def find_by_email_or_username(cls, email=None, username=None):
        clauses = []
        if email:
            clauses.append(cls.email == email)
        if username:
            clauses.append(cls.username == username)
        if not clauses:
            return None
        return cls.query.filter(or_(*clauses)).first()

    @classmethod
    def update_status(cls, user_id, status):
        """Persist a presence status; returns False when the user is gone."""
        if status not in USER_STATUSES:
            raise ValueError(f'Unknown status {status!r}')
        user = db.session.get(cls, user_id)
        if user is None:
            return False
        user.status = status
        db.session.commit()
        return True

    def summary(self):
        return {
            'id': self.id,
            'username': self.username,
            'avatar': self.avatar,
            'status': self.status,
        }

    def to_dict(self):
        data = self.summary()
        data['email'] = self.email
        data['createdAt'] = isoformat(self.created_at)
        return data

    def __repr__(self):
        return f'<User {self.username}>'


class Server(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    icon = db.Column(db.String(500), nullable=True)
    icon_color = db.Column(db.String(20), nullable=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    owner = db.relationship('User', lazy='joined')
    memberships = db.relationship('ServerMembership', backref='server', lazy=True,
                                  cascade='all, delete-orphan')
    channels = db.relationship('Channel', backref='server', lazy=True,
                               cascade='all, delete-orphan',
                               order_by='Channel.created_at, Channel.id')

    @classmethod
    def create(cls, owner, name, icon_color, default_channels=()):
        """Stage a server with its owner membership and default channels."""
        server = cls(name=name, icon_color=icon_color, owner=owner)
        server.memberships.append(ServerMembership(user=owner, role=ROLE_OWNER))
        for channel_name, channel_type in default_channels:
            server.channels.append(Channel(name=channel_name, type=channel_type))
        db.session.add(server)
        return server

    @classmethod
    def find_by_id(cls, server_id):
        return db.session.get(cls, server_id)

    @classmethod
    def find_all_for_user(cls, user_id):
        return (cls.query
                .join(ServerMembership, ServerMembership.server_id == cls.id)
                .filter(ServerMembership.user_id == user_id)
                .order_by(ServerMembership.joined_at, ServerMembership.id)
                .all())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'icon': self.icon,
            'iconColor': self.icon_color,
            'ownerId': self.owner_id,
            'createdAt': isoformat(self.created_at),
        }

    def to_summary_dict(self):
        data = self.to_dict()
        data['owner'] = self.owner.summary()
        data['memberCount'] = len(self.memberships)
        data['channelCount'] = len(self.channels)
        return data

    def to_detail_dict(self):
        data = self.to_dict()
        data['owner'] = self.owner.summary()
        data['channels'] = [c.to_dict() for c in self.channels]
        data['members'] = [m.to_dict() for m in ServerMembership.list_by_server(self.id)]
        return data


class ServerMembership(db.Model):
    __table_args__ = (
        db.UniqueConstraint('user_id', 'server_id', name='uq_membership_user_server'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)
    server_id = db.Column(db.Integer, db.ForeignKey('server.id', ondelete='CASCADE'), nullable=False)
    role = db.Column(db.String(10), nullable=False, default=ROLE_MEMBER)
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @classmethod
    def create(cls, user_id, server_id, role=ROLE_MEMBER):
        membership = cls(user_id=user_id, server_id=server_id, role=role)
        db.session.add(membership)
        return membership

    @classmethod
    def find(cls, user_id, server_id):
        return cls.query.filter_by(user_id=user_id, server_id=server_id).first()

    @classmethod
    def list_by_server(cls, server_id):
        return (cls.query
                .options(joinedload(cls.user))
                .filter_by(server_id=server_id)
                .order_by(cls.joined_at, cls.id)
                .all())

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'serverId': self.server_id,
            'role': self.role,
            'joinedAt': isoformat(self.joined_at),
            'user': self.user.summary(),
        }


class Channel(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(10), nullable=False, default=CHANNEL_TEXT)
    server_id = db.Column(db.Integer, db.ForeignKey('server.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    messages = db.relationship('Message', backref='channel', lazy=True,
                               cascade='all, delete-orphan')

    @classmethod
    def create(cls, server_id, name, type):
        channel = cls(server_id=server_id, name=name, type=type)
        db.session.add(channel)
        return channel

    @classmethod
    def find_by_id(cls, channel_id):
        return db.session.get(cls, channel_id)

    @classmethod
    def list_by_server(cls, server_id):
        return cls.query.filter_by(server_id=server_id).order_by(cls.created_at, cls.id).all()

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'serverId': self.server_id,
            'createdAt': isoformat(self.created_at),
        }


class Message(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=True)
    channel_id = db.Column(db.Integer, db.ForeignKey('channel.id', ondelete='CASCADE'),
                           nullable=False, index=True)
    author_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=True)

    attachments = db.relationship('Attachment', backref='message', lazy=True,
                                  cascade='all, delete-orphan', order_by='Attachment.id')

    @classmethod
    def create(cls, channel_id, author_id, content, attachments=()):
        message = cls(channel_id=channel_id, author_id=author_id, content=content)
        for item in attachments:
            message.attachments.append(Attachment(**item))
        db.session.add(message)
        return message

    @classmethod
    def find_by_id(cls, message_id):
        return db.session.get(cls, message_id)

    @classmethod
    def list_by_channel(cls, channel_id, limit, before=None, before_message=None):
        """Newest-first page of a channel, strictly older than the cursor.

        ``before_message`` is an exact cursor over (created_at, id); ``before``
        is a bare timestamp.
        """
        query = (cls.query
                 .options(joinedload(cls.author), selectinload(cls.attachments))
                 .filter(cls.channel_id == channel_id))
        if before_message is not None:
            query = query.filter(or_(
                cls.created_at < before_message.created_at,
                and_(cls.created_at == before_message.created_at, cls.id < before_message.id),
            ))
        elif before is not None:
            query = query.filter(cls.created_at < before)
        return query.order_by(cls.created_at.desc(), cls.id.desc()).limit(limit).all()

    def to_dict(self):
        return {
            'id': self.id,
            'content': self.content,
            'channelId': self.channel_id,
            'authorId': self.author_id,
            'author': self.author.summary(),
            'attachments': [a.to_dict() for a in self.attachments],
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class Attachment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey('message.id', ondelete='CASCADE'), nullable=False)
    filename = db.Column(db.String(255), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    size = db.Column(db.Integer, nullable=False)

    @classmethod
    def urls_in_channels(cls, channel_ids):
        if not channel_ids:
            return []
        rows = (db.session.query(cls.url)
                .join(Message, Message.id == cls.message_id)
                .filter(Message.channel_id.in_(channel_ids))
                .all())
        return [row.url for row in rows]

    def to_dict(self):
        return {
            'id': self.id,
            'filename': self.filename,
            'url': self.url,
            'type': self.type,
            'size': self.size,
        }


class RefreshToken(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    token_hash = db.Column(db.String(64), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @classmethod
    def create(cls, token_hash, user_id, expires_at):
        token = cls(token_hash=token_hash, user_id=user_id, expires_at=expires_at)
        db.session.add(token)
        return token

    @classmethod
    def find_by_hash(cls, token_hash):
        return cls.query.filter_by(token_hash=token_hash).first()

    @classmethod
    def delete_by_hash(cls, token_hash, user_id=None):
        query = cls.query.filter_by(token_hash=token_hash)
        if user_id is not None:
            query = query.filter_by(user_id=user_id)
        return query.delete(synchronize_session=False)

    @classmethod
    def delete_expired(cls, now=None):
        return cls.query.filter(cls.expires_at < (now or utcnow())).delete(synchronize_session=False)

    def is_expired(self, now=None):
        return self.expires_at < (now or utcnow())
