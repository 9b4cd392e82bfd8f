"""
Message history paginator.

Pages are read newest-first for the index and handed back oldest-first.
A page shorter than the requested limit means the history is exhausted;
no total count is computed.
"""

from flask import current_app

from .errors import ValidationError
from .guards import readable_channel
from .models import Message, parse_timestamp


def parse_limit(raw, default=50, maximum=100):
    """Clamp a client supplied page size to ``1..maximum``."""
    if raw is None or raw == '':
        return default
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        raise ValidationError('limit must be an integer')
    if limit < 1:
        raise ValidationError('limit must be positive')
    return min(limit, maximum)


def resolve_cursor(channel_id, before, before_at=None):
    """Turn ``before`` into query arguments for Message.list_by_channel.

    A bare integer is a message id (exact cursor over created_at, id);
    anything else must be an ISO-8601 timestamp. When the referenced message
    has been deleted since the client saw it, ``before_at`` (that message's
    createdAt) stands in as a timestamp cursor.
    """
    if before is None or before == '':
        return {}
    if isinstance(before, int) or (isinstance(before, str) and before.isdigit()):
        cursor = Message.find_by_id(int(before))
        if cursor is not None and cursor.channel_id == channel_id:
            return {'before_message': cursor}
        if cursor is None and before_at:
            return {'before': _timestamp(before_at, 'beforeAt must be an ISO-8601 timestamp')}
        raise ValidationError('before does not reference a message in this channel')
    return {'before': _timestamp(before, 'before must be a message id or an ISO-8601 timestamp')}


def _timestamp(value, error):
    try:
        return parse_timestamp(str(value))
    except ValueError:
        raise ValidationError(error)


def get_messages(channel_id, user_id, limit=None, before=None, before_at=None):
    """Oldest-first page of up to ``limit`` messages older than ``before``."""
    channel, _ = readable_channel(channel_id, user_id)
    limit = parse_limit(limit,
                        current_app.config['HISTORY_DEFAULT_LIMIT'],
                        current_app.config['HISTORY_MAX_LIMIT'])
    page = Message.list_by_channel(channel.id, limit, **resolve_cursor(channel.id, before, before_at))
    page.reverse()
    return [m.to_dict() for m in page]
