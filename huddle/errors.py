"""
Error taxonomy and the JSON response envelope.

Every response body has the shape ``{success, data?, error?, message?}``.
Domain code raises one of the ``ChatError`` subclasses below; the handlers
registered by :func:`register_error_handlers` turn them into envelopes, and the
Socket.IO error handler turns them into ``error`` events.
"""

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .models import db

TOO_MANY_REQUESTS = 'Too many requests from this IP, please try again later.'


class ChatError(Exception):
    """Base class for errors that are reported back to the client."""

    status_code = 400
    default_message = 'Bad request'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(ChatError):
    status_code = 400
    default_message = 'Invalid request'


class AuthenticationError(ChatError):
    status_code = 401
    default_message = 'Authentication failed'


class AuthorizationError(ChatError):
    status_code = 403
    default_message = 'Forbidden'


class NotFoundError(ChatError):
    status_code = 404
    default_message = 'Resource not found'


class ConflictError(ChatError):
    status_code = 409
    default_message = 'Conflict'


class InternalError(ChatError):
    status_code = 500
    default_message = 'Internal server error'


def success(data=None, message=None, status=200):
    body = {'success': True, 'data': data}
    if message:
        body['message'] = message
    return jsonify(body), status


def created(data=None, message=None):
    return success(data, message, 201)


def failure(error, status=400):
    return jsonify({'success': False, 'error': error}), status


def register_error_handlers(app):

    @app.errorhandler(ChatError)
    def handle_chat_error(e):
        if e.status_code >= 500:
            app.logger.error(f'Internal error: {e.message}')
            return failure(InternalError.default_message, e.status_code)
        return failure(e.message, e.status_code)

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(e):
        db.session.rollback()
        app.logger.exception('Store operation failed')
        return failure(InternalError.default_message, 500)

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if e.code == 404:
            return failure('Route not found', 404)
        if e.code == 429:
            return failure(TOO_MANY_REQUESTS, 429)
        if e.code == 413:
            return failure('Upload too large', 413)
        return failure(e.name, e.code)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        app.logger.exception('Unhandled exception')
        return failure(InternalError.default_message, 500)
