# Access/refresh token primitives built on Flask-JWT-Extended
import hashlib
import logging

from flask import current_app
from flask_jwt_extended import JWTManager, create_access_token, create_refresh_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from .errors import AuthenticationError, failure
from .models import RefreshToken, User, db, utcnow
from .sessions import Identity

logger = logging.getLogger(__name__)

jwt = JWTManager()


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def issue_access_token(user) -> str:
    return create_access_token(identity=str(user.id), additional_claims={'username': user.username})


def issue_token_pair(user) -> dict:
    """New access + refresh token; the refresh token is stored hashed."""
    refresh_token = create_refresh_token(identity=str(user.id), additional_claims={'username': user.username})
    expires_at = utcnow() + current_app.config['JWT_REFRESH_TOKEN_EXPIRES']
    RefreshToken.create(hash_token(refresh_token), user.id, expires_at)
    return {'accessToken': issue_access_token(user), 'refreshToken': refresh_token}


def _decode(token, expected_type):
    if not isinstance(token, str) or not token:
        raise AuthenticationError('No token provided')
    try:
        claims = decode_token(token)
    except (JWTExtendedException, PyJWTError) as e:
        logger.debug(f'Rejected {expected_type} token: {e}')
        raise AuthenticationError('Invalid or expired token')
    if claims.get('type') != expected_type:
        raise AuthenticationError('Invalid or expired token')
    return claims


def verify_access_token(token) -> Identity:
    claims = _decode(token, 'access')
    identity_claim = current_app.config.get('JWT_IDENTITY_CLAIM', 'sub')
    return Identity(user_id=int(claims[identity_claim]), username=claims.get('username', ''))


def redeem_refresh_token(token) -> User:
    """User behind a stored, unexpired refresh token.

    Expired rows found on the way are deleted.
    """
    _decode(token, 'refresh')
    stored = RefreshToken.find_by_hash(hash_token(token))
    if stored is None:
        raise AuthenticationError('Invalid refresh token')
    if stored.is_expired():
        db.session.delete(stored)
        db.session.commit()
        raise AuthenticationError('Refresh token expired')
    return stored.user


@jwt.user_lookup_loader
def load_user(_jwt_header, jwt_data):
    identity_claim = current_app.config.get('JWT_IDENTITY_CLAIM', 'sub')
    return db.session.get(User, int(jwt_data[identity_claim]))


@jwt.unauthorized_loader
def missing_token(reason):
    return failure('No token provided', 401)


@jwt.invalid_token_loader
def invalid_token(reason):
    return failure('Invalid or expired token', 401)


@jwt.expired_token_loader
def expired_token(_jwt_header, _jwt_payload):
    return failure('Invalid or expired token', 401)


@jwt.user_lookup_error_loader
def unknown_user(_jwt_header, _jwt_payload):
    return failure('User not found', 401)


@jwt.token_verification_failed_loader
def rejected_token(_jwt_header, _jwt_payload):
    return failure('Invalid or expired token', 401)
