from flask import Blueprint, current_app
from flask_jwt_extended import current_user, jwt_required
from sqlalchemy.exc import IntegrityError

from . import json_body, text_field
from ..errors import AuthenticationError, ConflictError, ValidationError, created, success
from ..limits import limit_api
from ..models import STATUS_OFFLINE, STATUS_ONLINE, RefreshToken, User, db
from ..tokens import hash_token, issue_access_token, issue_token_pair, redeem_refresh_token

auth = limit_api(Blueprint('auth', __name__))


def _auth_result(user):
    result = {'user': user.to_dict()}
    result.update(issue_token_pair(user))
    return result


@auth.route('/register', methods=['POST'])
def register():
    current_app.logger.debug('POST /api/auth/register invoked')
    data = json_body()
    email = text_field(data, 'email')
    username = text_field(data, 'username')
    password = data.get('password')
    if not isinstance(password, str) or not password:
        raise ValidationError('password is required')
    if '@' not in email:
        raise ValidationError('email is not valid')
    min_length = current_app.config['MIN_PASSWORD_LENGTH']
    if len(password) < min_length:
        raise ValidationError(f'Password must be at least {min_length} characters')

    existing = User.find_by_email_or_username(email=email, username=username)
    if existing is not None:
        if existing.email == email:
            raise ConflictError('Email already in use')
        raise ConflictError('Username already taken')

    user = User(email=email, username=username, status=STATUS_ONLINE)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.flush()
        result = _auth_result(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Email or username already in use')
    current_app.logger.info(f'Registered user {username} (uid={user.id})')
    return created(result, 'User registered successfully')


@auth.route('/login', methods=['POST'])
def login():
    current_app.logger.debug('POST /api/auth/login invoked')
    data = json_body()
    identifier = text_field(data, 'email', required=False) or text_field(data, 'username', required=False)
    password = data.get('password')
    if not identifier or not isinstance(password, str) or not password:
        raise ValidationError('Email and password are required')

    if '@' in identifier:
        user = User.find_by_email_or_username(email=identifier)
    else:
        user = User.find_by_email_or_username(username=identifier)
    if user is None or not user.check_password(password):
        raise AuthenticationError('Invalid credentials')

    user.status = STATUS_ONLINE
    purged = RefreshToken.delete_expired()
    if purged:
        current_app.logger.debug(f'Purged {purged} expired refresh token(s)')
    result = _auth_result(user)
    db.session.commit()
    return success(result, 'Login successful')


@auth.route('/refresh', methods=['POST'])
def refresh():
    data = json_body()
    token = data.get('refreshToken')
    if not token:
        raise ValidationError('Refresh token is required')
    user = redeem_refresh_token(token)
    return success({'accessToken': issue_access_token(user)})


@auth.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    data = json_body()
    token = data.get('refreshToken')
    if not token or not isinstance(token, str):
        raise ValidationError('Refresh token is required')
    RefreshToken.delete_by_hash(hash_token(token), user_id=current_user.id)
    current_user.status = STATUS_OFFLINE
    db.session.commit()
    current_app.logger.info(f'User {current_user.username} logged out')
    return success(None, 'Logout successful')


@auth.route('/me', methods=['GET'])
@jwt_required()
def me():
    return success(current_user.to_dict())
