"""Request/response surface, one blueprint per resource under ``/api``."""

from flask import request

from ..errors import ValidationError


def json_body():
    """Request JSON as a dict; form fields are accepted too."""
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict() if request.form else {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def text_field(data, name, required=True):
    value = data.get(name)
    if value is None:
        if required:
            raise ValidationError(f'{name} is required')
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{name} must be a string')
    value = value.strip()
    if required and not value:
        raise ValidationError(f'{name} is required')
    return value


def register_blueprints(app):
    from .auth import auth
    from .channels import channels
    from .messages import messages
    from .servers import servers

    app.register_blueprint(auth, url_prefix='/api/auth')
    app.register_blueprint(servers, url_prefix='/api/servers')
    app.register_blueprint(channels, url_prefix='/api/channels')
    app.register_blueprint(messages, url_prefix='/api/messages')
