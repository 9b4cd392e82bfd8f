"""Per-client request budget for the REST surface."""

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)


def api_rate_limit():
    window = max(1, int(current_app.config['RATE_LIMIT_WINDOW_MS']) // 1000)
    return f"{current_app.config['RATE_LIMIT_MAX_REQUESTS']} per {window} seconds"


def limit_api(blueprint):
    """Every /api blueprint draws from one shared budget per client address."""
    limiter.shared_limit(api_rate_limit, scope='api')(blueprint)
    return blueprint
