# Configuration settings
import os
from datetime import timedelta
from dotenv import load_dotenv

# Pull values from a local .env file, if there is one
load_dotenv()

MIB = 1024 * 1024


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-change-me')
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.environ.get('JWT_ACCESS_MINUTES', 15)))
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=int(os.environ.get('JWT_REFRESH_DAYS', 7)))

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///huddle.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(os.getcwd(), 'uploads'))
    MAX_UPLOAD_SIZE = int(os.environ.get('MAX_UPLOAD_SIZE', 10 * MIB))
    MAX_ATTACHMENTS = int(os.environ.get('MAX_ATTACHMENTS', 5))
    MAX_CONTENT_LENGTH = MAX_UPLOAD_SIZE * MAX_ATTACHMENTS + MIB

    CORS_ORIGIN = os.environ.get('CORS_ORIGIN', '*')

    # REST requests allowed per client address within the window
    RATE_LIMIT_WINDOW_MS = int(os.environ.get('RATE_LIMIT_WINDOW_MS', 15 * 60 * 1000))
    RATE_LIMIT_MAX_REQUESTS = int(os.environ.get('RATE_LIMIT_MAX_REQUESTS', 100))
    RATELIMIT_ENABLED = os.environ.get('RATELIMIT_ENABLED', '1') == '1'
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')

    HISTORY_DEFAULT_LIMIT = int(os.environ.get('HISTORY_DEFAULT_LIMIT', 50))
    HISTORY_MAX_LIMIT = int(os.environ.get('HISTORY_MAX_LIMIT', 100))
    MIN_PASSWORD_LENGTH = 6
    DEFAULT_ICON_COLOR = os.environ.get('DEFAULT_ICON_COLOR', '#5865f2')

    # Sockets that never authenticate are closed after this many seconds (0 disables)
    SOCKET_AUTH_TIMEOUT = float(os.environ.get('SOCKET_AUTH_TIMEOUT', 10))
    # Run presence status writes inline rather than as background tasks
    SYNC_PRESENCE_WRITES = os.environ.get('SYNC_PRESENCE_WRITES', '0') == '1'

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
