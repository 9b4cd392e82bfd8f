# Creates the Flask app (App Factory)
import logging
import os

from flask import Flask, current_app, jsonify, send_from_directory
from flask_cors import CORS
from flask_socketio import SocketIO

from .config import Config
from .dispatcher import EventDispatcher
from .errors import register_error_handlers
from .limits import limiter
from .models import User, db, isoformat, utcnow
from .rooms import RoomRouter
from .sessions import SessionRegistry, run_inline
from .tokens import jwt, verify_access_token
from .uploads import UploadStore

socketio = SocketIO()

DISPATCHER_KEY = 'huddle.dispatcher'
UPLOADS_KEY = 'huddle.uploads'


def get_dispatcher() -> EventDispatcher:
    return current_app.extensions[DISPATCHER_KEY]


def get_uploads() -> UploadStore:
    return current_app.extensions[UPLOADS_KEY]


def _build_dispatcher(app):
    def write_status(user_id, status):
        with app.app_context():
            if not User.update_status(user_id, status):
                app.logger.warning(f'Status {status} not saved: user {user_id} no longer exists')

    spawn = run_inline if app.config['SYNC_PRESENCE_WRITES'] else socketio.start_background_task
    sessions = SessionRegistry(verify_access_token, write_status, spawn)
    return EventDispatcher(socketio, sessions, RoomRouter())


def create_app(overrides=None):
    app = Flask(__name__, static_folder=None)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Logging configuration
    if not logging.getLogger().handlers:
        logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s - %(message)s')
    logging.getLogger('huddle').setLevel(app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Extensions
    db.init_app(app)
    jwt.init_app(app)
    limiter.init_app(app)
    CORS(app, resources={r'/api/*': {'origins': app.config['CORS_ORIGIN']}})

    # Socket handlers must be declared before init_app binds them to a server
    from . import events  # noqa: F401
    socketio.init_app(app, cors_allowed_origins=app.config['CORS_ORIGIN'])

    app.extensions[UPLOADS_KEY] = UploadStore(app.config['UPLOAD_FOLDER'],
                                              max_size=app.config['MAX_UPLOAD_SIZE'])
    app.extensions[DISPATCHER_KEY] = _build_dispatcher(app)

    from .api import register_blueprints
    register_blueprints(app)
    register_error_handlers(app)

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok', 'timestamp': isoformat(utcnow())}), 200

    @app.route('/uploads/<path:filename>', methods=['GET'])
    def uploaded_file(filename):
        return send_from_directory(os.path.abspath(app.config['UPLOAD_FOLDER']), filename)

    app.logger.debug('Application created and configured')
    return app
