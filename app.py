import os

from huddle import DISPATCHER_KEY, create_app, socketio

app = create_app()

if __name__ == '__main__':
    try:
        socketio.run(app,
                     host=os.getenv('HOST', '0.0.0.0'),
                     port=int(os.getenv('PORT', 3001)),
                     debug=os.getenv('FLASK_DEBUG', '0') == '1',
                     allow_unsafe_werkzeug=True)
    finally:
        app.extensions[DISPATCHER_KEY].close()
