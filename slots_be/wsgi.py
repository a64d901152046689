import os

from slots_be.app import create_app

# Module-level instance for Gunicorn and `flask --app slots_be.wsgi`
app, socketio = create_app()

if __name__ == '__main__':
    socketio.run(app, host='0.0.0.0', port=int(os.getenv('PORT', 5000)), debug=app.debug,
                 allow_unsafe_werkzeug=app.debug)
