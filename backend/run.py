import os

from mathrush import create_app, db, socketio
from mathrush.services.rounds import get_coordinator

app = create_app()

if app.config.get('BOOTSTRAP_ON_START'):
    with app.app_context():
        # Tables are created if missing; existing data and round state are kept
        db.create_all()
        get_coordinator(app).bootstrap()

if __name__ == '__main__':
    # Use SocketIO server to enable websockets in dev. The reloader would
    # bootstrap a second coordinator in the parent process.
    socketio.run(app, host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True, use_reloader=False)
