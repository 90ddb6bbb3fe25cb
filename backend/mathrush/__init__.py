from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CLIENT_ORIGINS') or '*'

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(
        flask_app,
        cors_allowed_origins=allowed_origins,
        ping_timeout=flask_app.config.get('SOCKETIO_PING_TIMEOUT', 60),
        ping_interval=flask_app.config.get('SOCKETIO_PING_INTERVAL', 25),
    )

    # Import and register blueprints here
    from mathrush.routes import main
    flask_app.register_blueprint(main)

    from mathrush.api.leaderboard import leaderboard
    flask_app.register_blueprint(leaderboard, url_prefix='/api')

    # One coordinator per process owns the round lifecycle
    from mathrush.services.rounds import build_coordinator
    from mathrush.socketio_events import SOCKET_NAMESPACE, register_socketio_handlers
    coordinator = build_coordinator(flask_app, socketio, namespace=SOCKET_NAMESPACE)
    flask_app.extensions['round_coordinator'] = coordinator

    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the tables, then opens a fresh round."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            coordinator.generator.reset()
            coordinator.bootstrap()
            print('Database has been reset and the first round is open!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
