import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///mathrush.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Comma separated list of browser origins allowed to connect
    CLIENT_ORIGINS = [o.strip() for o in os.environ.get('CLIENT_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',') if o.strip()]
    # Round timers (seconds)
    NEXT_ROUND_DELAY_SEC = int(os.environ.get('NEXT_ROUND_DELAY_SEC', '6'))
    MATCH_RESTART_DELAY_SEC = int(os.environ.get('MATCH_RESTART_DELAY_SEC', '10'))
    # Questions per match. 0 runs one endless match.
    ROUNDS_PER_MATCH = int(os.environ.get('ROUNDS_PER_MATCH', '0'))
    LEADERBOARD_SIZE = int(os.environ.get('LEADERBOARD_SIZE', '10'))
    ANSWER_TOLERANCE = float(os.environ.get('ANSWER_TOLERANCE', '0.01'))
    MAX_DISPLAY_NAME_LENGTH = int(os.environ.get('MAX_DISPLAY_NAME_LENGTH', '30'))
    # Open (or resume) the first round when run.py starts the server
    BOOTSTRAP_ON_START = os.environ.get('BOOTSTRAP_ON_START', '1') not in ('0', 'false', 'False')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Socket.IO keepalive, generous for flaky mobile connections
    SOCKETIO_PING_TIMEOUT = int(os.environ.get('SOCKETIO_PING_TIMEOUT', '60'))
    SOCKETIO_PING_INTERVAL = int(os.environ.get('SOCKETIO_PING_INTERVAL', '25'))
