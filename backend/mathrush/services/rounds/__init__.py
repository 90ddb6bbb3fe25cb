"""Round domain services: question generation, stores, timers, adjudication.

This package holds the game mechanics that socket handlers and HTTP routes
call into, keeping transport concerns out of the round logic.
"""

from .coordinator import InvalidAnswer, RoundCoordinator, parse_answer
from .events import AnswerResult, Event, Outcome, Publisher, SocketIOPublisher
from .questions import GeneratedQuestion, QuestionGenerator, tier_for_round
from .scheduler import RoundTimer, ScheduledTask
from .sessions import InvalidJoin, Session, SessionRegistry, resolve_identity
from .store import CurrentRound, MissingQuestion, NoQuestion, RoundStateStore, ScoreStore


def build_coordinator(app, socketio, namespace='/ws', publisher=None, generator=None):
    """Wire a coordinator with stores bound to the app's database."""
    from mathrush import db

    return RoundCoordinator(
        app,
        rounds=RoundStateStore(db),
        scores=ScoreStore(db, leaderboard_size=int(app.config.get('LEADERBOARD_SIZE', 10))),
        publisher=publisher or SocketIOPublisher(socketio, namespace),
        timer=RoundTimer(app, socketio),
        sessions=SessionRegistry(),
        generator=generator,
    )


def get_coordinator(app=None) -> RoundCoordinator:
    if app is None:
        from flask import current_app
        app = current_app
    return app.extensions['round_coordinator']
