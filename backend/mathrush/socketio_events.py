from flask import current_app, request
from flask_socketio import emit
from sqlalchemy.exc import SQLAlchemyError

from mathrush import socketio, db
from mathrush.services.rounds import InvalidAnswer, InvalidJoin, get_coordinator, resolve_identity

SOCKET_NAMESPACE = '/ws'


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect():
    coordinator = get_coordinator()
    coordinator.sessions.connect(_get_sid())
    emit('connected', {'message': f'Connected to {SOCKET_NAMESPACE}'})
    coordinator.broadcast_player_count()


def handle_disconnect(reason=None):
    coordinator = get_coordinator()
    session = coordinator.sessions.disconnect(_get_sid())
    if session:
        current_app.logger.info(
            f"[socket-disconnect] participant={session.participant_id} name={session.display_name} reason={reason}"
        )
    coordinator.broadcast_player_count()


def handle_join(data):
    coordinator = get_coordinator()
    data = data or {}
    try:
        participant_id, display_name = resolve_identity(
            data.get('display_name'),
            data.get('participant_id'),
            max_name_length=int(current_app.config.get('MAX_DISPLAY_NAME_LENGTH', 30)),
        )
    except InvalidJoin as exc:
        emit('error', {'message': str(exc)})
        return

    coordinator.sessions.join(_get_sid(), participant_id, display_name)
    current_app.logger.info(f"[socket-join] participant={participant_id} name={display_name}")

    try:
        snapshot = coordinator.snapshot()
        entries = coordinator.leaderboard()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("[store-error] join snapshot failed")
        snapshot, entries = None, []

    # The participant id is echoed so the client can store it for reconnects
    emit('joined', {
        'participant_id': participant_id,
        'display_name': display_name,
        'round': snapshot,
        'leaderboard': entries,
    })
    coordinator.broadcast_player_count()


def handle_submit_answer(data):
    coordinator = get_coordinator()
    session = coordinator.sessions.get(_get_sid())
    if session is None:
        emit('error', {'message': 'You must join before submitting an answer.'})
        return
    try:
        result = coordinator.submit_answer(session.participant_id, session.display_name, (data or {}).get('value'))
    except InvalidAnswer as exc:
        emit('error', {'message': str(exc)})
        return
    emit('answer_result', result.to_dict())


def handle_get_leaderboard(data=None):
    try:
        entries = get_coordinator().leaderboard()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("[store-error] leaderboard read failed")
        emit('error', {'message': 'Failed to fetch leaderboard'})
        return
    emit('leaderboard_updated', {'entries': entries})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = [
        ('connect', handle_connect),
        ('disconnect', handle_disconnect),
        ('join', handle_join),
        ('submit_answer', handle_submit_answer),
        ('get_leaderboard', handle_get_leaderboard),
        ('ping', handle_ping),
    ]
    namespaces = [SOCKET_NAMESPACE, '/'] if testing else [SOCKET_NAMESPACE]
    for namespace in namespaces:
        for name, handler in handlers:
            socketio.on_event(name, handler, namespace=namespace)
