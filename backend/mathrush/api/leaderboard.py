from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from mathrush import db
from mathrush.services.rounds import get_coordinator

leaderboard = Blueprint('leaderboard', __name__)

MAX_LIMIT = 100


@leaderboard.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    """
    Read-only leaderboard snapshot for clients without a live socket.
    """
    limit = request.args.get('limit', type=int)
    if limit is not None:
        limit = max(1, min(limit, MAX_LIMIT))
    try:
        entries = get_coordinator().leaderboard(limit)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("[store-error] leaderboard read failed")
        return jsonify({'error': 'Failed to fetch leaderboard'}), 500
    return jsonify(entries)


@leaderboard.route('/round', methods=['GET'])
def get_round():
    """
    Returns the current round snapshot, without the answer.
    """
    try:
        snapshot = get_coordinator().snapshot()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("[store-error] round read failed")
        return jsonify({'error': 'Failed to fetch round'}), 500
    if snapshot is None:
        return jsonify({'error': 'No round has been opened yet'}), 404
    return jsonify(snapshot)
