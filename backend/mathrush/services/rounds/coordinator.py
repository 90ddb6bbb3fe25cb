"""Round lifecycle and answer adjudication.

The coordinator keeps no copy of the round between calls. Every submission
re-reads the round state, and the winner is decided by the store's
conditional claim alone, so any number of submissions may run concurrently
with each other and with the round timer.
"""

import math
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from .events import AnswerResult, Event, Outcome, Publisher
from .questions import QuestionGenerator
from .scheduler import RoundTimer, ScheduledTask
from .sessions import SessionRegistry
from .store import CurrentRound, MissingQuestion, NoQuestion, RoundStateStore, ScoreStore


class InvalidAnswer(ValueError):
    pass


def parse_answer(raw) -> float:
    """Coerce a submitted value to a finite float or raise InvalidAnswer."""
    if raw is None:
        raise InvalidAnswer('Answer cannot be empty.')
    if isinstance(raw, bool):
        raise InvalidAnswer('Answer must be a number.')
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            raise InvalidAnswer('Answer cannot be empty.')
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise InvalidAnswer('Answer must be a number.')
    if not math.isfinite(value):
        raise InvalidAnswer('Answer must be a number.')
    return value


class RoundCoordinator:
    def __init__(
        self,
        app,
        rounds: RoundStateStore,
        scores: ScoreStore,
        publisher: Publisher,
        timer: RoundTimer,
        sessions: Optional[SessionRegistry] = None,
        generator: Optional[QuestionGenerator] = None,
    ):
        self.app = app
        self.rounds = rounds
        self.scores = scores
        self.publisher = publisher
        self.timer = timer
        self.sessions = sessions or SessionRegistry()
        self.generator = generator or QuestionGenerator()

        cfg = app.config
        self.next_round_delay = int(cfg.get('NEXT_ROUND_DELAY_SEC', 6))
        self.match_restart_delay = int(cfg.get('MATCH_RESTART_DELAY_SEC', 10))
        self.rounds_per_match = int(cfg.get('ROUNDS_PER_MATCH', 0))
        self.tolerance = float(cfg.get('ANSWER_TOLERANCE', 0.01))

    @property
    def logger(self):
        return self.app.logger

    @property
    def total_rounds(self) -> Optional[int]:
        return self.rounds_per_match or None

    @property
    def pending_advance(self) -> Optional[ScheduledTask]:
        return self.timer.pending

    def is_final_round(self, round_index: int) -> bool:
        return bool(self.rounds_per_match) and round_index >= self.rounds_per_match

    # ---- Snapshots ----

    def snapshot(self) -> Optional[Dict[str, Any]]:
        view = self.rounds.read_current()
        if isinstance(view, CurrentRound):
            return view.to_dict(self.total_rounds)
        return None

    def leaderboard(self, limit: Optional[int] = None):
        return self.scores.leaderboard(limit)

    # ---- Lifecycle ----

    def bootstrap(self) -> None:
        """Bring the round state to a runnable shape at process start."""
        self.rounds.ensure_row()
        view = self.rounds.read_current()
        if isinstance(view, NoQuestion):
            self.logger.info("[bootstrap] no current question, opening first round")
            self.open_next_round()
            return
        if isinstance(view, MissingQuestion):
            self.logger.error(f"[bootstrap] round references missing question={view.question_id}")
            self._force_open(view.question_id)
            return
        self.generator.resume(view.round_index)
        if view.is_active:
            self.logger.info(f"[bootstrap] resuming question={view.question_id} round={view.round_index}")
        else:
            # Died during the post-win countdown; finish it
            self.logger.info(f"[bootstrap] question={view.question_id} already won, scheduling advance")
            self._schedule_advance(view.question_id, self.next_round_delay)

    def open_next_round(self) -> CurrentRound:
        generated = self.generator.next_question()
        question_id = self.rounds.create_question(generated)
        self.rounds.open_round(question_id)
        return self._announce_open(question_id)

    def _force_open(self, stale_question_id: Optional[int]) -> bool:
        generated = self.generator.next_question()
        question_id = self.rounds.create_question(generated)
        if not self.rounds.replace_round(stale_question_id, question_id):
            # Someone else already recovered this round
            self.logger.info(f"[round-recover-skip] stale={stale_question_id}")
            return False
        self._announce_open(question_id)
        return True

    def _announce_open(self, question_id: int) -> CurrentRound:
        view = self.rounds.read_current()
        if not isinstance(view, CurrentRound) or view.question_id != question_id:
            raise RuntimeError(f'round state did not take question {question_id}')
        self.logger.info(
            f"[round-open] question={view.question_id} round={view.round_index} tier={view.difficulty_tier}"
        )
        self.publisher.broadcast(Event.ROUND_OPENED, view.to_dict(self.total_rounds))
        self.broadcast_player_count()
        return view

    def broadcast_player_count(self) -> int:
        count = self.sessions.count()
        self.publisher.broadcast(Event.PLAYER_COUNT_CHANGED, {'count': count})
        return count

    def advance_if_match_complete(self, round_index: int) -> bool:
        """End the match if ``round_index`` was its last round.

        Publishes the final standings, restarts the round counter and queues
        the first round of the next match. Returns whether the match ended.
        """
        if not self.is_final_round(round_index):
            return False
        final_leaderboard = self.scores.leaderboard()
        overall_winner = None
        if final_leaderboard and final_leaderboard[0]['win_count'] > 0:
            overall_winner = final_leaderboard[0]
        self.publisher.broadcast(Event.MATCH_ENDED, {
            'overall_winner': overall_winner,
            'final_leaderboard': final_leaderboard,
            'total_rounds': self.rounds_per_match,
        })
        self.logger.info(
            f"[match-end] rounds={self.rounds_per_match} "
            f"winner={overall_winner['display_name'] if overall_winner else None}"
        )
        self.generator.reset()
        self.timer.schedule(self.match_restart_delay, self._start_next_match, label='match-restart')
        return True

    def _start_next_match(self) -> None:
        try:
            self.open_next_round()
        except SQLAlchemyError:
            self.rounds.db.session.rollback()
            self.logger.exception("[store-error] could not open first round of match, retrying")
            self.timer.schedule(self.match_restart_delay, self._start_next_match, label='match-restart')

    def _schedule_advance(self, question_id: int, delay: float) -> ScheduledTask:
        return self.timer.schedule(delay, self._advance_after_win, question_id, label=f'advance:{question_id}')

    def _advance_after_win(self, question_id: int) -> None:
        try:
            view = self.rounds.read_current()
            if not isinstance(view, CurrentRound) or view.question_id != question_id or view.is_active:
                self.logger.info(f"[timer-abort] expected answered question={question_id}, state moved on")
                return
            if self.advance_if_match_complete(view.round_index):
                return
            self.open_next_round()
        except SQLAlchemyError:
            self.rounds.db.session.rollback()
            self.logger.exception(f"[store-error] advance after question={question_id} failed, retrying")
            self._schedule_advance(question_id, self.next_round_delay)

    # ---- Adjudication ----

    def submit_answer(self, participant_id: str, display_name: str, raw) -> AnswerResult:
        """Adjudicate one submission. Raises InvalidAnswer before touching the store."""
        value = parse_answer(raw)
        try:
            return self._adjudicate(participant_id, display_name, value)
        except SQLAlchemyError:
            self.rounds.db.session.rollback()
            self.logger.exception(f"[store-error] adjudication failed participant={participant_id}")
            return AnswerResult(Outcome.FAILED, 'Could not record your answer. Please resubmit.')

    def _adjudicate(self, participant_id: str, display_name: str, value: float) -> AnswerResult:
        view = self.rounds.read_current()
        if isinstance(view, NoQuestion):
            return AnswerResult(Outcome.ALREADY_DECIDED, 'No active question.')
        if isinstance(view, MissingQuestion):
            self.logger.error(f"[round-corrupt] missing question={view.question_id}, forcing a fresh round")
            self._force_open(view.question_id)
            return AnswerResult(Outcome.FAILED, 'That question is gone. Please answer the new one.')
        if not view.is_active:
            return AnswerResult(
                Outcome.ALREADY_DECIDED,
                f'Too late! {view.winner_name or "Someone"} already answered this one.',
                winner_name=view.winner_name,
            )

        self.scores.record_attempt(participant_id, display_name)

        if abs(value - view.answer_value) > self.tolerance:
            return AnswerResult(Outcome.INCORRECT, 'Incorrect! Keep trying.')

        if not self.rounds.try_claim(view.question_id, participant_id, display_name):
            after = self.rounds.read_current()
            winner_name = after.winner_name if isinstance(after, CurrentRound) else None
            self.logger.info(f"[claim-lost] question={view.question_id} participant={participant_id} winner={winner_name}")
            return AnswerResult(
                Outcome.TOO_LATE,
                f'Correct answer! But {winner_name or "someone"} was just a bit faster.',
                correct_answer=view.answer_value,
                winner_name=winner_name,
            )

        self.logger.info(f"[claim-won] question={view.question_id} participant={participant_id}")
        # The claim is already committed; the round must advance even if the
        # score write below fails.
        self._schedule_advance(view.question_id, self.next_round_delay)
        try:
            self.scores.record_win(participant_id, display_name)
        except SQLAlchemyError:
            self.rounds.db.session.rollback()
            self.logger.exception(f"[store-error] win claimed but not scored participant={participant_id}")
        self._announce_winner(view, participant_id, display_name)
        return AnswerResult(
            Outcome.WINNER,
            'You won this round!',
            correct_answer=view.answer_value,
            winner_name=display_name,
        )

    def _announce_winner(self, view: CurrentRound, participant_id: str, display_name: str) -> None:
        final = self.is_final_round(view.round_index)
        self.publisher.broadcast(Event.WINNER_ANNOUNCED, {
            'winner_name': display_name,
            'winner_id': participant_id,
            'expression': view.expression,
            'correct_answer': view.answer_value,
            'next_round_delay_seconds': self.next_round_delay,
            'is_final_round': final,
            'round_index': view.round_index,
            'total_rounds': self.total_rounds,
        })
        try:
            entries = self.scores.leaderboard()
        except SQLAlchemyError:
            self.rounds.db.session.rollback()
            self.logger.exception("[store-error] leaderboard read failed after win")
            return
        self.publisher.broadcast(Event.LEADERBOARD_UPDATED, {'entries': entries})
