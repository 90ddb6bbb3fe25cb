"""Durable round state and score primitives.

All writes are single statements committed immediately, so atomicity comes
from the database and not from locks in this process:

- ``RoundStateStore.try_claim`` is a conditional UPDATE guarded by the
  expected phase and question; ``rowcount`` tells the caller whether it won.
- ``ScoreStore.record_attempt`` / ``record_win`` are INSERT .. ON CONFLICT
  DO UPDATE upserts, so concurrent calls for different participants never
  interfere and first-time participants need no separate create step.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import nulls_last, update

from mathrush.models import (
    PHASE_ACTIVE,
    PHASE_ANSWERED,
    ROUND_STATE_ID,
    ParticipantScore,
    Question,
    RoundState,
)
from .questions import GeneratedQuestion


class UnsupportedStoreError(RuntimeError):
    """The configured database has no native upsert we know how to emit."""


def dialect_insert(db):
    name = db.engine.dialect.name
    if name == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert
    elif name == 'sqlite':
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise UnsupportedStoreError(f'no upsert support for dialect {name!r}')
    return insert


@dataclass(frozen=True)
class NoQuestion:
    """Round state before the first question has ever been opened."""


@dataclass(frozen=True)
class MissingQuestion:
    question_id: int


@dataclass(frozen=True)
class CurrentRound:
    question_id: int
    expression: str
    answer_value: float
    difficulty_tier: int
    round_index: int
    phase: str
    winner_id: Optional[str]
    winner_name: Optional[str]
    updated_at: float

    @property
    def is_active(self) -> bool:
        return self.phase == PHASE_ACTIVE

    def to_dict(self, total_rounds: Optional[int] = None) -> Dict[str, Any]:
        return {
            'question_id': self.question_id,
            'expression': self.expression,
            'difficulty_tier': self.difficulty_tier,
            'round_index': self.round_index,
            'total_rounds': total_rounds,
            'phase': self.phase,
            'winner_id': self.winner_id,
            'winner_name': self.winner_name,
            'opened_at': self.updated_at,
        }


RoundView = Union[NoQuestion, MissingQuestion, CurrentRound]


class RoundStateStore:
    def __init__(self, db):
        self.db = db

    def ensure_row(self) -> None:
        insert = dialect_insert(self.db)
        stmt = insert(RoundState).values(id=ROUND_STATE_ID, phase=PHASE_ACTIVE, updated_at=time.time())
        self.db.session.execute(stmt.on_conflict_do_nothing(index_elements=[RoundState.id]))
        self.db.session.commit()

    def read_current(self) -> RoundView:
        # Always a fresh read; never trust identity-map state across calls
        self.db.session.expire_all()
        state = self.db.session.get(RoundState, ROUND_STATE_ID)
        if state is None or state.current_question_id is None:
            return NoQuestion()
        question = self.db.session.get(Question, state.current_question_id)
        if question is None:
            return MissingQuestion(state.current_question_id)
        return CurrentRound(
            question_id=question.id,
            expression=question.expression,
            answer_value=question.answer_value,
            difficulty_tier=question.difficulty_tier,
            round_index=question.round_index,
            phase=state.phase,
            winner_id=state.winner_id,
            winner_name=state.winner_name,
            updated_at=state.updated_at,
        )

    def create_question(self, generated: GeneratedQuestion) -> int:
        question = Question(
            expression=generated.expression,
            answer_value=generated.answer_value,
            difficulty_tier=generated.difficulty_tier,
            round_index=generated.round_index,
            created_at=time.time(),
        )
        self.db.session.add(question)
        self.db.session.commit()
        return question.id

    def open_round(self, question_id: int) -> None:
        """Unconditionally make ``question_id`` the active round.

        Only the round sequencer may call this.
        """
        self.db.session.execute(
            update(RoundState)
            .where(RoundState.id == ROUND_STATE_ID)
            .values(
                current_question_id=question_id,
                phase=PHASE_ACTIVE,
                winner_id=None,
                winner_name=None,
                updated_at=time.time(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.session.commit()

    def replace_round(self, expected_question_id: Optional[int], question_id: int) -> bool:
        """Open ``question_id`` only if the row still points at ``expected_question_id``."""
        current = (
            RoundState.current_question_id.is_(None)
            if expected_question_id is None
            else RoundState.current_question_id == expected_question_id
        )
        result = self.db.session.execute(
            update(RoundState)
            .where(RoundState.id == ROUND_STATE_ID, current)
            .values(
                current_question_id=question_id,
                phase=PHASE_ACTIVE,
                winner_id=None,
                winner_name=None,
                updated_at=time.time(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.session.commit()
        return result.rowcount == 1

    def try_claim(self, question_id: int, participant_id: str, display_name: str) -> bool:
        """Atomically mark the round as won. True only for the caller that flipped it."""
        result = self.db.session.execute(
            update(RoundState)
            .where(
                RoundState.id == ROUND_STATE_ID,
                RoundState.phase == PHASE_ACTIVE,
                RoundState.current_question_id == question_id,
            )
            .values(
                phase=PHASE_ANSWERED,
                winner_id=participant_id,
                winner_name=display_name,
                updated_at=time.time(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.session.commit()
        return result.rowcount == 1


class ScoreStore:
    def __init__(self, db, leaderboard_size: int = 10):
        self.db = db
        self.leaderboard_size = leaderboard_size

    def record_attempt(self, participant_id: str, display_name: str) -> None:
        insert = dialect_insert(self.db)
        stmt = insert(ParticipantScore).values(
            participant_id=participant_id,
            display_name=display_name,
            win_count=0,
            attempt_count=1,
            joined_at=time.time(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ParticipantScore.participant_id],
            set_={
                'attempt_count': ParticipantScore.attempt_count + 1,
                'display_name': stmt.excluded.display_name,
            },
        )
        self.db.session.execute(stmt)
        self.db.session.commit()

    def record_win(self, participant_id: str, display_name: str) -> None:
        """Credit a win: bumps both counters and stamps ``last_win_at``."""
        now = time.time()
        insert = dialect_insert(self.db)
        stmt = insert(ParticipantScore).values(
            participant_id=participant_id,
            display_name=display_name,
            win_count=1,
            attempt_count=1,
            last_win_at=now,
            joined_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ParticipantScore.participant_id],
            set_={
                'win_count': ParticipantScore.win_count + 1,
                'attempt_count': ParticipantScore.attempt_count + 1,
                'last_win_at': stmt.excluded.last_win_at,
                'display_name': stmt.excluded.display_name,
            },
        )
        self.db.session.execute(stmt)
        self.db.session.commit()

    def get(self, participant_id: str) -> Optional[ParticipantScore]:
        self.db.session.expire_all()
        return self.db.session.get(ParticipantScore, participant_id)

    def leaderboard(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        rows = (
            ParticipantScore.query
            .order_by(
                ParticipantScore.win_count.desc(),
                nulls_last(ParticipantScore.last_win_at.asc()),
                ParticipantScore.participant_id.asc(),
            )
            .limit(limit or self.leaderboard_size)
            .all()
        )
        entries = []
        for rank, row in enumerate(rows, start=1):
            entries.append({
                'rank': rank,
                'display_name': row.display_name,
                'win_count': row.win_count,
                'attempt_count': row.attempt_count,
                'last_win_at': row.last_win_at,
            })
        return entries
