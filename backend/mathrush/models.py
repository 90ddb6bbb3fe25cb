from mathrush import db
import time

ROUND_STATE_ID = 1

PHASE_ACTIVE = 'active'
PHASE_ANSWERED = 'answered'


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    expression = db.Column(db.String(128), nullable=False)
    answer_value = db.Column(db.Float, nullable=False)
    difficulty_tier = db.Column(db.Integer, nullable=False, default=1)
    # Position inside the match the question was opened for (1-based)
    round_index = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_dict(self):
        return {
            'id': self.id,
            'expression': self.expression,
            'difficulty_tier': self.difficulty_tier,
            'round_index': self.round_index,
            'created_at': self.created_at,
        }


class RoundState(db.Model):
    __tablename__ = 'round_state'
    __table_args__ = (
        db.CheckConstraint(f'id = {ROUND_STATE_ID}', name='ck_round_state_singleton'),
        db.CheckConstraint(f"phase IN ('{PHASE_ACTIVE}', '{PHASE_ANSWERED}')", name='ck_round_state_phase'),
    )
    id = db.Column(db.Integer, primary_key=True, default=ROUND_STATE_ID)
    current_question_id = db.Column(db.Integer, db.ForeignKey('question.id', name='fk_round_state_question_id'), nullable=True)
    phase = db.Column(db.String(16), nullable=False, default=PHASE_ACTIVE)  # active, answered
    winner_id = db.Column(db.String(64), nullable=True)
    winner_name = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.Float, nullable=False, default=time.time)


class ParticipantScore(db.Model):
    __tablename__ = 'participant_score'
    __table_args__ = (
        db.CheckConstraint('win_count <= attempt_count', name='ck_participant_score_wins_le_attempts'),
    )
    participant_id = db.Column(db.String(64), primary_key=True)
    display_name = db.Column(db.String(64), nullable=False)
    win_count = db.Column(db.Integer, nullable=False, default=0)
    attempt_count = db.Column(db.Integer, nullable=False, default=0)
    last_win_at = db.Column(db.Float, nullable=True)
    joined_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_dict(self):
        return {
            'participant_id': self.participant_id,
            'display_name': self.display_name,
            'win_count': self.win_count,
            'attempt_count': self.attempt_count,
            'last_win_at': self.last_win_at,
        }
