import pytest
from sqlalchemy.exc import OperationalError

from mathrush import db
from mathrush.models import ParticipantScore, RoundState
from mathrush.services.rounds import CurrentRound, Event, InvalidAnswer, Outcome
from conftest import open_fixed_round


def _scores():
    return {s.participant_id: (s.win_count, s.attempt_count) for s in ParticipantScore.query.all()}


def test_exact_answer_wins(coordinator):
    open_fixed_round(coordinator, '7 + 5', 12.0)
    result = coordinator.submit_answer('alice', 'Alice', '12')
    assert result.outcome is Outcome.WINNER
    assert result.is_winner and result.correct
    assert result.correct_answer == 12.0
    assert coordinator.scores.get('alice').win_count == 1
    assert coordinator.scores.get('alice').attempt_count == 2


def test_off_by_one_is_incorrect(coordinator):
    open_fixed_round(coordinator, '7 + 5', 12.0)
    result = coordinator.submit_answer('alice', 'Alice', 13)
    assert result.outcome is Outcome.INCORRECT
    assert not result.correct
    # attempt counted, round still open
    assert _scores()['alice'] == (0, 1)
    assert coordinator.rounds.read_current().is_active


@pytest.mark.parametrize('submitted, expected', [
    (12.009, Outcome.WINNER),
    (11.991, Outcome.WINNER),
    (12.02, Outcome.INCORRECT),
    (11.98, Outcome.INCORRECT),
])
def test_tolerance_boundary(coordinator, submitted, expected):
    open_fixed_round(coordinator, '7 + 5', 12.0)
    assert coordinator.submit_answer('alice', 'Alice', submitted).outcome is expected


def test_second_correct_answer_after_win_is_already_decided(coordinator, publisher):
    open_fixed_round(coordinator, '7 + 5', 12.0)
    first = coordinator.submit_answer('alice', 'Alice', '12')
    second = coordinator.submit_answer('bob', 'Bob', '12')

    assert first.outcome is Outcome.WINNER
    assert second.outcome is Outcome.ALREADY_DECIDED
    assert second.winner_name == 'Alice'
    assert 'Alice' in second.message
    assert coordinator.scores.get('alice').win_count == 1

    announced = publisher.of(Event.WINNER_ANNOUNCED)
    assert len(announced) == 1
    assert announced[0]['winner_name'] == 'Alice'
    assert announced[0]['winner_id'] == 'alice'
    assert announced[0]['expression'] == '7 + 5'
    assert announced[0]['correct_answer'] == 12.0
    assert announced[0]['next_round_delay_seconds'] == 6
    assert announced[0]['is_final_round'] is False
    assert publisher.of(Event.LEADERBOARD_UPDATED)[0]['entries'][0]['display_name'] == 'Alice'


def test_late_submission_does_not_mutate_anything(coordinator):
    open_fixed_round(coordinator, '7 + 5', 12.0)
    coordinator.submit_answer('alice', 'Alice', '12')
    before_scores = _scores()
    before_state = db.session.get(RoundState, 1).updated_at

    for value in ('12', '99'):
        assert coordinator.submit_answer('bob', 'Bob', value).outcome is Outcome.ALREADY_DECIDED

    assert _scores() == before_scores
    assert 'bob' not in _scores()
    assert db.session.get(RoundState, 1).updated_at == before_state


def test_race_lost_between_read_and_claim_is_too_late(coordinator, monkeypatch):
    question_id = open_fixed_round(coordinator, '7 + 5', 12.0)
    record_attempt = coordinator.scores.record_attempt

    def attempt_then_rival_claims(participant_id, display_name):
        record_attempt(participant_id, display_name)
        if participant_id == 'bob':
            # Alice's claim lands after Bob read an active round
            assert coordinator.rounds.try_claim(question_id, 'alice', 'Alice')

    monkeypatch.setattr(coordinator.scores, 'record_attempt', attempt_then_rival_claims)
    result = coordinator.submit_answer('bob', 'Bob', '12')

    assert result.outcome is Outcome.TOO_LATE
    assert result.correct and not result.is_winner
    assert result.winner_name == 'Alice'
    assert result.to_dict()['correct_answer'] == 12.0
    assert coordinator.scores.get('bob').win_count == 0
    assert coordinator.scores.get('bob').attempt_count == 1


def test_attempts_never_below_wins(coordinator):
    for i in range(3):
        open_fixed_round(coordinator, f'{i} + 1', float(i + 1), round_index=i + 1)
        coordinator.submit_answer('bob', 'Bob', '-1')
        coordinator.submit_answer('alice', 'Alice', str(i + 1))
        coordinator.submit_answer('bob', 'Bob', str(i + 1))
        for wins, attempts in _scores().values():
            assert wins <= attempts
    # a win counts as an attempt on top of the submission itself
    assert _scores() == {'alice': (3, 6), 'bob': (0, 3)}


@pytest.mark.parametrize('raw', [None, '', '   ', 'abc', 'nan', 'inf', '-inf', True, [1]])
def test_invalid_answers_are_rejected_before_the_store(coordinator, raw):
    open_fixed_round(coordinator, '7 + 5', 12.0)
    with pytest.raises(InvalidAnswer):
        coordinator.submit_answer('alice', 'Alice', raw)
    assert _scores() == {}


def test_no_active_question(coordinator):
    result = coordinator.submit_answer('alice', 'Alice', '1')
    assert result.outcome is Outcome.ALREADY_DECIDED
    assert result.message == 'No active question.'
    assert _scores() == {}


def test_store_failure_reports_failed(coordinator, monkeypatch):
    open_fixed_round(coordinator, '7 + 5', 12.0)

    def unavailable(*args, **kwargs):
        raise OperationalError('UPDATE participant_score', {}, Exception('database is locked'))

    monkeypatch.setattr(coordinator.scores, 'record_attempt', unavailable)
    result = coordinator.submit_answer('alice', 'Alice', '12')
    assert result.outcome is Outcome.FAILED
    assert 'resubmit' in result.message
    # Nobody won; the round is still open for a resubmission
    assert coordinator.rounds.read_current().is_active


def test_failed_score_write_still_announces_winner(coordinator, publisher, monkeypatch):
    first = coordinator.open_next_round()

    def unavailable(*args, **kwargs):
        raise OperationalError('INSERT INTO participant_score', {}, Exception('database is locked'))

    monkeypatch.setattr(coordinator.scores, 'record_win', unavailable)
    result = coordinator.submit_answer('alice', 'Alice', first.answer_value)

    assert result.outcome is Outcome.WINNER
    announced = publisher.of(Event.WINNER_ANNOUNCED)
    assert [a['winner_name'] for a in announced] == ['Alice']
    assert len(publisher.of(Event.LEADERBOARD_UPDATED)) == 1
    assert coordinator.pending_advance.label == f'advance:{first.question_id}'


def test_leaderboard_failure_after_win_keeps_announcement(coordinator, publisher, monkeypatch):
    first = coordinator.open_next_round()

    def unavailable(*args, **kwargs):
        raise OperationalError('SELECT participant_score', {}, Exception('database is locked'))

    monkeypatch.setattr(coordinator.scores, 'leaderboard', unavailable)
    result = coordinator.submit_answer('alice', 'Alice', first.answer_value)

    assert result.outcome is Outcome.WINNER
    assert len(publisher.of(Event.WINNER_ANNOUNCED)) == 1
    assert publisher.of(Event.LEADERBOARD_UPDATED) == []
    assert coordinator.scores.get('alice').win_count == 1


def test_missing_question_forces_fresh_round(coordinator, publisher):
    coordinator.rounds.open_round(999)
    result = coordinator.submit_answer('alice', 'Alice', '12')
    assert result.outcome is Outcome.FAILED
    view = coordinator.rounds.read_current()
    assert isinstance(view, CurrentRound)
    assert view.question_id != 999
    assert view.is_active
    assert len(publisher.of(Event.ROUND_OPENED)) == 1


def test_open_next_round_broadcasts_snapshot_and_player_count(coordinator, publisher):
    coordinator.sessions.connect('sid-1')
    coordinator.sessions.connect('sid-2')
    view = coordinator.open_next_round()

    opened = publisher.of(Event.ROUND_OPENED)
    assert len(opened) == 1
    assert opened[0]['question_id'] == view.question_id
    assert opened[0]['round_index'] == 1
    assert opened[0]['difficulty_tier'] == 1
    assert opened[0]['phase'] == 'active'
    assert opened[0]['total_rounds'] is None
    assert 'answer_value' not in opened[0]
    assert publisher.of(Event.PLAYER_COUNT_CHANGED) == [{'count': 2}]


def test_win_schedules_advance_and_timer_opens_next_round(coordinator, publisher):
    first = coordinator.open_next_round()
    result = coordinator.submit_answer('alice', 'Alice', first.answer_value)
    assert result.outcome is Outcome.WINNER

    task = coordinator.pending_advance
    assert task is not None
    assert task.delay == 6
    assert task.label == f'advance:{first.question_id}'

    assert coordinator.timer.run(task)
    second = coordinator.rounds.read_current()
    assert second.question_id != first.question_id
    assert second.is_active
    assert second.winner_id is None and second.winner_name is None
    assert second.round_index == 2
    assert coordinator.pending_advance is None
    assert [p['round_index'] for p in publisher.of(Event.ROUND_OPENED)] == [1, 2]


def test_rescheduling_cancels_the_previous_timer(coordinator):
    first = coordinator.open_next_round()
    coordinator.submit_answer('alice', 'Alice', first.answer_value)
    stale = coordinator.pending_advance

    replacement = coordinator.timer.schedule(1, coordinator.open_next_round, label='replacement')
    assert stale.cancelled
    assert coordinator.pending_advance is replacement
    # A cancelled task never fires
    assert coordinator.timer.run(stale) is False
    assert coordinator.rounds.read_current().question_id == first.question_id


def test_stale_timer_aborts_when_round_moved_on(coordinator, publisher):
    first = coordinator.open_next_round()
    coordinator.submit_answer('alice', 'Alice', first.answer_value)
    task = coordinator.pending_advance

    # Something else already advanced the round
    second = coordinator.open_next_round()
    assert coordinator.timer.run(task)
    assert coordinator.rounds.read_current().question_id == second.question_id
    assert len(publisher.of(Event.ROUND_OPENED)) == 2


def test_match_ends_after_configured_rounds(coordinator, publisher):
    coordinator.rounds_per_match = 2
    first = coordinator.open_next_round()
    coordinator.submit_answer('alice', 'Alice', first.answer_value)
    coordinator.timer.run(coordinator.pending_advance)

    second = coordinator.rounds.read_current()
    assert second.round_index == 2
    coordinator.submit_answer('bob', 'Bob', second.answer_value)
    final = publisher.of(Event.WINNER_ANNOUNCED)[-1]
    assert final['is_final_round'] is True
    assert final['round_index'] == 2
    assert final['total_rounds'] == 2

    coordinator.timer.run(coordinator.pending_advance)
    ended = publisher.of(Event.MATCH_ENDED)
    assert len(ended) == 1
    assert ended[0]['total_rounds'] == 2
    # Tie on wins goes to the earlier winner
    assert ended[0]['overall_winner']['display_name'] == 'Alice'
    assert [e['display_name'] for e in ended[0]['final_leaderboard']] == ['Alice', 'Bob']
    assert coordinator.generator.round_count == 0
    # No round opened yet; the restart is queued
    assert coordinator.rounds.read_current().question_id == second.question_id
    restart = coordinator.pending_advance
    assert restart.label == 'match-restart'
    assert restart.delay == 10

    coordinator.timer.run(restart)
    fresh = coordinator.rounds.read_current()
    assert fresh.round_index == 1
    assert fresh.difficulty_tier == 1
    assert fresh.is_active


def test_match_without_winners_has_no_overall_winner(coordinator, publisher):
    coordinator.rounds_per_match = 1
    assert coordinator.advance_if_match_complete(1) is True
    ended = publisher.of(Event.MATCH_ENDED)[0]
    assert ended['overall_winner'] is None
    assert ended['final_leaderboard'] == []


def test_advance_if_match_complete_is_noop_for_continuous_play(coordinator, publisher):
    assert coordinator.advance_if_match_complete(50) is False
    assert publisher.of(Event.MATCH_ENDED) == []


def test_bootstrap_opens_first_round(coordinator, publisher):
    coordinator.bootstrap()
    view = coordinator.rounds.read_current()
    assert isinstance(view, CurrentRound)
    assert view.round_index == 1
    assert len(publisher.of(Event.ROUND_OPENED)) == 1


def test_bootstrap_resumes_active_round(coordinator, publisher):
    question_id = open_fixed_round(coordinator, '(3 + 4) × 2', 14.0, tier=2, round_index=5)
    coordinator.bootstrap()
    assert coordinator.rounds.read_current().question_id == question_id
    assert coordinator.generator.round_count == 5
    assert publisher.of(Event.ROUND_OPENED) == []
    assert coordinator.generator.next_question().round_index == 6


def test_bootstrap_finishes_interrupted_countdown(coordinator):
    question_id = open_fixed_round(coordinator, '7 + 5', 12.0)
    assert coordinator.rounds.try_claim(question_id, 'alice', 'Alice')
    coordinator.bootstrap()
    task = coordinator.pending_advance
    assert task is not None
    coordinator.timer.run(task)
    view = coordinator.rounds.read_current()
    assert view.question_id != question_id
    assert view.is_active


def test_bootstrap_recovers_from_missing_question(coordinator):
    coordinator.rounds.open_round(999)
    coordinator.bootstrap()
    view = coordinator.rounds.read_current()
    assert isinstance(view, CurrentRound)
    assert view.question_id != 999
