"""Outbound event contract shared by the coordinator and the gateway."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Event(str, Enum):
    ROUND_OPENED = 'round_opened'
    WINNER_ANNOUNCED = 'winner_announced'
    LEADERBOARD_UPDATED = 'leaderboard_updated'
    PLAYER_COUNT_CHANGED = 'player_count_changed'
    MATCH_ENDED = 'match_ended'


class Outcome(str, Enum):
    WINNER = 'winner'
    INCORRECT = 'incorrect'
    TOO_LATE = 'too_late'
    ALREADY_DECIDED = 'already_decided'
    FAILED = 'failed'


@dataclass(frozen=True)
class AnswerResult:
    """Per-submission verdict, sent back to the submitting connection only."""

    outcome: Outcome
    message: str
    correct_answer: Optional[float] = None
    winner_name: Optional[str] = None

    @property
    def is_winner(self) -> bool:
        return self.outcome is Outcome.WINNER

    @property
    def correct(self) -> bool:
        # A lost race is still a correct answer
        return self.outcome in (Outcome.WINNER, Outcome.TOO_LATE)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'outcome': self.outcome.value,
            'message': self.message,
            'correct': self.correct,
            'is_winner': self.is_winner,
        }
        if self.correct_answer is not None:
            payload['correct_answer'] = self.correct_answer
        if self.winner_name is not None:
            payload['winner_name'] = self.winner_name
        return payload


class Publisher:
    """Fan-out seam. The gateway supplies the Socket.IO implementation."""

    def broadcast(self, event: Event, payload: Any) -> None:
        raise NotImplementedError


class SocketIOPublisher(Publisher):
    def __init__(self, socketio, namespace: str = '/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def broadcast(self, event: Event, payload: Any) -> None:
        self.socketio.emit(event.value, payload, namespace=self.namespace)

