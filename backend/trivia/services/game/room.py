import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .catalog import OPTION_COUNT, Question

WAITING = 'waiting'
QUESTION = 'question'
ANSWER = 'answer'
FINISHED = 'finished'

QUESTION_DURATION_BOUNDS = (10, 120)
ANSWER_DURATION_BOUNDS = (5, 60)


def clamp(value, bounds):
    lo, hi = bounds
    return max(lo, min(hi, int(value)))


@dataclass
class RoomSettings:
    room_ids: Tuple[int, ...] = (1, 2, 3, 4)
    question_duration_sec: int = 30
    answer_duration_sec: int = 15
    autoplay_start_delay_sec: float = 3.0
    reconnect_grace_sec: int = 300
    max_name_length: int = 20
    max_photo_chars: int = 70000
    leaderboard_size: int = 10

    @classmethod
    def from_config(cls, config) -> 'RoomSettings':
        return cls(
            room_ids=tuple(config.get('ROOM_IDS', cls.room_ids)),
            question_duration_sec=clamp(config.get('QUESTION_DURATION_SEC', 30), QUESTION_DURATION_BOUNDS),
            answer_duration_sec=clamp(config.get('ANSWER_DURATION_SEC', 15), ANSWER_DURATION_BOUNDS),
            autoplay_start_delay_sec=float(config.get('AUTOPLAY_START_DELAY_SEC', 3)),
            reconnect_grace_sec=int(config.get('RECONNECT_GRACE_SEC', 300)),
            max_name_length=int(config.get('MAX_NAME_LENGTH', 20)),
            max_photo_chars=int(config.get('MAX_PHOTO_CHARS', 70000)),
            leaderboard_size=int(config.get('LEADERBOARD_SIZE', 10)),
        )


@dataclass
class AnswerRecord:
    choice_index: int
    response_ms: int


@dataclass
class Player:
    display_name: str
    joined_at: int
    lang: str = 'en'
    photo: Optional[str] = None
    score: int = 0
    total_correct_response_ms: int = 0
    correct_answer_count: int = 0
    history: List[dict] = field(default_factory=list)

    def reset_progress(self) -> None:
        self.score = 0
        self.total_correct_response_ms = 0
        self.correct_answer_count = 0
        self.history = []


@dataclass
class HoldingEntry:
    player: Player
    disconnected_at: int


class Room:
    """One independent game instance.

    Fields are only written by the lifecycle controller and the presence
    manager, always while holding ``lock``.
    """

    def __init__(self, room_id: int, settings: RoomSettings):
        self.room_id = room_id
        self.status = WAITING
        self.current_question_index = -1
        # Active questions frozen at round start; catalog edits apply to the next start
        self.questions: Tuple[Question, ...] = ()
        self.question_started_at: Optional[int] = None
        self.question_duration_sec = settings.question_duration_sec
        self.answer_duration_sec = settings.answer_duration_sec
        self.time_remaining = settings.question_duration_sec
        self.auto_play = False
        self.players: Dict[str, Player] = {}
        self.answers: Dict[str, AnswerRecord] = {}
        self.answer_stats: dict = {}
        self.holding: Dict[str, HoldingEntry] = {}
        self.timer = None
        self.round_id = 0
        self.lock = threading.RLock()

    @property
    def current_question(self) -> Optional[Question]:
        if self.status not in (QUESTION, ANSWER, FINISHED):
            return None
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    @property
    def is_last_question(self) -> bool:
        return self.current_question_index >= len(self.questions) - 1

    def public_question(self) -> Optional[dict]:
        question = self.current_question
        if question is None:
            return None
        return question.to_public_dict(self.current_question_index + 1, len(self.questions))

    def compute_answer_stats(self) -> dict:
        question = self.current_question
        if question is None:
            return {}
        counts = {i: 0 for i in range(OPTION_COUNT)}
        for record in self.answers.values():
            if record.choice_index in counts:
                counts[record.choice_index] += 1
        total = len(self.answers)
        percentages = {
            i: (int(counts[i] * 100.0 / total + 0.5) if total else 0) for i in range(OPTION_COUNT)
        }
        return {
            'counts': counts,
            'percentages': percentages,
            'total': total,
            'correct_answer': question.correct_index,
        }

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
