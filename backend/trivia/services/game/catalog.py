"""Question catalog: parsing, validation and the in-memory store.

The store is the only writer of the catalog. Every edit builds a new list,
persists it through the repository and only then swaps it in, so readers never
see a half-applied change.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple

from .errors import NotFoundError, ValidationError
from .localization import LocalizedText

logger = logging.getLogger(__name__)

OPTION_COUNT = 4


@dataclass(frozen=True)
class Question:
    id: str
    text: LocalizedText
    options: Tuple[LocalizedText, ...]
    correct_index: int
    explanation: LocalizedText
    active: bool = True

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'question': self.text.to_json(),
            'options': [o.to_json() for o in self.options],
            'correct': self.correct_index,
            'explanation': self.explanation.to_json(),
            'active': self.active,
        }

    def to_public_dict(self, number: int, total: int) -> dict:
        """Question as shown to players and displays, without the answer."""
        return {
            'id': self.id,
            'question': self.text.to_json(),
            'options': [o.to_json() for o in self.options],
            'question_number': number,
            'total_questions': total,
        }


def new_question_id() -> str:
    return uuid.uuid4().hex


def _parse_correct_index(value) -> int:
    if isinstance(value, bool):
        raise ValidationError('correct must be a number')
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValidationError('correct must be a number')
    if not 0 <= value < OPTION_COUNT:
        raise ValidationError(f'correct must be between 0 and {OPTION_COUNT - 1}')
    return value


def parse_question(data, question_id: Optional[str] = None, active: Optional[bool] = None) -> Question:
    """Build a Question from its JSON form, raising ValidationError on bad shapes."""
    if not isinstance(data, dict):
        raise ValidationError('question must be an object')
    text = LocalizedText.from_json(data.get('question'), 'question')
    options = data.get('options')
    if not isinstance(options, (list, tuple)) or len(options) != OPTION_COUNT:
        raise ValidationError(f'exactly {OPTION_COUNT} options are required')
    parsed_options = tuple(
        LocalizedText.from_json(option, f'options[{i}]') for i, option in enumerate(options)
    )
    correct = _parse_correct_index(data.get('correct'))
    explanation = LocalizedText.from_json(data.get('explanation'), 'explanation', allow_empty=True)
    if question_id is None:
        raw_id = data.get('id')
        question_id = str(raw_id) if raw_id not in (None, '') else new_question_id()
    if active is None:
        active = bool(data.get('active', True))
    return Question(
        id=question_id,
        text=text,
        options=parsed_options,
        correct_index=correct,
        explanation=explanation,
        active=active,
    )


class QuestionStore:
    """Ordered question catalog with per-question active flags."""

    def __init__(self, repository):
        self._repository = repository
        self._questions: List[Question] = []
        self._version = 0
        self._last_updated: Optional[float] = None
        self._lock = threading.RLock()

    def load(self) -> None:
        questions = self._repository.load()
        version, last_updated = self._repository.current_version()
        with self._lock:
            self._questions = list(questions)
            self._version = version
            self._last_updated = last_updated
        logger.info('[catalog-load] questions=%d active=%d version=%d',
                    len(questions), self.active_count(), version)

    @property
    def version(self) -> int:
        return self._version

    @property
    def last_updated(self) -> Optional[float]:
        return self._last_updated

    def all(self) -> List[Question]:
        with self._lock:
            return list(self._questions)

    def active(self) -> Tuple[Question, ...]:
        with self._lock:
            return tuple(q for q in self._questions if q.active)

    def active_count(self) -> int:
        return len(self.active())

    def to_dicts(self) -> List[dict]:
        return [q.to_dict() for q in self.all()]

    # -------------------- Catalog edits -------------------- #

    def add(self, payload) -> Question:
        question = parse_question(payload, question_id=new_question_id(), active=True)
        with self._lock:
            self._commit(self._questions + [question])
        logger.info('[catalog-add] id=%s total=%d', question.id, len(self._questions))
        return question

    def update(self, index, payload) -> Question:
        with self._lock:
            idx = self._check_index(index)
            current = self._questions[idx]
            question = parse_question(payload, question_id=current.id, active=current.active)
            updated = list(self._questions)
            updated[idx] = question
            self._commit(updated)
        logger.info('[catalog-update] index=%d id=%s', idx, question.id)
        return question

    def delete(self, index) -> Question:
        with self._lock:
            idx = self._check_index(index)
            removed = self._questions[idx]
            self._commit(self._questions[:idx] + self._questions[idx + 1:])
        logger.info('[catalog-delete] index=%d id=%s', idx, removed.id)
        return removed

    def toggle(self, index) -> Question:
        with self._lock:
            idx = self._check_index(index)
            question = replace(self._questions[idx], active=not self._questions[idx].active)
            updated = list(self._questions)
            updated[idx] = question
            self._commit(updated)
        logger.info('[catalog-toggle] index=%d active=%s active_total=%d',
                    idx, question.active, self.active_count())
        return question

    def bulk_toggle(self, activate_all: bool) -> int:
        with self._lock:
            self._commit([replace(q, active=bool(activate_all)) for q in self._questions])
            count = self.active_count()
        logger.info('[catalog-bulk] activate_all=%s active_total=%d', activate_all, count)
        return count

    def import_questions(self, items: Iterable, replace_all: bool = False) -> int:
        """Merge (or replace with) every valid entry of ``items``; invalid ones are skipped."""
        imported = []
        stamp = int(time.time() * 1000)
        for offset, item in enumerate(items):
            try:
                question = parse_question(item)
            except ValidationError as exc:
                logger.warning('[catalog-import] skipped entry %d: %s', offset, exc)
                continue
            if not isinstance(item, dict) or item.get('id') in (None, ''):
                question = replace(question, id=str(stamp + offset))
            imported.append(question)
        with self._lock:
            self._commit(imported if replace_all else self._questions + imported)
        logger.info('[catalog-import] imported=%d replace=%s total=%d',
                    len(imported), replace_all, len(self._questions))
        return len(imported)

    def _check_index(self, index) -> int:
        if isinstance(index, bool) or not isinstance(index, int):
            raise NotFoundError(f'question index {index!r} is not valid')
        if not 0 <= index < len(self._questions):
            raise NotFoundError(f'no question at index {index}')
        return index

    def _commit(self, questions: List[Question]) -> None:
        version = self._repository.save(questions)
        self._questions = list(questions)
        self._version = version
        self._last_updated = time.time()
        logger.info('[catalog-save] version=%d questions=%d', version, len(questions))
