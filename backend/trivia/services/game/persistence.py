import json
import logging
import time
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from trivia import db
from trivia.models import CatalogMeta, QuestionRecord
from .catalog import Question, parse_question
from .errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

INITIAL_VERSION = 1


class SqlQuestionRepository:
    """Versioned snapshot of the question catalog in the SQL database.

    ``save`` rewrites every row in a single transaction; a failed write is
    rolled back and surfaces as PersistenceError.
    """

    def load(self) -> List[Question]:
        questions = []
        for record in QuestionRecord.query.order_by(QuestionRecord.position).all():
            try:
                questions.append(parse_question(record.to_dict()))
            except ValidationError as exc:
                logger.warning('[catalog-load] skipping stored question %s: %s', record.uid, exc)
        return questions

    def current_version(self) -> Tuple[int, Optional[float]]:
        meta = db.session.get(CatalogMeta, 1)
        if meta is None:
            return INITIAL_VERSION, None
        return meta.version, meta.last_updated

    def save(self, questions: List[Question]) -> int:
        try:
            QuestionRecord.query.delete()
            for position, question in enumerate(questions):
                db.session.add(QuestionRecord(
                    uid=question.id,
                    position=position,
                    text=json.dumps(question.text.to_json()),
                    options=json.dumps([o.to_json() for o in question.options]),
                    correct_index=question.correct_index,
                    explanation=json.dumps(question.explanation.to_json()),
                    active=question.active,
                ))
            meta = db.session.get(CatalogMeta, 1)
            if meta is None:
                meta = CatalogMeta(id=1, version=INITIAL_VERSION)
                db.session.add(meta)
            meta.version = (meta.version or INITIAL_VERSION) + 1
            meta.last_updated = time.time()
            db.session.commit()
            return meta.version
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception('[catalog-save] write failed')
            raise PersistenceError('Failed to save the question catalog') from exc
