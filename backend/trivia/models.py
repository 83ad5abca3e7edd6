from trivia import db
import json


class QuestionRecord(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(64), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)  # JSON: string or {lang: string}
    options = db.Column(db.Text, nullable=False)  # JSON list of 4
    correct_index = db.Column(db.Integer, nullable=False)
    explanation = db.Column(db.Text, nullable=True)
    active = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            'id': self.uid,
            'question': json.loads(self.text),
            'options': json.loads(self.options),
            'correct': self.correct_index,
            'explanation': json.loads(self.explanation) if self.explanation else '',
            'active': bool(self.active),
        }


class CatalogMeta(db.Model):
    __tablename__ = 'catalog_meta'
    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    last_updated = db.Column(db.Float, nullable=True)
