"""Error taxonomy for the trivia game services.

Every error carries a short ``reason`` code that socket handlers forward to the
calling connection in an ``error_notice`` event.
"""


class TriviaError(Exception):
    reason = 'error'

    def __init__(self, message: str, reason: str = None):
        super().__init__(message)
        if reason:
            self.reason = reason

    def to_dict(self) -> dict:
        return {'reason': self.reason, 'message': str(self)}


class PreconditionError(TriviaError):
    """The room is not in a state where the command applies."""

    reason = 'precondition'


class NoActiveQuestionsError(PreconditionError):
    reason = 'no_active_questions'

    def __init__(self, message: str = 'No active questions! Please activate some questions first.'):
        super().__init__(message)


class ValidationError(TriviaError):
    reason = 'validation'


class NotFoundError(TriviaError):
    reason = 'not_found'


class CapacityError(TriviaError):
    reason = 'capacity'


class PersistenceError(TriviaError):
    reason = 'persistence'
