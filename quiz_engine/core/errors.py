"""Exception hierarchy raised by the quiz attempt engine."""

from __future__ import annotations


class QuizEngineError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(QuizEngineError):
    """Raised when a quiz definition is rejected at authoring time."""

    def __init__(self, message: str, question_id: str | None = None) -> None:
        super().__init__(message)
        self.question_id = question_id


class MissingField(ValidationError):
    pass


class EmptyQuiz(ValidationError):
    pass


class EmptyQuestionText(ValidationError):
    pass


class DuplicateQuestionId(ValidationError):
    pass


class InsufficientOptions(ValidationError):
    pass


class DuplicateOptions(ValidationError):
    pass


class InvalidCorrectAnswer(ValidationError):
    pass


class InvalidTimeLimit(ValidationError):
    pass


class NotFound(QuizEngineError):
    """Unknown quiz, attempt, or question identifier."""


class QuizNotFound(NotFound):
    pass


class AttemptNotFound(NotFound):
    pass


class QuestionNotFound(NotFound):
    pass


class AttemptClosed(QuizEngineError):
    """The attempt no longer accepts answers. Never retried."""

    def __init__(self, attempt_id: str, reason: str = "Attempt is closed.") -> None:
        super().__init__(reason)
        self.attempt_id = attempt_id


class AttemptInProgress(QuizEngineError):
    """A retry was requested before the attempt was graded."""


class RetryExhausted(QuizEngineError):
    """No further attempts are allowed. An expected outcome, not a failure."""

    def __init__(self, attempt_id: str) -> None:
        super().__init__("No retries left for this quiz; correct answers are revealed.")
        self.attempt_id = attempt_id


class StoreUnavailable(QuizEngineError):
    """Transient attempt store failure; safe to replay."""
