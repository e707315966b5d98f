"""Validation of quiz definitions before the engine accepts them.

The same checks run when a quiz is created and when it is updated, so a
definition that reaches the attempt engine is always well formed. The
validator never normalizes: it only accepts or rejects.
"""

from __future__ import annotations

from quiz_engine.constants.quiz_constants import MAX_TIME_LIMIT_MINUTES, MIN_TIME_LIMIT_MINUTES
from quiz_engine.core.errors import (
    DuplicateOptions,
    DuplicateQuestionId,
    EmptyQuestionText,
    EmptyQuiz,
    InsufficientOptions,
    InvalidCorrectAnswer,
    InvalidTimeLimit,
    MissingField,
    ValidationError,
)
from quiz_engine.core.models import Question, QuestionType, QuizDefinition


def validate(definition: QuizDefinition) -> None:
    """Raise a ``ValidationError`` subclass if the definition is unusable."""
    _require_text(definition.title, "title")
    _require_text(definition.curriculum, "curriculum")
    _validate_time_limit(definition.time_limit_minutes)

    if not definition.questions:
        raise EmptyQuiz("Quiz must contain at least one question.")

    seen_ids: set[str] = set()
    for question in definition.questions:
        if question.id in seen_ids:
            raise DuplicateQuestionId(
                f"Question id '{question.id}' is used more than once.", question.id
            )
        seen_ids.add(question.id)
        _validate_question(question)


def is_valid(definition: QuizDefinition) -> bool:
    try:
        validate(definition)
    except ValidationError:
        return False
    return True


def _require_text(value: str | None, field_name: str) -> None:
    if value is None or not value.strip():
        raise MissingField(f"Quiz {field_name} is required.")


def _validate_time_limit(time_limit_minutes: int) -> None:
    if isinstance(time_limit_minutes, bool) or not isinstance(time_limit_minutes, int):
        raise InvalidTimeLimit("Time limit must be an integer number of minutes.")
    if not MIN_TIME_LIMIT_MINUTES <= time_limit_minutes <= MAX_TIME_LIMIT_MINUTES:
        raise InvalidTimeLimit(
            f"Time limit must be between {MIN_TIME_LIMIT_MINUTES} and "
            f"{MAX_TIME_LIMIT_MINUTES} minutes."
        )


def _validate_question(question: Question) -> None:
    if question.text is None or not question.text.strip():
        raise EmptyQuestionText("Question text must not be empty.", question.id)

    if question.type is QuestionType.TEXT:
        if question.options:
            raise ValidationError("Text questions cannot define options.", question.id)
        return

    options = list(question.options or ())
    non_empty = [option for option in options if option and option.strip()]
    if len(non_empty) < 2 or len(non_empty) != len(options):
        raise InsufficientOptions(
            "Multiple choice questions need at least 2 non-empty options.", question.id
        )
    if len(set(options)) != len(options):
        raise DuplicateOptions("Multiple choice options must be distinct.", question.id)
    if question.correct_answer not in options:
        raise InvalidCorrectAnswer("Correct answer must be one of the options.", question.id)
