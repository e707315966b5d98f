"""Deterministic grading of recorded answers against a quiz definition."""

from __future__ import annotations

from collections.abc import Mapping

from quiz_engine.constants.quiz_constants import PASSING_PERCENTAGE
from quiz_engine.core.models import GradeResult, Question, QuestionType, QuizDefinition


def grade(definition: QuizDefinition, answers: Mapping[str, str]) -> GradeResult:
    """Score ``answers`` against ``definition``.

    Missing answers count as incorrect and never raise. The result depends
    only on the inputs, so repeated calls return equal results.
    """
    incorrect: list[str] = []
    for question in definition.questions:
        if not is_correct(question, answers.get(question.id)):
            incorrect.append(question.id)

    max_score = len(definition.questions)
    score = max_score - len(incorrect)
    percentage = 100 * score / max_score if max_score > 0 else 0.0
    return GradeResult(
        score=score,
        max_score=max_score,
        percentage=percentage,
        incorrect_question_ids=tuple(incorrect),
    )


def is_correct(question: Question, answer: str | None) -> bool:
    if question.type is QuestionType.MULTIPLE_CHOICE:
        return answer is not None and answer == question.correct_answer
    # An empty reference matches a missing answer; see DESIGN.md.
    return _normalize(answer) == _normalize(question.correct_answer)


def is_passing(result: GradeResult) -> bool:
    return result.percentage >= PASSING_PERCENTAGE


def _normalize(value: str | None) -> str:
    return (value or "").lower().strip()
