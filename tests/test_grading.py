from __future__ import annotations

from conftest import make_quiz, mc_question, text_question
from quiz_engine.core.grading import grade, is_correct, is_passing
from quiz_engine.core.models import GradeResult


def test_multiple_choice_partial_score():
    quiz = make_quiz(mc_question("q1", "B"), mc_question("q2", "C"))

    result = grade(quiz, {"q1": "B", "q2": "A"})

    assert result.score == 1
    assert result.max_score == 2
    assert result.percentage == 50
    assert result.incorrect_question_ids == ("q2",)


def test_text_answer_ignores_case_and_surrounding_whitespace():
    quiz = make_quiz(text_question("q1", " Paris "))

    result = grade(quiz, {"q1": "paris"})

    assert result.score == 1
    assert result.incorrect_question_ids == ()


def test_multiple_choice_is_exact_match():
    question = mc_question("q1", "B")
    assert not is_correct(question, "b")
    assert not is_correct(question, " B")
    assert is_correct(question, "B")


def test_missing_answers_count_as_incorrect_in_quiz_order():
    quiz = make_quiz(mc_question("q1", "A"), text_question("q2", "x"), mc_question("q3", "D"))

    result = grade(quiz, {"q3": "D"})

    assert result.score == 1
    assert result.incorrect_question_ids == ("q1", "q2")


def test_empty_text_reference_matches_missing_answer():
    quiz = make_quiz(text_question("q1", ""))

    assert grade(quiz, {}).score == 1


def test_zero_questions_gives_zero_percentage():
    result = grade(make_quiz(), {})

    assert result == GradeResult(score=0, max_score=0, percentage=0.0, incorrect_question_ids=())


def test_grading_is_idempotent():
    quiz = make_quiz(mc_question("q1", "B"), text_question("q2", "Rome"))
    answers = {"q1": "B", "q2": "  ROME"}

    assert grade(quiz, answers) == grade(quiz, answers)


def test_answers_not_in_quiz_are_ignored():
    quiz = make_quiz(mc_question("q1", "B"))

    result = grade(quiz, {"q1": "B", "stray": "x"})

    assert (result.score, result.max_score) == (1, 1)


def test_passing_threshold_is_fifty_percent():
    assert is_passing(GradeResult(score=1, max_score=2, percentage=50.0))
    assert not is_passing(GradeResult(score=1, max_score=3, percentage=100 / 3))
