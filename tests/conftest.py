from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from quiz_engine.core.attempt_engine import AttemptEngine
from quiz_engine.core.models import Question, QuestionType, QuizDefinition
from quiz_engine.core.services.attempt_timers import AttemptTimers


class FakeClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


class ManualTimer:
    """Timer stand-in that fires only when the test says so."""

    def __init__(self, delay_seconds: float, callback) -> None:
        self.delay_seconds = delay_seconds
        self.callback = callback
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()


class ManualTimerFactory:
    def __init__(self) -> None:
        self.created: list[ManualTimer] = []

    def __call__(self, delay_seconds: float, callback) -> ManualTimer:
        timer = ManualTimer(delay_seconds, callback)
        self.created.append(timer)
        return timer

    @property
    def last(self) -> ManualTimer:
        return self.created[-1]


def mc_question(question_id: str, correct: str, options=("A", "B", "C", "D"), text=None) -> Question:
    return Question(
        id=question_id,
        text=text or f"Question {question_id}",
        type=QuestionType.MULTIPLE_CHOICE,
        correct_answer=correct,
        options=tuple(options),
    )


def text_question(question_id: str, correct: str, text=None, explanation=None) -> Question:
    return Question(
        id=question_id,
        text=text or f"Question {question_id}",
        type=QuestionType.TEXT,
        correct_answer=correct,
        explanation=explanation,
    )


def make_quiz(*questions: Question, quiz_id: str = "quiz-1", **overrides) -> QuizDefinition:
    fields = {
        "id": quiz_id,
        "title": "European capitals",
        "curriculum": "Geography",
        "questions": tuple(questions),
    }
    fields.update(overrides)
    return QuizDefinition(**fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timer_factory() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def engine(clock, timer_factory):
    engine = AttemptEngine(clock=clock, timers=AttemptTimers(timer_factory=timer_factory))
    yield engine
    engine.shutdown()


@pytest.fixture
def two_question_quiz() -> QuizDefinition:
    return make_quiz(mc_question("q1", "B"), mc_question("q2", "C"))


@pytest.fixture
def published_quiz(engine, two_question_quiz) -> QuizDefinition:
    return engine.repository.create_quiz(two_question_quiz)
