"""Domain models for the quiz attempt engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from quiz_engine.constants.quiz_constants import DEFAULT_TIME_LIMIT_MINUTES


class QuestionType(str, Enum):
    """Supported question kinds. Values match the wire format."""

    MULTIPLE_CHOICE = "multiple_choice"
    TEXT = "text"


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    TIMED_OUT = "timed_out"
    GRADED = "graded"


class SubmitTrigger(str, Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"


class RetryAction(str, Enum):
    RETRY = "retry"
    REVEAL = "reveal"
    DONE = "done"


@dataclass(slots=True, frozen=True)
class Question:
    """A single question of a quiz definition."""

    id: str
    text: str
    type: QuestionType
    correct_answer: str
    options: tuple[str, ...] | None = None
    explanation: str | None = None


@dataclass(slots=True, frozen=True)
class QuizDefinition:
    """Published quiz. Never mutated; updates are stored as a new version."""

    id: str
    title: str
    curriculum: str
    questions: tuple[Question, ...]
    time_limit_minutes: int = DEFAULT_TIME_LIMIT_MINUTES
    description: str | None = None
    is_active: bool = True
    created_by: str | None = None
    version: int = 1

    def question_ids(self) -> list[str]:
        return [question.id for question in self.questions]


@dataclass(slots=True)
class Attempt:
    """One learner's timed instance of answering a quiz."""

    id: str
    quiz_id: str
    quiz_version: int
    user_id: str
    status: AttemptStatus
    started_at: datetime
    deadline: datetime
    submitted_at: datetime | None = None
    timed_out: bool = False
    answers: dict[str, str] = field(default_factory=dict)
    answer_sequences: dict[str, int] = field(default_factory=dict)
    retry_count: int = 0
    reveal_answers: bool = False
    score: int | None = None
    max_score: int | None = None

    def is_open(self) -> bool:
        return self.status is AttemptStatus.IN_PROGRESS

    def is_graded(self) -> bool:
        return self.status is AttemptStatus.GRADED

    @property
    def submission_status(self) -> AttemptStatus | None:
        """How the attempt was closed, kept after it becomes Graded."""
        if self.submitted_at is None:
            return None
        return AttemptStatus.TIMED_OUT if self.timed_out else AttemptStatus.SUBMITTED


@dataclass(slots=True, frozen=True)
class GradeResult:
    """Derived score of an attempt. Recomputed, never edited."""

    score: int
    max_score: int
    percentage: float
    incorrect_question_ids: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class AnswerMessage:
    """Autosave message for one question, ordered by ``client_seq``."""

    attempt_id: str
    question_id: str
    value: str
    client_seq: int | None = None


@dataclass(slots=True, frozen=True)
class QuestionReview:
    """Per-question feedback shown on the results page."""

    question_id: str
    text: str
    submitted_answer: str | None
    is_correct: bool
    correct_answer: str | None = None
    explanation: str | None = None
