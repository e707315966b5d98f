"""Business logic for the quiz attempt lifecycle shared by the API layer."""

from __future__ import annotations

from collections.abc import Iterator
from concurrent.futures import Future
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from threading import Lock, RLock
from typing import Protocol
from uuid import uuid4

from quiz_engine.constants.quiz_constants import AUTOSAVE_WORKER_COUNT
from quiz_engine.core.clock import MonotonicClock
from quiz_engine.core.errors import (
    AttemptClosed,
    AttemptInProgress,
    QuestionNotFound,
    QuizNotFound,
    RetryExhausted,
)
from quiz_engine.core.grading import grade, is_correct
from quiz_engine.core.models import (
    AnswerMessage,
    Attempt,
    AttemptStatus,
    GradeResult,
    QuestionReview,
    QuizDefinition,
    RetryAction,
    SubmitTrigger,
)
from quiz_engine.core.quiz_validator import validate
from quiz_engine.core.retry_policy import (
    AttemptChain,
    is_final_retry,
    next_action,
    next_retry_count,
    should_reveal,
)
from quiz_engine.core.services.attempt_store import AttemptStore
from quiz_engine.core.services.attempt_timers import AttemptTimers
from quiz_engine.core.services.autosave_channel import AutosaveChannel
from quiz_engine.core.services.quiz_repository import QuizRepository

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime: ...


class AttemptEngine:
    """Facade for attempt services: repository, store, timers, and autosave.

    Every state transition runs under a per-attempt lock and re-reads the
    attempt from the store first, so a timer-fired submit racing a manual one
    grades the attempt exactly once.
    """

    def __init__(
        self,
        repository: QuizRepository | None = None,
        store: AttemptStore | None = None,
        clock: Clock | None = None,
        timers: AttemptTimers | None = None,
        autosave_workers: int = AUTOSAVE_WORKER_COUNT,
    ) -> None:
        self._lock = Lock()
        self._attempt_locks: dict[str, _KeyLock] = {}

        # Services
        self._repository = repository or QuizRepository()
        self._store = store or AttemptStore()
        self._clock = clock or MonotonicClock()
        self._timers = timers or AttemptTimers()
        self._autosave = AutosaveChannel(self._apply_autosave, max_workers=autosave_workers)

    @property
    def repository(self) -> QuizRepository:
        return self._repository

    @property
    def store(self) -> AttemptStore:
        return self._store

    @property
    def timers(self) -> AttemptTimers:
        return self._timers

    @property
    def autosave(self) -> AutosaveChannel:
        return self._autosave

    # --- Attempt lifecycle ---

    def start_attempt(self, quiz_id: str, user_id: str) -> str:
        """Start (or resume) the user's attempt on ``quiz_id``.

        A still-running attempt is resumed instead of duplicated. Otherwise the
        new attempt continues the user's retry chain for the quiz.
        """
        definition = self._repository.get_quiz(quiz_id)
        if not definition.is_active:
            raise QuizNotFound(f"Quiz '{quiz_id}' is not available.")
        validate(definition)

        with self._lock_for(f"chain:{user_id}:{quiz_id}"):
            chain = self._settle_chain(user_id, quiz_id)
            latest = chain.latest
            if latest is not None and latest.is_open():
                logger.info("Resuming attempt %s for user %s", latest.id, user_id)
                return latest.id

            if latest is not None:
                action = next_action(chain)
                if action is not RetryAction.RETRY:
                    if action is RetryAction.REVEAL:
                        self._store.set_reveal_answers(latest.id)
                    logger.info("Retries exhausted for user %s on quiz %s", user_id, quiz_id)
                    raise RetryExhausted(latest.id)

            attempt = self._create_attempt(definition, user_id, next_retry_count(chain))
        return attempt.id

    def request_retry(self, attempt_id: str) -> str:
        """Start the next attempt of the chain ``attempt_id`` belongs to."""
        attempt = self.get_result_attempt(attempt_id)
        return self.start_attempt(attempt.quiz_id, attempt.user_id)

    def record_answer(
        self,
        attempt_id: str,
        question_id: str,
        value: str,
        client_seq: int | None = None,
    ) -> bool:
        """Store an answer while the attempt is open.

        Returns ``False`` when a newer client sequence number already won.
        Raises ``AttemptClosed`` once the attempt is submitted or past its
        deadline.
        """
        if value is None:
            raise ValueError("Answer value must not be null.")
        with self._lock_for(attempt_id):
            attempt = self._store.get_attempt(attempt_id)
            definition = self._definition_for(attempt)
            if question_id not in definition.question_ids():
                raise QuestionNotFound(
                    f"Question '{question_id}' is not part of quiz '{attempt.quiz_id}'."
                )
            if not attempt.is_open():
                raise AttemptClosed(attempt_id, "Attempt has already been submitted.")
            if self._clock.now() >= attempt.deadline:
                raise AttemptClosed(attempt_id, "Attempt deadline has passed.")
            applied = self._store.save_answer(attempt_id, question_id, value, client_seq)
        if not applied:
            logger.debug(
                "Ignored stale answer for %s/%s (seq=%s)", attempt_id, question_id, client_seq
            )
        return applied

    def submit_answer(
        self,
        attempt_id: str,
        question_id: str,
        value: str,
        client_seq: int | None = None,
    ) -> Future:
        """Publish an answer to the autosave channel without waiting for it."""
        attempt = self._store.get_attempt(attempt_id)
        if question_id not in self._definition_for(attempt).question_ids():
            raise QuestionNotFound(
                f"Question '{question_id}' is not part of quiz '{attempt.quiz_id}'."
            )
        if not attempt.is_open() or self._clock.now() >= attempt.deadline:
            raise AttemptClosed(attempt_id)
        return self._autosave.publish(
            AnswerMessage(
                attempt_id=attempt_id,
                question_id=question_id,
                value=value,
                client_seq=client_seq,
            )
        )

    def submit(self, attempt_id: str, trigger: SubmitTrigger = SubmitTrigger.MANUAL) -> GradeResult:
        """Close the attempt and grade it. Repeated calls return the same result."""
        self._autosave.flush(attempt_id)
        return self._finalize(attempt_id, trigger)

    def get_result(self, attempt_id: str) -> GradeResult:
        """Return the grade of a closed attempt.

        An attempt left open past its deadline is closed as timed out first.
        """
        attempt = self._store.get_attempt(attempt_id)
        if attempt.is_open():
            if self._clock.now() < attempt.deadline:
                raise AttemptInProgress(f"Attempt {attempt_id} has not been submitted yet.")
            return self.submit(attempt_id, SubmitTrigger.TIMEOUT)
        if not attempt.is_graded():
            return self._finalize(attempt_id, _trigger_for(attempt))
        return grade(self._definition_for(attempt), attempt.answers)

    def get_result_attempt(self, attempt_id: str) -> Attempt:
        """Make sure the attempt is graded and return its stored record."""
        self.get_result(attempt_id)
        return self._store.get_attempt(attempt_id)

    def get_review(self, attempt_id: str) -> list[QuestionReview]:
        """Per-question feedback; correct answers only once they are revealed."""
        attempt = self.get_result_attempt(attempt_id)
        definition = self._definition_for(attempt)
        reviews: list[QuestionReview] = []
        for question in definition.questions:
            submitted = attempt.answers.get(question.id)
            correct = is_correct(question, submitted)
            disclose = attempt.reveal_answers and not correct
            reviews.append(
                QuestionReview(
                    question_id=question.id,
                    text=question.text,
                    submitted_answer=submitted,
                    is_correct=correct,
                    correct_answer=question.correct_answer if disclose else None,
                    explanation=question.explanation if disclose else None,
                )
            )
        return reviews

    def get_attempt(self, attempt_id: str) -> Attempt:
        return self._store.get_attempt(attempt_id)

    def get_definition(self, attempt_id: str) -> QuizDefinition:
        return self._definition_for(self._store.get_attempt(attempt_id))

    def get_chain(self, user_id: str, quiz_id: str) -> AttemptChain:
        return AttemptChain(
            user_id=user_id,
            quiz_id=quiz_id,
            attempts=tuple(self._store.list_chain(user_id, quiz_id)),
        )

    def now(self) -> datetime:
        return self._clock.now()

    def shutdown(self) -> None:
        self._timers.cancel_all()
        self._autosave.shutdown()

    # --- Internals ---

    def _create_attempt(self, definition: QuizDefinition, user_id: str, retry_count: int) -> Attempt:
        started_at = self._clock.now()
        deadline = started_at + timedelta(minutes=definition.time_limit_minutes)
        attempt = self._store.create_attempt(
            Attempt(
                id=uuid4().hex,
                quiz_id=definition.id,
                quiz_version=definition.version,
                user_id=user_id,
                status=AttemptStatus.IN_PROGRESS,
                started_at=started_at,
                deadline=deadline,
                retry_count=retry_count,
            )
        )
        self._timers.schedule(
            attempt.id,
            (deadline - started_at).total_seconds(),
            self._on_deadline,
        )
        logger.info(
            "Started attempt %s on quiz %s v%d for user %s (retry %d%s)",
            attempt.id,
            definition.id,
            definition.version,
            user_id,
            retry_count,
            ", final" if is_final_retry(retry_count) else "",
        )
        return attempt

    def _settle_chain(self, user_id: str, quiz_id: str) -> AttemptChain:
        """Grade a latest attempt that expired or was left half-submitted."""
        chain = self.get_chain(user_id, quiz_id)
        latest = chain.latest
        if latest is None or latest.is_graded():
            return chain
        if latest.is_open() and self._clock.now() < latest.deadline:
            return chain
        self.get_result(latest.id)
        return self.get_chain(user_id, quiz_id)

    def _finalize(self, attempt_id: str, trigger: SubmitTrigger) -> GradeResult:
        with self._lock_for(attempt_id):
            attempt = self._store.get_attempt(attempt_id)
            if attempt.is_open():
                now = self._clock.now()
                timed_out = trigger is SubmitTrigger.TIMEOUT or now >= attempt.deadline
                status = AttemptStatus.TIMED_OUT if timed_out else AttemptStatus.SUBMITTED
                attempt = self._store.update_attempt_status(
                    attempt_id, status, submitted_at=now, timed_out=timed_out
                )
                self._timers.cancel(attempt_id)
                self._autosave.close_attempt(attempt_id)
                logger.info("Attempt %s closed as %s (%s)", attempt_id, status.value, trigger.value)

            definition = self._definition_for(attempt)
            result = grade(definition, attempt.answers)
            if not attempt.is_graded():
                reveal = attempt.reveal_answers or should_reveal(attempt.retry_count)
                self._store.update_attempt_status(
                    attempt_id,
                    AttemptStatus.GRADED,
                    score=result.score,
                    max_score=result.max_score,
                    reveal_answers=reveal,
                )
                logger.info(
                    "Graded attempt %s: %d/%d (%.1f%%)%s",
                    attempt_id,
                    result.score,
                    result.max_score,
                    result.percentage,
                    ", answers revealed" if reveal else "",
                )
            return result

    def _on_deadline(self, attempt_id: str) -> None:
        try:
            self.submit(attempt_id, SubmitTrigger.TIMEOUT)
        except Exception:
            logger.exception("Automatic submission failed for attempt %s", attempt_id)

    def _apply_autosave(self, message: AnswerMessage) -> bool:
        return self.record_answer(
            message.attempt_id, message.question_id, message.value, message.client_seq
        )

    def _definition_for(self, attempt: Attempt) -> QuizDefinition:
        return self._repository.get_quiz(attempt.quiz_id, attempt.quiz_version)

    @contextmanager
    def _lock_for(self, key: str) -> Iterator[None]:
        """Hold the re-entrant lock for ``key``; it is dropped once nobody holds or waits on it."""
        with self._lock:
            entry = self._attempt_locks.get(key)
            if entry is None:
                entry = _KeyLock()
                self._attempt_locks[key] = entry
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._attempt_locks[key]


@dataclass(slots=True)
class _KeyLock:
    lock: RLock = field(default_factory=RLock)
    holders: int = 0


def _trigger_for(attempt: Attempt) -> SubmitTrigger:
    return SubmitTrigger.TIMEOUT if attempt.timed_out else SubmitTrigger.MANUAL
