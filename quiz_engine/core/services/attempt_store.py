"""Service for persisting attempts and their autosaved answers."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import Lock

from quiz_engine.core.errors import AttemptNotFound
from quiz_engine.core.models import Attempt, AttemptStatus


class AttemptStore:
    """In-memory attempt persistence with read-after-write consistency.

    Reads return copies, so callers never observe a half-applied update and
    cannot mutate stored state behind the store's back.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._attempts: dict[str, Attempt] = {}
        self._chains: dict[tuple[str, str], list[str]] = {}

    def create_attempt(self, attempt: Attempt) -> Attempt:
        with self._lock:
            if attempt.id in self._attempts:
                raise ValueError(f"Attempt '{attempt.id}' already exists.")
            self._attempts[attempt.id] = _copy(attempt)
            self._chains.setdefault((attempt.user_id, attempt.quiz_id), []).append(attempt.id)
            return _copy(attempt)

    def get_attempt(self, attempt_id: str) -> Attempt:
        with self._lock:
            return _copy(self._get(attempt_id))

    def save_answer(
        self,
        attempt_id: str,
        question_id: str,
        value: str,
        client_seq: int | None = None,
    ) -> bool:
        """Store an answer unless a newer sequence number already won.

        Without ``client_seq`` the write is ordered after every prior write for
        the question. Returns ``False`` for stale or replayed writes.
        """
        with self._lock:
            attempt = self._get(attempt_id)
            current = attempt.answer_sequences.get(question_id)
            if client_seq is None:
                client_seq = (current or 0) + 1
            elif current is not None and client_seq <= current:
                return False
            attempt.answers[question_id] = value
            attempt.answer_sequences[question_id] = client_seq
            return True

    def update_attempt_status(
        self,
        attempt_id: str,
        status: AttemptStatus,
        *,
        submitted_at: datetime | None = None,
        timed_out: bool | None = None,
        score: int | None = None,
        max_score: int | None = None,
        reveal_answers: bool | None = None,
    ) -> Attempt:
        with self._lock:
            attempt = self._get(attempt_id)
            attempt.status = status
            if submitted_at is not None:
                attempt.submitted_at = submitted_at
            if timed_out is not None:
                attempt.timed_out = timed_out
            if score is not None:
                attempt.score = score
            if max_score is not None:
                attempt.max_score = max_score
            if reveal_answers is not None:
                attempt.reveal_answers = reveal_answers
            return _copy(attempt)

    def set_reveal_answers(self, attempt_id: str) -> Attempt:
        with self._lock:
            attempt = self._get(attempt_id)
            attempt.reveal_answers = True
            return _copy(attempt)

    def list_chain(self, user_id: str, quiz_id: str) -> list[Attempt]:
        """Return the attempts of one user on one quiz, oldest first."""
        with self._lock:
            ids = self._chains.get((user_id, quiz_id), [])
            return [_copy(self._attempts[attempt_id]) for attempt_id in ids]

    def _get(self, attempt_id: str) -> Attempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFound(f"Attempt '{attempt_id}' not found.")
        return attempt


def _copy(attempt: Attempt) -> Attempt:
    return replace(
        attempt,
        answers=dict(attempt.answers),
        answer_sequences=dict(attempt.answer_sequences),
    )
