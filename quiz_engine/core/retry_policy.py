"""Bounded retry workflow for one learner on one quiz."""

from __future__ import annotations

from dataclasses import dataclass

from quiz_engine.constants.quiz_constants import MAX_RETRIES
from quiz_engine.core.errors import AttemptInProgress
from quiz_engine.core.models import Attempt, RetryAction


@dataclass(slots=True, frozen=True)
class AttemptChain:
    """Ordered attempts a user has made against one quiz, oldest first."""

    user_id: str
    quiz_id: str
    attempts: tuple[Attempt, ...] = ()

    @property
    def latest(self) -> Attempt | None:
        return self.attempts[-1] if self.attempts else None

    @property
    def retry_count(self) -> int:
        latest = self.latest
        return latest.retry_count if latest is not None else 0

    def __len__(self) -> int:
        return len(self.attempts)


def next_action(chain: AttemptChain) -> RetryAction:
    """Decide what may follow the latest graded attempt of ``chain``."""
    latest = chain.latest
    if latest is None:
        return RetryAction.RETRY
    if not latest.is_graded():
        raise AttemptInProgress(f"Attempt {latest.id} has not been graded yet.")

    if latest.retry_count < MAX_RETRIES:
        return RetryAction.RETRY
    if not latest.reveal_answers:
        return RetryAction.REVEAL
    return RetryAction.DONE


def should_reveal(retry_count: int) -> bool:
    """Answers are disclosed once the final retry has been graded."""
    return retry_count >= MAX_RETRIES


def next_retry_count(chain: AttemptChain) -> int:
    if chain.latest is None:
        return 0
    return chain.retry_count + 1


def is_final_retry(retry_count: int) -> bool:
    return retry_count == MAX_RETRIES
