"""Asynchronous, best-effort autosave of in-progress answers.

Callers publish an ``AnswerMessage`` and move on. Messages for the same
(attempt, question) pair are applied one at a time; the store keeps the value
with the highest client sequence number, so network reordering cannot
resurrect an older answer. Transient store failures are replayed with
backoff; an answer still failing after the last try is logged as lost.
``AttemptClosed`` is terminal: the attempt is marked closed and later messages
for it are refused immediately. Only the most recently closed ids are kept;
the engine rejects older ones from the stored attempt status.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
import logging
from threading import Lock

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from quiz_engine.constants.quiz_constants import (
    AUTOSAVE_BACKOFF_INITIAL_SECONDS,
    AUTOSAVE_BACKOFF_MAX_SECONDS,
    AUTOSAVE_CLOSED_HISTORY,
    AUTOSAVE_FLUSH_TIMEOUT_SECONDS,
    AUTOSAVE_STORE_ATTEMPTS,
    AUTOSAVE_WORKER_COUNT,
)
from quiz_engine.core.errors import AttemptClosed, StoreUnavailable
from quiz_engine.core.models import AnswerMessage

logger = logging.getLogger(__name__)


class AutosaveChannel:
    """Fire-and-forget answer delivery with per-question ordering."""

    def __init__(
        self,
        apply_answer: Callable[[AnswerMessage], bool],
        max_workers: int = AUTOSAVE_WORKER_COUNT,
        store_attempts: int = AUTOSAVE_STORE_ATTEMPTS,
        backoff_initial: float = AUTOSAVE_BACKOFF_INITIAL_SECONDS,
        backoff_max: float = AUTOSAVE_BACKOFF_MAX_SECONDS,
        closed_history: int = AUTOSAVE_CLOSED_HISTORY,
    ) -> None:
        self._apply_answer = apply_answer
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="Autosave"
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(store_attempts),
            wait=wait_exponential(multiplier=backoff_initial, max=backoff_max)
            + wait_random(0, backoff_initial),
            retry=retry_if_exception_type(StoreUnavailable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        self._lock = Lock()
        self._key_locks: dict[tuple[str, str], Lock] = {}
        self._pending: dict[str, set[Future]] = {}
        self._closed: OrderedDict[str, None] = OrderedDict()
        self._closed_history = closed_history

    def publish(self, message: AnswerMessage) -> Future:
        """Queue ``message`` for delivery.

        Raises ``AttemptClosed`` right away when the attempt is known to be
        closed. The returned future resolves to ``True`` if the answer was
        stored and ``False`` if a newer sequence number had already won.
        """
        with self._lock:
            if message.attempt_id in self._closed:
                raise AttemptClosed(message.attempt_id)
            future = self._executor.submit(self._deliver, message)
            self._pending.setdefault(message.attempt_id, set()).add(future)
        future.add_done_callback(lambda done: self._forget(message.attempt_id, done))
        return future

    def flush(self, attempt_id: str, timeout: float = AUTOSAVE_FLUSH_TIMEOUT_SECONDS) -> None:
        """Block until every message published so far for the attempt is settled."""
        with self._lock:
            pending = set(self._pending.get(attempt_id, ()))
        if not pending:
            return
        _, not_done = wait(pending, timeout=timeout)
        if not_done:
            logger.warning(
                "%d autosave message(s) for attempt %s still pending after %.1fs",
                len(not_done),
                attempt_id,
                timeout,
            )

    def close_attempt(self, attempt_id: str) -> None:
        with self._lock:
            self._closed[attempt_id] = None
            self._closed.move_to_end(attempt_id)
            while len(self._closed) > self._closed_history:
                self._closed.popitem(last=False)
            for key in [key for key in self._key_locks if key[0] == attempt_id]:
                del self._key_locks[key]

    def is_closed(self, attempt_id: str) -> bool:
        with self._lock:
            return attempt_id in self._closed

    def pending_count(self, attempt_id: str) -> int:
        with self._lock:
            return len(self._pending.get(attempt_id, ()))

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    def _deliver(self, message: AnswerMessage) -> bool:
        with self._key_lock(message.attempt_id, message.question_id):
            if self.is_closed(message.attempt_id):
                raise AttemptClosed(message.attempt_id)
            try:
                return self._retrying.copy()(self._apply_answer, message)
            except AttemptClosed:
                logger.warning(
                    "Dropping answer for question %s: attempt %s is closed",
                    message.question_id,
                    message.attempt_id,
                )
                self.close_attempt(message.attempt_id)
                raise
            except StoreUnavailable:
                logger.error(
                    "Lost answer for question %s of attempt %s (seq=%s): store still unavailable",
                    message.question_id,
                    message.attempt_id,
                    message.client_seq,
                )
                raise

    def _key_lock(self, attempt_id: str, question_id: str) -> Lock:
        with self._lock:
            return self._key_locks.setdefault((attempt_id, question_id), Lock())

    def _forget(self, attempt_id: str, future: Future) -> None:
        with self._lock:
            pending = self._pending.get(attempt_id)
            if pending is None:
                return
            pending.discard(future)
            if not pending:
                del self._pending[attempt_id]
