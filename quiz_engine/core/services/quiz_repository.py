"""Service for storing published quiz definitions."""

from __future__ import annotations

from dataclasses import replace
import logging
from threading import Lock
from uuid import uuid4

from quiz_engine.core.errors import QuizNotFound
from quiz_engine.core.models import QuizDefinition
from quiz_engine.core.quiz_validator import validate

logger = logging.getLogger(__name__)


class QuizRepository:
    """Versioned, in-memory store of quiz definitions.

    Every update is kept as a new version so attempts that started against an
    older version are still graded against the questions they were shown.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._versions: dict[str, list[QuizDefinition]] = {}

    def create_quiz(self, definition: QuizDefinition) -> QuizDefinition:
        """Validate and store a new quiz, assigning an id when it has none."""
        validate(definition)
        quiz_id = definition.id or uuid4().hex
        stored = replace(definition, id=quiz_id, version=1)
        with self._lock:
            if quiz_id in self._versions:
                raise ValueError(f"Quiz '{quiz_id}' already exists.")
            self._versions[quiz_id] = [stored]
        logger.info("Created quiz %s (%d questions)", quiz_id, len(stored.questions))
        return stored

    def update_quiz(self, quiz_id: str, definition: QuizDefinition) -> QuizDefinition:
        validate(definition)
        with self._lock:
            versions = self._versions.get(quiz_id)
            if not versions:
                raise QuizNotFound(f"Quiz '{quiz_id}' not found.")
            stored = replace(definition, id=quiz_id, version=versions[-1].version + 1)
            versions.append(stored)
        logger.info("Updated quiz %s to version %d", quiz_id, stored.version)
        return stored

    def get_quiz(self, quiz_id: str, version: int | None = None) -> QuizDefinition:
        """Return the latest (or the requested) version of a quiz."""
        with self._lock:
            versions = self._versions.get(quiz_id)
            if not versions:
                raise QuizNotFound(f"Quiz '{quiz_id}' not found.")
            if version is None:
                return versions[-1]
            for definition in versions:
                if definition.version == version:
                    return definition
        raise QuizNotFound(f"Quiz '{quiz_id}' has no version {version}.")

    def list_quizzes(
        self, curriculum: str | None = None, active_only: bool = True
    ) -> list[QuizDefinition]:
        with self._lock:
            latest = [versions[-1] for versions in self._versions.values()]
        if curriculum:
            wanted = curriculum.strip().lower()
            latest = [quiz for quiz in latest if quiz.curriculum.strip().lower() == wanted]
        if active_only:
            latest = [quiz for quiz in latest if quiz.is_active]
        return sorted(latest, key=lambda quiz: quiz.title.lower())

    def has_quiz(self, quiz_id: str) -> bool:
        with self._lock:
            return quiz_id in self._versions

    def get_quiz_count(self) -> int:
        with self._lock:
            return len(self._versions)
