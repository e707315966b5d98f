"""Application entry point for the quiz attempt engine."""

from __future__ import annotations

import os
from pathlib import Path

from quiz_engine.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_engine.core.attempt_engine import AttemptEngine
from quiz_engine.core.quiz_importer import load_quizzes_from_directory
from quiz_engine.server.api_server import run_api_server
from quiz_engine.utils.logging_config import configure_logging


def _load_quiz_directory(engine: AttemptEngine, directory: Path) -> int:
    imported = load_quizzes_from_directory(directory)
    for entry in imported:
        engine.repository.create_quiz(entry.definition)
    return len(imported)


def main() -> None:
    """Initialize logging, load quiz files, and serve the API."""
    log_level = os.getenv("QUIZ_ENGINE_LOG_LEVEL", "INFO")
    logger = configure_logging(log_level)
    logger.info("Starting quiz attempt engine…")

    engine = AttemptEngine()
    quiz_dir = os.getenv("QUIZ_ENGINE_QUIZ_DIR")
    if quiz_dir:
        count = _load_quiz_directory(engine, Path(quiz_dir))
        logger.info("Loaded %d quiz(zes) from %s", count, quiz_dir)

    host = os.getenv("QUIZ_ENGINE_HOST", DEFAULT_HOST)
    port = int(os.getenv("QUIZ_ENGINE_PORT", str(DEFAULT_PORT)))
    logger.info("API listening on http://%s:%d/", host, port)
    run_api_server(engine, host=host, port=port, log_level=log_level.lower())


if __name__ == "__main__":
    main()
