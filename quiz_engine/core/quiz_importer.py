"""Utilities for importing quizzes from a human-friendly text file.

File format: a header, then question blocks separated by blank lines or
'---':

    TITLE: Capitals of Europe
    CURRICULUM: Geography
    DESCRIPTION: optional one-line summary
    TIMELIMIT: minutes (optional, defaults to 30)

    Q: Question text. Additional lines until the next marker are treated as
       part of the question.
    A: First option text
    B: Second option text
    CORRECT: B
    EXPLANATION: optional, shown when answers are revealed

    Q: Capital of France?
    TYPE: TEXT
    CORRECT: Paris

Multiple choice questions list options with letters A-Z and name the correct
letter. Text questions set ``TYPE: TEXT`` and give the reference answer after
``CORRECT:``. Parsed quizzes are validated by the repository on creation, not
here.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from string import ascii_uppercase

from quiz_engine.constants.quiz_constants import DEFAULT_TIME_LIMIT_MINUTES, QUIZ_FILE_PATTERN
from quiz_engine.core.models import Question, QuestionType, QuizDefinition

logger = logging.getLogger(__name__)

_HEADER_KEYS = ("TITLE", "CURRICULUM", "DESCRIPTION", "TIMELIMIT")


class QuizImportError(Exception):
    """Raised when a quiz definition cannot be parsed."""


@dataclass(slots=True)
class ImportedQuiz:
    """Container for an imported quiz and the file it came from."""

    source_path: Path
    definition: QuizDefinition


def load_quiz_from_file(file_path: Path) -> ImportedQuiz:
    text = file_path.read_text(encoding="utf-8")
    try:
        definition = parse_quiz_text(text, quiz_id=file_path.stem)
    except QuizImportError as exc:
        raise QuizImportError(f"{file_path.name}: {exc}") from exc
    return ImportedQuiz(source_path=file_path, definition=definition)


def load_quizzes_from_directory(directory: Path) -> list[ImportedQuiz]:
    if not directory.is_dir():
        raise QuizImportError(f"Quiz directory not found: {directory}")
    imported = [load_quiz_from_file(path) for path in sorted(directory.glob(QUIZ_FILE_PATTERN))]
    logger.info("Imported %d quiz file(s) from %s", len(imported), directory)
    return imported


def parse_quiz_text(text: str, quiz_id: str = "") -> QuizDefinition:
    blocks = _split_blocks(text)
    if not blocks:
        raise QuizImportError("Quiz file is empty.")

    header = _parse_header(blocks[0])
    if not header:
        raise QuizImportError("Quiz file must start with a TITLE/CURRICULUM header.")

    questions = [
        _parse_block(block, position) for position, block in enumerate(blocks[1:], start=1)
    ]
    if not questions:
        raise QuizImportError("Quiz file did not contain any questions.")

    return QuizDefinition(
        id=quiz_id,
        title=header.get("TITLE", ""),
        curriculum=header.get("CURRICULUM", ""),
        description=header.get("DESCRIPTION") or None,
        time_limit_minutes=_parse_time_limit(header.get("TIMELIMIT")),
        questions=tuple(questions),
    )


def _split_blocks(text: str) -> list[str]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            # Blank line encountered after content - finalize current block
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())
    return [block for block in blocks if block]


def _parse_header(block: str) -> dict[str, str]:
    header: dict[str, str] = {}
    for raw_line in block.splitlines():
        key, _, value = raw_line.strip().partition(":")
        if key.upper() not in _HEADER_KEYS:
            return {}
        header[key.upper()] = value.strip()
    return header


def _parse_time_limit(raw_value: str | None) -> int:
    if raw_value is None:
        return DEFAULT_TIME_LIMIT_MINUTES
    try:
        return int(raw_value)
    except ValueError as exc:
        raise QuizImportError("TIMELIMIT must be an integer number of minutes.") from exc


def _parse_block(block: str, position: int) -> Question:
    question_lines: list[str] = []
    options: dict[str, str] = {}
    question_type = QuestionType.MULTIPLE_CHOICE
    correct: str | None = None
    explanation: str | None = None
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        upper = line.upper()

        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("TYPE:"):
            raw_type = line.split(":", 1)[1].strip().upper()
            if raw_type == "TEXT":
                question_type = QuestionType.TEXT
            elif raw_type in ("MC", "MULTIPLE_CHOICE"):
                question_type = QuestionType.MULTIPLE_CHOICE
            else:
                raise QuizImportError(f"Unknown question TYPE '{raw_type}'.")
            current_section = None
            continue

        if upper.startswith("CORRECT:"):
            correct = line.split(":", 1)[1].strip()
            current_section = None
            continue

        if upper.startswith("EXPLANATION:"):
            explanation = line.split(":", 1)[1].strip()
            current_section = "EXPLANATION"
            continue

        if len(line) > 2 and line[0].upper() in ascii_uppercase and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section == "EXPLANATION":
            explanation = f"{explanation}\n{line}"
        elif current_section in options:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise QuizImportError(
                f"Encountered text outside of a known section: '{line}'."
            )

    question_text = "\n".join(question_lines).strip()
    if not question_text:
        raise QuizImportError(f"Question {position}: text missing (Q: ...)")
    if correct is None:
        raise QuizImportError(f"Question {position}: CORRECT is required.")

    question_id = f"q{position}"
    if question_type is QuestionType.TEXT:
        if options:
            raise QuizImportError(f"Question {position}: text questions cannot list options.")
        return Question(
            id=question_id,
            text=question_text,
            type=QuestionType.TEXT,
            correct_answer=correct,
            explanation=explanation,
        )

    letters = sorted(options)
    if letters != list(ascii_uppercase[: len(letters)]):
        raise QuizImportError(f"Question {position}: options must be lettered A, B, C, ... in order.")
    correct_letter = correct.upper()
    if correct_letter not in options:
        raise QuizImportError(f"Question {position}: CORRECT must name one of {', '.join(letters)}.")

    return Question(
        id=question_id,
        text=question_text,
        type=QuestionType.MULTIPLE_CHOICE,
        correct_answer=options[correct_letter],
        options=tuple(options[letter] for letter in letters),
        explanation=explanation,
    )
