"""FastAPI server that exposes quiz and attempt endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
import uvicorn

from quiz_engine.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_engine.constants.quiz_constants import DEFAULT_TIME_LIMIT_MINUTES, MAX_RETRIES
from quiz_engine.core.attempt_engine import AttemptEngine
from quiz_engine.core.errors import (
    AttemptClosed,
    AttemptInProgress,
    NotFound,
    RetryExhausted,
    ValidationError,
)
from quiz_engine.core.grading import is_passing
from quiz_engine.core.models import (
    Attempt,
    GradeResult,
    Question,
    QuestionType,
    QuizDefinition,
    SubmitTrigger,
)


class QuestionPayload(BaseModel):
    """Payload schema for one authored question."""

    id: str
    text: str
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: list[str] | None = None
    correct_answer: str = ""
    explanation: str | None = None


class QuizPayload(BaseModel):
    """Payload schema for creating or updating a quiz."""

    id: str | None = None
    title: str
    curriculum: str
    description: str | None = None
    time_limit_minutes: int = DEFAULT_TIME_LIMIT_MINUTES
    is_active: bool = True
    created_by: str | None = None
    questions: list[QuestionPayload] = Field(default_factory=list)


class StartPayload(BaseModel):
    user_id: str


class AnswerPayload(BaseModel):
    """Payload schema for autosaved answers."""

    question_id: str
    answer: str
    client_seq: int | None = None


class SubmitPayload(BaseModel):
    trigger: SubmitTrigger = SubmitTrigger.MANUAL

    @field_validator("trigger")
    @classmethod
    def manual_only(cls, value: SubmitTrigger) -> SubmitTrigger:
        # Timeout submissions come from the attempt timer only.
        if value is not SubmitTrigger.MANUAL:
            raise ValueError("Only manual submissions are accepted.")
        return value


def _get_engine_dependency(engine: AttemptEngine):
    def dependency() -> AttemptEngine:
        return engine

    return dependency


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.astimezone(timezone.utc).isoformat()


def _to_definition(payload: QuizPayload, quiz_id: str | None = None) -> QuizDefinition:
    return QuizDefinition(
        id=quiz_id or payload.id or "",
        title=payload.title,
        curriculum=payload.curriculum,
        description=payload.description,
        time_limit_minutes=payload.time_limit_minutes,
        is_active=payload.is_active,
        created_by=payload.created_by,
        questions=tuple(
            Question(
                id=question.id,
                text=question.text,
                type=question.type,
                correct_answer=question.correct_answer,
                options=tuple(question.options) if question.options is not None else None,
                explanation=question.explanation,
            )
            for question in payload.questions
        ),
    )


def _quiz_payload(definition: QuizDefinition) -> dict[str, object]:
    # Correct answers and explanations stay server-side.
    return {
        "id": definition.id,
        "version": definition.version,
        "title": definition.title,
        "description": definition.description,
        "curriculum": definition.curriculum,
        "time_limit_minutes": definition.time_limit_minutes,
        "is_active": definition.is_active,
        "created_by": definition.created_by,
        "questions": [
            {
                "id": question.id,
                "text": question.text,
                "type": question.type.value,
                "options": list(question.options) if question.options is not None else None,
            }
            for question in definition.questions
        ],
    }


def _attempt_payload(attempt: Attempt, now: datetime) -> dict[str, object]:
    remaining = max(0.0, (attempt.deadline - now).total_seconds()) if attempt.is_open() else 0.0
    submission_status = attempt.submission_status
    return {
        "id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "quiz_version": attempt.quiz_version,
        "user_id": attempt.user_id,
        "status": attempt.status.value,
        "submission_status": submission_status.value if submission_status else None,
        "started_at": _iso(attempt.started_at),
        "deadline": _iso(attempt.deadline),
        "submitted_at": _iso(attempt.submitted_at),
        "remaining_seconds": int(remaining),
        "answers": dict(attempt.answers),
        "retry_count": attempt.retry_count,
        "reveal_answers": attempt.reveal_answers,
    }


def _result_payload(attempt: Attempt, result: GradeResult) -> dict[str, object]:
    submission_status = attempt.submission_status
    return {
        "attempt_id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "status": attempt.status.value,
        "submission_status": submission_status.value if submission_status else None,
        "score": result.score,
        "max_score": result.max_score,
        "percentage": result.percentage,
        "incorrect_question_ids": list(result.incorrect_question_ids),
        "passed": is_passing(result),
        "retry_count": attempt.retry_count,
        "retries_remaining": max(0, MAX_RETRIES - attempt.retry_count),
        "reveal_answers": attempt.reveal_answers,
    }


def _review_payload(engine: AttemptEngine, attempt_id: str) -> list[dict[str, object]]:
    return [
        {
            "question_id": review.question_id,
            "text": review.text,
            "submitted_answer": review.submitted_answer,
            "is_correct": review.is_correct,
            "correct_answer": review.correct_answer,
            "explanation": review.explanation,
        }
        for review in engine.get_review(attempt_id)
    ]


def _exhausted_payload(engine: AttemptEngine, exc: RetryExhausted) -> dict[str, object]:
    attempt = engine.get_attempt(exc.attempt_id)
    return {
        "exhausted": True,
        "detail": str(exc),
        "attempt_id": attempt.id,
        "retry_count": attempt.retry_count,
        "reveal_answers": attempt.reveal_answers,
        "review": _review_payload(engine, attempt.id),
    }


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_api_app(engine: AttemptEngine) -> FastAPI:
    """Create a FastAPI application wired to the provided attempt engine."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        engine.shutdown()

    app = FastAPI(title="Quiz Attempt Engine API", version="0.1.0", lifespan=lifespan)
    engine_dep = _get_engine_dependency(engine)

    @app.exception_handler(NotFound)
    async def handle_not_found(_: Request, exc: NotFound) -> JSONResponse:
        return _error_response(404, exc)

    @app.exception_handler(ValidationError)
    async def handle_validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return _error_response(422, exc)

    @app.exception_handler(AttemptClosed)
    async def handle_attempt_closed(_: Request, exc: AttemptClosed) -> JSONResponse:
        return _error_response(409, exc)

    @app.exception_handler(AttemptInProgress)
    async def handle_attempt_in_progress(_: Request, exc: AttemptInProgress) -> JSONResponse:
        return _error_response(409, exc)

    @app.get("/health")
    def health(manager: AttemptEngine = Depends(engine_dep)) -> dict[str, object]:
        return {
            "status": "ok",
            "quizzes": manager.repository.get_quiz_count(),
            "running_timers": manager.timers.active_count(),
        }

    # --- Quiz definitions ---

    @app.get("/api/quizzes/")
    def list_quizzes(
        curriculum: str | None = None,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> list[dict[str, object]]:
        return [_quiz_payload(quiz) for quiz in manager.repository.list_quizzes(curriculum)]

    @app.post("/api/quizzes/", status_code=201)
    def create_quiz(
        payload: QuizPayload,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        try:
            stored = manager.repository.create_quiz(_to_definition(payload))
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _quiz_payload(stored)

    @app.get("/api/quizzes/{quiz_id}/")
    def get_quiz(quiz_id: str, manager: AttemptEngine = Depends(engine_dep)) -> dict[str, object]:
        return _quiz_payload(manager.repository.get_quiz(quiz_id))

    @app.put("/api/quizzes/{quiz_id}/")
    def update_quiz(
        quiz_id: str,
        payload: QuizPayload,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        stored = manager.repository.update_quiz(quiz_id, _to_definition(payload, quiz_id))
        return _quiz_payload(stored)

    # --- Attempts ---

    @app.post("/api/quizzes/{quiz_id}/start/", status_code=201)
    def start_attempt(
        quiz_id: str,
        payload: StartPayload,
        manager: AttemptEngine = Depends(engine_dep),
    ):
        try:
            attempt_id = manager.start_attempt(quiz_id, payload.user_id)
        except RetryExhausted as exc:
            return JSONResponse(status_code=200, content=_exhausted_payload(manager, exc))
        return _attempt_payload(manager.get_attempt(attempt_id), manager.now())

    @app.get("/api/quizzes/attempts/{attempt_id}/")
    def get_attempt(
        attempt_id: str, manager: AttemptEngine = Depends(engine_dep)
    ) -> dict[str, object]:
        return _attempt_payload(manager.get_attempt(attempt_id), manager.now())

    @app.post("/api/quizzes/attempts/{attempt_id}/answer/", status_code=202)
    def submit_answer(
        attempt_id: str,
        payload: AnswerPayload,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        manager.submit_answer(attempt_id, payload.question_id, payload.answer, payload.client_seq)
        return {
            "attempt_id": attempt_id,
            "question_id": payload.question_id,
            "client_seq": payload.client_seq,
            "accepted": True,
        }

    @app.post("/api/quizzes/attempts/{attempt_id}/submit/")
    def submit_attempt(
        attempt_id: str,
        payload: SubmitPayload | None = None,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        trigger = payload.trigger if payload is not None else SubmitTrigger.MANUAL
        result = manager.submit(attempt_id, trigger)
        return _result_payload(manager.get_attempt(attempt_id), result)

    @app.get("/api/quizzes/attempts/{attempt_id}/results/")
    def get_results(
        attempt_id: str, manager: AttemptEngine = Depends(engine_dep)
    ) -> dict[str, object]:
        result = manager.get_result(attempt_id)
        body = _result_payload(manager.get_attempt(attempt_id), result)
        body["review"] = _review_payload(manager, attempt_id)
        return body

    @app.post("/api/quizzes/attempts/{attempt_id}/retry/", status_code=201)
    def request_retry(attempt_id: str, manager: AttemptEngine = Depends(engine_dep)):
        try:
            new_attempt_id = manager.request_retry(attempt_id)
        except RetryExhausted as exc:
            return JSONResponse(status_code=200, content=_exhausted_payload(manager, exc))
        body = _attempt_payload(manager.get_attempt(new_attempt_id), manager.now())
        body["exhausted"] = False
        return body

    return app


def run_api_server(
    engine: AttemptEngine,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    log_level: str = "info",
) -> None:
    """Serve the API in the current thread until interrupted."""
    app = create_api_app(engine)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=log_level)
    server = uvicorn.Server(config)
    server.run()
