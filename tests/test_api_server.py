from __future__ import annotations

from fastapi.testclient import TestClient
import pytest

from quiz_engine.server.api_server import create_api_app

_QUIZ = {
    "id": "capitals",
    "title": "European capitals",
    "curriculum": "Geography",
    "time_limit_minutes": 1,
    "questions": [
        {
            "id": "q1",
            "text": "Capital of Italy?",
            "type": "multiple_choice",
            "options": ["Milan", "Rome"],
            "correct_answer": "Rome",
        },
        {
            "id": "q2",
            "text": "Capital of France?",
            "type": "text",
            "correct_answer": " Paris ",
            "explanation": "Paris, on the Seine.",
        },
    ],
}


@pytest.fixture
def client(engine) -> TestClient:
    return TestClient(create_api_app(engine))


@pytest.fixture
def quiz(client) -> dict:
    response = client.post("/api/quizzes/", json=_QUIZ)
    assert response.status_code == 201
    return response.json()


def _start(client, user_id: str = "student") -> dict:
    response = client.post("/api/quizzes/capitals/start/", json={"user_id": user_id})
    assert response.status_code == 201
    return response.json()


def _answer(client, attempt_id: str, question_id: str, answer: str, seq: int):
    return client.post(
        f"/api/quizzes/attempts/{attempt_id}/answer/",
        json={"question_id": question_id, "answer": answer, "client_seq": seq},
    )


def test_health(client, quiz):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["quizzes"] == 1


def test_quiz_payload_never_exposes_correct_answers(client, quiz):
    body = client.get("/api/quizzes/capitals/").json()

    assert body["version"] == 1
    assert all("correct_answer" not in question for question in body["questions"])
    assert all("explanation" not in question for question in body["questions"])


def test_invalid_quiz_is_rejected_with_422(client):
    bad = dict(_QUIZ, title="  ")

    response = client.post("/api/quizzes/", json=bad)

    assert response.status_code == 422
    assert "title" in response.json()["detail"]


def test_duplicate_quiz_id_conflicts(client, quiz):
    assert client.post("/api/quizzes/", json=_QUIZ).status_code == 409


def test_update_creates_new_version(client, quiz):
    response = client.put("/api/quizzes/capitals/", json=dict(_QUIZ, title="Capitals v2"))

    assert response.status_code == 200
    assert response.json()["version"] == 2
    assert response.json()["title"] == "Capitals v2"


def test_list_filters_by_curriculum(client, quiz):
    assert len(client.get("/api/quizzes/", params={"curriculum": "geography"}).json()) == 1
    assert client.get("/api/quizzes/", params={"curriculum": "maths"}).json() == []


def test_unknown_quiz_is_404(client):
    assert client.get("/api/quizzes/nope/").status_code == 404
    assert client.post("/api/quizzes/nope/start/", json={"user_id": "s"}).status_code == 404


def test_full_attempt_flow(client, quiz, engine):
    attempt = _start(client)
    assert attempt["status"] == "in_progress"
    assert attempt["remaining_seconds"] == 60

    assert _answer(client, attempt["id"], "q1", "Rome", 1).status_code == 202
    assert _answer(client, attempt["id"], "q2", "paris", 1).status_code == 202

    submitted = client.post(f"/api/quizzes/attempts/{attempt['id']}/submit/", json={})
    assert submitted.status_code == 200
    body = submitted.json()
    assert body["status"] == "graded"
    assert body["submission_status"] == "submitted"
    assert (body["score"], body["max_score"], body["percentage"]) == (2, 2, 100.0)
    assert body["passed"] is True
    assert body["retries_remaining"] == 2

    again = client.post(f"/api/quizzes/attempts/{attempt['id']}/submit/")
    assert again.status_code == 200
    assert again.json()["score"] == body["score"]


def test_answer_after_submit_is_409(client, quiz):
    attempt = _start(client)
    client.post(f"/api/quizzes/attempts/{attempt['id']}/submit/")

    response = _answer(client, attempt["id"], "q1", "Rome", 2)

    assert response.status_code == 409


def test_answer_for_unknown_question_is_404(client, quiz):
    attempt = _start(client)

    response = _answer(client, attempt["id"], "nope", "Rome", 1)

    assert response.status_code == 404
    assert "nope" in response.json()["detail"]


def test_clients_cannot_submit_as_timeout(client, quiz):
    attempt = _start(client)

    response = client.post(
        f"/api/quizzes/attempts/{attempt['id']}/submit/", json={"trigger": "timeout"}
    )

    assert response.status_code == 422
    assert client.get(f"/api/quizzes/attempts/{attempt['id']}/").json()["status"] == "in_progress"


def test_answer_after_deadline_is_409(client, quiz, clock):
    attempt = _start(client)
    clock.advance(61)

    assert _answer(client, attempt["id"], "q1", "Rome", 1).status_code == 409


def test_late_manual_submit_is_recorded_as_timed_out(client, quiz, clock):
    attempt = _start(client)
    clock.advance(61)

    body = client.post(
        f"/api/quizzes/attempts/{attempt['id']}/submit/", json={"trigger": "manual"}
    ).json()

    assert body["submission_status"] == "timed_out"


def test_results_before_submit_is_409(client, quiz):
    attempt = _start(client)

    assert client.get(f"/api/quizzes/attempts/{attempt['id']}/results/").status_code == 409


def test_unknown_attempt_is_404(client):
    assert client.get("/api/quizzes/attempts/missing/results/").status_code == 404
    assert client.post("/api/quizzes/attempts/missing/submit/").status_code == 404


def test_retries_then_exhausted_with_revealed_answers(client, quiz):
    attempt_id = _start(client)["id"]
    client.post(f"/api/quizzes/attempts/{attempt_id}/submit/")

    for expected_retry in (1, 2):
        response = client.post(f"/api/quizzes/attempts/{attempt_id}/retry/")
        assert response.status_code == 201
        body = response.json()
        assert body["exhausted"] is False
        assert body["retry_count"] == expected_retry
        attempt_id = body["id"]
        client.post(f"/api/quizzes/attempts/{attempt_id}/submit/")

    results = client.get(f"/api/quizzes/attempts/{attempt_id}/results/").json()
    assert results["reveal_answers"] is True
    assert results["retries_remaining"] == 0
    review = {item["question_id"]: item for item in results["review"]}
    assert review["q1"]["correct_answer"] == "Rome"
    assert review["q2"]["explanation"] == "Paris, on the Seine."

    exhausted = client.post(f"/api/quizzes/attempts/{attempt_id}/retry/")
    assert exhausted.status_code == 200
    assert exhausted.json()["exhausted"] is True
    assert exhausted.json()["reveal_answers"] is True


def test_results_hide_answers_before_reveal(client, quiz):
    attempt_id = _start(client)["id"]
    client.post(f"/api/quizzes/attempts/{attempt_id}/submit/")

    results = client.get(f"/api/quizzes/attempts/{attempt_id}/results/").json()

    assert results["reveal_answers"] is False
    assert all(item["correct_answer"] is None for item in results["review"])
