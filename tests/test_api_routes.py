import pytest
from fastapi.testclient import TestClient

from api.app import create_app, create_service
from exam_engine.models.series_model import SeriesMode

from conftest import simple_series

ALICE = {"X-Student-Id": "alice"}
BOB = {"X-Student-Id": "bob"}


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


def _start(client, headers=ALICE, series_id="s1"):
    res = client.post(f"/api/series/{series_id}/start", headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"ok": True, "series": 1}


def test_missing_student_header_is_401(client):
    assert client.post("/api/series/s1/start").status_code == 401
    assert client.get("/api/me/attempts").status_code == 401


def test_unknown_series_is_404(client):
    res = client.post("/api/series/nope/start", headers=ALICE)
    assert res.status_code == 404
    assert res.json()["detail"]["code"] == "SeriesNotFound"


def test_full_attempt_flow(client, clock):
    started = _start(client)
    attempt_id = started["attempt_id"]
    assert started["remaining_seconds"] == 1800
    assert started["attempt_no"] == 1

    clock.advance(minutes=3)
    res = client.put(f"/api/attempts/{attempt_id}/progress", headers=ALICE, json={
        "responses": [{"question_id": "q1", "selected": [0], "time_spent": 25, "flagged": True}],
        "remaining_seconds": 1620,
    })
    assert res.status_code == 200
    assert res.json()["ok"] is True

    progress = client.get("/api/series/s1/progress", headers=ALICE).json()
    assert progress["attempt_id"] == attempt_id
    assert progress["remaining_seconds"] == 1620
    assert progress["responses"][0]["selected"] == [0]
    assert "earned" not in progress["responses"][0]

    res = client.post(f"/api/attempts/{attempt_id}/submit", headers=ALICE, json={
        "responses": [{"question_id": "q2", "selected": [2]}],
    })
    assert res.status_code == 200
    body = res.json()
    assert (body["score"], body["max_score"], body["percentage"]) == (3, 8, 37.5)

    again = client.post(f"/api/attempts/{attempt_id}/submit", headers=ALICE, json={"responses": []})
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "AttemptAlreadyCompleted"

    review = client.get(f"/api/attempts/{attempt_id}/review", headers=ALICE).json()
    assert review["questions"][0]["flagged"] is True
    assert review["questions"][0]["time_spent"] == 25

    status = client.get(f"/api/attempts/{attempt_id}", headers=ALICE).json()
    assert status["status"] == "completed"
    assert status["remaining_seconds"] == 0

    board = client.get("/api/series/s1/leaderboard").json()["leaderboard"]
    assert board[0]["student_id"] == "alice"

    stats = client.get("/api/me/stats", headers=ALICE).json()
    assert stats["total"] == 1
    history = client.get("/api/me/attempts", headers=ALICE).json()
    assert [a["attempt_id"] for a in history] == [attempt_id]


def test_start_payload_hides_answers(client):
    started = _start(client)
    question = started["sections"][0]["questions"][0]
    assert "correct_options" not in question
    assert "numerical_answer" not in question
    assert "matrix_answer" not in question


def test_progress_without_attempt_is_null(client):
    res = client.get("/api/series/s1/progress", headers=ALICE)
    assert res.status_code == 200
    assert res.json() is None


def test_second_start_conflicts(client):
    _start(client)
    res = client.post("/api/series/s1/start", headers=ALICE)
    assert res.status_code == 409
    assert res.json()["detail"]["code"] == "AttemptInProgress"


def test_attempt_limit_is_429(client):
    for _ in range(2):
        attempt_id = _start(client)["attempt_id"]
        client.post(f"/api/attempts/{attempt_id}/submit", headers=ALICE, json={})
    res = client.post("/api/series/s1/start", headers=ALICE)
    assert res.status_code == 429
    assert res.json()["detail"]["code"] == "AttemptLimitExceeded"

    eligibility = client.get("/api/series/s1/eligibility", headers=ALICE).json()
    assert eligibility["allowed"] is False
    assert eligibility["reason"] == "limit"

    reset = client.post("/api/admin/series/s1/students/alice/reset-attempts")
    assert reset.status_code == 200
    assert client.get("/api/series/s1/eligibility", headers=ALICE).json()["allowed"] is True


def test_cooldown_sets_retry_after_header(service, clock):
    service.catalog.add(simple_series("live", mode=SeriesMode.LIVE, cooldown_minutes=10, max_attempts=3))
    client = TestClient(create_app(service))
    attempt_id = _start(client, series_id="live")["attempt_id"]
    client.post(f"/api/attempts/{attempt_id}/submit", headers=ALICE, json={})
    clock.advance(minutes=4)
    res = client.post("/api/series/live/start", headers=ALICE)
    assert res.status_code == 429
    assert res.headers["Retry-After"] == "360"
    assert res.json()["detail"]["retry_after_seconds"] == 360


def test_other_students_attempt_is_403(client):
    attempt_id = _start(client)["attempt_id"]
    assert client.get(f"/api/attempts/{attempt_id}", headers=BOB).status_code == 403
    res = client.put(f"/api/attempts/{attempt_id}/progress", headers=BOB, json={"responses": []})
    assert res.status_code == 403


def test_review_before_submit_is_409(client):
    attempt_id = _start(client)["attempt_id"]
    res = client.get(f"/api/attempts/{attempt_id}/review", headers=ALICE)
    assert res.status_code == 409


def test_invalid_confidence_is_rejected(client):
    attempt_id = _start(client)["attempt_id"]
    res = client.put(f"/api/attempts/{attempt_id}/progress", headers=ALICE, json={
        "responses": [{"question_id": "q1", "confidence": 9}],
    })
    assert res.status_code == 422


def test_sample_data_service():
    service = create_service(seed=True)
    ids = {s.id for s in service.catalog.all()}
    assert {"demo-practice", "demo-live"} <= ids
    attempt = service.start_attempt("alice", "demo-practice")
    assert len(attempt.question_ids) == 7
    assert attempt.max_possible_score == 28


def test_leaderboard_limit_must_be_positive(client):
    for headers in (ALICE, BOB):
        attempt_id = _start(client, headers=headers)["attempt_id"]
        client.post(f"/api/attempts/{attempt_id}/submit", headers=headers, json={})
    assert client.get("/api/series/s1/leaderboard?limit=-1").status_code == 422
    assert client.get("/api/series/s1/leaderboard?limit=0").status_code == 422
    assert len(client.get("/api/series/s1/leaderboard?limit=1").json()["leaderboard"]) == 1
    assert len(client.get("/api/series/s1/leaderboard").json()["leaderboard"]) == 2
