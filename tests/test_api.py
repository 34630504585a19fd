import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGenerator
from testgenius.app import app
from testgenius.database import get_db
from testgenius.services.history_service import DatabaseHistoryRecorder
from testgenius.services.session_service import SessionManager
from testgenius.services.snapshot_service import UserSnapshotStore


class FakeGeminiClient:
    def __init__(self):
        self.prompts = []

    def generate(self, prompt, *, temperature=None, response_mime_type=None):
        self.prompts.append(prompt)
        return "Option A follows from the passage."

    def generate_multimodal(self, parts, *, temperature=None):
        self.prompts.append(parts)
        return "Text read from the scan."

    def stream_contents(self, contents, *, temperature=None, system_instruction=None):
        yield "Because "
        yield "of chlorophyll."


@pytest.fixture
def client(db_factory, tmp_path: Path):
    def _get_db():
        db = db_factory()
        try:
            yield db
        finally:
            db.close()

    manager = SessionManager(
        recorder_factory=lambda user_id: DatabaseHistoryRecorder(user_id, db_factory),
        store_factory=lambda user_id: UserSnapshotStore(user_id, tmp_path),
    )
    previous_manager = app.state.session_manager
    app.dependency_overrides[get_db] = _get_db
    app.state.session_manager = manager
    app.state.question_generator = FakeGenerator()
    app.state.gemini_client = FakeGeminiClient()
    try:
        yield TestClient(app)
    finally:
        manager.shutdown()
        app.dependency_overrides.clear()
        app.state.session_manager = previous_manager
        del app.state.question_generator
        del app.state.gemini_client


def register_and_login(client: TestClient, username: str = "alice") -> dict:
    r = client.post(
        "/api/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": "secret123"},
    )
    assert r.status_code == 201, r.text
    r = client.post("/api/auth/login", json={"username": username, "password": "secret123"})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def start_topic_test(client: TestClient, headers: dict, **extra) -> dict:
    r = client.post("/api/session/setup", json={"inputMethod": "topic"}, headers=headers)
    assert r.status_code == 200, r.text
    body = {"inputMethod": "topic", "content": "Photosynthesis", "numQuestions": 3}
    body.update(extra)
    r = client.post("/api/session/generate", json=body, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["phase"] == "confirmation"
    r = client.post("/api/session/start", json={"testName": "Bio quiz"}, headers=headers)
    assert r.status_code == 200, r.text
    return r.json()


def test_info() -> None:
    r = TestClient(app).get("/info")
    assert r.status_code == 200
    assert r.json()["name"] == "TestGenius"


def test_register_login_and_profile(client: TestClient) -> None:
    headers = register_and_login(client)

    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["username"] == "alice"
    assert me.json()["dark_mode"] is True
    assert me.json()["display_name"] == "alice"
    assert me.json()["last_login_at"] is not None

    r = client.put("/api/users/me/theme", json={"dark_mode": False}, headers=headers)
    assert r.json()["dark_mode"] is False

    r = client.post("/api/auth/login", json={"username": "alice@example.com", "password": "secret123"})
    assert r.status_code == 200

    r = client.post("/api/auth/login", json={"username": "alice", "password": "wrong"})
    assert r.status_code == 401


def test_duplicate_registration_is_rejected(client: TestClient) -> None:
    register_and_login(client)
    r = client.post(
        "/api/auth/register",
        json={"username": "alice", "email": "other@example.com", "password": "secret123"},
    )
    assert r.status_code == 400


def test_logout_invalidates_token(client: TestClient) -> None:
    headers = register_and_login(client)
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/session", headers=headers).status_code == 401


def test_session_requires_token(client: TestClient) -> None:
    assert client.get("/api/session").status_code == 401


def test_generate_validates_request(client: TestClient) -> None:
    headers = register_and_login(client)
    client.post("/api/session/setup", json={"inputMethod": "topic"}, headers=headers)

    r = client.post(
        "/api/session/generate",
        json={"inputMethod": "topic", "content": "   ", "numQuestions": 3},
        headers=headers,
    )
    assert r.status_code == 422

    r = client.post(
        "/api/session/generate",
        json={
            "inputMethod": "topic",
            "content": "Cells",
            "timeSettings": {"type": "timed", "totalSeconds": 0},
        },
        headers=headers,
    )
    assert r.status_code == 422


def test_wrong_phase_is_a_conflict(client: TestClient) -> None:
    headers = register_and_login(client)
    r = client.post("/api/session/submit", headers=headers)
    assert r.status_code == 409


def test_full_test_flow_with_corrections(client: TestClient) -> None:
    headers = register_and_login(client)

    state = start_topic_test(client, headers)
    assert state["phase"] == "in_progress"
    assert state["testName"] == "Bio quiz"
    assert state["hasSavedProgress"] is True
    assert all("correctAnswerIndex" not in q for q in state["questions"])

    client.post("/api/session/answer", json={"questionIndex": 0, "optionIndex": 0}, headers=headers)
    client.post("/api/session/navigate", json={"index": 1}, headers=headers)
    r = client.post("/api/session/answer", json={"questionIndex": 1, "optionIndex": 3}, headers=headers)
    assert r.json()["currentQuestionIndex"] == 1

    r = client.post("/api/session/submit", headers=headers)
    result = r.json()
    assert result["phase"] == "completed"
    assert result["hasSavedProgress"] is False
    assert result["score"]["correct"] == 1
    assert result["score"]["incorrect"] == 1
    assert result["score"]["notAttempted"] == 1

    history = client.get("/api/history", headers=headers).json()
    assert len(history) == 1
    assert history[0]["id"] == result["sessionId"]
    assert history[0]["testName"] == "Bio quiz"
    assert history[0]["correctAnswers"] == 1

    r = client.post("/api/session/review", headers=headers)
    assert len(r.json()["reviewQuestions"]) == 3
    r = client.post(
        "/api/session/review/correct",
        json={"questionIndex": 1, "correctAnswerIndex": 3},
        headers=headers,
    )
    assert r.json()["reviewQuestions"][1]["wasCorrectedByUser"] is True

    r = client.post("/api/session/corrections", headers=headers)
    assert r.json()["phase"] == "completed"
    assert r.json()["score"]["correct"] == 2

    entry = client.get(f"/api/history/{result['sessionId']}", headers=headers).json()
    assert entry["correctAnswers"] == 2
    assert entry["wasCorrectedByUser"] is True


def test_answer_key_upload(client: TestClient) -> None:
    headers = register_and_login(client)
    start_topic_test(client, headers)
    client.post("/api/session/answer", json={"questionIndex": 2, "optionIndex": 1}, headers=headers)
    client.post("/api/session/submit", headers=headers)

    key = json.dumps([{"questionIndex": 2, "correctAnswerIndex": 1}]).encode("utf-8")
    r = client.post(
        "/api/session/answer-key",
        files={"file": ("key.json", key, "application/json")},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["answerKeyApplied"] == 1
    assert r.json()["score"]["correct"] == 1

    r = client.post(
        "/api/session/answer-key",
        files={"file": ("key.json", b"{broken", "application/json")},
        headers=headers,
    )
    assert r.status_code == 422


def test_explanation_and_chat(client: TestClient) -> None:
    headers = register_and_login(client)
    start_topic_test(client, headers)
    client.post("/api/session/submit", headers=headers)
    client.post("/api/session/review", headers=headers)

    r = client.post("/api/session/questions/0/explanation", headers=headers)
    assert r.status_code == 200
    assert r.json()["explanation"] == "Option A follows from the passage."
    state = client.get("/api/session", headers=headers).json()
    assert state["reviewQuestions"][0]["explanation"] == "Option A follows from the passage."

    r = client.post("/api/session/questions/0/chat", headers=headers)
    assert [m["sender"] for m in r.json()["messages"]] == ["gemini"]

    r = client.post(
        "/api/session/questions/0/chat/messages",
        json={"message": "Why?"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.text == "Because of chlorophyll."

    messages = client.get("/api/session/questions/0/chat", headers=headers).json()["messages"]
    assert [m["text"] for m in messages[1:]] == ["Why?", "Because of chlorophyll."]

    assert client.get("/api/session/questions/1/chat", headers=headers).status_code == 404


def test_resume_after_restart(client: TestClient, db_factory, tmp_path: Path) -> None:
    headers = register_and_login(client)
    start_topic_test(client, headers)
    client.post("/api/session/answer", json={"questionIndex": 0, "optionIndex": 2}, headers=headers)

    app.state.session_manager = SessionManager(
        recorder_factory=lambda user_id: DatabaseHistoryRecorder(user_id, db_factory),
        store_factory=lambda user_id: UserSnapshotStore(user_id, tmp_path),
    )
    state = client.get("/api/session", headers=headers).json()
    assert state["phase"] == "home"
    assert state["hasSavedProgress"] is True

    state = client.post("/api/session/resume", headers=headers).json()
    assert state["phase"] == "in_progress"
    assert state["questions"][0]["userAnswerIndex"] == 2


def test_retake_from_history(client: TestClient) -> None:
    headers = register_and_login(client)
    start_topic_test(client, headers)
    entry_id = client.post("/api/session/submit", headers=headers).json()["sessionId"]

    r = client.post(f"/api/session/retake/{entry_id}", headers=headers)
    assert r.json()["phase"] == "setup"
    assert r.json()["isRetakeMode"] is True
    assert r.json()["config"]["testName"] == "Bio quiz - Retake 1"

    assert client.post("/api/session/retake/missing", headers=headers).status_code == 404


def test_leaderboard(client: TestClient) -> None:
    headers = register_and_login(client)
    start_topic_test(client, headers)
    client.post("/api/session/answer", json={"questionIndex": 0, "optionIndex": 0}, headers=headers)
    client.post("/api/session/submit", headers=headers)

    board = client.get("/api/leaderboard", headers=headers).json()
    assert board["podium"][0]["username"] == "alice"
    assert board["podium"][0]["tests_completed"] == 1
    assert board["current_user"] is None


def test_refresh_token(client: TestClient) -> None:
    headers = register_and_login(client)

    r = client.post("/api/auth/refresh", headers=headers)
    assert r.status_code == 200, r.text
    fresh = {"Authorization": f"Bearer {r.json()['access_token']}"}
    assert client.get("/api/auth/me", headers=fresh).status_code == 200
    # the swapped-out token is retired
    assert client.post("/api/auth/refresh", headers=headers).status_code == 401

    assert client.post("/api/auth/logout", headers=fresh).status_code == 200
    assert client.post("/api/auth/refresh", headers=fresh).status_code == 401


def test_extract_document(client: TestClient) -> None:
    headers = register_and_login(client)

    r = client.post(
        "/api/extract",
        files={"file": ("notes.txt", b"Mitochondria make ATP.", "text/plain")},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json() == {
        "fileName": "notes.txt",
        "mimeType": "text/plain",
        "text": "Mitochondria make ATP.",
    }

    r = client.post(
        "/api/extract",
        files={"file": ("scan.pdf", b"%PDF-1.4 fake", "application/pdf")},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["text"] == "Text read from the scan."

    r = client.post(
        "/api/extract",
        files={"file": ("empty.txt", b"", "text/plain")},
        headers=headers,
    )
    assert r.status_code == 422


def test_delete_and_clear_history(client: TestClient) -> None:
    headers = register_and_login(client)
    ids = []
    for _ in range(3):
        start_topic_test(client, headers)
        ids.append(client.post("/api/session/submit", headers=headers).json()["sessionId"])
        client.post("/api/session/home", headers=headers)

    assert len(set(ids)) == 3
    assert client.delete(f"/api/history/{ids[0]}", headers=headers).status_code == 200
    assert client.delete(f"/api/history/{ids[0]}", headers=headers).status_code == 404
    assert {e["id"] for e in client.get("/api/history", headers=headers).json()} == set(ids[1:])

    assert client.delete("/api/history", headers=headers).status_code == 200
    assert client.get("/api/history", headers=headers).json() == []


def test_second_test_keeps_first_in_history(client: TestClient) -> None:
    headers = register_and_login(client)
    start_topic_test(client, headers)
    first = client.post("/api/session/submit", headers=headers).json()
    client.post("/api/session/home", headers=headers)

    start_topic_test(client, headers, content="Volcanoes", numQuestions=2)
    second = client.post("/api/session/submit", headers=headers).json()

    assert first["sessionId"] != second["sessionId"]
    history = client.get("/api/history", headers=headers).json()
    assert sorted(e["totalQuestions"] for e in history) == [2, 3]
    entry = client.get(f"/api/history/{first['sessionId']}", headers=headers).json()
    assert entry["originalConfig"]["content"] == "Photosynthesis"


def test_rejected_corrections_change_nothing(client: TestClient) -> None:
    headers = register_and_login(client)
    start_topic_test(client, headers)
    client.post("/api/session/submit", headers=headers)
    client.post("/api/session/review", headers=headers)

    r = client.post(
        "/api/session/corrections",
        json=[
            {"questionIndex": 0, "correctAnswerIndex": 3},
            {"questionIndex": 99, "correctAnswerIndex": 0},
        ],
        headers=headers,
    )
    assert r.status_code == 409

    state = client.get("/api/session", headers=headers).json()
    assert state["phase"] == "review"
    assert state["reviewQuestions"][0]["correctAnswerIndex"] == 0
    assert state["reviewQuestions"][0]["wasCorrectedByUser"] is False


def test_purged_snapshot_is_not_offered(client: TestClient, tmp_path: Path) -> None:
    headers = register_and_login(client)
    start_topic_test(client, headers)
    client.post("/api/session/home", headers=headers)
    assert client.get("/api/session", headers=headers).json()["hasSavedProgress"] is True

    for path in tmp_path.glob("*.json"):
        path.unlink()

    assert client.get("/api/session", headers=headers).json()["hasSavedProgress"] is False
    assert client.post("/api/session/resume", headers=headers).status_code == 409
