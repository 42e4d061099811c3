"""HTTP 層の結合テスト。Firestore はフェイク、LLM はスタブで差し替える。"""

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from studyhub.assignment_parser import LLMAssignmentParser
from studyhub.deps import get_app_store, get_assignment_parser
from studyhub.main import app
from studyhub.store.firestore_store import AppFirestoreStore
from tests.firestore_fakes import FakeFirestoreClient


class _StubLLM:
    def __init__(self, response: str = "", error: Exception | None = None) -> None:
        self.response = response
        self.error = error

    def complete(self, prompt: str) -> str:
        if self.error is not None:
            raise self.error
        return self.response


class _BrokenStore:
    def get_card(self, card_id):
        raise ConnectionError("firestore unavailable")


@pytest.fixture()
def fake_client() -> FakeFirestoreClient:
    return FakeFirestoreClient()


@pytest.fixture()
def store(fake_client) -> AppFirestoreStore:
    return AppFirestoreStore(client=fake_client)


@pytest.fixture()
def client(store):
    app.dependency_overrides[get_app_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _use_llm(llm) -> None:
    app.dependency_overrides[get_assignment_parser] = lambda: LLMAssignmentParser(llm)


def test_healthz(client):
    resp = client.get("/healthz")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_config_exposes_thresholds(client):
    body = client.get("/api/config").json()

    assert body["grading_correct_threshold"] == 0.6
    assert body["study_mastery_rating"] == 4
    assert body["schedule_day_start"] == 360


def test_grade_card_persists_next_review(client, store):
    store.add_deck("Bio", deck_id="bio")
    store.add_card("bio", front="ATP", back="energy currency", card_id="c1")

    resp = client.post("/api/review/grade", json={"card_id": "c1", "rating": 5})

    assert resp.status_code == 200
    body = resp.json()
    assert body["interval_days"] == 1
    assert body["repetition_count"] == 1
    assert body["status"] == "learning"
    assert body["next_review_date"] == (date.today() + timedelta(days=1)).isoformat()
    assert store.get_card("c1").scheduling.repetition_count == 1


def test_grade_card_clamps_out_of_range_rating(client, store):
    store.add_deck("Bio", deck_id="bio")
    store.add_card("bio", front="f", back="b", card_id="c1")

    resp = client.post("/api/review/grade", json={"card_id": "c1", "rating": 9})

    assert resp.status_code == 200
    assert resp.json()["rating"] == 5


def test_grade_unknown_card_is_404(client):
    resp = client.post("/api/review/grade", json={"card_id": "ghost", "rating": 4})

    assert resp.status_code == 404


def test_grade_card_save_failure_is_503(client, store, fake_client):
    store.add_deck("Bio", deck_id="bio")
    store.add_card("bio", front="f", back="b", card_id="c1")
    fake_client.fail_writes_to.add("cards")

    resp = client.post("/api/review/grade", json={"card_id": "c1", "rating": 4})

    assert resp.status_code == 503
    assert store.get_card("c1").scheduling.repetition_count == 0


def test_grade_card_load_failure_is_503(client):
    app.dependency_overrides[get_app_store] = lambda: _BrokenStore()

    resp = client.post("/api/review/grade", json={"card_id": "c1", "rating": 4})

    assert resp.status_code == 503


def test_due_cards_and_stats(client, store):
    today = date(2026, 10, 19)
    store.add_deck("Bio", deck_id="bio")
    store.add_card("bio", front="a", back="a", card_id="due", today=today - timedelta(days=1))
    store.add_card("bio", front="b", back="b", card_id="later", today=today + timedelta(days=3))

    due = client.get("/api/review/due", params={"deck_id": "bio", "as_of": today.isoformat()})
    stats = client.get("/api/review/stats", params={"deck_id": "bio"})

    assert due.status_code == 200
    assert due.json()["total"] == 1
    assert due.json()["items"][0]["id"] == "due"
    assert due.json()["items"][0]["status"] == "new"
    assert stats.json()["total_cards"] == 2
    assert stats.json()["new"] == 2


def test_stats_for_unknown_deck_is_404(client):
    assert client.get("/api/review/stats", params={"deck_id": "missing"}).status_code == 404


def test_grade_answer(client):
    resp = client.post(
        "/api/quiz/grade-answer", json={"user_answer": "the capital is Paris", "reference_answer": "Paris"}
    )

    assert resp.status_code == 200
    assert resp.json() == {"is_correct": True, "similarity": 0.9}


def test_grade_answer_requires_reference(client):
    resp = client.post("/api/quiz/grade-answer", json={"user_answer": "x", "reference_answer": ""})

    assert resp.status_code == 422


_QUIZ_PAYLOAD = {
    "questions": [
        {
            "id": "q1",
            "question_type": "multiple_choice",
            "prompt": "Capital of France?",
            "correct_answer": "Paris",
            "options": ["Paris", "Rome"],
        },
        {"id": "q2", "question_type": "true_false", "prompt": "Sun is a star", "correct_answer": "true"},
    ],
    "answers": {"q1": "Paris", "q2": "False"},
    "time_spent_seconds": 42,
}


def test_submit_quiz_attempt_is_scored_and_saved(client, store):
    resp = client.post("/api/quiz/geo-1/attempts", json=_QUIZ_PAYLOAD)

    body = resp.json()
    assert resp.status_code == 200
    assert body["score"] == 1
    assert body["percentage"] == 50.0
    assert body["persisted"] is True
    assert [a["id"] for a in store.list_quiz_attempts("geo-1")] == [body["attempt_id"]]


def test_quiz_attempt_save_failure_still_returns_score(client, fake_client):
    fake_client.fail_writes_to.add("quiz_attempts")

    resp = client.post("/api/quiz/geo-1/attempts", json=_QUIZ_PAYLOAD)

    assert resp.status_code == 200
    assert resp.json()["persisted"] is False
    assert resp.json()["attempt_id"] is None
    assert resp.json()["score"] == 1


def test_quiz_question_options_are_validated(client):
    payload = {
        "questions": [
            {
                "id": "q1",
                "question_type": "multiple_choice",
                "prompt": "?",
                "correct_answer": "Paris",
                "options": ["Rome"],
            }
        ]
    }

    assert client.post("/api/quiz/geo-1/attempts", json=payload).status_code == 422


def test_schedule_conflicts(client):
    payload = {
        "activity": {"id": "new", "start_time": "09:00", "duration_minutes": 60, "activity_type": "study"},
        "existing": [{"id": "a", "title": "Math", "start_time": "09:30", "duration_minutes": 60}],
    }

    body = client.post("/api/schedule/conflicts", json=payload).json()

    assert body["has_conflict"] is True
    assert body["conflicts"][0]["overlap_minutes"] == 30
    assert body["conflicts"][0]["severity"] == "major"
    assert body["conflicts"][0]["activity"]["title"] == "Math"
    assert 1 <= len(body["suggestions"]) <= 3


def test_schedule_free_slots(client):
    payload = {"existing": [{"id": "a", "start_time": "09:00", "duration_minutes": 60}]}

    body = client.post("/api/schedule/free-slots", json=payload).json()

    assert body["slots"] == [
        {"start": "06:00", "end": "09:00", "duration_minutes": 180},
        {"start": "10:00", "end": "23:00", "duration_minutes": 780},
    ]


def test_schedule_resolve(client):
    busy = {"id": "busy", "start_time": "07:00", "duration_minutes": 120}
    mover = {"id": "mover", "start_time": "08:30", "duration_minutes": 60}
    full = {"id": "full", "start_time": "06:00", "duration_minutes": 1020}

    ok = client.post(
        "/api/schedule/resolve",
        json={"conflicting": [mover], "activities": [busy, mover], "strategy": "earliest"},
    ).json()
    stuck = client.post(
        "/api/schedule/resolve",
        json={"conflicting": [mover], "activities": [busy, full, mover]},
    ).json()

    assert ok["rescheduled"][0]["start_time"] == "06:00"
    assert ok["unresolved"] == []
    assert stuck["rescheduled"] == []
    assert stuck["unresolved"] == ["mover"]


def test_schedule_resolve_rejects_unknown_strategy(client):
    resp = client.post(
        "/api/schedule/resolve", json={"conflicting": [], "activities": [], "strategy": "random"}
    )

    assert resp.status_code == 422


def test_parse_assignment(client):
    _use_llm(
        _StubLLM(
            '```json\n{"title": "Essay", "subject": "English", "dueDate": "2026-10-23",'
            ' "priority": "low", "timeEstimate": "2h 30m"}\n```'
        )
    )

    resp = client.post(
        "/api/assignments/parse", json={"text": "English essay due Friday", "today": "2026-10-19"}
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "title": "Essay",
        "subject": "English",
        "due_date": "2026-10-23",
        "priority": "low",
        "time_estimate": "2h 30m",
        "time_estimate_minutes": 150,
    }


def test_parse_assignment_unusable_response_is_422(client):
    _use_llm(_StubLLM("I could not understand that."))

    resp = client.post("/api/assignments/parse", json={"text": "something"})

    assert resp.status_code == 422


def test_parse_assignment_llm_failure_is_502(client):
    _use_llm(_StubLLM(error=RuntimeError("LLM timeout (reason_code=TIMEOUT)")))

    resp = client.post("/api/assignments/parse", json={"text": "Math homework"})

    assert resp.status_code == 502


def test_streak_check_in_flow(client):
    first = client.post("/api/streaks/u1/check-in", json={"today": "2026-10-18"}).json()
    second = client.post("/api/streaks/u1/check-in", json={"today": "2026-10-19"}).json()
    again = client.post("/api/streaks/u1/check-in", json={"today": "2026-10-19"}).json()

    assert (first["current_streak"], first["is_new_streak"]) == (1, True)
    assert (second["current_streak"], second["longest_streak"]) == (2, 2)
    assert again["current_streak"] == 2
    assert again["is_new_streak"] is False


def test_streak_history_without_body(client):
    client.post("/api/streaks/u2/check-in")

    body = client.get("/api/streaks/u2").json()

    assert body["current_streak"] == 1
    assert body["history"] == [date.today().isoformat()]


def test_unknown_user_streak_is_empty(client):
    body = client.get("/api/streaks/nobody").json()

    assert body["current_streak"] == 0
    assert body["history"] == []
