"""AppFirestoreStore をインメモリのフェイク Firestore で検証する。"""

from datetime import date, timedelta

import pytest

from studyhub.quiz import QuestionType, QuizQuestion, score_quiz
from studyhub.scheduler import CardStatus, ReviewScheduler, SchedulingState, summarize_deck
from studyhub.store.firestore_store import AppFirestoreStore
from studyhub.streaks import StreakState
from studyhub.study_session import StudySession

from tests.firestore_fakes import FakeFirestoreClient, FakeWriteError

TODAY = date(2026, 10, 19)


@pytest.fixture()
def client() -> FakeFirestoreClient:
    return FakeFirestoreClient()


@pytest.fixture()
def store(client) -> AppFirestoreStore:
    return AppFirestoreStore(client=client)


def test_add_card_starts_new_and_due_today(store):
    deck_id = store.add_deck("Biology", deck_id="bio")

    card = store.add_card(deck_id, front="Mitochondria", back="Powerhouse", today=TODAY)

    assert card.deck_id == "bio"
    assert card.status is CardStatus.new
    assert card.scheduling == SchedulingState()
    assert card.next_review_date == TODAY
    assert store.load_due_cards("bio", TODAY) == [card]


def test_add_card_to_unknown_deck_raises(store):
    with pytest.raises(KeyError):
        store.add_card("missing", front="f", back="b")


def test_initial_ease_is_configurable(client):
    store = AppFirestoreStore(client=client, initial_ease=2.3)
    store.add_deck("Deck", deck_id="d")

    card = store.add_card("d", front="f", back="b", today=TODAY)

    assert card.scheduling.ease_factor == pytest.approx(2.3)


def test_save_card_review_updates_card_and_appends_log(store):
    store.add_deck("Deck", deck_id="d")
    card = store.add_card("d", front="f", back="b", today=TODAY, card_id="c1")
    decision = ReviewScheduler().next_state(card.scheduling, 5, today=TODAY)

    store.save_card_review("c1", decision)

    updated = store.get_card("c1")
    assert updated.scheduling.repetition_count == 1
    assert updated.scheduling.interval_days == 1
    assert updated.next_review_date == TODAY + timedelta(days=1)
    assert updated.last_reviewed is not None
    reviews = store.list_card_reviews("c1")
    assert len(reviews) == 1
    assert reviews[0]["rating"] == 5
    assert reviews[0]["deck_id"] == "d"
    # 翌日まで復習対象から外れる
    assert store.load_due_cards("d", TODAY) == []
    assert [c.id for c in store.load_due_cards("d", TODAY + timedelta(days=1))] == ["c1"]


def test_save_card_review_for_unknown_card_raises(store):
    decision = ReviewScheduler().next_state(SchedulingState(), 4, today=TODAY)

    with pytest.raises(KeyError):
        store.save_card_review("ghost", decision)


def test_save_card_review_propagates_write_failures(store, client):
    store.add_deck("Deck", deck_id="d")
    card = store.add_card("d", front="f", back="b", today=TODAY, card_id="c1")
    client.fail_writes_to.add("cards")

    with pytest.raises(FakeWriteError):
        store.save_card_review("c1", ReviewScheduler().next_state(card.scheduling, 4, today=TODAY))


def test_load_due_cards_filters_by_deck_and_respects_limit(store):
    store.add_deck("A", deck_id="a")
    store.add_deck("B", deck_id="b")
    for i in range(3):
        store.add_card("a", front=f"a{i}", back="x", today=TODAY - timedelta(days=i), card_id=f"a{i}")
    store.add_card("b", front="b0", back="x", today=TODAY, card_id="b0")
    store.add_card("a", front="future", back="x", today=TODAY + timedelta(days=2), card_id="late")

    due_a = store.load_due_cards("a", TODAY)
    due_all = store.load_due_cards(None, TODAY)

    assert [c.id for c in due_a] == ["a2", "a1", "a0"]
    assert {c.id for c in due_all} == {"a0", "a1", "a2", "b0"}
    assert len(store.load_due_cards(None, TODAY, limit=2)) == 2


def test_delete_deck_removes_its_cards(store):
    store.add_deck("A", deck_id="a")
    store.add_deck("B", deck_id="b")
    store.add_card("a", front="f", back="b", card_id="a1")
    store.add_card("b", front="f", back="b", card_id="b1")

    assert store.delete_deck("a") is True
    assert store.get_deck("a") is None
    assert store.get_card("a1") is None
    assert store.get_card("b1") is not None
    assert store.delete_deck("a") is False


def test_get_deck_returns_id_and_fields(store):
    store.add_deck("Chemistry", description="Unit 3", deck_id="chem")

    deck = store.get_deck("chem")

    assert deck["id"] == "chem"
    assert deck["name"] == "Chemistry"
    assert deck["description"] == "Unit 3"


def test_quiz_attempts_are_listed_newest_first(store, client):
    question = QuizQuestion(
        id="q1", question_type=QuestionType.true_false, prompt="?", correct_answer="true"
    )
    first = store.save_quiz_attempt("quiz-1", score_quiz([question], {"q1": "true"}))
    second = store.save_quiz_attempt("quiz-1", score_quiz([question], {"q1": "false"}))
    store.save_quiz_attempt("quiz-2", score_quiz([question], {}))
    client.data["quiz_attempts"][first]["completed_at"] = "2026-10-18T10:00:00+00:00"
    client.data["quiz_attempts"][second]["completed_at"] = "2026-10-19T10:00:00+00:00"

    attempts = store.list_quiz_attempts("quiz-1")

    assert [a["id"] for a in attempts] == [second, first]
    assert attempts[1]["score"] == 1
    assert attempts[1]["answers"][0]["question_type"] == "true_false"


def test_streak_round_trip_and_history(store):
    assert store.get_streak("u1") is None

    state = StreakState(current_streak=3, longest_streak=5, last_login_date=TODAY)
    store.save_streak("u1", state)
    for offset in (0, 1, 2, 10):
        store.log_login("u1", TODAY - timedelta(days=offset))
    store.log_login("u1", TODAY)
    store.log_login("u2", TODAY)

    assert store.get_streak("u1") == state
    assert store.get_streak_history("u1", since=TODAY - timedelta(days=7)) == [
        TODAY - timedelta(days=2),
        TODAY - timedelta(days=1),
        TODAY,
    ]
    assert len(store.get_streak_history("u1")) == 4


def test_session_review_persists_review_day_not_wall_clock(store):
    """保存される last_reviewed は評価日であり、次回復習日を超えない。"""

    review_day = date(2020, 1, 1)
    store.add_deck("Deck", deck_id="d")
    card = store.add_card("d", front="f", back="b", today=review_day, card_id="c1")
    session = StudySession(
        [card], scheduler=ReviewScheduler(), recorder=store, today=review_day
    )

    session.handle_rating(1)

    stored = store.get_card("c1")
    assert stored.last_reviewed == review_day
    assert stored.next_review_date == date(2020, 1, 2)
    assert stored.last_reviewed <= stored.next_review_date
    assert store.list_card_reviews("c1")[0]["reviewed_on"] == "2020-01-01"


def test_cards_without_review_date_are_due_and_counted_alike(store, client):
    store.add_deck("Deck", deck_id="d")
    store.add_card("d", front="f", back="b", today=TODAY + timedelta(days=5), card_id="later")
    store.add_card("d", front="f", back="b", today=TODAY, card_id="undated")
    client.data["cards"]["undated"]["next_review_date"] = None

    due = store.load_due_cards("d", TODAY)
    stats = summarize_deck(store.list_cards("d"), TODAY)

    assert [c.id for c in due] == ["undated"]
    assert due[0].next_review_date is None
    assert stats.due_today == len(due)
    assert store.load_due_cards("other", TODAY) == []
