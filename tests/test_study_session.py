"""学習セッション状態機械のテスト。

時計は ``FakeClock`` で差し替え、保存先は記録用のスタブで検証する。
"""

from datetime import date, timedelta

import pytest

from studyhub.scheduler import ReviewScheduler
from studyhub.study_session import (
    CardResult,
    PersistenceStatus,
    SessionState,
    SessionStateError,
    StudyCard,
    StudySession,
)

TODAY = date(2026, 10, 19)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingRecorder:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = set(fail_for or ())
        self.saved: list[tuple[str, int]] = []

    def save_card_review(self, card_id, decision):
        if card_id in self.fail_for:
            raise ConnectionError("firestore unavailable")
        self.saved.append((card_id, decision.interval_days))


def _cards(n: int) -> list[StudyCard]:
    return [
        StudyCard(id=f"c{i}", deck_id="deck-1", front=f"front {i}", back=f"back {i}")
        for i in range(1, n + 1)
    ]


def _session(cards, **kwargs) -> StudySession:
    kwargs.setdefault("clock", FakeClock())
    return StudySession(
        cards,
        scheduler=ReviewScheduler(today=lambda: TODAY),
        today=TODAY,
        **kwargs,
    )


def test_all_perfect_ratings_master_every_card():
    recorder = RecordingRecorder()
    session = _session(_cards(3), recorder=recorder)

    outcomes = [session.handle_rating(5) for _ in range(3)]

    summary = session.summary()
    assert session.state is SessionState.complete
    assert outcomes[-1].completed is True
    assert summary.mastered == 3
    assert summary.needs_work == 0
    assert summary.missed_card_ids == []
    assert summary.accuracy == 100
    assert [card_id for card_id, _ in recorder.saved] == ["c1", "c2", "c3"]
    assert all(o.persistence is PersistenceStatus.ok for o in outcomes)


def test_all_failed_ratings_can_be_replayed():
    session = _session(_cards(4))

    for _ in range(4):
        session.handle_rating(1)

    summary = session.summary()
    assert summary.needs_work == 4
    assert summary.missed_card_ids == ["c1", "c2", "c3", "c4"]
    assert session.can_replay

    replay = session.replay_missed()
    assert len(replay.cards) == 4
    assert replay.state is SessionState.active
    # 今回の評価で更新された復習状態を引き継ぐ
    assert replay.cards[0].scheduling.repetition_count == 0
    assert replay.cards[0].next_review_date == TODAY + timedelta(days=1)
    assert replay.cards[0].last_reviewed == TODAY


def test_rating_three_needs_work_but_is_not_missed():
    session = _session(_cards(1))

    outcome = session.handle_rating(3)

    assert outcome.result is CardResult.needs_work
    assert session.summary().missed_card_ids == []
    assert not session.can_replay


def test_streak_resets_after_low_rating():
    session = _session(_cards(4))

    assert session.handle_rating(5).streak == 1
    assert session.handle_rating(4).streak == 2
    assert session.handle_rating(2).streak == 0
    assert session.handle_rating(5).streak == 1
    assert session.summary().best_streak == 2


def test_milestone_every_five_mastered_in_a_row():
    session = _session(_cards(6))

    milestones = [session.handle_rating(5).milestone for _ in range(6)]

    assert milestones == [False, False, False, False, True, False]


def test_rating_is_clamped():
    session = _session(_cards(1))

    outcome = session.handle_rating(11)

    assert outcome.rating == 5
    assert outcome.result is CardResult.mastered


def test_card_timing_and_pace():
    clock = FakeClock()
    session = _session(_cards(2), clock=clock)

    clock.advance(10)
    session.handle_rating(5)
    clock.advance(20)
    session.handle_rating(4)
    clock.advance(100)

    summary = session.summary()
    assert summary.card_seconds == [10, 20]
    assert summary.average_seconds_per_card == pytest.approx(15)
    assert summary.duration_seconds == pytest.approx(30)
    assert summary.cards_per_minute == pytest.approx(4.0)


def test_persistence_failure_does_not_stop_the_session():
    recorder = RecordingRecorder(fail_for={"c1"})
    session = _session(_cards(2), recorder=recorder)

    first = session.handle_rating(5)
    second = session.handle_rating(5)

    assert first.persistence is PersistenceStatus.persistence_failed
    assert "firestore unavailable" in first.persistence_error
    assert second.persistence is PersistenceStatus.ok
    assert session.state is SessionState.complete
    assert [p.card_id for p in session.pending_reviews] == ["c1"]

    recorder.fail_for.clear()
    assert session.retry_pending_reviews() == 1
    assert session.pending_reviews == []
    assert [card_id for card_id, _ in recorder.saved] == ["c2", "c1"]


def test_retry_keeps_reviews_that_still_fail():
    recorder = RecordingRecorder(fail_for={"c1"})
    session = _session(_cards(1), recorder=recorder)
    session.handle_rating(4)

    assert session.retry_pending_reviews() == 0
    assert len(session.pending_reviews) == 1


def test_without_recorder_persistence_is_skipped():
    session = _session(_cards(1))

    assert session.handle_rating(4).persistence is PersistenceStatus.skipped


def test_rating_after_completion_is_rejected():
    session = _session(_cards(1))
    session.handle_rating(5)

    with pytest.raises(SessionStateError):
        session.handle_rating(5)


def test_exit_stops_the_session():
    clock = FakeClock()
    session = _session(_cards(3), clock=clock)
    session.handle_rating(5)
    clock.advance(30)

    session.exit()
    clock.advance(500)

    assert session.state is SessionState.exited
    assert session.current_card is None
    assert session.summary().duration_seconds == pytest.approx(30)
    with pytest.raises(SessionStateError):
        session.handle_rating(5)
    with pytest.raises(SessionStateError):
        session.replay_missed()


def test_empty_session_is_complete_immediately():
    session = _session([])

    assert session.state is SessionState.complete
    assert session.current_card is None
    summary = session.summary()
    assert summary.total_cards == 0
    assert summary.accuracy == 0
    assert summary.cards_per_minute == 0.0


def test_position_tracks_progress():
    session = _session(_cards(3))

    assert session.position == (1, 3)
    session.handle_rating(5)
    assert session.position == (2, 3)
    assert session.current_card.id == "c2"


def test_mastery_threshold_is_configurable():
    session = _session(_cards(1), mastery_rating=3)

    assert session.handle_rating(3).result is CardResult.mastered


@pytest.mark.parametrize("threshold", [0, 1, 2, 6])
def test_mastery_threshold_must_stay_above_missed_ratings(threshold):
    with pytest.raises(ValueError):
        _session(_cards(1), mastery_rating=threshold)


def test_make_study_session_uses_configured_threshold(monkeypatch):
    from studyhub.config import settings
    from studyhub.deps import make_study_session

    monkeypatch.setattr(settings, "study_mastery_rating", 5)
    recorder = RecordingRecorder()

    session = make_study_session(_cards(2), recorder=recorder, today=TODAY)

    assert session.mastery_rating == 5
    assert session.handle_rating(4).result is CardResult.needs_work
    assert session.handle_rating(5).result is CardResult.mastered
    assert [card_id for card_id, _ in recorder.saved] == ["c1", "c2"]
