"""Flashcard study session state machine.

1 回の学習セッション（カード N 枚）を状態機械として表現する。

    active(1/M) -> active(2/M) -> ... -> complete
    complete --replay_missed--> active(1/K)   (K = 取りこぼしたカード数)
    * --exit--> exited

評価ごとに ReviewScheduler で次回の復習状態を計算し、ReviewRecorder へ渡す。
保存に失敗してもセッションは進み、失敗は結果値と ``pending_reviews`` に残す。
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Protocol

from .logging import logger
from .scheduler import (
    CardStatus,
    ReviewDecision,
    ReviewScheduler,
    SchedulingState,
    clamp_rating,
    classify_status,
)

MASTERY_RATING = 4
MISSED_RATING = 2
MILESTONE_EVERY = 5


class SessionStateError(RuntimeError):
    """Raised when an operation is not valid in the session's current state."""


class SessionState(str, Enum):
    active = "active"
    complete = "complete"
    exited = "exited"


class CardResult(str, Enum):
    mastered = "mastered"
    needs_work = "needs_work"


class PersistenceStatus(str, Enum):
    ok = "ok"
    persistence_failed = "persistence_failed"
    skipped = "skipped"


@dataclass(frozen=True)
class StudyCard:
    id: str
    deck_id: str
    front: str
    back: str
    hint: str | None = None
    difficulty: str = "medium"
    scheduling: SchedulingState = field(default_factory=SchedulingState)
    next_review_date: date | None = None
    last_reviewed: date | None = None

    @property
    def status(self) -> CardStatus:
        return classify_status(
            self.scheduling.interval_days,
            reviewed=self.last_reviewed is not None or self.scheduling.repetition_count > 0,
        )


class ReviewRecorder(Protocol):
    def save_card_review(self, card_id: str, decision: ReviewDecision) -> None:
        """Persist a review decision; raise on failure."""


@dataclass(frozen=True)
class RatingOutcome:
    card_id: str
    rating: int
    result: CardResult
    decision: ReviewDecision
    persistence: PersistenceStatus
    persistence_error: str | None
    streak: int
    milestone: bool
    completed: bool


@dataclass(frozen=True)
class SessionSummary:
    total_cards: int
    mastered: int
    needs_work: int
    accuracy: int
    streak: int
    best_streak: int
    duration_seconds: float
    card_seconds: list[float]
    average_seconds_per_card: float
    cards_per_minute: float
    missed_card_ids: list[str]
    results: list[CardResult]


@dataclass
class _PendingReview:
    card_id: str
    decision: ReviewDecision
    error: str


class StudySession:
    """One pass over a list of cards.

    ``handle_rating`` は ``active`` 状態でのみ有効。空のカードリストは即座に
    ``complete`` になる。
    """

    def __init__(
        self,
        cards: Sequence[StudyCard],
        *,
        scheduler: ReviewScheduler,
        recorder: ReviewRecorder | None = None,
        clock: Callable[[], float] = time.monotonic,
        today: date | None = None,
        mastery_rating: int = MASTERY_RATING,
    ) -> None:
        if not MISSED_RATING < mastery_rating <= 5:
            raise ValueError(
                f"mastery_rating must be between {MISSED_RATING + 1} and 5, got {mastery_rating}"
            )
        self.cards: list[StudyCard] = list(cards)
        self.scheduler = scheduler
        self.recorder = recorder
        self.mastery_rating = mastery_rating
        self._clock = clock
        self._today = today
        self.state = SessionState.active if self.cards else SessionState.complete
        self.index = 0
        self.streak = 0
        self.best_streak = 0
        self.results: list[CardResult] = []
        self.card_seconds: list[float] = []
        self.missed: list[StudyCard] = []
        self.pending_reviews: list[_PendingReview] = []
        # cards as they look after this session's reviews
        self._updated: dict[str, StudyCard] = {}
        self._started_at = clock()
        self._card_shown_at = self._started_at
        self._finished_at: float | None = None if self.cards else self._started_at

    @property
    def current_card(self) -> StudyCard | None:
        if self.state is not SessionState.active:
            return None
        return self.cards[self.index]

    @property
    def position(self) -> tuple[int, int]:
        """(1-based card number, total) for progress display."""

        return (min(self.index + 1, len(self.cards)), len(self.cards))

    def handle_rating(self, rating: object) -> RatingOutcome:
        if self.state is not SessionState.active:
            raise SessionStateError(f"cannot rate a card in state {self.state.value}")

        card = self.cards[self.index]
        now = self._clock()
        self.card_seconds.append(max(0.0, now - self._card_shown_at))
        self._card_shown_at = now

        q = clamp_rating(rating)
        decision = self.scheduler.next_state(card.scheduling, q, today=self._today)
        self._updated[card.id] = replace(
            card,
            scheduling=decision.state,
            next_review_date=decision.next_review_date,
            last_reviewed=decision.reviewed_on,
        )
        persistence, error = self._persist(card.id, decision)

        result = CardResult.mastered if q >= self.mastery_rating else CardResult.needs_work
        self.results.append(result)
        if q <= MISSED_RATING:
            self.missed.append(card)
        if result is CardResult.mastered:
            self.streak += 1
            self.best_streak = max(self.best_streak, self.streak)
        else:
            self.streak = 0
        milestone = result is CardResult.mastered and self.streak % MILESTONE_EVERY == 0

        if self.index + 1 >= len(self.cards):
            self.state = SessionState.complete
            self._finished_at = now
        else:
            self.index += 1

        return RatingOutcome(
            card_id=card.id,
            rating=q,
            result=result,
            decision=decision,
            persistence=persistence,
            persistence_error=error,
            streak=self.streak,
            milestone=milestone,
            completed=self.state is SessionState.complete,
        )

    def _persist(
        self, card_id: str, decision: ReviewDecision
    ) -> tuple[PersistenceStatus, str | None]:
        if self.recorder is None:
            return PersistenceStatus.skipped, None
        try:
            self.recorder.save_card_review(card_id, decision)
        except Exception as exc:  # noqa: BLE001 - セッションは継続させる
            logger.warning(
                "card_review_persist_failed",
                card_id=card_id,
                error=repr(exc),
                error_class=exc.__class__.__name__,
            )
            self.pending_reviews.append(
                _PendingReview(card_id=card_id, decision=decision, error=repr(exc))
            )
            return PersistenceStatus.persistence_failed, str(exc) or exc.__class__.__name__
        return PersistenceStatus.ok, None

    def retry_pending_reviews(self) -> int:
        """Resubmit reviews whose persistence failed; return how many succeeded."""

        if self.recorder is None or not self.pending_reviews:
            return 0
        still_pending: list[_PendingReview] = []
        succeeded = 0
        for pending in self.pending_reviews:
            try:
                self.recorder.save_card_review(pending.card_id, pending.decision)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "card_review_retry_failed",
                    card_id=pending.card_id,
                    error=repr(exc),
                )
                pending.error = repr(exc)
                still_pending.append(pending)
            else:
                succeeded += 1
        self.pending_reviews = still_pending
        if succeeded:
            logger.info(
                "card_review_retry_succeeded",
                succeeded=succeeded,
                remaining=len(still_pending),
            )
        return succeeded

    def exit(self) -> None:
        if self.state is SessionState.active:
            self._finished_at = self._clock()
        self.state = SessionState.exited

    @property
    def can_replay(self) -> bool:
        return self.state is SessionState.complete and bool(self.missed)

    def replay_missed(self) -> "StudySession":
        """Start a new session over exactly the missed cards.

        取りこぼしたカードは今回の評価で更新された復習状態を引き継ぐ。
        """

        if not self.can_replay:
            raise SessionStateError("replay is only available after completing with missed cards")
        replay_cards = [self._updated.get(card.id, card) for card in self.missed]
        return StudySession(
            replay_cards,
            scheduler=self.scheduler,
            recorder=self.recorder,
            clock=self._clock,
            today=self._today,
            mastery_rating=self.mastery_rating,
        )

    def summary(self) -> SessionSummary:
        end = self._finished_at if self._finished_at is not None else self._clock()
        duration = max(0.0, end - self._started_at)
        total = len(self.cards)
        mastered = sum(1 for r in self.results if r is CardResult.mastered)
        needs_work = sum(1 for r in self.results if r is CardResult.needs_work)
        reviewed = len(self.card_seconds)
        average = sum(self.card_seconds) / reviewed if reviewed else 0.0
        per_minute = reviewed / (duration / 60) if duration > 0 else 0.0
        return SessionSummary(
            total_cards=total,
            mastered=mastered,
            needs_work=needs_work,
            accuracy=int(mastered / total * 100 + 0.5) if total else 0,
            streak=self.streak,
            best_streak=self.best_streak,
            duration_seconds=duration,
            card_seconds=list(self.card_seconds),
            average_seconds_per_card=average,
            cards_per_minute=per_minute,
            missed_card_ids=[card.id for card in self.missed],
            results=list(self.results),
        )
