"""SM-2 family review scheduling.

カードの復習状態（繰り返し回数・ease・間隔）と 1..5 の評価から、次回の
間隔と復習日を計算する純粋関数群。永続化は呼び出し側が行う。
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Protocol

DEFAULT_EASE = 2.5
EASE_FLOOR = 1.3
MIN_RATING = 1
MAX_RATING = 5
PASSING_RATING = 3

# interval thresholds (days) for the reviewing / mastered buckets
_REVIEWING_INTERVAL = 6
_MASTERED_INTERVAL = 21


class CardStatus(str, Enum):
    new = "new"
    learning = "learning"
    reviewing = "reviewing"
    mastered = "mastered"


_STATUS_PRIORITY = {
    CardStatus.new: 0,
    CardStatus.learning: 1,
    CardStatus.reviewing: 2,
    CardStatus.mastered: 3,
}


@dataclass(frozen=True)
class SchedulingState:
    """Persisted repetition state of a single card."""

    repetition_count: int = 0
    ease_factor: float = DEFAULT_EASE
    interval_days: int = 0


@dataclass(frozen=True)
class ReviewDecision:
    """Result of one review: the fields the caller has to persist."""

    repetition_count: int
    ease_factor: float
    interval_days: int
    next_review_date: date
    status: CardStatus
    rating: int
    reviewed_on: date

    @property
    def state(self) -> SchedulingState:
        return SchedulingState(
            repetition_count=self.repetition_count,
            ease_factor=self.ease_factor,
            interval_days=self.interval_days,
        )


@dataclass(frozen=True)
class DeckStats:
    total_cards: int
    new: int
    learning: int
    reviewing: int
    mastered: int
    due_today: int


class SchedulableCard(Protocol):
    status: CardStatus
    next_review_date: date | None


def clamp_rating(rating: object) -> int:
    """Coerce a rating into [1, 5]; anything unparsable counts as a lapse."""

    try:
        value = int(rating)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return MIN_RATING
    return max(MIN_RATING, min(MAX_RATING, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def classify_status(interval_days: int, *, reviewed: bool = True) -> CardStatus:
    """Bucket a card by its current interval.

    一度も復習されていないカードは `new`、以降は間隔の長さで分類する。
    """

    if not reviewed:
        return CardStatus.new
    if interval_days >= _MASTERED_INTERVAL:
        return CardStatus.mastered
    if interval_days >= _REVIEWING_INTERVAL:
        return CardStatus.reviewing
    return CardStatus.learning


class ReviewScheduler:
    """Compute the next scheduling state of a card from a recall rating.

    - rating < 3: 繰り返し回数を 0 に戻し、翌日に再出題（ease は据え置き）
    - rating >= 3: ease を SM-2 の式で更新し（下限あり）、間隔を 1 日 → 6 日 →
      前回間隔 × ease と伸ばす
    """

    def __init__(
        self,
        *,
        ease_floor: float = EASE_FLOOR,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.ease_floor = ease_floor
        self._today = today

    def next_state(
        self,
        state: SchedulingState,
        rating: object,
        *,
        today: date | None = None,
    ) -> ReviewDecision:
        q = clamp_rating(rating)
        review_day = today or self._today()
        ease = max(self.ease_floor, float(state.ease_factor))

        if q < PASSING_RATING:
            return ReviewDecision(
                repetition_count=0,
                ease_factor=ease,
                interval_days=1,
                next_review_date=review_day + timedelta(days=1),
                status=CardStatus.learning,
                rating=q,
                reviewed_on=review_day,
            )

        ease = max(
            self.ease_floor,
            ease + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)),
        )
        previous_repetitions = max(0, int(state.repetition_count))
        if previous_repetitions == 0:
            interval = 1
        elif previous_repetitions == 1:
            interval = 6
        else:
            interval = _round_half_up(max(0, int(state.interval_days)) * ease)
        interval = max(1, interval)

        return ReviewDecision(
            repetition_count=previous_repetitions + 1,
            ease_factor=ease,
            interval_days=interval,
            next_review_date=review_day + timedelta(days=interval),
            status=classify_status(interval),
            rating=q,
            reviewed_on=review_day,
        )


def is_due(next_review_date: date | None, as_of: date) -> bool:
    """A card is due on or after its review date; undated cards are always due."""

    return next_review_date is None or next_review_date <= as_of


def order_due_cards(cards: Iterable[SchedulableCard]) -> list:
    """Order due cards: new first, then learning/reviewing/mastered, oldest date first."""

    def _key(card: SchedulableCard) -> tuple[int, date]:
        return (
            _STATUS_PRIORITY.get(card.status, len(_STATUS_PRIORITY)),
            card.next_review_date or date.min,
        )

    return sorted(cards, key=_key)


def summarize_deck(cards: Sequence[SchedulableCard], as_of: date) -> DeckStats:
    counts = Counter(card.status for card in cards)
    return DeckStats(
        total_cards=len(cards),
        new=counts.get(CardStatus.new, 0),
        learning=counts.get(CardStatus.learning, 0),
        reviewing=counts.get(CardStatus.reviewing, 0),
        mastered=counts.get(CardStatus.mastered, 0),
        due_today=sum(1 for card in cards if is_due(card.next_review_date, as_of)),
    )
