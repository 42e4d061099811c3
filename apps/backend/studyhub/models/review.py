from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from ..scheduler import CardStatus


class ReviewGradeRequest(BaseModel):
    """1 枚のカードに対する評価（1..5）。範囲外はサーバ側で丸める。"""

    card_id: str = Field(min_length=1, description="評価対象のカードID")
    rating: int = Field(description="想起の質 1=忘れた .. 5=完璧")


class ReviewGradeResponse(BaseModel):
    card_id: str
    rating: int = Field(ge=1, le=5)
    repetition_count: int = Field(ge=0)
    ease_factor: float
    interval_days: int = Field(ge=1)
    next_review_date: date
    status: CardStatus


class DueCard(BaseModel):
    id: str
    deck_id: str
    front: str
    back: str
    hint: str | None = None
    difficulty: str = "medium"
    status: CardStatus
    repetition_count: int = 0
    ease_factor: float = 2.5
    interval_days: int = 0
    next_review_date: date | None = None


class DueCardsResponse(BaseModel):
    as_of: date
    deck_id: str | None = None
    items: list[DueCard] = Field(default_factory=list)
    total: int = 0


class DeckStatsResponse(BaseModel):
    """デッキ単位（deck_id 未指定時は全カード）の状態別件数。"""

    deck_id: str | None = None
    total_cards: int = 0
    new: int = 0
    learning: int = 0
    reviewing: int = 0
    mastered: int = 0
    due_today: int = 0
