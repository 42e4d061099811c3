from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from ..config import settings
from ..deps import get_app_store, get_scheduler
from ..logging import logger
from ..models.review import (
    DeckStatsResponse,
    DueCard,
    DueCardsResponse,
    ReviewGradeRequest,
    ReviewGradeResponse,
)
from ..scheduler import ReviewScheduler, summarize_deck
from ..store import AppFirestoreStore
from ..study_session import StudyCard

router = APIRouter(tags=["review"])


def _due_card(card: StudyCard) -> DueCard:
    return DueCard(
        id=card.id,
        deck_id=card.deck_id,
        front=card.front,
        back=card.back,
        hint=card.hint,
        difficulty=card.difficulty,
        status=card.status,
        repetition_count=card.scheduling.repetition_count,
        ease_factor=card.scheduling.ease_factor,
        interval_days=card.scheduling.interval_days,
        next_review_date=card.next_review_date,
    )


@router.post("/grade", response_model=ReviewGradeResponse)
def grade_card(
    req: ReviewGradeRequest,
    store: AppFirestoreStore = Depends(get_app_store),
    scheduler: ReviewScheduler = Depends(get_scheduler),
) -> ReviewGradeResponse:
    """カードを評価し、SM-2 で計算した次回復習日を保存して返す。

    - 未知のカード: 404
    - Firestore への保存失敗: 503（カードの状態は更新されない）
    """
    try:
        card = store.get_card(req.card_id)
    except Exception as exc:
        logger.error("card_load_failed", card_id=req.card_id, error=repr(exc))
        raise HTTPException(status_code=503, detail="card storage unavailable") from exc
    if card is None:
        raise HTTPException(status_code=404, detail="card not found")

    decision = scheduler.next_state(card.scheduling, req.rating)
    try:
        store.save_card_review(card.id, decision)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="card not found") from exc
    except Exception as exc:
        logger.error(
            "card_review_persist_failed",
            card_id=card.id,
            error=repr(exc),
            error_class=exc.__class__.__name__,
        )
        raise HTTPException(status_code=503, detail="failed to save review") from exc

    logger.info(
        "card_reviewed",
        card_id=card.id,
        rating=decision.rating,
        interval_days=decision.interval_days,
        status=decision.status.value,
    )
    return ReviewGradeResponse(
        card_id=card.id,
        rating=decision.rating,
        repetition_count=decision.repetition_count,
        ease_factor=decision.ease_factor,
        interval_days=decision.interval_days,
        next_review_date=decision.next_review_date,
        status=decision.status,
    )


@router.get("/due", response_model=DueCardsResponse)
def list_due_cards(
    deck_id: str | None = Query(default=None),
    as_of: date | None = Query(default=None, description="基準日（省略時は今日）"),
    store: AppFirestoreStore = Depends(get_app_store),
) -> DueCardsResponse:
    """復習期限の来たカードを new → learning → reviewing → mastered の順に返す。"""
    day = as_of or date.today()
    cards = store.load_due_cards(deck_id, day, limit=settings.due_cards_limit)
    items = [_due_card(card) for card in cards]
    return DueCardsResponse(as_of=day, deck_id=deck_id, items=items, total=len(items))


@router.get("/stats", response_model=DeckStatsResponse)
def deck_stats(
    deck_id: str | None = Query(default=None),
    store: AppFirestoreStore = Depends(get_app_store),
) -> DeckStatsResponse:
    if deck_id is not None and store.get_deck(deck_id) is None:
        raise HTTPException(status_code=404, detail="deck not found")
    stats = summarize_deck(store.list_cards(deck_id), date.today())
    return DeckStatsResponse(
        deck_id=deck_id,
        total_cards=stats.total_cards,
        new=stats.new,
        learning=stats.learning,
        reviewing=stats.reviewing,
        mastered=stats.mastered,
        due_today=stats.due_today,
    )
